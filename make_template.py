# ------------------------------------------------------------------------------

# clearing template generator

# ------------------------------------------------------------------------------
"""Generate the blank clearing-instruction template used by the overlay export.

Labels sit in the left margin on the same baselines the overlay writes the
values on, and a line marks the signature box.

Usage:
    python make_template.py [output.pdf]
"""
import sys
from pathlib import Path

import fitz  # PyMuPDF

from clearing_form import FIELD_LABELS
from clearing_pdf import OVERLAY_X, overlay_positions, signature_rect

A4 = fitz.paper_size('a4')


def build_template() -> bytes:
	doc = fitz.open()
	try:
		page = doc.new_page(width=A4[0], height=A4[1])
		height = page.rect.height
		page.insert_text((OVERLAY_X - 80, 50), 'Import Clearing Instruction', fontsize=16, fontname='hebo')
		for name, _x, y in overlay_positions(height):
			page.insert_text((OVERLAY_X - 80, height - y), FIELD_LABELS[name] + ':', fontsize=9, fontname='helv')
		x0, y0, x1, _y1 = signature_rect(height)
		page.insert_text((OVERLAY_X - 80, height - y0), 'Signature:', fontsize=9, fontname='helv')
		page.draw_line((x0, height - y0), (x1, height - y0), color=(0.4, 0.4, 0.4), width=0.5)
		return doc.tobytes(garbage=3, deflate=True)
	finally:
		doc.close()


def main(argv) -> int:
	out = Path(argv[1]) if len(argv) > 1 else Path(__file__).resolve().parent / 'static' / 'clearing-template.pdf'
	out.parent.mkdir(parents=True, exist_ok=True)
	out.write_bytes(build_template())
	print(f"Template written: {out}")
	return 0


if __name__ == '__main__':
	sys.exit(main(sys.argv))
