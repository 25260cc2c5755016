# ------------------------------------------------------------------------------

# atk clearing instruction pdf export

# ------------------------------------------------------------------------------
import logging
import math
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF
import requests

from clearing_form import FIELD_ORDER
from pxtools import pxDecodeB64, pxJson

logger = logging.getLogger("clearing.pdf")

BASE_DIR = Path(__file__).resolve().parent

# A4 portrait in millimetres, drawn in points
A4_WIDTH_MM = 210
A4_HEIGHT_MM = 297
MM = 72 / 25.4

RASTERIZE_FILENAME = 'clearing-instruction.pdf'
TEMPLATE_FILENAME = 'completed-form.pdf'

# overlay layout, PDF user space (origin bottom-left)
OVERLAY_X = 100
OVERLAY_FONT_SIZE = 12
OVERLAY_FONT = 'helv'
OVERLAY_COLOR = (0, 0, 0)
OVERLAY_OFFSETS = tuple(100 + 20 * i for i in range(len(FIELD_ORDER)))
SIGNATURE_X = 100
SIGNATURE_OFFSET = 300
SIGNATURE_SIZE = (150, 50)

FETCH_TIMEOUT = 10


class ClearingPdfError(Exception):
	code = 'CLRPDF-04'

	def __init__(self, message: str, code: Optional[str] = None):
		super().__init__(message)
		if code:
			self.code = code


class SignatureMissingError(ClearingPdfError):
	code = 'CLRPDF-02'


class TemplateError(ClearingPdfError):
	code = 'CLRPDF-03'


def _report_error(err: ClearingPdfError) -> Dict:
	return {"report": "error", "message": str(err), "code": err.code}


# ----------------------------- rasterize and paginate -----------------------------

def image_height_mm(px_width: int, px_height: int) -> float:
	if px_width <= 0 or px_height <= 0:
		raise ClearingPdfError(f"Snapshot has no area ({px_width}x{px_height}).")
	return px_height * A4_WIDTH_MM / px_width


def page_offsets(px_width: int, px_height: int) -> List[float]:
	"""Vertical offset (mm) of the full image on each output page.

	Every page shows the whole image shifted up by one page height more than
	the previous one; the viewer clips it to the page.
	"""
	img_height = image_height_mm(px_width, px_height)
	offsets = [0.0]
	height_left = img_height - A4_HEIGHT_MM
	while height_left > 0:
		offsets.append(height_left - img_height)
		height_left -= A4_HEIGHT_MM
	return offsets


def page_count(px_width: int, px_height: int) -> int:
	return max(1, math.ceil(image_height_mm(px_width, px_height) / A4_HEIGHT_MM))


def rasterize_to_pdf(image_bytes: bytes) -> Tuple[bytes, int]:
	"""Lay a form snapshot across A4 pages at full width. Returns (pdf bytes, pages)."""
	try:
		pix = fitz.Pixmap(image_bytes)
	except Exception as e:
		raise ClearingPdfError(f"Snapshot is not a readable image: {e}")
	img_height = image_height_mm(pix.width, pix.height)
	page_w, page_h = A4_WIDTH_MM * MM, A4_HEIGHT_MM * MM

	doc = fitz.open()
	try:
		xref = 0
		for offset in page_offsets(pix.width, pix.height):
			page = doc.new_page(width=page_w, height=page_h)
			rect = fitz.Rect(0, offset * MM, page_w, (offset + img_height) * MM)
			if xref:
				page.insert_image(rect, xref=xref, keep_proportion=False)
			else:
				xref = page.insert_image(rect, stream=image_bytes, keep_proportion=False)
		return doc.tobytes(garbage=3, deflate=True), doc.page_count
	finally:
		doc.close()


def atkRasterizeClearingPdf(obj):
	# obj = {
	#     "snapshot": "<data-url|base64|bytes>",   # PNG of the rendered form
	#     "maxBytes": 10485760                     # optional guard on the decoded snapshot
	# }
	#
	# Returns:
	# - { report: "success", pdf: <bytes>, filename: "clearing-instruction.pdf", meta: { bytes, pages } }
	# - { report: "skipped" } when there is no snapshot to render
	# - On error: { report: "error", code: "CLRPDF-04|05", message: "..." }
	snapshot = pxJson(obj, 'snapshot')
	img_bytes = pxDecodeB64(snapshot) if snapshot else None
	if not img_bytes:
		logger.info("rasterize_skipped reason=no_snapshot")
		return {"report": "skipped"}

	max_bytes = pxJson(obj, 'maxBytes')
	max_bytes = 10485760 if max_bytes is None else int(max_bytes)
	if len(img_bytes) > max_bytes:
		return {"report": "error", "message": f"Snapshot exceeds {max_bytes} bytes.", "code": "CLRPDF-05"}

	try:
		out_bytes, pages = rasterize_to_pdf(img_bytes)
	except ClearingPdfError as e:
		logger.exception("rasterize_failed")
		return _report_error(e)

	logger.info("export_done variant=rasterize pages=%s bytes=%s", pages, len(out_bytes))
	return {
		"report": "success",
		"pdf": out_bytes,
		"filename": RASTERIZE_FILENAME,
		"meta": {"bytes": len(out_bytes), "pages": pages},
	}


# ----------------------------- template overlay -----------------------------

def overlay_positions(page_height: float) -> List[Tuple[str, float, float]]:
	"""(field, x, y) for each field in declared order, y measured from the page bottom."""
	return [(name, OVERLAY_X, page_height - k) for name, k in zip(FIELD_ORDER, OVERLAY_OFFSETS)]


def signature_rect(page_height: float) -> Tuple[float, float, float, float]:
	"""(x0, y0, x1, y1) of the signature box, y measured from the page bottom."""
	x0, y0 = SIGNATURE_X, page_height - SIGNATURE_OFFSET
	return x0, y0, x0 + SIGNATURE_SIZE[0], y0 + SIGNATURE_SIZE[1]


def _to_fitz_rect(box, page_height: float) -> fitz.Rect:
	x0, y0, x1, y1 = box
	return fitz.Rect(x0, page_height - y1, x1, page_height - y0)


def load_template(source: str) -> bytes:
	"""Read the template from a local path (relative to the app directory) or an http(s) URL."""
	src = (source or '').strip()
	if not src:
		raise TemplateError("No template configured.")
	if src.startswith('www.'):
		src = 'https://' + src
	if src.startswith('http'):
		try:
			resp = requests.get(src, timeout=FETCH_TIMEOUT)
		except requests.RequestException as e:
			raise TemplateError(f"Failed to fetch template: {e}")
		if not resp.ok:
			raise TemplateError(f"Failed to fetch template: HTTP {resp.status_code}")
		return resp.content

	path = Path(src).expanduser()
	if not path.is_absolute():
		path = BASE_DIR / path
	try:
		return path.read_bytes()
	except OSError as e:
		raise TemplateError(f"Failed to read template: {e}")


def fill_template(template_bytes: bytes, values: Dict[str, str], signature_png: Optional[bytes]) -> bytes:
	"""Write the field values and the signature onto the template's first page.

	Values are drawn as single lines; nothing is wrapped or clipped. Raises
	SignatureMissingError (after the text pass, before serializing) when no
	signature image is given.
	"""
	try:
		doc = fitz.open(stream=template_bytes, filetype="pdf")
	except Exception as e:
		raise ClearingPdfError(f"Template could not be parsed: {e}")
	try:
		if doc.page_count < 1:
			raise ClearingPdfError("Template has no pages.")
		page = doc[0]
		height = page.rect.height

		for name, x, y in overlay_positions(height):
			value = values.get(name) or ''
			if not value:
				continue
			page.insert_text(
				fitz.Point(x, height - y),
				value,
				fontsize=OVERLAY_FONT_SIZE,
				fontname=OVERLAY_FONT,
				color=OVERLAY_COLOR,
			)

		if not signature_png:
			raise SignatureMissingError("Please provide a signature.")
		rect = _to_fitz_rect(signature_rect(height), height)
		try:
			page.insert_image(rect, stream=signature_png, keep_proportion=False, overlay=True)
		except Exception as e:
			raise ClearingPdfError(f"Signature image could not be embedded: {e}")

		return doc.tobytes(garbage=3, deflate=True)
	finally:
		doc.close()


def atkOverlayClearingTemplate(obj):
	# obj = {
	#     "template": "static/clearing-template.pdf",   # path or http(s) URL
	#     "data": { "companyName": "...", ... },         # the eight form values
	#     "signature": <SignaturePad | png bytes | data-url>
	# }
	#
	# Returns:
	# - { report: "success", pdf: <bytes>, filename: "completed-form.pdf", meta: { bytes } }
	# - On error: { report: "error", code: "CLRPDF-xx", message: "..." }
	#   Codes: CLRPDF-02 (signature missing), CLRPDF-03 (template fetch), CLRPDF-04 (parse/processing)
	values = pxJson(obj, 'data') or {}
	sig = pxJson(obj, 'signature')

	try:
		template_bytes = load_template(pxJson(obj, 'template') or '')
		if hasattr(sig, 'to_png'):
			sig_png = None if sig.is_empty() else sig.to_png(trim=True)
		else:
			sig_png = pxDecodeB64(sig) if sig else None
		out_bytes = fill_template(template_bytes, values, sig_png)
	except SignatureMissingError as e:
		logger.info("overlay_rejected signature=empty")
		return _report_error(e)
	except ClearingPdfError as e:
		logger.exception("overlay_failed code=%s", e.code)
		return _report_error(e)

	logger.info("export_done variant=template bytes=%s", len(out_bytes))
	return {
		"report": "success",
		"pdf": out_bytes,
		"filename": TEMPLATE_FILENAME,
		"meta": {"bytes": len(out_bytes)},
	}
