import base64

import fitz  # PyMuPDF


def make_template(width: float = 595, height: float = 842, pages: int = 1) -> bytes:
	doc = fitz.open()
	for _ in range(pages):
		page = doc.new_page(width=width, height=height)
		page.insert_text((20, 50), 'Template', fontsize=10)
	data = doc.tobytes()
	doc.close()
	return data


def make_png(width: int, height: int, blank: bool = False, ink=(10, 20, 30, 255)) -> bytes:
	pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), True)
	pix.clear_with(0)
	if not blank:
		pix.set_rect(fitz.IRect(0, 0, max(1, width // 2), max(1, height // 2)), ink)
	return pix.tobytes("png")


def data_url(png: bytes) -> str:
	return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')


def sample_strokes():
	return [[[20, 40], [60, 80], [120, 60]], [[200, 100], [240, 120]]]


def make_canvas_png(width: int = 120, height: int = 40) -> bytes:
	"""Black ink on transparent black, the way a browser canvas exports."""
	return make_png(width, height, ink=(0, 0, 0, 255))
