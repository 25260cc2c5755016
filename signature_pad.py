# ------------------------------------------------------------------------------

# signature drawing surface

# ------------------------------------------------------------------------------
import base64
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from pxtools import pxDecodeB64, pxJson

logger = logging.getLogger("clearing.signature")

Point = Tuple[float, float]

CANVAS_WIDTH = 500
CANVAS_HEIGHT = 200
PEN_WIDTH = 2.5
INK = (0, 0, 0)


def _to_point(raw) -> Optional[Point]:
	# accepts [x, y] or {"x": .., "y": ..}
	try:
		if isinstance(raw, dict):
			return float(raw['x']), float(raw['y'])
		x, y = raw
		return float(x), float(y)
	except (KeyError, TypeError, ValueError):
		return None


class SignaturePad:
	"""Server-side model of the signature canvas.

	Strokes are recorded as lists of canvas points. The pad can also wrap a
	pre-rendered image (``toDataURL()`` output), in which case emptiness is
	judged from the pixels.
	"""

	def __init__(self, width: float = CANVAS_WIDTH, height: float = CANVAS_HEIGHT, pen_width: float = PEN_WIDTH):
		self.width = width
		self.height = height
		self.pen_width = pen_width
		self.strokes: List[List[Point]] = []
		self._image: Optional[bytes] = None

	@property
	def rect(self) -> fitz.Rect:
		return fitz.Rect(0, 0, self.width, self.height)

	def begin_stroke(self, x: float, y: float) -> None:
		self._image = None
		self.strokes.append([(float(x), float(y))])

	def add_point(self, x: float, y: float) -> None:
		if not self.strokes:
			self.begin_stroke(x, y)
			return
		self.strokes[-1].append((float(x), float(y)))

	def add_stroke(self, points: Iterable) -> None:
		pts = [p for p in (_to_point(raw) for raw in points or []) if p is not None]
		if not pts:
			return
		self.begin_stroke(*pts[0])
		for p in pts[1:]:
			self.add_point(*p)

	def load_image(self, img_bytes: Optional[bytes]) -> None:
		self.strokes = []
		self._image = img_bytes or None

	def clear(self) -> None:
		self.strokes = []
		self._image = None

	def is_empty(self) -> bool:
		if self.strokes:
			return False
		if self._image is None:
			return True
		try:
			pix = fitz.Pixmap(self._image)
		except Exception:
			logger.info("signature_image_unreadable bytes=%s", len(self._image))
			return True
		if pix.alpha:
			# canvas exports are ink on transparent black; only coverage counts
			return not any(pix.samples[pix.n - 1::pix.n])
		return bool(pix.is_unicolor)

	def bounding_box(self) -> Optional[fitz.Rect]:
		"""Stroke extent padded by the pen radius, clipped to the canvas."""
		pts = [p for stroke in self.strokes for p in stroke]
		if not pts:
			return None
		pad = self.pen_width / 2 + 1
		xs = [p[0] for p in pts]
		ys = [p[1] for p in pts]
		box = fitz.Rect(min(xs) - pad, min(ys) - pad, max(xs) + pad, max(ys) + pad)
		box.intersect(self.rect)
		if box.is_empty:
			return None
		return box

	def _draw(self, page) -> None:
		shape = page.new_shape()
		for stroke in self.strokes:
			if len(stroke) == 1:
				shape.draw_circle(stroke[0], self.pen_width / 2)
				shape.finish(color=INK, fill=INK, width=0)
			else:
				shape.draw_polyline(stroke)
				shape.finish(color=INK, width=self.pen_width, closePath=False, lineCap=1, lineJoin=1)
		shape.commit()

	def to_png(self, trim: bool = True) -> Optional[bytes]:
		"""Render the signature to PNG bytes.

		With ``trim`` only the strokes' bounding box is exported. Returns None
		for an empty pad. Wrapped images are returned as given.
		"""
		if self.is_empty():
			return None
		if not self.strokes:
			return self._image
		clip = self.bounding_box() if trim else self.rect
		if clip is None:
			# every stroke lies outside the canvas
			return None
		doc = fitz.open()
		try:
			page = doc.new_page(width=self.width, height=self.height)
			self._draw(page)
			pix = page.get_pixmap(clip=clip, alpha=True)
			return pix.tobytes("png")
		finally:
			doc.close()

	def to_data_url(self, trim: bool = True) -> Optional[str]:
		png = self.to_png(trim=trim)
		if png is None:
			return None
		return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')

	@classmethod
	def from_payload(cls, obj) -> "SignaturePad":
		"""Build a pad from the request's ``signature`` member.

		``{"strokes": [[[x, y], ...], ...], "width": 500, "height": 200}`` or
		``{"image": "<data-url|base64>"}``. A bare string is treated as an image.
		"""
		if isinstance(obj, str):
			obj = {'image': obj}
		width = pxJson(obj, 'width') or CANVAS_WIDTH
		height = pxJson(obj, 'height') or CANVAS_HEIGHT
		try:
			pad = cls(width=float(width), height=float(height))
		except (TypeError, ValueError):
			pad = cls()
		strokes = pxJson(obj, 'strokes') or []
		if isinstance(strokes, Sequence) and not isinstance(strokes, str):
			for stroke in strokes:
				if isinstance(stroke, Sequence) and not isinstance(stroke, str):
					pad.add_stroke(stroke)
		if not pad.strokes:
			image = pxJson(obj, 'image')
			if image:
				pad.load_image(pxDecodeB64(image))
		return pad
