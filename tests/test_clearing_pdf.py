import math
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import fitz  # PyMuPDF
import requests

import clearing_pdf
from clearing_pdf import (
	ClearingPdfError,
	SignatureMissingError,
	TemplateError,
	atkOverlayClearingTemplate,
	atkRasterizeClearingPdf,
	fill_template,
	load_template,
	overlay_positions,
	page_count,
	page_offsets,
	rasterize_to_pdf,
	signature_rect,
)
from helpers import data_url, make_canvas_png, make_png, make_template, sample_strokes
from signature_pad import SignaturePad

VALUES = {
	"companyName": "Acme",
	"companyRegNo": "2001/1234",
	"vatNo": "",
	"contactPerson": "",
	"telephoneNo": "",
	"email": "a@b.com",
	"vessel": "MV Test",
	"billNo": "BL-77",
}


def _signed() -> SignaturePad:
	pad = SignaturePad()
	for stroke in sample_strokes():
		pad.add_stroke(stroke)
	return pad


class PaginationTests(unittest.TestCase):
	def test_page_count_matches_ceiling_formula(self) -> None:
		for w, h in [(100, 100), (800, 1200), (100, 300), (400, 2000), (1000, 1414), (210, 298)]:
			with self.subTest(size=(w, h)):
				expected = math.ceil((h * 210 / w) / 297)
				self.assertEqual(len(page_offsets(w, h)), expected)
				self.assertEqual(page_count(w, h), expected)

	def test_exact_page_height_stays_single_page(self) -> None:
		self.assertEqual(page_offsets(210, 297), [0.0])

	def test_offsets_shift_by_one_page_each(self) -> None:
		# 100x300 px -> 630 mm tall at 210 mm wide
		offsets = page_offsets(100, 300)
		self.assertEqual(len(offsets), 3)
		self.assertAlmostEqual(offsets[0], 0)
		self.assertAlmostEqual(offsets[1], -297)
		self.assertAlmostEqual(offsets[2], -594)

	def test_zero_area_snapshot_rejected(self) -> None:
		with self.assertRaises(ClearingPdfError):
			page_offsets(0, 100)

	def test_rasterize_redraws_same_image_on_each_page(self) -> None:
		out, pages = rasterize_to_pdf(make_png(100, 300))
		self.assertEqual(pages, 3)
		doc = fitz.open(stream=out, filetype="pdf")
		try:
			self.assertEqual(doc.page_count, 3)
			xrefs = {doc[i].get_images()[0][0] for i in range(doc.page_count)}
			self.assertEqual(len(xrefs), 1)
			self.assertAlmostEqual(doc[0].rect.width, 210 * 72 / 25.4, places=2)
			self.assertAlmostEqual(doc[0].rect.height, 297 * 72 / 25.4, places=2)
		finally:
			doc.close()

	def test_rasterize_rejects_non_image(self) -> None:
		with self.assertRaises(ClearingPdfError):
			rasterize_to_pdf(b"definitely not an image")


class RasterizeReportTests(unittest.TestCase):
	def test_acme_scenario_single_page(self) -> None:
		res = atkRasterizeClearingPdf({"snapshot": data_url(make_png(500, 600))})
		self.assertEqual(res["report"], "success")
		self.assertEqual(res["filename"], "clearing-instruction.pdf")
		self.assertEqual(res["meta"]["pages"], 1)
		self.assertTrue(res["pdf"].startswith(b"%PDF"))

	def test_missing_snapshot_is_skipped(self) -> None:
		self.assertEqual(atkRasterizeClearingPdf({}), {"report": "skipped"})
		self.assertEqual(atkRasterizeClearingPdf({"snapshot": ""}), {"report": "skipped"})

	def test_oversized_snapshot_rejected(self) -> None:
		res = atkRasterizeClearingPdf({"snapshot": data_url(make_png(100, 100)), "maxBytes": 10})
		self.assertEqual(res["code"], "CLRPDF-05")

	def test_zero_byte_limit_is_applied(self) -> None:
		res = atkRasterizeClearingPdf({"snapshot": data_url(make_png(10, 10)), "maxBytes": 0})
		self.assertEqual(res["code"], "CLRPDF-05")

	def test_unreadable_snapshot_reports_error(self) -> None:
		res = atkRasterizeClearingPdf({"snapshot": "data:image/png;base64,bm90IGFuIGltYWdl"})
		self.assertEqual(res["report"], "error")
		self.assertEqual(res["code"], "CLRPDF-04")


class OverlayLayoutTests(unittest.TestCase):
	def test_positions_stack_down_from_top(self) -> None:
		positions = overlay_positions(842)
		self.assertEqual(positions[0], ("companyName", 100, 742))
		self.assertEqual(positions[-1], ("billNo", 100, 602))
		ys = [y for _name, _x, y in positions]
		self.assertEqual(ys, [842 - k for k in range(100, 241, 20)])

	def test_positions_follow_page_height(self) -> None:
		h = 700
		named = {name: y for name, _x, y in overlay_positions(h)}
		self.assertEqual(named["companyName"], h - 100)
		self.assertEqual(named["billNo"], h - 240)

	def test_signature_rect(self) -> None:
		self.assertEqual(signature_rect(842), (100, 542, 250, 592))


class FillTemplateTests(unittest.TestCase):
	def test_values_and_signature_drawn_on_first_page(self) -> None:
		out = fill_template(make_template(height=700, pages=2), VALUES, _signed().to_png())
		doc = fitz.open(stream=out, filetype="pdf")
		try:
			self.assertEqual(doc.page_count, 2)
			page = doc[0]
			# PyMuPDF measures y from the top: h - (h - 100) == 100
			acme = page.search_for("Acme")[0]
			self.assertAlmostEqual(acme.x0, 100, delta=1)
			self.assertLess(acme.y0, 100)
			self.assertLess(abs(acme.y1 - 100), 6)
			bill = page.search_for("BL-77")[0]
			self.assertLess(abs(bill.y1 - 240), 6)

			images = page.get_image_info()
			self.assertEqual(len(images), 1)
			x0, y0, x1, y1 = images[0]["bbox"]
			self.assertAlmostEqual(x0, 100, delta=0.5)
			self.assertAlmostEqual(y0, 250, delta=0.5)
			self.assertAlmostEqual(x1, 250, delta=0.5)
			self.assertAlmostEqual(y1, 300, delta=0.5)

			self.assertEqual(doc[1].get_image_info(), [])
		finally:
			doc.close()

	def test_long_values_are_not_wrapped(self) -> None:
		long_name = "Acme Shipping and Forwarding International Holdings Limited " * 3
		out = fill_template(make_template(), dict(VALUES, companyName=long_name), _signed().to_png())
		doc = fitz.open(stream=out, filetype="pdf")
		try:
			lines = [l for l in doc[0].get_text().splitlines() if l.startswith("Acme Shipping")]
			self.assertEqual(len(lines), 1)
		finally:
			doc.close()

	def test_missing_signature_raises(self) -> None:
		with self.assertRaises(SignatureMissingError):
			fill_template(make_template(), VALUES, None)

	def test_broken_template_raises(self) -> None:
		with self.assertRaises(ClearingPdfError) as ctx:
			fill_template(b"%PDF-1.4 nothing here", VALUES, _signed().to_png())
		self.assertEqual(ctx.exception.code, "CLRPDF-04")


class LoadTemplateTests(unittest.TestCase):
	def test_reads_local_file(self) -> None:
		with tempfile.TemporaryDirectory() as tmp:
			path = Path(tmp) / "t.pdf"
			path.write_bytes(b"%PDF-1.4")
			self.assertEqual(load_template(str(path)), b"%PDF-1.4")

	def test_relative_path_resolves_against_app_dir(self) -> None:
		data = load_template("static/clearing-template.pdf")
		self.assertTrue(data.startswith(b"%PDF"))

	def test_missing_file_is_template_error(self) -> None:
		with self.assertRaises(TemplateError) as ctx:
			load_template("/nonexistent/clearing.pdf")
		self.assertEqual(ctx.exception.code, "CLRPDF-03")

	def test_url_fetch(self) -> None:
		resp = mock.Mock(ok=True, status_code=200, content=b"%PDF-remote")
		with mock.patch.object(clearing_pdf.requests, "get", return_value=resp) as get:
			self.assertEqual(load_template("https://example.com/t.pdf"), b"%PDF-remote")
		get.assert_called_once_with("https://example.com/t.pdf", timeout=10)

	def test_url_not_ok_is_template_error(self) -> None:
		resp = mock.Mock(ok=False, status_code=404, content=b"")
		with mock.patch.object(clearing_pdf.requests, "get", return_value=resp):
			with self.assertRaises(TemplateError) as ctx:
				load_template("https://example.com/t.pdf")
		self.assertIn("404", str(ctx.exception))

	def test_url_network_error_is_template_error(self) -> None:
		with mock.patch.object(clearing_pdf.requests, "get", side_effect=requests.ConnectionError("down")):
			with self.assertRaises(TemplateError):
				load_template("www.example.com/t.pdf")


class OverlayReportTests(unittest.TestCase):
	def setUp(self) -> None:
		self.tmp = tempfile.TemporaryDirectory()
		self.template = Path(self.tmp.name) / "template.pdf"
		self.template.write_bytes(make_template())

	def tearDown(self) -> None:
		self.tmp.cleanup()

	def test_success(self) -> None:
		res = atkOverlayClearingTemplate({"template": str(self.template), "data": VALUES, "signature": _signed()})
		self.assertEqual(res["report"], "success")
		self.assertEqual(res["filename"], "completed-form.pdf")
		self.assertEqual(res["meta"]["bytes"], len(res["pdf"]))

	def test_signature_as_data_url(self) -> None:
		res = atkOverlayClearingTemplate({
			"template": str(self.template),
			"data": VALUES,
			"signature": data_url(make_png(60, 20)),
		})
		self.assertEqual(res["report"], "success")

	def test_canvas_export_signature(self) -> None:
		res = atkOverlayClearingTemplate({
			"template": str(self.template),
			"data": VALUES,
			"signature": SignaturePad.from_payload({"image": data_url(make_canvas_png())}),
		})
		self.assertEqual(res["report"], "success")
		doc = fitz.open(stream=res["pdf"], filetype="pdf")
		try:
			self.assertEqual(len(doc[0].get_image_info()), 1)
		finally:
			doc.close()

	def test_empty_signature_produces_no_document(self) -> None:
		res = atkOverlayClearingTemplate({"template": str(self.template), "data": VALUES, "signature": SignaturePad()})
		self.assertEqual(res["report"], "error")
		self.assertEqual(res["code"], "CLRPDF-02")
		self.assertNotIn("pdf", res)

	def test_template_failure_is_reported(self) -> None:
		with self.assertLogs("clearing.pdf", level="ERROR"):
			res = atkOverlayClearingTemplate({"template": "/nonexistent.pdf", "data": VALUES, "signature": _signed()})
		self.assertEqual(res["code"], "CLRPDF-03")


if __name__ == "__main__":
	unittest.main()
