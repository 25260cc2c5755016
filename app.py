# ------------------------------------------------------------------------------

# atk import clearing instruction service

# ------------------------------------------------------------------------------
import logging
import os
from typing import Any, Dict

from flask import Flask, abort, request, Response, jsonify
from werkzeug.exceptions import HTTPException

from clearing_form import (
	ClearingForm,
	FIELD_LABELS,
	FIELD_ORDER,
	FIELD_PLACEHOLDERS,
	HTML_REQUIRED_FIELDS,
	REQUIRED_FIELDS,
)
from clearing_pdf import OVERLAY_OFFSETS, atkOverlayClearingTemplate, atkRasterizeClearingPdf
from pxtools import pxFlag, pxJson

logger = logging.getLogger("clearing.app")

HOST = os.environ.get('HOST', '0.0.0.0')
PORT = int(os.environ.get('PORT', '5000'))
CLEARING_TEMPLATE = os.environ.get('CLEARING_TEMPLATE', 'static/clearing-template.pdf')
CLEARING_EXPORT_MODE = os.environ.get('CLEARING_EXPORT_MODE', 'template').lower()
CLEARING_REQUIRE_FIELDS_ON_TEMPLATE = pxFlag(os.environ.get('CLEARING_REQUIRE_FIELDS_ON_TEMPLATE'))
CLEARING_MAX_SNAPSHOT_BYTES = int(os.environ.get('CLEARING_MAX_SNAPSHOT_BYTES', '10485760'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

app = Flask(__name__)
app.config.update(
	CLEARING_TEMPLATE=CLEARING_TEMPLATE,
	CLEARING_EXPORT_MODE=CLEARING_EXPORT_MODE if CLEARING_EXPORT_MODE in ('template', 'rasterize') else 'template',
	CLEARING_REQUIRE_FIELDS_ON_TEMPLATE=CLEARING_REQUIRE_FIELDS_ON_TEMPLATE,
	CLEARING_MAX_SNAPSHOT_BYTES=CLEARING_MAX_SNAPSHOT_BYTES,
	# base64 grows the snapshot by 4/3; the rest of the body is small
	MAX_CONTENT_LENGTH=CLEARING_MAX_SNAPSHOT_BYTES * 4 // 3 + 1048576,
)


def _gate_error(form: ClearingForm):
	"""JSON 400 for a submission stopped by the form gate."""
	if form.form_error:
		body = {"report": "error", "code": "CLRPDF-01", "field": "form", "message": form.form_error}
	else:
		body = {"report": "error", "code": "CLRPDF-02", "field": "signature", "message": form.signature_error}
	return jsonify(body), 400


def pxPdfResponse(form: ClearingForm, res: Any):
	"""Map a form submission result to an HTTP response."""
	if res is None:
		return _gate_error(form)
	report = pxJson(res, 'report')
	if report == 'skipped':
		return Response(status=204)
	if report == 'success':
		return Response(
			res['pdf'],
			mimetype='application/pdf',
			headers={"Content-Disposition": f"attachment; filename={res['filename']}"},
		)
	code = pxJson(res, 'code')
	if code == 'CLRPDF-02':
		form.signature_error = res.get('message')
		return jsonify(dict(res, field='signature')), 400
	if code == 'CLRPDF-05':
		return jsonify(res), 413
	return jsonify(res), 500


def _payload() -> Dict[str, Any]:
	limit = app.config.get('MAX_CONTENT_LENGTH')
	if limit is not None and (request.content_length or 0) > limit:
		abort(413)
	payload = request.get_json(silent=True) or {}
	return payload if isinstance(payload, dict) else {}


# ----------------------------- Flask Endpoints -----------------------------

@app.route('/api/clearing/rasterize', methods=['POST'])
def api_rasterize():
	try:
		payload = _payload()
		form = ClearingForm.from_payload(payload)

		def export(_form):
			return atkRasterizeClearingPdf({
				"snapshot": pxJson(payload, 'snapshot'),
				"maxBytes": app.config['CLEARING_MAX_SNAPSHOT_BYTES'],
			})

		return pxPdfResponse(form, form.submit_rasterize(export))
	except HTTPException:
		raise
	except Exception as e:
		logger.exception("rasterize_request_failed")
		return jsonify({"report": "error", "message": str(e), "code": "CLRPDF-04"}), 500


@app.route('/api/clearing/template', methods=['POST'])
def api_template():
	try:
		form = ClearingForm.from_payload(_payload())

		def export(f):
			return atkOverlayClearingTemplate({
				"template": app.config['CLEARING_TEMPLATE'],
				"data": f.data,
				"signature": f.signature,
			})

		res = form.submit_template(export, require_fields=app.config['CLEARING_REQUIRE_FIELDS_ON_TEMPLATE'])
		return pxPdfResponse(form, res)
	except HTTPException:
		raise
	except Exception as e:
		logger.exception("template_request_failed")
		return jsonify({"report": "error", "message": str(e), "code": "CLRPDF-04"}), 500


@app.route('/api/clearing/fields', methods=['GET'])
def api_fields():
	fields = []
	for name, offset in zip(FIELD_ORDER, OVERLAY_OFFSETS):
		fields.append({
			"name": name,
			"label": FIELD_LABELS[name],
			"required": name in REQUIRED_FIELDS,
			"htmlRequired": name in HTML_REQUIRED_FIELDS,
			"offset": offset,
		})
	return jsonify({"fields": fields, "mode": app.config['CLEARING_EXPORT_MODE']})


@app.route('/healthz')
def healthz():
	return jsonify({"report": "success"})


def _field_inputs() -> str:
	rows = []
	for name in FIELD_ORDER:
		kind = 'email' if name == 'email' else 'text'
		required = ' required' if name in HTML_REQUIRED_FIELDS else ''
		rows.append(
			f'<div class="field"><label for="{name}">{FIELD_LABELS[name]}</label>'
			f'<input id="{name}" type="{kind}" name="{name}" value="" placeholder="{FIELD_PLACEHOLDERS[name]}"{required} /></div>'
		)
	return '\n\t\t\t\t\t\t'.join(rows)


@app.route('/')
def index():
	page = INDEX_HTML.replace('__FIELDS__', _field_inputs())
	page = page.replace('__EXPORT_MODE__', app.config['CLEARING_EXPORT_MODE'])
	return Response(page, mimetype='text/html')


INDEX_HTML = '''<!DOCTYPE html>
		<html lang="en">
		<head>
			<meta charset="UTF-8" />
			<meta name="viewport" content="width=device-width, initial-scale=1" />
			<title>Import Clearing Instruction</title>
			<script src="https://cdn.jsdelivr.net/npm/html2canvas@1.4.1/dist/html2canvas.min.js"></script>
			<style>
				:root {
					--plum: #b30444;
					--plum-dark: #b08db0;
					--gray-50: #f9fafb;
					--gray-100: #f3f4f6;
					--gray-300: #d1d5db;
					--gray-500: #6b7280;
					--gray-700: #374151;
					--gray-800: #1f2937;
					--danger: #ef4444;
					--link: #3b82f6;
					--radius-md: 0.375rem;
					--radius-lg: 0.5rem;
					--radius-xl: 0.75rem;
					--shadow-lg: 0 10px 15px -3px rgba(0, 0, 0, 0.1), 0 4px 6px -2px rgba(0, 0, 0, 0.05);
					--transition: all 0.3s ease-in-out;
				}
				* { box-sizing: border-box; }
				body {
					margin: 0;
					font-family: ui-sans-serif, system-ui, -apple-system, 'Segoe UI', Roboto, sans-serif;
					background: var(--gray-50);
				}
				.page {
					position: relative;
					min-height: 100vh;
					display: flex;
					flex-direction: column;
					align-items: center;
					justify-content: space-between;
				}
				.backdrop { position: absolute; inset: 0; z-index: 0; }
				.backdrop .top { height: 50%; background: var(--gray-100); }
				.backdrop .bottom {
					height: 50%;
					background: var(--plum);
					clip-path: polygon(0 10%, 100% 0%, 100% 100%, 0% 90%);
				}
				.card {
					position: relative;
					z-index: 10;
					background: #ffffff;
					padding: 3rem;
					border-radius: var(--radius-xl);
					box-shadow: var(--shadow-lg);
					width: 100%;
					max-width: 32rem;
					margin: 2.5rem auto;
				}
				h2 {
					font-size: 1.875rem;
					font-weight: 700;
					margin: 0 0 1.5rem;
					color: var(--gray-800);
					text-align: center;
				}
				h3 { font-size: 1.125rem; font-weight: 500; color: var(--gray-700); margin: 1.5rem 0 0.5rem; }
				.field { margin-bottom: 1rem; }
				.field label { display: block; color: var(--gray-700); }
				.field input {
					width: 100%;
					padding: 0.5rem 1rem;
					border: 1px solid var(--gray-300);
					border-radius: var(--radius-md);
				}
				.field input:focus { outline: none; box-shadow: 0 0 0 3px rgba(179, 4, 68, 0.3); }
				.error { color: var(--danger); margin: 0.5rem 0 1rem; }
				canvas#signature {
					border: 1px solid var(--gray-300);
					border-radius: var(--radius-md);
					touch-action: none;
					max-width: 100%;
				}
				.link { margin-top: 0.5rem; color: var(--link); text-decoration: underline; background: none; border: none; cursor: pointer; padding: 0; }
				.btn-primary {
					margin-top: 1.5rem;
					width: 100%;
					display: flex;
					justify-content: center;
					align-items: center;
					background: var(--plum);
					color: #ffffff;
					border: none;
					padding: 0.5rem 1.25rem;
					border-radius: var(--radius-lg);
					cursor: pointer;
					transition: var(--transition);
					box-shadow: 0 4px 6px -1px rgba(0, 0, 0, 0.1);
				}
				.btn-primary:hover { background: var(--plum-dark); }
				.btn-primary[disabled] { opacity: 0.5; cursor: not-allowed; }
				.spin { display: inline-block; margin-right: 0.5rem; animation: spin 1s linear infinite; }
				@keyframes spin { to { transform: rotate(360deg); } }
				footer { position: relative; z-index: 20; width: 100%; background: #ffffff; padding: 1rem 0; text-align: center; }
				footer span { font-size: 0.875rem; color: var(--gray-500); }
			</style>
		</head>
		<body>
			<div class="page">
				<div class="backdrop"><div class="top"></div><div class="bottom"></div></div>
				<div class="card">
					<h2>Import Clearing Instruction</h2>
					<p id="formError" class="error" style="display:none"></p>
					<form id="form" novalidate>
						__FIELDS__
						<div>
							<h3>Signature</h3>
							<canvas id="signature" width="500" height="200"></canvas>
							<div><button type="button" class="link" id="btnClear">Clear Signature</button></div>
							<p id="signatureError" class="error" style="display:none"></p>
						</div>
						<button type="submit" class="btn-primary" id="btnSubmit">Generate PDF</button>
					</form>
				</div>
				<footer><span>Powered by</span></footer>
			</div>
			<script>
				const MODE = '__EXPORT_MODE__';
				const REQUIRED = ['companyName', 'email', 'vessel'];
				const formEl = document.getElementById('form');
				const canvas = document.getElementById('signature');
				const ctx = canvas.getContext('2d');
				const btnSubmit = document.getElementById('btnSubmit');
				const formErrorEl = document.getElementById('formError');
				const signatureErrorEl = document.getElementById('signatureError');
				let formData = {};
				let strokes = [];
				let drawing = false;
				let loading = false;

				for (const input of formEl.querySelectorAll('.field input')) {
					formData[input.name] = '';
					input.addEventListener('input', e => { formData = { ...formData, [e.target.name]: e.target.value }; });
				}

				function setError(el, msg){ el.textContent = msg || ''; el.style.display = msg ? 'block' : 'none'; }
				function setLoading(on){
					loading = on;
					btnSubmit.disabled = on;
					btnSubmit.innerHTML = on ? '<span class="spin">&#9992;</span> Generating PDF...' : 'Generate PDF';
				}

				ctx.lineWidth = 2.5; ctx.lineCap = 'round'; ctx.lineJoin = 'round'; ctx.strokeStyle = '#000';
				function pos(e){
					const r = canvas.getBoundingClientRect();
					return [(e.clientX - r.left) * canvas.width / r.width, (e.clientY - r.top) * canvas.height / r.height];
				}
				canvas.addEventListener('pointerdown', e => {
					drawing = true; canvas.setPointerCapture(e.pointerId);
					const p = pos(e); strokes.push([p]);
					ctx.beginPath(); ctx.arc(p[0], p[1], 1.25, 0, Math.PI * 2); ctx.fill();
					ctx.beginPath(); ctx.moveTo(p[0], p[1]);
				});
				canvas.addEventListener('pointermove', e => {
					if (!drawing) return;
					const p = pos(e); strokes[strokes.length - 1].push(p);
					ctx.lineTo(p[0], p[1]); ctx.stroke();
				});
				const endStroke = () => { drawing = false; };
				canvas.addEventListener('pointerup', endStroke);
				canvas.addEventListener('pointerleave', endStroke);
				document.getElementById('btnClear').addEventListener('click', () => {
					strokes = [];
					ctx.clearRect(0, 0, canvas.width, canvas.height);
				});

				function download(blob, filename){
					const url = URL.createObjectURL(blob);
					const a = document.createElement('a');
					a.href = url; a.download = filename;
					document.body.appendChild(a); a.click(); a.remove();
					setTimeout(() => URL.revokeObjectURL(url), 1000);
				}

				async function post(path, body, filename){
					const res = await fetch(path, {
						method: 'POST',
						headers: { 'Content-Type': 'application/json' },
						body: JSON.stringify(body)
					});
					if (res.status === 204) return;
					if (res.ok) { download(await res.blob(), filename); return; }
					const data = await res.json().catch(() => ({}));
					if (data.field === 'form') { setError(formErrorEl, data.message); return; }
					if (data.field === 'signature') { setError(signatureErrorEl, data.message); return; }
					throw new Error(data.message || ('HTTP ' + res.status));
				}

				formEl.addEventListener('submit', async e => {
					e.preventDefault();
					if (loading) return;
					setLoading(true);
					setError(formErrorEl, null);
					setError(signatureErrorEl, null);
					const signature = { strokes, width: canvas.width, height: canvas.height };
					try {
						if (MODE === 'rasterize') {
							if (REQUIRED.some(name => !formData[name])) { setError(formErrorEl, 'Please fill in all required fields.'); return; }
							if (!strokes.length) { setError(signatureErrorEl, 'Please provide a signature.'); return; }
							const shot = await html2canvas(formEl);
							await post('/api/clearing/rasterize', { form: formData, signature, snapshot: shot.toDataURL('image/png') }, 'clearing-instruction.pdf');
						} else {
							if (!formEl.checkValidity()) { formEl.reportValidity(); return; }
							if (!strokes.length) { setError(signatureErrorEl, 'Please provide a signature.'); return; }
							await post('/api/clearing/template', { form: formData, signature }, 'completed-form.pdf');
						}
					} catch (err) {
						console.error('Error generating PDF:', err);
					} finally {
						setLoading(false);
					}
				});
			</script>
		</body>
		</html>'''


if __name__ == '__main__':
	logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s %(message)s')
	app.run(host=HOST, port=PORT)
