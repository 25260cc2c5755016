# ------------------------------------------------------------------------------

# import clearing instruction form state

# ------------------------------------------------------------------------------
import logging
from typing import Any, Callable, Dict, List, Optional

from pxtools import pxJson
from signature_pad import SignaturePad

logger = logging.getLogger("clearing.form")

FIELD_ORDER = (
	'companyName',
	'companyRegNo',
	'vatNo',
	'contactPerson',
	'telephoneNo',
	'email',
	'vessel',
	'billNo',
)

FIELD_LABELS = {
	'companyName': 'Company Name',
	'companyRegNo': 'Company Reg No',
	'vatNo': 'VAT No',
	'contactPerson': 'Contact Person',
	'telephoneNo': 'Telephone No',
	'email': 'Email',
	'vessel': 'Vessel',
	'billNo': 'Bill No',
}

FIELD_PLACEHOLDERS = {
	'companyName': 'Enter company name',
	'companyRegNo': 'Enter company registration number',
	'vatNo': 'Enter VAT number',
	'contactPerson': 'Enter contact person',
	'telephoneNo': 'Enter telephone number',
	'email': 'Enter email address',
	'vessel': 'Enter vessel name',
	'billNo': 'Enter bill number',
}

# checked before export
REQUIRED_FIELDS = ('companyName', 'email', 'vessel')
# marked `required` in the page markup only
HTML_REQUIRED_FIELDS = ('companyName', 'companyRegNo', 'email', 'vessel')

FORM_ERROR = 'Please fill in all required fields.'
SIGNATURE_ERROR = 'Please provide a signature.'


def empty_form() -> Dict[str, str]:
	return {name: '' for name in FIELD_ORDER}


class ClearingForm:
	"""Form values, signature surface and submit gating for one submission."""

	def __init__(self, data: Optional[Dict[str, str]] = None, signature: Optional[SignaturePad] = None):
		self.data = empty_form()
		for name, value in (data or {}).items():
			if name in self.data:
				self.data[name] = '' if value is None else str(value)
		self.signature = signature if signature is not None else SignaturePad()
		self.loading = False
		self.form_error: Optional[str] = None
		self.signature_error: Optional[str] = None

	@classmethod
	def from_payload(cls, obj: Any) -> "ClearingForm":
		values = pxJson(obj, 'form') or {}
		if not isinstance(values, dict):
			values = {}
		return cls(values, SignaturePad.from_payload(pxJson(obj, 'signature') or {}))

	def handle_change(self, name: str, value: str) -> Dict[str, str]:
		if name not in self.data:
			raise KeyError(name)
		self.data = {**self.data, name: value}
		return self.data

	def clear_signature(self) -> None:
		self.signature.clear()

	def missing_fields(self) -> List[str]:
		return [name for name in REQUIRED_FIELDS if not self.data.get(name)]

	def _check_fields(self) -> bool:
		missing = self.missing_fields()
		if missing:
			logger.info("form_rejected missing=%s", ','.join(missing))
			self.form_error = FORM_ERROR
			return False
		return True

	def _check_signature(self) -> bool:
		if self.signature.is_empty():
			logger.info("form_rejected signature=empty")
			self.signature_error = SIGNATURE_ERROR
			return False
		return True

	def _run(self, export: Callable[["ClearingForm"], Any], require_fields: bool) -> Any:
		self.loading = True
		self.form_error = None
		self.signature_error = None
		try:
			if require_fields and not self._check_fields():
				return None
			if not self._check_signature():
				return None
			return export(self)
		finally:
			self.loading = False

	def submit_rasterize(self, export: Callable[["ClearingForm"], Any]) -> Any:
		"""Required fields, then signature, then export. Returns None when rejected."""
		return self._run(export, require_fields=True)

	def submit_template(self, export: Callable[["ClearingForm"], Any], require_fields: bool = False) -> Any:
		"""Signature check only unless ``require_fields`` is set."""
		return self._run(export, require_fields=require_fields)
