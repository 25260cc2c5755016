# ------------------------------------------------------------------------------

# px request / payload helpers

# ------------------------------------------------------------------------------
import base64
from typing import Any, Optional


def pxJson(obj: Any, key: str, default: Any = None) -> Any:
	"""Safely get a value from a dict by key; returns default if missing or obj not dict."""
	if isinstance(obj, dict):
		return obj.get(key, default)
	return default


def pxFlag(value: Any, default: bool = False) -> bool:
	"""Interpret env/form style booleans ('1', 'true', 'on', 'yes')."""
	if value is None:
		return default
	if isinstance(value, bool):
		return value
	return str(value).strip().lower() in ['1', 'true', 'on', 'yes']


def pxDecodeB64(s: Any) -> Optional[bytes]:
	"""Decode a data URL or raw base64 string to bytes.
	Missing padding is fixed and urlsafe alphabets are accepted; returns None when undecodable.
	"""
	if isinstance(s, (bytes, bytearray)):
		return bytes(s) or None
	if not isinstance(s, str):
		return None
	val = s.strip()
	if val.startswith('data:'):
		parts = val.split(',', 1)
		if len(parts) != 2:
			return None
		val = parts[1]
	val = ''.join(val.split())
	if not val:
		return None
	pad = len(val) % 4
	if pad:
		val += '=' * (4 - pad)
	try:
		return base64.b64decode(val, validate=True)
	except ValueError:
		try:
			return base64.urlsafe_b64decode(val)
		except ValueError:
			return None
