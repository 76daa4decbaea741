from __future__ import annotations

import re
from typing import Any


_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# +237676858216, 237676858216, 676858216
_PHONE_RE = re.compile(r"(?<![\w+])(?:\+?237)?6\d{8}\b|\+\d{9,15}\b")

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "signature",
    "password",
    "private_key",
    "api_key",
)
_PHONE_KEY_MARKERS = ("phone", "msisdn")


def mask_phone(value: str) -> str:
    digits = value.strip()
    if len(digits) <= 6:
        return "****"
    return f"{digits[:-6]}****{digits[-2:]}"


def _mask_email(match: re.Match) -> str:
    return f"{match.group(1)}***{match.group(3)}"


def redact_text(value: str) -> str:
    for marker in ("bearer ", "private_key"):
        if marker in value.lower():
            return "[REDACTED]"

    masked = _EMAIL_RE.sub(_mask_email, value)
    return _PHONE_RE.sub(lambda m: mask_phone(m.group(0)), masked)


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def _is_phone_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _PHONE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _is_sensitive_key(k):
            out[k] = "[REDACTED]"
        elif _is_phone_key(k) and isinstance(v, (str, int)):
            out[k] = mask_phone(str(v))
        else:
            out[k] = redact_value(v)
    return out
