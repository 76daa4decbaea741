# app/payouts/phone.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from app.errors import BadRequestError

_SEPARATORS = re.compile(r"[\s\-\.\(\)]")
_NINE_DIGITS = re.compile(r"^\d{9}$")

MTN = "MTN"
ORANGE = "ORANGE"


@dataclass(frozen=True)
class PhoneResult:
    valid: bool
    normalized: Optional[str] = None
    error: Optional[str] = None


def normalize_cameroon_phone(raw: Optional[str]) -> PhoneResult:
    """
    Accepts 676858216, 0676858216, 237676858216, +237676858216,
    00237676858216 and spaced/dashed variants; returns +237XXXXXXXXX.
    """
    if not raw or not isinstance(raw, str):
        return PhoneResult(valid=False, error="Phone number is required")

    cleaned = _SEPARATORS.sub("", raw)
    if cleaned.startswith("00237"):
        cleaned = cleaned[5:]
    elif cleaned.startswith("+237"):
        cleaned = cleaned[4:]
    elif cleaned.startswith("237"):
        cleaned = cleaned[3:]
    elif cleaned.startswith("0") and len(cleaned) == 10:
        cleaned = cleaned[1:]

    if not _NINE_DIGITS.match(cleaned):
        return PhoneResult(valid=False, error="Phone number must be 9 digits (e.g., 676858216)")
    if not cleaned.startswith("6"):
        return PhoneResult(valid=False, error="Cameroon mobile numbers must start with 6")

    return PhoneResult(valid=True, normalized=f"+237{cleaned}")


def normalize_or_raise(raw: Optional[str]) -> str:
    result = normalize_cameroon_phone(raw)
    if not result.valid:
        raise BadRequestError("INVALID_PHONE", result.error or "Invalid phone number")
    return result.normalized


def detect_operator(normalized: str) -> Optional[str]:
    """
    MTN: 67x, 650-654, 680-689. Orange: 655-659, 69x.
    """
    local = normalized[-9:]
    prefix2, prefix3 = local[:2], int(local[:3])
    if prefix2 == "67" or 650 <= prefix3 <= 654 or 680 <= prefix3 <= 689:
        return MTN
    if prefix2 == "69" or 655 <= prefix3 <= 659:
        return ORANGE
    return None
