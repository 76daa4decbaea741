# app/providers/factory.py
from __future__ import annotations

from typing import Any, Dict

from settings import settings

_PROVIDER_CACHE: Dict[str, Any] = {}


def get_payout_provider(name: str | None = None):
    key = (name or settings.PAYOUT_PROVIDER or "").strip().upper().replace("-", "_")
    if not key:
        return None

    if key in _PROVIDER_CACHE:
        return _PROVIDER_CACHE[key]

    if key == "MYCOOLPAY":
        from app.providers.mycoolpay import MyCoolPayProvider
        provider = MyCoolPayProvider()

    elif key == "MOCK":
        from app.providers.mock import MockPayoutProvider
        provider = MockPayoutProvider()

    else:
        return None

    _PROVIDER_CACHE[key] = provider
    return provider


def reset_provider_cache() -> None:
    _PROVIDER_CACHE.clear()
