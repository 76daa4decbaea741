# app/delivery/cities.py
from __future__ import annotations

from typing import Iterable, Optional


def normalize_city(city: Optional[str]) -> Optional[str]:
    """
    "  douala" -> "Douala", "DOUALA" -> "Douala".

    Stored job cities go through this so they line up with the
    title-cased entries in an agency's cities_covered.
    """
    if city is None:
        return None
    trimmed = city.strip()
    if not trimmed:
        return None
    return trimmed[0].upper() + trimmed[1:].lower()


def city_key(city: Optional[str]) -> str:
    return (city or "").strip().lower()


def covers_city(cities_covered: Iterable[str] | None, city: Optional[str]) -> bool:
    key = city_key(city)
    if not key:
        return False
    return any(city_key(c) == key for c in (cities_covered or ()))
