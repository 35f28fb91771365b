"""Exact composite-key matching for property units."""

from __future__ import annotations

from typing import NamedTuple


class PropertyKey(NamedTuple):
    building_code: str
    unit_identifier: str


def property_key(building_code: str | None, unit_identifier: str | None) -> PropertyKey | None:
    """Normalized (building code, unit identifier) key; ``None`` when incomplete."""

    code = (building_code or "").strip()
    identifier = (unit_identifier or "").strip().lower()
    if not code or not identifier:
        return None
    return PropertyKey(code, identifier)
