# leadsync/services/field_normalizer.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional


@dataclass(frozen=True)
class NormalizedFields:
    name: str
    email: str
    phone: str
    fields: Dict[str, str] = field(default_factory=dict)


def _first_value(values: Any) -> str:
    if not isinstance(values, (list, tuple)) or not values:
        return ""
    first = values[0]
    return "" if first is None else str(first)


def collect_fields(field_data: Optional[Iterable[Any]]) -> Dict[str, str]:
    """
    Map form field entries to {UPPERCASE_NAME: first value}.
    Entries without a usable name are skipped.
    """
    fields: Dict[str, str] = {}
    if not field_data or isinstance(field_data, (str, bytes)):
        return fields

    for entry in field_data:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        fields[name.strip().upper()] = _first_value(entry.get("values"))

    return fields


def normalize_field_data(field_data: Optional[Iterable[Any]]) -> NormalizedFields:
    fields = collect_fields(field_data)
    return NormalizedFields(
        name=fields.get("FULL_NAME") or fields.get("EMAIL") or "Unknown",
        email=fields.get("EMAIL") or "",
        phone=fields.get("PHONE_NUMBER") or fields.get("PHONE") or "",
        fields=fields,
    )
