"""
Label and display formatting helpers shared by forms, tables and detail pages.
"""

import re
from typing import Any, Dict, Optional

EMPTY_DISPLAY = "—"


def to_label(name: str) -> str:
    """
    Turn a field or entity name into a human-readable label.

    Underscores become spaces, camelCase boundaries are split and every
    word is capitalised: ``assignedTo`` -> ``Assigned To``,
    ``total_orders`` -> ``Total Orders``.
    """
    if not name:
        return ""
    text = str(name).replace("_", " ")
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", text)
    text = re.sub(r"\s+", " ", text).strip()
    return re.sub(r"\b\w", lambda m: m.group().upper(), text)


def singularize(route_name: str) -> str:
    """Strip the trailing plural ``s`` from a route segment (``dealers`` -> ``dealer``)."""
    if route_name and route_name.endswith("s"):
        return route_name[:-1]
    return route_name


def reference_label(value: Dict[str, Any], display_key: str = "name") -> Optional[str]:
    """Label of a ``{id, <display_key>}`` reference value, or None when it has none."""
    label = value.get(display_key)
    if label in (None, ""):
        return None
    return str(label)


def format_value(value: Any, field=None) -> str:
    """
    Format a record value for read-only display.

    Args:
        value: Raw record value
        field: Optional FieldMeta describing the value

    Returns:
        Display text; empty values render as an em-dash
    """
    if value is None or value == "":
        return EMPTY_DISPLAY

    field_type = getattr(field, "type", None)
    if field_type == "boolean" or isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, dict):
        display_key = getattr(field, "display_key", None) or "name"
        return reference_label(value, display_key) or EMPTY_DISPLAY
    if isinstance(value, list):
        return ", ".join(format_value(item, field) for item in value) or EMPTY_DISPLAY
    return str(value)


def record_display_name(record: Dict[str, Any], entity_name: str, record_id: Any) -> str:
    """Heading for a detail page: name, title or dealerName, else ``<Label> #<id>``."""
    for key in ("name", "title", "dealerName"):
        if record.get(key):
            return str(record[key])
    return f"{to_label(entity_name)} #{record_id}"
