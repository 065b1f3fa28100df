"""
Column derivation for entity tables.

Turns EntityMeta into the table's column set: visibility defaults, filter
kinds and options, sortability and cell rendering per field type.
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Dict, Any, Optional, List, Iterable, Tuple

from .formatting import EMPTY_DISPLAY, reference_label
from .models import EntityMeta, FieldMeta, FieldType
from .reference_resolver import ReferenceResolver

logger = logging.getLogger(__name__)

# Types that never become columns
EXCLUDED_COLUMN_TYPES = {FieldType.FILE, FieldType.JSON, FieldType.MULTI_LINE}

SEARCHABLE_TYPES = {
    FieldType.STRING, FieldType.EMAIL, FieldType.PHONE, FieldType.ENUM, FieldType.REF_ENTITY
}

BADGE_FIELDS = {"status", "priority"}

# Badge styles for status/priority values: (text color, background color)
STATUS_BADGE_STYLES: Dict[str, Tuple[str, str]] = {
    "Active": ("#166534", "#dcfce7"),
    "Completed": ("#166534", "#dcfce7"),
    "Pending": ("#92400e", "#fef3c7"),
    "In Progress": ("#1e40af", "#dbeafe"),
    "Cancelled": ("#6b7280", "#f3f4f6"),
    "Expired": ("#6b7280", "#f3f4f6"),
    "High": ("#991b1b", "#fee2e2"),
    "Medium": ("#92400e", "#fef3c7"),
    "Low": ("#166534", "#dcfce7"),
}

BOOLEAN_FILTER_OPTIONS = [
    {"label": "Yes", "value": "true"},
    {"label": "No", "value": "false"},
]


class FilterType:
    """Filter control constants."""
    TEXT = "text"
    SELECT = "select"


@dataclass
class Column:
    id: str
    label: str
    field_type: str = FieldType.STRING
    visible: bool = True
    sortable: bool = True
    filterable: bool = False
    filter_type: str = FilterType.TEXT
    filter_options: List[Dict[str, str]] = dataclass_field(default_factory=list)
    display_key: Optional[str] = None
    badge: bool = False

    def render(self, value: Any) -> str:
        """Cell text for a raw row value."""
        if self.field_type == FieldType.BOOLEAN:
            if value is None or value == "":
                return "-"
            return "Yes" if value else "No"
        if self.field_type == FieldType.REF_ENTITY:
            if isinstance(value, dict):
                return reference_label(value, self.display_key or "name") or EMPTY_DISPLAY
            return str(value) if value not in (None, "") else EMPTY_DISPLAY
        if value is None or value == "":
            return "-"
        return str(value)

    def badge_style(self, value: Any) -> Optional[Tuple[str, str]]:
        """Badge colors for a cell, or None when the cell renders unstyled."""
        if self.field_type == FieldType.BOOLEAN:
            return ("#166534", "#dcfce7") if value else ("#374151", "#f3f4f6")
        if not self.badge or value is None:
            return None
        return STATUS_BADGE_STYLES.get(str(value))


def _column_for(field: FieldMeta, hidden: Iterable[str], ref_filter_options: Dict[str, List[Dict[str, str]]]) -> Column:
    column = Column(
        id=field.name,
        label=field.label,
        field_type=field.type,
        visible=field.partial_field and field.name not in hidden,
    )

    if field.type == FieldType.ENUM and field.enum_values:
        column.filterable = True
        column.filter_type = FilterType.SELECT
        column.filter_options = [{"label": v, "value": v} for v in field.enum_values]
        column.badge = field.name in BADGE_FIELDS
    elif field.is_scalar_reference and not field.standalone:
        column.filterable = True
        column.filter_type = FilterType.SELECT
        column.filter_options = list(ref_filter_options.get(field.name, []))
        column.display_key = field.display_key
    elif field.type == FieldType.BOOLEAN:
        column.filterable = True
        column.filter_type = FilterType.SELECT
        column.filter_options = [dict(o) for o in BOOLEAN_FILTER_OPTIONS]
        column.sortable = False
    else:
        column.filterable = True
        column.filter_type = FilterType.TEXT

    return column


def build_columns(
    meta: EntityMeta,
    hidden_fields: Optional[Iterable[str]] = None,
    ref_filter_options: Optional[Dict[str, List[Dict[str, str]]]] = None
) -> Tuple[List[Column], List[str]]:
    """
    Derive columns and the searchable field names from metadata.

    Args:
        meta: Entity metadata
        hidden_fields: Field names hidden by default even when partial
        ref_filter_options: Filter options per reference field name

    Returns:
        (columns, searchable field names), both in schema order
    """
    hidden = set(hidden_fields or [])
    ref_filter_options = ref_filter_options or {}

    columns = []
    searchable = []
    for f in meta.fields:
        if f.is_collection or f.type in EXCLUDED_COLUMN_TYPES:
            continue
        columns.append(_column_for(f, hidden, ref_filter_options))
        if f.type in SEARCHABLE_TYPES:
            searchable.append(f.name)

    return columns, searchable


class ColumnDeriver:
    """Derives table columns, resolving reference filter options on the way."""

    def __init__(self, resolver: ReferenceResolver):
        self.resolver = resolver

    def derive(
        self,
        meta: EntityMeta,
        hidden_fields: Optional[Iterable[str]] = None,
        parent_entity: Optional[str] = None
    ) -> Tuple[List[Column], List[str]]:
        ref_filter_options = self.resolver.load_filter_options(meta, parent_entity)
        columns, searchable = build_columns(meta, hidden_fields, ref_filter_options)
        logger.debug(
            f"Derived {len(columns)} columns for {meta.entity} "
            f"({sum(c.visible for c in columns)} visible, searchable: {searchable})"
        )
        return columns, searchable
