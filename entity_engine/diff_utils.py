"""
Diff utilities for the entity form.
Computes the set of fields changed since a form was opened, using DeepDiff
for structured values and id-based comparison for reference picks.
"""

from typing import Dict, Any, List, Optional
from deepdiff import DeepDiff
import logging

from .formatting import format_value
from .models import FieldType

logger = logging.getLogger(__name__)

NUMERIC_TYPES = {FieldType.NUMBER, FieldType.DECIMAL}


def normalize_value(v: Any, field=None) -> Any:
    """Normalize values for comparison.

    Handles:
    - Empty strings and None values converted to None
    - Numeric strings converted to int or float, for number and decimal fields only
    - Recursive normalization of lists and dictionaries

    Text is compared as typed: whitespace and leading zeros are significant.
    """
    if v is None or v == '':
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        if getattr(field, 'type', None) in NUMERIC_TYPES:
            try:
                if '.' in v:
                    return float(v)
                return int(v)
            except ValueError:
                return v
        return v
    if isinstance(v, list):
        return [normalize_value(item) for item in v]
    if isinstance(v, dict):
        return {k: normalize_value(val) for k, val in v.items()}
    return v


def _is_reference_value(value: Any) -> bool:
    return isinstance(value, dict) and 'id' in value


def _references_equal(old: Dict[str, Any], new: Dict[str, Any]) -> bool:
    """Two reference picks are equal when their ids and shared scalar keys match."""
    if str(old.get('id')) != str(new.get('id')):
        return False
    for key in set(old) & set(new):
        if key == 'id':
            continue
        old_val, new_val = old[key], new[key]
        if isinstance(old_val, (dict, list)) or isinstance(new_val, (dict, list)):
            continue
        if normalize_value(old_val) != normalize_value(new_val):
            return False
    return True


def values_equal(old: Any, new: Any, field=None) -> bool:
    """
    Semantic equality used by the edit-path diff.

    Reference objects compare by id (plus shared scalar keys), never by
    identity. Other values are normalized and compared with DeepDiff.

    Args:
        old: Value captured when the form was opened
        new: Current form value
        field: Optional FieldMeta for the value
    """
    if _is_reference_value(old) and _is_reference_value(new):
        return _references_equal(old, new)

    if getattr(field, 'is_scalar_reference', False) and (_is_reference_value(old) or _is_reference_value(new)):
        return False

    old_norm = normalize_value(old, field)
    new_norm = normalize_value(new, field)

    if old_norm is None or new_norm is None:
        return old_norm is None and new_norm is None

    if isinstance(old_norm, bool) or isinstance(new_norm, bool):
        return old_norm is new_norm

    if isinstance(old_norm, (int, float)) and isinstance(new_norm, (int, float)):
        return old_norm == new_norm

    try:
        return not DeepDiff(old_norm, new_norm, ignore_order=False)
    except Exception as e:
        logger.warning(f"DeepDiff failed for {getattr(field, 'name', 'value')}: {e}")
        return old_norm == new_norm


def calculate_modified_fields(meta, initial: Dict[str, Any], values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Collect the fields whose value changed since the form was opened.

    File fields and collection fields are never part of an update.

    Args:
        meta: EntityMeta of the form
        initial: Snapshot taken when the form was initialized
        values: Current form values

    Returns:
        Mapping of changed field name to its current value (None when cleared)
    """
    modified = {}
    for field in meta.fields:
        if field.is_file or field.is_collection:
            continue
        old_value = initial.get(field.name)
        new_value = values.get(field.name)
        if not values_equal(old_value, new_value, field):
            modified[field.name] = new_value

    if modified:
        logger.debug(f"Modified fields for {meta.entity}: {sorted(modified)}")
    return modified


def has_changes(modified_fields: Optional[Dict[str, Any]]) -> bool:
    """Check if a modified-fields mapping contains anything."""
    return bool(modified_fields)


def format_changes_for_display(meta, initial: Dict[str, Any], modified_fields: Dict[str, Any]) -> List[Dict[str, str]]:
    """
    Rows describing pending changes, for the form's change preview.

    Returns:
        List of ``{field, label, old, new}`` with display-formatted values
    """
    rows = []
    for name, new_value in modified_fields.items():
        field = meta.field(name)
        rows.append({
            'field': name,
            'label': field.label if field else name,
            'old': format_value(initial.get(name), field),
            'new': format_value(new_value, field),
        })
    return rows
