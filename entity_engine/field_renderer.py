"""
Field renderer for the entity form.

Maps one field's metadata onto a Streamlit control and reports every edit
through an ``on_change(field_name, value)`` callback. Dispatch is on the
field's display type; the field type only decides between an enum and a
reference Dropdown.
"""

import json
import logging
import re
from dataclasses import dataclass, field as dataclass_field
from datetime import date, datetime, time
from pathlib import PurePath
from typing import Dict, Any, Optional, List, Callable

import streamlit as st
from dateutil import parser as date_parser

from .models import DisplayType, FieldMeta, FieldType
from .reference_resolver import option_label

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#000000"
DEFAULT_MAX_FILE_MB = 10
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

OnChange = Callable[[str, Any], None]


@dataclass
class Control:
    """What was rendered for one field."""
    field_name: str
    kind: DisplayType
    widget_key: str
    value: Any = None
    options: List[Any] = dataclass_field(default_factory=list)
    error: Optional[str] = None
    warnings: List[str] = dataclass_field(default_factory=list)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def controlled_value(value: Any) -> Any:
    """Text controls always receive a string, never None."""
    return "" if value is None else value


def initial_value(field: FieldMeta, record_value: Any = None) -> Any:
    """Value a field starts with: the record's value, else the type default."""
    if record_value is not None:
        return record_value
    if field.type == FieldType.BOOLEAN or field.display_kind == DisplayType.CHECKBOX:
        return field.boolean_default
    if field.is_file:
        return []
    return None


def select_reference(options: List[Dict[str, Any]], option_id: Any, display_key: str = "name") -> Optional[Dict[str, Any]]:
    """
    Build the stored value for a reference pick.

    Returns:
        ``{id, <display_key>: label}`` for the matching option, or None
    """
    if option_id is None or option_id == "":
        return None
    for option in options:
        if str(option.get("id")) == str(option_id):
            return {"id": option["id"], display_key: option_label(option, display_key)}
    return None


def apply_json_edit(text: str) -> Any:
    """Parsed JSON when the text is valid, otherwise the raw text unchanged."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text


def json_text(value: Any) -> str:
    """Text shown in the JSON editor for a stored value."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def _file_identity(file: Any) -> tuple:
    return (getattr(file, "name", str(file)), getattr(file, "size", None))


def add_files(current: Optional[List[Any]], new_files: Optional[List[Any]]) -> List[Any]:
    """Append newly selected files to the accumulated list, skipping ones already present."""
    files = list(current or [])
    known = {_file_identity(f) for f in files}
    for new_file in new_files or []:
        if _file_identity(new_file) not in known:
            files.append(new_file)
            known.add(_file_identity(new_file))
    return files


def remove_file(current: Optional[List[Any]], index: int) -> List[Any]:
    files = list(current or [])
    if 0 <= index < len(files):
        files.pop(index)
    return files


def file_caption(field: FieldMeta) -> str:
    allowed = field.constraints.get("allowed_types") or []
    max_mb = field.constraints.get("max_size_mb") or DEFAULT_MAX_FILE_MB
    if allowed:
        return f"Allowed: {', '.join(allowed)} (max {max_mb} MB)"
    return f"Max {max_mb} MB"


def file_advisories(field: FieldMeta, files: List[Any]) -> List[str]:
    """Advisory notes for files outside the allowed types or size; nothing is blocked."""
    allowed = {t.lower().lstrip(".") for t in field.constraints.get("allowed_types") or []}
    max_mb = field.constraints.get("max_size_mb") or DEFAULT_MAX_FILE_MB
    notes = []
    for file in files:
        name = getattr(file, "name", str(file))
        suffix = PurePath(name).suffix.lower().lstrip(".")
        if allowed and suffix not in allowed:
            notes.append(f"{name}: type '{suffix or 'unknown'}' is not in the allowed list")
        size = getattr(file, "size", None)
        if size is not None and size > max_mb * 1024 * 1024:
            notes.append(f"{name}: larger than {max_mb} MB")
    return notes


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value)).date()
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to parse date string '{value}': {e}")
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO datetime without any timezone conversion."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to parse datetime string '{value}': {e}")
        return None


def combine_datetime(date_part: Optional[date], time_part: Optional[time], tzinfo=None) -> Optional[str]:
    """ISO datetime from the two picker values; a naive time takes ``tzinfo`` so the offset is kept."""
    if date_part is None:
        return None
    combined = datetime.combine(date_part, time_part or time.min)
    if combined.tzinfo is None and tzinfo is not None:
        combined = combined.replace(tzinfo=tzinfo)
    return combined.isoformat()


def valid_color(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_COLOR.match(value))


def parse_number(value: Any, integer: bool) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric value '{value}' in a number field")
        return None
    return int(number) if integer and number.is_integer() else number


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class FieldRenderer:
    """Draws editable controls for entity fields."""

    @staticmethod
    def render(
        field: FieldMeta,
        current_value: Any,
        on_change: OnChange,
        options: Optional[List[Dict[str, Any]]] = None,
        error: Optional[str] = None,
        key_prefix: str = "field",
        disabled: bool = False
    ) -> Control:
        """
        Render one field.

        Args:
            field: Field metadata (must not be a collection)
            current_value: Value held in the form state
            on_change: Called with ``(field_name, new_value)`` on every edit
            options: Reference options for reference Dropdowns
            error: Validation message to show under the control
            key_prefix: Widget key namespace, unique per form instance
            disabled: Render read-only

        Returns:
            Control describing what was drawn
        """
        if field.is_collection:
            raise ValueError(f"Collection field '{field.name}' cannot be rendered as a form control")

        kind = field.display_kind
        control = Control(
            field_name=field.name,
            kind=kind,
            widget_key=f"{key_prefix}_{field.name}",
            value=current_value,
            error=error
        )
        label = f"{field.label} *" if field.is_required else field.label

        renderers = {
            DisplayType.SINGLE_LINE: FieldRenderer._render_text,
            DisplayType.EMAIL: FieldRenderer._render_text,
            DisplayType.PHONE: FieldRenderer._render_text,
            DisplayType.MULTI_LINE: FieldRenderer._render_text_area,
            DisplayType.NUMBER: FieldRenderer._render_number,
            DisplayType.DECIMAL: FieldRenderer._render_number,
            DisplayType.CHECKBOX: FieldRenderer._render_checkbox,
            DisplayType.DATE_PICKER: FieldRenderer._render_date,
            DisplayType.DATE_TIME_PICKER: FieldRenderer._render_datetime,
            DisplayType.FILE_UPLOAD: FieldRenderer._render_files,
            DisplayType.JSON_EDITOR: FieldRenderer._render_json,
            DisplayType.COLOR_PICKER: FieldRenderer._render_color,
        }

        if kind == DisplayType.DROPDOWN:
            if field.is_scalar_reference:
                renderer = FieldRenderer._render_reference
                control.options = list(options or [])
            else:
                renderer = FieldRenderer._render_enum
                control.options = field.enum_values
        else:
            renderer = renderers.get(kind, FieldRenderer._render_text)

        renderer(field, control, label, on_change, disabled)

        if error:
            st.caption(f":red[{error}]")
        return control

    @staticmethod
    def _seed(key: str, value: Any) -> None:
        if key not in st.session_state:
            st.session_state[key] = value

    @staticmethod
    def _render_text(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        FieldRenderer._seed(key, str(controlled_value(control.value)))
        placeholder = None
        if control.kind == DisplayType.EMAIL:
            placeholder = "name@example.com"
        elif control.kind == DisplayType.PHONE:
            placeholder = "Phone number"

        st.text_input(
            label,
            key=key,
            placeholder=placeholder,
            disabled=disabled,
            on_change=lambda: on_change(field.name, st.session_state[key])
        )

    @staticmethod
    def _render_text_area(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        FieldRenderer._seed(key, str(controlled_value(control.value)))
        st.text_area(
            label,
            key=key,
            height=100,
            disabled=disabled,
            on_change=lambda: on_change(field.name, st.session_state[key])
        )

    @staticmethod
    def _render_number(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        integer = control.kind == DisplayType.NUMBER
        FieldRenderer._seed(key, parse_number(control.value, integer))

        kwargs = {'step': 1, 'format': "%d"} if integer else {'step': 0.01, 'format': "%.2f"}
        st.number_input(
            label,
            key=key,
            value=None,
            disabled=disabled,
            on_change=lambda: on_change(field.name, st.session_state[key]),
            **kwargs
        )

    @staticmethod
    def _render_checkbox(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        value = control.value if control.value is not None else field.boolean_default
        FieldRenderer._seed(key, bool(value))
        st.checkbox(
            field.label,
            key=key,
            disabled=disabled,
            on_change=lambda: on_change(field.name, bool(st.session_state[key]))
        )

    @staticmethod
    def _render_date(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        FieldRenderer._seed(key, parse_date(control.value))

        def _changed():
            picked = st.session_state[key]
            on_change(field.name, picked.isoformat() if picked else None)

        st.date_input(label, key=key, value=None, disabled=disabled, on_change=_changed)

    @staticmethod
    def _render_datetime(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        date_key = f"{control.widget_key}_date"
        time_key = f"{control.widget_key}_time"
        current = parse_datetime(control.value)
        FieldRenderer._seed(date_key, current.date() if current else None)
        FieldRenderer._seed(time_key, current.time() if current else None)
        tzinfo = current.tzinfo if current else None

        def _changed():
            on_change(field.name, combine_datetime(st.session_state[date_key], st.session_state[time_key], tzinfo))

        col1, col2 = st.columns(2)
        with col1:
            st.date_input(f"{label} (Date)", key=date_key, value=None, disabled=disabled, on_change=_changed)
        with col2:
            st.time_input(f"{label} (Time)", key=time_key, value=None, disabled=disabled, on_change=_changed)

    @staticmethod
    def _render_enum(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        choices = list(control.options)
        if control.value not in (None, "") and str(control.value) not in choices:
            choices.append(str(control.value))
        FieldRenderer._seed(key, str(control.value) if control.value not in (None, "") else None)

        placeholder = f"Select {field.label}"
        st.selectbox(
            label,
            options=[None] + choices,
            key=key,
            format_func=lambda x: placeholder if x is None else str(x),
            disabled=disabled,
            on_change=lambda: on_change(field.name, st.session_state[key])
        )

    @staticmethod
    def _render_reference(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        display_key = field.display_key
        options = control.options
        labels = {str(o.get("id")): option_label(o, display_key) for o in options if "id" in o}

        current = control.value if isinstance(control.value, dict) else None
        if current is not None and str(current.get("id")) not in labels:
            # Keep the stored pick selectable while options are still loading
            labels[str(current.get("id"))] = option_label(current, display_key)
        FieldRenderer._seed(key, str(current["id"]) if current and "id" in current else None)

        def _changed():
            chosen = st.session_state[key]
            value = select_reference(options, chosen, display_key)
            if value is None and current is not None and chosen == str(current.get("id")):
                value = current
            on_change(field.name, value)

        placeholder = f"Select {field.label}"
        st.selectbox(
            label,
            options=[None] + list(labels),
            key=key,
            format_func=lambda x: placeholder if x is None else labels.get(x, x),
            disabled=disabled,
            on_change=_changed
        )

    @staticmethod
    def _render_files(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        uploader_key = f"{control.widget_key}_uploader"
        files = list(control.value or [])

        st.file_uploader(
            label,
            key=uploader_key,
            accept_multiple_files=True,
            disabled=disabled,
            on_change=lambda: on_change(field.name, add_files(files, st.session_state[uploader_key]))
        )
        st.caption(file_caption(field))

        for index, file in enumerate(files):
            col1, col2 = st.columns([4, 1])
            with col1:
                st.write(f"📎 {getattr(file, 'name', file)}")
            with col2:
                st.button(
                    "Remove",
                    key=f"{control.widget_key}_remove_{index}",
                    disabled=disabled,
                    on_click=lambda i=index: on_change(field.name, remove_file(files, i))
                )

        control.warnings = file_advisories(field, files)
        for note in control.warnings:
            st.caption(f"⚠️ {note}")

    @staticmethod
    def _render_json(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        key = control.widget_key
        FieldRenderer._seed(key, json_text(control.value))
        st.text_area(
            label,
            key=key,
            height=160,
            disabled=disabled,
            on_change=lambda: on_change(field.name, apply_json_edit(st.session_state[key]))
        )
        if isinstance(control.value, str) and control.value.strip():
            control.warnings = ["Not valid JSON yet; the text is kept as typed"]
            st.caption(f"⚠️ {control.warnings[0]}")

    @staticmethod
    def _render_color(field: FieldMeta, control: Control, label: str, on_change: OnChange, disabled: bool) -> None:
        swatch_key = f"{control.widget_key}_swatch"
        hex_key = f"{control.widget_key}_hex"
        value = control.value if valid_color(control.value) else DEFAULT_COLOR
        FieldRenderer._seed(swatch_key, value)
        FieldRenderer._seed(hex_key, str(controlled_value(control.value)))

        def _swatch_changed():
            picked = st.session_state[swatch_key]
            st.session_state[hex_key] = picked
            on_change(field.name, picked)

        def _hex_changed():
            typed = st.session_state[hex_key]
            if valid_color(typed):
                st.session_state[swatch_key] = typed
            on_change(field.name, typed)

        col1, col2 = st.columns([1, 3])
        with col1:
            st.color_picker(label, key=swatch_key, disabled=disabled, on_change=_swatch_changed)
        with col2:
            st.text_input(f"{field.label} (hex)", key=hex_key, disabled=disabled, on_change=_hex_changed)
