"""
Query pipeline for the generic data table.

Everything here is pure: search, per-column filters, sorting, pagination,
CSV export and import operate on plain row dictionaries and the derived
columns, with no knowledge of what entity the rows belong to.
"""

import io
import logging
import math
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Dict, Any, Optional, List, Callable, Iterable, Sequence

import pandas as pd

from .column_deriver import Column

logger = logging.getLogger(__name__)

PAGE_SIZES = [10, 25, 50, 100]
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_BUTTONS = 5


@dataclass
class RowAction:
    """A per-row action; the table never interprets what it does."""
    icon: str
    label: str
    on_click: Callable[[Dict[str, Any]], None]


@dataclass
class TableState:
    """Search, filter, sort and paging state of one table instance."""
    search: str = ""
    filters: Dict[str, str] = field(default_factory=dict)
    sort_by: Optional[str] = None
    sort_desc: bool = False
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    column_visibility: Dict[str, bool] = field(default_factory=dict)

    @property
    def active_filters(self) -> Dict[str, str]:
        return {k: v for k, v in self.filters.items() if v not in (None, "")}


def cell_text(value: Any, display_key: Optional[str] = None) -> str:
    """Stringified cell value used for search, filters and export."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        label = value.get(display_key or "name") or value.get("name") or value.get("id")
        return "" if label is None else str(label)
    if isinstance(value, list):
        return ", ".join(cell_text(v, display_key) for v in value)
    return str(value)


def _display_keys(columns: Iterable[Column]) -> Dict[str, Optional[str]]:
    return {c.id: c.display_key for c in columns}


def apply_search(
    rows: Sequence[Dict[str, Any]],
    query: str,
    searchable_fields: Iterable[str],
    display_keys: Optional[Dict[str, Optional[str]]] = None
) -> List[Dict[str, Any]]:
    """Rows where any searchable field contains the query, case-insensitively."""
    query = (query or "").strip().lower()
    if not query:
        return list(rows)

    fields = list(searchable_fields)
    display_keys = display_keys or {}
    return [
        row for row in rows
        if any(
            row.get(name) is not None and query in cell_text(row.get(name), display_keys.get(name)).lower()
            for name in fields
        )
    ]


def apply_field_filters(
    rows: Sequence[Dict[str, Any]],
    filters: Dict[str, Any],
    display_keys: Optional[Dict[str, Optional[str]]] = None
) -> List[Dict[str, Any]]:
    """Rows matching every active filter exactly (stringified equality)."""
    active = {k: str(v) for k, v in filters.items() if v not in (None, "")}
    if not active:
        return list(rows)

    display_keys = display_keys or {}
    return [
        row for row in rows
        if all(cell_text(row.get(column_id), display_keys.get(column_id)) == value for column_id, value in active.items())
    ]


def _sort_value(value: Any, display_key: Optional[str]) -> Any:
    if isinstance(value, dict):
        return cell_text(value, display_key)
    return value


def _compare(a: Any, b: Any) -> int:
    try:
        if a < b:
            return -1
        if a > b:
            return 1
        return 0
    except TypeError:
        a_text, b_text = str(a), str(b)
        return (a_text > b_text) - (a_text < b_text)


def apply_sort(
    rows: Sequence[Dict[str, Any]],
    sort_by: Optional[str],
    descending: bool = False,
    display_key: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Stable single-column sort; missing values always go last."""
    if not sort_by:
        return list(rows)

    present = [r for r in rows if r.get(sort_by) is not None]
    missing = [r for r in rows if r.get(sort_by) is None]
    ordered = sorted(
        present,
        key=cmp_to_key(lambda a, b: _compare(_sort_value(a[sort_by], display_key), _sort_value(b[sort_by], display_key))),
        reverse=descending
    )
    return ordered + missing


def query_rows(
    rows: Sequence[Dict[str, Any]],
    columns: Sequence[Column],
    searchable_fields: Iterable[str],
    state: TableState
) -> List[Dict[str, Any]]:
    """Search, then filter, then sort. The result is the full set, not one page."""
    display_keys = _display_keys(columns)
    result = apply_search(rows, state.search, searchable_fields, display_keys)
    result = apply_field_filters(result, state.filters, display_keys)
    return apply_sort(result, state.sort_by, state.sort_desc, display_keys.get(state.sort_by))


def toggle_sort(state: TableState, column_id: str) -> TableState:
    """Same column flips direction; a new column starts ascending."""
    if state.sort_by == column_id:
        state.sort_desc = not state.sort_desc
    else:
        state.sort_by = column_id
        state.sort_desc = False
    return state


def set_search(state: TableState, query: str) -> TableState:
    state.search = query or ""
    state.page = 1
    return state


def add_filter(state: TableState, column_id: str) -> TableState:
    """Add an unset filter control for a column."""
    state.filters.setdefault(column_id, "")
    return state


def set_filter(state: TableState, column_id: str, value: Optional[str]) -> TableState:
    state.filters[column_id] = "" if value is None else str(value)
    state.page = 1
    return state


def remove_filter(state: TableState, column_id: str) -> TableState:
    if state.filters.pop(column_id, None) not in (None, ""):
        state.page = 1
    return state


def set_page_size(state: TableState, page_size: int, allowed: Sequence[int] = PAGE_SIZES) -> TableState:
    if page_size not in allowed:
        logger.warning(f"Unsupported page size {page_size}, keeping {state.page_size}")
        return state
    state.page_size = page_size
    state.page = 1
    return state


def total_pages(row_count: int, page_size: int) -> int:
    return max(1, math.ceil(row_count / page_size))


def set_page(state: TableState, page: int, row_count: int) -> TableState:
    state.page = min(max(1, page), total_pages(row_count, state.page_size))
    return state


def paginate(rows: Sequence[Dict[str, Any]], page: int, page_size: int) -> List[Dict[str, Any]]:
    start = (max(1, page) - 1) * page_size
    return list(rows[start:start + page_size])


def page_window(current: int, total: int, max_buttons: int = MAX_PAGE_BUTTONS) -> List[int]:
    """Page numbers to show as buttons, keeping the current page centered where possible."""
    if total <= 0:
        return []
    start = max(1, current - max_buttons // 2)
    end = min(total, start + max_buttons - 1)
    start = max(1, end - max_buttons + 1)
    return list(range(start, end + 1))


def visible_columns(columns: Sequence[Column], state: TableState) -> List[Column]:
    return [c for c in columns if state.column_visibility.get(c.id, c.visible)]


def export_csv(rows: Sequence[Dict[str, Any]], columns: Sequence[Column]) -> str:
    """
    Serialize rows to CSV using column labels as headers.

    Callers pass the filtered and sorted rows and the visible columns.
    """
    data = [
        {c.label: cell_text(row.get(c.id), c.display_key) for c in columns}
        for row in rows
    ]
    df = pd.DataFrame(data, columns=[c.label for c in columns])
    csv_data = df.to_csv(index=False)
    logger.info(f"Generated CSV with {len(data)} rows and {len(columns)} columns")
    return csv_data


def parse_csv_import(text: str, columns: Sequence[Column]) -> List[Dict[str, str]]:
    """
    Parse CSV text into rows keyed by column id.

    Headers are matched to columns by exact label; unknown headers are
    dropped. All values are kept as strings.

    Raises:
        ValueError: The text is not parseable CSV
    """
    if not text or not text.strip():
        return []

    try:
        df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as e:
        raise ValueError(f"Could not parse CSV: {e}") from e

    by_label = {c.label: c.id for c in columns}
    known = [h for h in df.columns if h in by_label]
    dropped = [h for h in df.columns if h not in by_label]
    if dropped:
        logger.info(f"CSV import ignored unknown columns: {dropped}")

    rows = [
        {by_label[h]: record[h] for h in known}
        for record in df.to_dict(orient="records")
    ]
    logger.info(f"Parsed {len(rows)} rows from CSV import")
    return rows
