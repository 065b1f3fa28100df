"""
Streamlit rendering of the generic data table.
"""

import streamlit as st
import logging
from typing import Dict, Any, Optional, List, Callable, Sequence

from .column_deriver import Column, FilterType
from .data_table import (
    PAGE_SIZES,
    MAX_PAGE_BUTTONS,
    RowAction,
    TableState,
    add_filter,
    export_csv,
    page_window,
    paginate,
    parse_csv_import,
    query_rows,
    remove_filter,
    set_filter,
    set_page,
    set_page_size,
    set_search,
    toggle_sort,
    total_pages,
    visible_columns,
)
from .session_manager import SessionManager
from .ui_feedback import Notify

logger = logging.getLogger(__name__)

ACTION_ICONS = {
    'view': '👁️',
    'edit': '✏️',
    'delete': '🗑️',
}


class TableView:
    """Search, filters, sortable headers, paging, export and import for one table."""

    @staticmethod
    def render(
        table_key: str,
        rows: Sequence[Dict[str, Any]],
        columns: Sequence[Column],
        searchable_fields: Sequence[str],
        actions: Optional[List[RowAction]] = None,
        export_filename: str = "export.csv",
        on_import: Optional[Callable[[List[Dict[str, str]]], None]] = None,
        page_sizes: Sequence[int] = PAGE_SIZES,
        default_page_size: int = PAGE_SIZES[0],
        max_page_buttons: int = MAX_PAGE_BUTTONS
    ) -> List[Dict[str, Any]]:
        """
        Render a table.

        Args:
            table_key: Unique key; also the prefix of every widget key
            rows: Full row set
            columns: Derived columns
            searchable_fields: Field names scanned by the search box
            actions: Per-row actions
            export_filename: File name offered by the export button
            on_import: Receives parsed CSV rows; import is hidden when None
            page_sizes: Selectable page sizes
            default_page_size: Initial page size
            max_page_buttons: Maximum page number buttons

        Returns:
            Rows shown on the current page
        """
        state = SessionManager.get_table_state(table_key, default_page_size)
        actions = actions or []

        TableView._render_toolbar(table_key, state, columns, searchable_fields)
        TableView._render_filters(table_key, state, columns)

        filtered = query_rows(rows, columns, searchable_fields, state)
        set_page(state, state.page, len(filtered))
        shown_columns = visible_columns(columns, state)
        page_rows = paginate(filtered, state.page, state.page_size)

        TableView._render_header(table_key, state, shown_columns, bool(actions))
        if not page_rows:
            st.info("No results found.")
        for index, row in enumerate(page_rows):
            TableView._render_row(table_key, index, row, shown_columns, actions)

        TableView._render_pagination(table_key, state, len(filtered), page_sizes, max_page_buttons)
        TableView._render_transfer(table_key, filtered, shown_columns, columns, export_filename, on_import)
        return page_rows

    @staticmethod
    def _render_toolbar(table_key: str, state: TableState, columns: Sequence[Column], searchable_fields: Sequence[str]):
        search_key = f"{table_key}_search"
        if search_key not in st.session_state:
            st.session_state[search_key] = state.search

        col1, col2, col3 = st.columns([3, 2, 1])
        with col1:
            st.text_input(
                "Search",
                key=search_key,
                placeholder="Search...",
                label_visibility="collapsed",
                disabled=not searchable_fields,
                on_change=lambda: set_search(state, st.session_state[search_key])
            )

        with col2:
            available = [c for c in columns if c.filterable and c.id not in state.filters]
            labels = {c.id: c.label for c in available}
            add_key = f"{table_key}_add_filter"

            def _add():
                chosen = st.session_state.get(add_key)
                if chosen:
                    add_filter(state, chosen)
                st.session_state[add_key] = None

            st.selectbox(
                "Add filter",
                options=[None] + list(labels),
                key=add_key,
                format_func=lambda x: "➕ Add filter" if x is None else labels.get(x, x),
                label_visibility="collapsed",
                on_change=_add
            )

        with col3:
            with st.popover("Columns"):
                for column in columns:
                    toggle_key = f"{table_key}_col_{column.id}"
                    if toggle_key not in st.session_state:
                        st.session_state[toggle_key] = state.column_visibility.get(column.id, column.visible)
                    st.checkbox(
                        column.label,
                        key=toggle_key,
                        on_change=lambda cid=column.id, k=toggle_key: state.column_visibility.__setitem__(cid, st.session_state[k])
                    )

    @staticmethod
    def _render_filters(table_key: str, state: TableState, columns: Sequence[Column]):
        if not state.filters:
            return

        by_id = {c.id: c for c in columns}
        for column_id in list(state.filters):
            column = by_id.get(column_id)
            if column is None:
                remove_filter(state, column_id)
                continue

            value_key = f"{table_key}_filter_{column_id}"
            if value_key not in st.session_state:
                st.session_state[value_key] = state.filters[column_id] or None

            col1, col2 = st.columns([5, 1])
            with col1:
                if column.filter_type == FilterType.SELECT:
                    labels = {o['value']: o['label'] for o in column.filter_options}
                    st.selectbox(
                        column.label,
                        options=[None] + list(labels),
                        key=value_key,
                        format_func=lambda x, lbl=column.label, m=labels: f"All {lbl}" if x is None else m.get(x, x),
                        on_change=lambda cid=column_id, k=value_key: set_filter(state, cid, st.session_state[k])
                    )
                else:
                    st.text_input(
                        column.label,
                        key=value_key,
                        placeholder=f"Exact {column.label}",
                        on_change=lambda cid=column_id, k=value_key: set_filter(state, cid, st.session_state[k])
                    )
            with col2:
                def _remove(cid=column_id, k=value_key):
                    remove_filter(state, cid)
                    st.session_state.pop(k, None)

                st.button("✖", key=f"{value_key}_remove", help=f"Remove {column.label} filter", on_click=_remove)

    @staticmethod
    def _render_header(table_key: str, state: TableState, columns: Sequence[Column], has_actions: bool):
        widths = [2] * len(columns) + ([1] if has_actions else [])
        if not widths:
            return

        cells = st.columns(widths)
        for cell, column in zip(cells, columns):
            with cell:
                if column.sortable:
                    arrow = ""
                    if state.sort_by == column.id:
                        arrow = " ↓" if state.sort_desc else " ↑"
                    st.button(
                        f"**{column.label}**{arrow}",
                        key=f"{table_key}_sort_{column.id}",
                        on_click=lambda cid=column.id: toggle_sort(state, cid)
                    )
                else:
                    st.markdown(f"**{column.label}**")
        if has_actions:
            with cells[-1]:
                st.markdown("**Actions**")

    @staticmethod
    def _render_row(table_key: str, index: int, row: Dict[str, Any], columns: Sequence[Column], actions: List[RowAction]):
        widths = [2] * len(columns) + ([1] if actions else [])
        if not widths:
            return

        cells = st.columns(widths)
        for cell, column in zip(cells, columns):
            with cell:
                value = row.get(column.id)
                text = column.render(value)
                style = column.badge_style(value) if value is not None else None
                if style:
                    color, background = style
                    st.markdown(
                        f"<span style='color: {color}; background-color: {background}; padding: 2px 8px; "
                        f"border-radius: 9999px; font-size: 0.8em;'>{text}</span>",
                        unsafe_allow_html=True
                    )
                else:
                    st.write(text)

        if actions:
            with cells[-1]:
                action_cols = st.columns(len(actions))
                for action_col, action in zip(action_cols, actions):
                    with action_col:
                        st.button(
                            ACTION_ICONS.get(action.icon, action.icon),
                            key=f"{table_key}_{action.icon}_{row.get('id', index)}_{index}",
                            help=action.label,
                            on_click=action.on_click,
                            args=(row,)
                        )

    @staticmethod
    def _render_pagination(table_key: str, state: TableState, row_count: int, page_sizes: Sequence[int], max_page_buttons: int):
        pages = total_pages(row_count, state.page_size)
        window = page_window(state.page, pages, max_page_buttons)

        col1, col2 = st.columns([2, 3])
        with col1:
            size_key = f"{table_key}_page_size"
            if size_key not in st.session_state:
                st.session_state[size_key] = state.page_size
            st.selectbox(
                "Rows per page",
                options=list(page_sizes),
                key=size_key,
                on_change=lambda: set_page_size(state, st.session_state[size_key], page_sizes)
            )
            st.caption(f"Page {state.page} of {pages} ({row_count} rows)")

        with col2:
            buttons = st.columns(len(window) + 2)
            with buttons[0]:
                st.button(
                    "‹",
                    key=f"{table_key}_prev",
                    disabled=state.page <= 1,
                    on_click=lambda: set_page(state, state.page - 1, row_count)
                )
            for button, number in zip(buttons[1:-1], window):
                with button:
                    st.button(
                        str(number),
                        key=f"{table_key}_page_{number}",
                        type="primary" if number == state.page else "secondary",
                        on_click=lambda n=number: set_page(state, n, row_count)
                    )
            with buttons[-1]:
                st.button(
                    "›",
                    key=f"{table_key}_next",
                    disabled=state.page >= pages,
                    on_click=lambda: set_page(state, state.page + 1, row_count)
                )

    @staticmethod
    def _render_transfer(
        table_key: str,
        filtered: Sequence[Dict[str, Any]],
        shown_columns: Sequence[Column],
        columns: Sequence[Column],
        export_filename: str,
        on_import: Optional[Callable[[List[Dict[str, str]]], None]]
    ):
        col1, col2 = st.columns(2)
        with col1:
            st.download_button(
                label="⬇️ Export CSV",
                data=export_csv(filtered, shown_columns),
                file_name=export_filename,
                mime="text/csv",
                key=f"{table_key}_export"
            )

        if on_import is None:
            return

        with col2:
            upload_key = f"{table_key}_import"

            def _import():
                uploaded = st.session_state.get(upload_key)
                if uploaded is None:
                    return
                try:
                    rows = parse_csv_import(uploaded.getvalue().decode("utf-8-sig"), columns)
                except (ValueError, UnicodeDecodeError) as e:
                    logger.error(f"CSV import failed: {e}")
                    Notify.error(f"Import failed: {e}")
                    return
                on_import(rows)

            st.file_uploader("Import CSV", type=["csv"], key=upload_key, on_change=_import)
