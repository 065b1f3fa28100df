"""
Session state management for the membership console.
Handles navigation state, open form dialogs and per-screen engine objects.
"""

import streamlit as st
from typing import Dict, Any, Optional
from datetime import datetime
import logging

from .data_table import TableState, DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

DEFAULT_PAGE = "list"

# Keys that belong to the entity currently on screen
_ENTITY_SCOPED_KEYS = ['selected_record_id', 'form_dialog', 'form_engines', 'table_states', 'schema_providers', 'column_sets']
_BUCKET_KEYS = ('form_engines', 'table_states', 'schema_providers', 'column_sets')

# Widget key prefixes owned by the engine's views
WIDGET_PREFIXES = ("form_", "table_")

# Session keys owned by the manager itself; some share the widget prefixes
_MANAGER_KEYS = {
    'current_page', 'current_entity', 'selected_record_id', 'form_dialog', 'form_counter',
    'form_engines', 'table_states', 'schema_providers', 'column_sets', 'auth_token', 'session_id',
}


class SessionManager:
    """Manages Streamlit session state for the membership console."""

    @staticmethod
    def initialize(default_entity: Optional[str] = None):
        """Initialize all session state variables with default values."""
        defaults = {
            'current_page': DEFAULT_PAGE,
            'current_entity': default_entity,
            'selected_record_id': None,
            'form_dialog': None,
            'form_counter': 0,
            'form_engines': {},
            'table_states': {},
            'schema_providers': {},
            'column_sets': {},
            'auth_token': None,
            'session_id': None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state.session_id:
            st.session_state.session_id = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            logger.info(f"Session initialized: {st.session_state.session_id}")

    @staticmethod
    def get_current_page() -> str:
        return st.session_state.get('current_page', DEFAULT_PAGE)

    @staticmethod
    def set_current_page(page: str):
        old_page = st.session_state.get('current_page')
        if old_page != page:
            logger.info(f"Page transition: {old_page} -> {page}")
            st.session_state.current_page = page

    @staticmethod
    def get_current_entity() -> Optional[str]:
        return st.session_state.get('current_entity')

    @staticmethod
    def set_current_entity(entity_name: str):
        """Switch entity; everything scoped to the previous entity is dropped."""
        old_entity = st.session_state.get('current_entity')
        if old_entity == entity_name:
            return

        logger.info(f"Entity changed: {old_entity} -> {entity_name}")
        SessionManager._clear_entity_state()
        st.session_state.current_entity = entity_name
        st.session_state.current_page = DEFAULT_PAGE

    @staticmethod
    def get_selected_record_id() -> Any:
        return st.session_state.get('selected_record_id')

    @staticmethod
    def show_details(record_id: Any):
        st.session_state.selected_record_id = record_id
        SessionManager.set_current_page("details")

    @staticmethod
    def show_list():
        st.session_state.selected_record_id = None
        SessionManager.set_current_page("list")

    @staticmethod
    def open_form(
        entity_name: str,
        record: Optional[Dict[str, Any]] = None,
        parent_context: Any = None
    ) -> str:
        """
        Open a create or edit form dialog.

        Returns:
            Form key, unique for this opening
        """
        st.session_state.form_counter = st.session_state.get('form_counter', 0) + 1
        form_key = f"form_{st.session_state.form_counter}"
        st.session_state.form_dialog = {
            'key': form_key,
            'entity': entity_name,
            'record': record,
            'parent_context': parent_context,
        }
        logger.info(f"Opened {'edit' if record else 'create'} form {form_key} for {entity_name}")
        return form_key

    @staticmethod
    def get_form_dialog() -> Optional[Dict[str, Any]]:
        return st.session_state.get('form_dialog')

    @staticmethod
    def close_form():
        dialog = st.session_state.get('form_dialog')
        if dialog:
            st.session_state.get('form_engines', {}).pop(dialog['key'], None)
            SessionManager.clear_widget_keys(f"{dialog['key']}_")
        st.session_state.form_dialog = None

    @staticmethod
    def get_form_engine(form_key: str):
        return st.session_state.get('form_engines', {}).get(form_key)

    @staticmethod
    def set_form_engine(form_key: str, engine) -> None:
        st.session_state.setdefault('form_engines', {})[form_key] = engine

    @staticmethod
    def get_table_state(table_key: str, page_size: int = DEFAULT_PAGE_SIZE) -> TableState:
        states = st.session_state.setdefault('table_states', {})
        if table_key not in states:
            states[table_key] = TableState(page_size=page_size)
        return states[table_key]

    @staticmethod
    def get_cached(bucket: str, key: str):
        return st.session_state.get(bucket, {}).get(key)

    @staticmethod
    def set_cached(bucket: str, key: str, value: Any) -> None:
        st.session_state.setdefault(bucket, {})[key] = value

    @staticmethod
    def get_auth_token() -> Optional[str]:
        return st.session_state.get('auth_token')

    @staticmethod
    def set_auth_token(token: Optional[str]):
        st.session_state.auth_token = token or None

    @staticmethod
    def clear_widget_keys(prefix: str) -> int:
        """Remove widget values whose key starts with prefix; returns how many were removed."""
        keys = [
            k for k in list(st.session_state.keys())
            if isinstance(k, str) and k.startswith(prefix) and k not in _MANAGER_KEYS
        ]
        for key in keys:
            del st.session_state[key]
        return len(keys)

    @staticmethod
    def _clear_entity_state():
        for key in _ENTITY_SCOPED_KEYS:
            if key in st.session_state:
                st.session_state[key] = {} if key in _BUCKET_KEYS else None
        for prefix in WIDGET_PREFIXES:
            SessionManager.clear_widget_keys(prefix)
        logger.debug("Cleared entity-scoped session state")
