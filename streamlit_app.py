"""
Main Streamlit application for the membership console.
Metadata-driven list, detail and form screens for dealers and related records.
"""

import streamlit as st
import logging

from entity_engine.api_client import build_api_client
from entity_engine.config_loader import load_config, get_config_value, get_entity_configs
from entity_engine.context import EngineContext
from entity_engine.entity_pages import EntityPages
from entity_engine.error_handler import ErrorHandler, ErrorType
from entity_engine.mock_backend import MockBackend
from entity_engine.session_manager import SessionManager
from entity_engine.ui_feedback import notify_callback


def get_logging_level(level_str):
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


# Configure logging dynamically from config
try:
    log_level_str = get_config_value('logging', 'level', 'INFO')
    logging.basicConfig(
        level=get_logging_level(log_level_str),
        format=get_config_value('logging', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )
    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured to level: {log_level_str}")
except Exception as e:
    # Fallback to INFO if config reading fails
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)
    logger.error(f"Failed to configure logging from config: {e}, using INFO level")

config = load_config()
page_title = get_config_value('ui', 'page_title', 'Membership Console')

st.set_page_config(
    page_title=page_title,
    page_icon="🗂️",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Session buckets holding objects bound to one engine context
_CONTEXT_BOUND_BUCKETS = ('schema_providers', 'column_sets', 'form_engines')


def main():
    """Main application entry point."""
    try:
        entities = get_entity_configs(config)
        if not entities:
            st.error("No entities are configured.")
            return

        SessionManager.initialize(entities[0]['name'])
        render_sidebar(entities)
        context = get_engine_context()
        render_main_content(context, entities)

    except Exception as e:
        ErrorHandler.handle_error(e, "application run", ErrorType.SYSTEM)


def get_engine_context() -> EngineContext:
    """
    Build the engine context once per session and bearer token.

    The token is captured when the client is built; reference lookups run
    on worker threads and must not read session state.
    """
    token = SessionManager.get_auth_token()
    cached = st.session_state.get('engine_context')
    if cached is not None and st.session_state.get('engine_context_token') == token:
        return cached

    if cached is not None and cached.api is not None:
        cached.api.close()
        for bucket in _CONTEXT_BOUND_BUCKETS:
            st.session_state[bucket] = {}

    use_mock = bool(get_config_value('api', 'use_mock', False))
    transport = None
    if use_mock:
        backend = st.session_state.get('mock_backend')
        if backend is None:
            backend = MockBackend(prefix=get_config_value('api', 'prefix', '/api/v3'))
            st.session_state.mock_backend = backend
        transport = backend.transport()

    token_provider = (lambda: token) if token else None
    context = EngineContext(
        api=build_api_client(config, token_provider=token_provider, transport=transport),
        notify=notify_callback(),
        use_mock=use_mock
    )
    st.session_state.engine_context = context
    st.session_state.engine_context_token = token
    logger.info(f"Engine context ready (mock={use_mock}, token={'set' if token else 'none'})")
    return context


def render_sidebar(entities):
    """Render entity navigation and the API token input."""
    with st.sidebar:
        st.header(get_config_value('ui', 'sidebar_title', 'Navigation'))

        names = [e['name'] for e in entities]
        labels = {e['name']: e['label'] for e in entities}
        current = SessionManager.get_current_entity()

        # Keep the radio in step with navigation done from inside a page
        if current in names and st.session_state.get('nav_entity') != current:
            st.session_state.nav_entity = current

        st.radio(
            "Entity",
            options=names,
            key='nav_entity',
            format_func=lambda name: labels.get(name, name),
            label_visibility="collapsed",
            on_change=lambda: SessionManager.set_current_entity(st.session_state.nav_entity)
        )

        st.markdown("---")
        if get_config_value('api', 'use_mock', False):
            st.caption("🧪 Demo data (in-process backend)")
        else:
            st.caption(f"API: {get_config_value('api', 'base_url', '')}")

        st.text_input(
            "API token",
            type="password",
            key='auth_token_input',
            help="Bearer token sent with every request",
            on_change=lambda: SessionManager.set_auth_token(st.session_state.auth_token_input)
        )


def render_main_content(context: EngineContext, entities):
    """Render the list or details page of the current entity."""
    entity_name = SessionManager.get_current_entity()
    entity_config = next((e for e in entities if e['name'] == entity_name), None)
    if entity_config is None:
        # Child entities reached from a detail tab need not be in the sidebar
        entity_config = {'name': entity_name, 'label': None, 'hidden_fields': []}

    table_config = config.get('table', {})

    if SessionManager.get_current_page() == "details" and SessionManager.get_selected_record_id() is not None:
        EntityPages.render_details_page(context, entity_config, table_config)
    else:
        EntityPages.render_list_page(context, entity_config, table_config)


if __name__ == "__main__":
    main()
