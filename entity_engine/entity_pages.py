"""
List and detail screens for one entity.

Both screens are assembled from the generic pieces: schema provider,
column deriver, table view and the form engine. Nothing here knows about
a particular entity beyond the configuration it is given.
"""

import streamlit as st
import logging
from typing import Dict, Any, Optional, List

from .column_deriver import ColumnDeriver
from .context import EngineContext
from .data_table import PAGE_SIZES, DEFAULT_PAGE_SIZE, MAX_PAGE_BUTTONS, RowAction
from .error_handler import ErrorHandler, ErrorType, SchemaUnavailableError
from .form_engine import FormEngine, ParentContext
from .form_view import FormView
from .formatting import format_value, record_display_name, to_label
from .models import EntityMeta, FieldMeta, FieldType
from .record_store import RecordStore
from .reference_resolver import ReferenceResolver
from .schema_provider import SchemaProvider
from .session_manager import SessionManager
from .table_view import TableView
from .ui_feedback import Notify

logger = logging.getLogger(__name__)

DETAIL_EXCLUDED_TYPES = {FieldType.FILE, FieldType.JSON}


def _schema_provider(context: EngineContext, entity_name: str) -> SchemaProvider:
    """One provider per entity for the session, so each keeps its own cache slot."""
    provider = SessionManager.get_cached('schema_providers', entity_name)
    if provider is None:
        provider = SchemaProvider(context)
        SessionManager.set_cached('schema_providers', entity_name, provider)
    return provider


def _columns(
    context: EngineContext,
    meta: EntityMeta,
    hidden_fields: List[str],
    parent_entity: Optional[str] = None
):
    cache_key = f"{parent_entity or ''}:{meta.entity}"
    cached = SessionManager.get_cached('column_sets', cache_key)
    if cached is None:
        cached = ColumnDeriver(ReferenceResolver(context)).derive(meta, hidden_fields, parent_entity)
        SessionManager.set_cached('column_sets', cache_key, cached)
    return cached


def _table_settings(table_config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'page_sizes': table_config.get('page_sizes', PAGE_SIZES),
        'default_page_size': table_config.get('default_page_size', DEFAULT_PAGE_SIZE),
        'max_page_buttons': table_config.get('max_page_buttons', MAX_PAGE_BUTTONS),
    }


class EntityPages:
    """Screens of the console for the currently selected entity."""

    @staticmethod
    def render_form_dialog(context: EngineContext) -> None:
        """Render the open create/edit form, if any."""
        dialog = SessionManager.get_form_dialog()
        if not dialog:
            return

        form_key = dialog['key']
        engine = SessionManager.get_form_engine(form_key)
        if engine is None:
            engine = FormEngine(
                context,
                dialog['entity'],
                existing_record=dialog.get('record'),
                parent_context=dialog.get('parent_context'),
                on_success=EntityPages._success_handler(dialog),
                schema_provider=_schema_provider(context, dialog['entity'])
            )
            SessionManager.set_form_engine(form_key, engine)

        with st.container(border=True):
            FormView.render(engine, form_key, on_close=SessionManager.close_form)

    @staticmethod
    def _success_handler(dialog: Dict[str, Any]):
        # A new top-level record opens its detail page; child and edit forms stay put
        if dialog.get('record') is not None or dialog.get('parent_context') is not None:
            return None

        def _open_created(data: Any) -> None:
            if isinstance(data, dict) and data.get('id') is not None:
                SessionManager.show_details(data['id'])

        return _open_created

    @staticmethod
    def render_list_page(context: EngineContext, entity_config: Dict[str, Any], table_config: Dict[str, Any]) -> None:
        """
        Render the list screen of an entity.

        Args:
            context: Engine collaborators
            entity_config: ``{name, label, hidden_fields}`` from configuration
            table_config: ``table`` configuration section
        """
        entity_name = entity_config['name']
        label = to_label(entity_name)

        col1, col2 = st.columns([4, 1])
        with col1:
            st.header(entity_config.get("label") or f"{label}s")
        with col2:
            st.button(
                f"Add {label}",
                type="primary",
                key=f"add_{entity_name}",
                on_click=SessionManager.open_form,
                args=(entity_name,)
            )

        EntityPages.render_form_dialog(context)

        meta = _schema_provider(context, entity_name).get_entity_meta(entity_name)
        if meta is None:
            ErrorHandler.handle_error(
                SchemaUnavailableError(entity_name),
                f"list page for {entity_name}",
                ErrorType.SCHEMA
            )
            return

        store = RecordStore(context)
        rows = store.list_records(entity_name)
        columns, searchable = _columns(context, meta, entity_config.get('hidden_fields', []))

        def _import(imported: List[Dict[str, str]]) -> None:
            counts = store.import_records(entity_name, imported, meta)
            if counts['failed']:
                Notify.warn(f"Imported {counts['created']} row(s), {counts['failed']} failed")
            else:
                Notify.success(f"Imported {counts['created']} row(s)")

        TableView.render(
            f"table_{entity_name}",
            rows,
            columns,
            searchable,
            actions=[
                RowAction('view', 'View', lambda row: SessionManager.show_details(row.get(meta.primary_key))),
                RowAction('edit', 'Edit', lambda row: SessionManager.open_form(entity_name, row)),
            ],
            export_filename=f"{meta.plural}.csv",
            on_import=_import,
            **_table_settings(table_config)
        )

    @staticmethod
    def render_details_page(context: EngineContext, entity_config: Dict[str, Any], table_config: Dict[str, Any]) -> None:
        """Render the detail screen of the selected record with one tab per child collection."""
        entity_name = entity_config['name']
        record_id = SessionManager.get_selected_record_id()

        st.button("← Back", key=f"back_{entity_name}", on_click=SessionManager.show_list)

        meta = _schema_provider(context, entity_name).get_entity_meta(entity_name)
        if meta is None:
            ErrorHandler.handle_error(
                SchemaUnavailableError(entity_name),
                f"details page for {entity_name}",
                ErrorType.SCHEMA
            )
            return

        record = RecordStore(context).get_record(entity_name, record_id)
        if record is None:
            st.warning(f"{meta.label} #{record_id} was not found.")
            return

        col1, col2 = st.columns([4, 1])
        with col1:
            st.header(record_display_name(record, entity_name, record_id))
        with col2:
            st.button(
                "Edit",
                key=f"edit_{entity_name}_{record_id}",
                on_click=SessionManager.open_form,
                args=(entity_name, record)
            )

        EntityPages.render_form_dialog(context)

        collections = meta.standalone_collections()
        store = RecordStore(context)
        children = {f.name: store.list_children(entity_name, record_id, f) for f in collections}

        tab_labels = ["Details"] + [f"{f.label} ({len(children[f.name])})" for f in collections]
        tabs = st.tabs(tab_labels)

        with tabs[0]:
            EntityPages._render_record_fields(meta, record)

        for tab, field in zip(tabs[1:], collections):
            with tab:
                EntityPages._render_child_table(
                    context, meta, record_id, field, children[field.name], table_config
                )

    @staticmethod
    def _render_record_fields(meta: EntityMeta, record: Dict[str, Any]) -> None:
        shown = [
            f for f in meta.fields
            if not f.is_collection and f.type not in DETAIL_EXCLUDED_TYPES
        ]
        primary = [f for f in shown if f.partial_field]
        secondary = [f for f in shown if not f.partial_field]

        st.subheader(f"{meta.label} Information")
        EntityPages._render_value_grid(primary, record)

        if secondary:
            st.subheader("Additional Details")
            EntityPages._render_value_grid(secondary, record)

    @staticmethod
    def _render_value_grid(fields: List[FieldMeta], record: Dict[str, Any]) -> None:
        if not fields:
            return
        cols = st.columns(2)
        for index, field in enumerate(fields):
            with cols[index % 2]:
                st.markdown(f"**{field.label}**")
                st.write(format_value(record.get(field.name), field))

    @staticmethod
    def _render_child_table(
        context: EngineContext,
        parent_meta: EntityMeta,
        parent_id: Any,
        field: FieldMeta,
        rows: List[Dict[str, Any]],
        table_config: Dict[str, Any]
    ) -> None:
        child_entity = field.ref_entity
        child_label = to_label(child_entity)
        parent_context = ParentContext(parent_meta.entity, parent_id, field.mapped_by)

        st.button(
            f"Add {child_label}",
            key=f"add_{parent_meta.entity}_{field.name}",
            on_click=SessionManager.open_form,
            args=(child_entity, None, parent_context)
        )

        child_meta = _schema_provider(context, child_entity).get_entity_meta(child_entity)
        if child_meta is None:
            st.warning(f"Metadata unavailable for '{child_entity}'.")
            return

        hidden = [field.mapped_by] if field.mapped_by else []
        columns, searchable = _columns(context, child_meta, hidden, parent_entity=parent_meta.entity)

        def _view(row: Dict[str, Any]) -> None:
            SessionManager.set_current_entity(child_entity)
            SessionManager.show_details(row.get(child_meta.primary_key))

        TableView.render(
            f"table_{parent_meta.entity}_{field.name}",
            rows,
            columns,
            searchable,
            actions=[
                RowAction('view', 'View', _view),
                RowAction('edit', 'Edit', lambda row: SessionManager.open_form(child_entity, row, parent_context)),
            ],
            export_filename=f"{parent_meta.entity}_{parent_id}_{field.name}.csv",
            **_table_settings(table_config)
        )
