"""
Streamlit rendering of an entity form backed by a FormEngine.
"""

import streamlit as st
import logging
from typing import Callable, List, Optional

from .diff_utils import format_changes_for_display
from .error_handler import ErrorHandler
from .field_renderer import FieldRenderer
from .form_engine import FormEngine, FormMode, FormState, SubmitOutcome, SubmitResult
from .models import FieldMeta
from .ui_feedback import Notify

logger = logging.getLogger(__name__)


class FormView:
    """Draws the form for one FormEngine instance."""

    @staticmethod
    def render(engine: FormEngine, key_prefix: str, on_close: Callable[[], None]) -> Optional[SubmitResult]:
        """
        Render the form and handle its submit button.

        Args:
            engine: Form engine for this form instance
            key_prefix: Widget key namespace for this form instance
            on_close: Closes the form (Cancel, schema error, success)

        Returns:
            SubmitResult when the submit button was pressed this run
        """
        if engine.state == FormState.LOADING_META:
            with st.spinner("Loading form..."):
                engine.initialize()
                engine.load_references()

        if engine.state == FormState.META_ERROR:
            ErrorHandler.render_schema_error(engine.meta_error or "", on_close, key=key_prefix)
            return None

        st.subheader(engine.title)
        layout = engine.layout()
        disabled = engine.state == FormState.SUBMITTING

        FormView._render_grid(engine, layout.primary, key_prefix, disabled)

        if layout.secondary:
            st.divider()
            with st.expander("Additional Details", expanded=False):
                FormView._render_grid(engine, layout.secondary, key_prefix, disabled)

        if layout.attachments:
            st.markdown("**Attachments**")
            for field in layout.attachments:
                FieldRenderer.render(
                    field,
                    engine.values.get(field.name),
                    engine.set_value,
                    key_prefix=key_prefix,
                    disabled=disabled
                )

        if engine.state == FormState.SUBMIT_ERROR and engine.last_error:
            st.error(engine.last_error)

        if engine.mode == FormMode.EDIT:
            FormView._render_pending_changes(engine)

        result = None
        col1, col2 = st.columns([1, 1])
        with col1:
            if st.button(engine.submit_label, type="primary", disabled=disabled, key=f"{key_prefix}_submit"):
                result = engine.submit()
        with col2:
            st.button("Cancel", key=f"{key_prefix}_cancel", on_click=on_close)

        if result is not None:
            FormView._after_submit(result, on_close)
        return result

    @staticmethod
    def _render_grid(engine: FormEngine, fields: List[FieldMeta], key_prefix: str, disabled: bool):
        if not fields:
            return
        cols = st.columns(2)
        for index, field in enumerate(fields):
            with cols[index % 2]:
                FieldRenderer.render(
                    field,
                    engine.values.get(field.name),
                    engine.set_value,
                    options=engine.options_for(field.name) if field.is_scalar_reference else None,
                    error=engine.errors.get(field.name),
                    key_prefix=key_prefix,
                    disabled=disabled
                )

    @staticmethod
    def _render_pending_changes(engine: FormEngine):
        modified = engine.build_update_payload()
        if not modified:
            return
        with st.expander(f"📝 {len(modified)} unsaved change(s)"):
            for row in format_changes_for_display(engine.meta, engine.initial_values, modified):
                st.markdown(f"**{row['label']}**: {row['old']} → {row['new']}")

    @staticmethod
    def _after_submit(result: SubmitResult, on_close: Callable[[], None]):
        if result.outcome == SubmitOutcome.INVALID:
            Notify.warn(f"Please fix {len(result.errors)} field(s) before saving.")
            st.rerun()
        elif result.success:
            on_close()
            st.rerun()
        elif result.outcome == SubmitOutcome.FAILED:
            st.rerun()
