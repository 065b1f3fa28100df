"""
Tests for the list and detail screens running against the demo backend.
"""

from types import SimpleNamespace

import pytest

import entity_engine.entity_pages as entity_pages
import entity_engine.error_handler as error_handler
import entity_engine.field_renderer as field_renderer
import entity_engine.form_view as form_view
import entity_engine.session_manager as session_manager
import entity_engine.table_view as table_view
import entity_engine.ui_feedback as ui_feedback
from entity_engine.entity_pages import EntityPages
from entity_engine.form_engine import FormMode, ParentContext
from entity_engine.record_store import RecordStore
from entity_engine.session_manager import SessionManager
from test_fixtures import demo_context, mock_st, widget_callback

DEALER_CONFIG = {'name': 'dealer', 'label': 'Dealers', 'hidden_fields': ['documents', 'metadata']}
TABLE_CONFIG = {'page_sizes': [10, 25], 'default_page_size': 10, 'max_page_buttons': 5}


@pytest.fixture
def st(monkeypatch):
    fake = mock_st()
    for module in (entity_pages, session_manager, table_view, form_view, field_renderer, error_handler, ui_feedback):
        monkeypatch.setattr(module, "st", fake)
    SessionManager.initialize('dealer')
    return fake


@pytest.fixture
def context():
    return demo_context()[0]


def _button(st, key):
    for call in st.button.call_args_list:
        if call.kwargs.get('key') == key:
            return call
    raise AssertionError(f"No button rendered with key {key}")


def _click(st, key):
    call = _button(st, key)
    call.kwargs['on_click'](*call.kwargs.get('args', ()))


class TestListPage:
    """Test cases for the list screen."""

    def test_header_and_rows(self, st, context):
        EntityPages.render_list_page(context, DEALER_CONFIG, TABLE_CONFIG)

        st.header.assert_called_once_with("Dealers")
        assert _button(st, 'add_dealer').args[0] == "Add Dealer"
        st.caption.assert_any_call("Page 1 of 1 (5 rows)")
        assert st.download_button.call_args.kwargs['file_name'] == "dealers.csv"

    def test_add_opens_create_form(self, st, context):
        EntityPages.render_list_page(context, DEALER_CONFIG, TABLE_CONFIG)
        _click(st, 'add_dealer')

        EntityPages.render_list_page(context, DEALER_CONFIG, TABLE_CONFIG)

        dialog = SessionManager.get_form_dialog()
        engine = SessionManager.get_form_engine(dialog['key'])
        assert engine.mode == FormMode.CREATE
        st.subheader.assert_any_call("Add Dealer")

    def test_view_action_opens_details(self, st, context):
        EntityPages.render_list_page(context, DEALER_CONFIG, TABLE_CONFIG)
        _click(st, 'table_dealer_view_3_2')

        assert SessionManager.get_current_page() == "details"
        assert SessionManager.get_selected_record_id() == 3

    def test_edit_action_opens_edit_form(self, st, context):
        EntityPages.render_list_page(context, DEALER_CONFIG, TABLE_CONFIG)
        _click(st, 'table_dealer_edit_2_1')

        assert SessionManager.get_form_dialog()['record']['id'] == 2

    def test_missing_schema_is_reported(self, st, context):
        EntityPages.render_list_page(context, {'name': 'spaceship'}, TABLE_CONFIG)

        assert "'spaceship'" in st.error.call_args.args[0]
        st.download_button.assert_not_called()

    def test_created_top_level_record_opens_details(self, st, context):
        handler = EntityPages._success_handler({'key': 'form_1', 'entity': 'dealer', 'record': None})
        handler({'id': 6})

        assert SessionManager.get_selected_record_id() == 6
        assert EntityPages._success_handler({'record': {'id': 1}}) is None
        assert EntityPages._success_handler({'record': None, 'parent_context': object()}) is None

    def test_csv_import_resolves_reference_labels(self, st, context):
        EntityPages.render_list_page(context, DEALER_CONFIG, TABLE_CONFIG)

        st.session_state['table_dealer_import'] = SimpleNamespace(getvalue=lambda: b"Name,Status\nNova Cycles,Pending\n")
        widget_callback(st.file_uploader)()

        rows = RecordStore(context).list_records('dealer')
        assert rows[-1]['name'] == 'Nova Cycles'
        assert rows[-1]['status'] == {'id': 3, 'name': 'Pending'}
        assert st.toast.call_args.args[0] == "Imported 1 row(s)"


class TestDetailsPage:
    """Test cases for the detail screen."""

    def test_tabs_count_children(self, st, context):
        SessionManager.show_details(1)

        EntityPages.render_details_page(context, DEALER_CONFIG, TABLE_CONFIG)

        st.header.assert_called_once_with("Rajesh Kumar")
        st.tabs.assert_called_once_with(
            ["Details", "Tasks (5)", "Subscriptions (3)", "Donations (4)", "Meetings (5)"]
        )
        st.subheader.assert_any_call("Dealer Information")

    def test_missing_record(self, st, context):
        SessionManager.show_details(404)

        EntityPages.render_details_page(context, DEALER_CONFIG, TABLE_CONFIG)

        st.warning.assert_called_once_with("Dealer #404 was not found.")
        st.tabs.assert_not_called()

    def test_child_add_carries_parent_context(self, st, context):
        SessionManager.show_details(1)
        EntityPages.render_details_page(context, DEALER_CONFIG, TABLE_CONFIG)

        _click(st, 'add_dealer_donations')

        dialog = SessionManager.get_form_dialog()
        assert dialog['entity'] == 'donation'
        assert dialog['parent_context'] == ParentContext('dealer', 1, 'dealer_id')

    def test_child_view_switches_entity(self, st, context):
        SessionManager.show_details(1)
        EntityPages.render_details_page(context, DEALER_CONFIG, TABLE_CONFIG)

        _click(st, 'table_dealer_meetings_view_1_0')

        assert SessionManager.get_current_entity() == 'meeting'
        assert SessionManager.get_current_page() == "details"
        assert SessionManager.get_selected_record_id() == 1

    def test_back_returns_to_list(self, st, context):
        SessionManager.show_details(1)
        EntityPages.render_details_page(context, DEALER_CONFIG, TABLE_CONFIG)

        _click(st, 'back_dealer')

        assert SessionManager.get_current_page() == "list"
