"""
Unit tests for record access used by the list and detail pages.
"""

import json

import httpx

from entity_engine.context import EngineContext
from entity_engine.record_store import RecordStore
from entity_engine.schema_provider import load_static_meta
from test_fixtures import NotifyRecorder, demo_context, handler_context, offline_handler


class TestListRecords:
    """Test cases for list_records and get_record."""

    def test_lists_rows(self):
        context, _ = demo_context()
        rows = RecordStore(context).list_records('subscription')

        assert len(rows) == 10

    def test_failure_notifies_and_returns_empty(self):
        notify = NotifyRecorder()
        rows = RecordStore(handler_context(offline_handler, notify)).list_records('dealer')

        assert rows == []
        assert notify.levels() == ['error']

    def test_non_dict_rows_are_dropped(self):
        context = handler_context(lambda request: httpx.Response(200, json=[{'id': 1}, "junk", None]))
        assert RecordStore(context).list_records('dealer') == [{'id': 1}]

    def test_no_api(self):
        store = RecordStore(EngineContext())

        assert store.list_records('dealer') == []
        assert store.get_record('dealer', 1) is None

    def test_get_record(self):
        context, _ = demo_context()
        store = RecordStore(context)

        assert store.get_record('dealer', 4)['name'] == 'Lakshmi Devi'
        assert store.get_record('dealer', 404) is None


class TestListChildren:
    """Test cases for child collection rows."""

    def test_mapped_by_with_context_filter(self):
        context, _ = demo_context()
        tasks_field = load_static_meta('dealer').field('tasks')

        rows = RecordStore(context).list_children('dealer', 1, tasks_field)

        assert [r['id'] for r in rows] == [1, 2, 3, 4, 5]

    def test_query_uses_foreign_key_and_context_filter(self):
        seen = {}

        def handler(request):
            seen['path'] = request.url.path
            seen['params'] = dict(request.url.params)
            return httpx.Response(200, json=[])

        tasks_field = load_static_meta('dealer').field('tasks')
        RecordStore(handler_context(handler)).list_children('dealer', 7, tasks_field)

        assert seen['path'] == "/api/v3/tasks"
        assert seen['params'] == {'context_id': '7', 'context_type': 'dealer'}

    def test_nested_route_without_mapped_by(self):
        seen = []
        field = load_static_meta('dealer').field('donations').model_copy(deep=True)
        field.relational_mapping.mapped_by = None

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={'success': True, 'data': []})

        RecordStore(handler_context(handler)).list_children('dealer', 3, field)

        assert seen == ["/api/v3/dealers/3/donations"]

    def test_every_child_belongs_to_parent(self):
        context, _ = demo_context()
        meta = load_static_meta('dealer')
        store = RecordStore(context)

        for field in meta.standalone_collections():
            for row in store.list_children('dealer', 4, field):
                assert str(row[field.mapped_by]) == '4'


class TestWrites:
    """Test cases for create_record and import_records."""

    def test_create_record(self):
        context, backend = demo_context()
        response = RecordStore(context).create_record('meeting', {'title': 'Review', 'dealer_id': 1})

        assert response.success
        assert backend.records['meeting'][-1]['title'] == 'Review'

    def test_create_without_api(self):
        assert not RecordStore(EngineContext()).create_record('meeting', {'title': 'x'}).success

    def test_import_counts(self):
        def handler(request):
            if b'"bad"' in request.content:
                return httpx.Response(400, json={'message': 'rejected'})
            return httpx.Response(201, json={'success': True, 'data': {'id': 1}})

        rows = [
            {'id': '9', 'title': 'good'},
            {'title': 'bad'},
            {'title': '', 'venue': ''},
        ]
        counts = RecordStore(handler_context(handler)).import_records('meeting', rows)

        assert counts == {'created': 1, 'failed': 1}

    def test_import_drops_id_and_empty_cells(self):
        bodies = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(201, json={'success': True, 'data': {}})

        RecordStore(handler_context(handler)).import_records('meeting', [{'id': '3', 'title': 'T', 'venue': ''}])

        assert b'"id"' not in bodies[0]
        assert b'"venue"' not in bodies[0]

    def test_import_resolves_reference_labels(self):
        bodies = []

        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json=[{'id': 1, 'name': 'Active'}, {'id': 2, 'name': 'Inactive'}])
            bodies.append(json.loads(request.content)['input_data'])
            return httpx.Response(201, json={'success': True, 'data': {}})

        rows = [
            {'name': 'Kumar Traders', 'status': 'Inactive', 'tasks': '3'},
            {'name': 'Lakshmi Motors', 'status': 'Retired', 'notes': 'x'},
        ]
        counts = RecordStore(handler_context(handler)).import_records('dealer', rows, load_static_meta('dealer'))

        assert counts == {'created': 2, 'failed': 0}
        assert bodies == [
            {'name': 'Kumar Traders', 'status': {'id': 2, 'name': 'Inactive'}},
            {'name': 'Lakshmi Motors'},
        ]

    def test_import_through_demo_backend_keeps_reference_shape(self):
        context, backend = demo_context()
        meta = load_static_meta('dealer')

        RecordStore(context).import_records('dealer', [{'name': 'Nova Cycles', 'status': 'Pending'}], meta)

        assert backend.records['dealer'][-1]['status'] == {'id': 3, 'name': 'Pending'}
