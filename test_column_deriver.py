"""
Unit tests for column derivation.
"""

import httpx

from entity_engine.column_deriver import (
    BOOLEAN_FILTER_OPTIONS,
    Column,
    ColumnDeriver,
    FilterType,
    build_columns,
)
from entity_engine.models import FieldType
from entity_engine.reference_resolver import ReferenceResolver
from entity_engine.schema_provider import load_static_meta
from test_fixtures import MetaFixtures, demo_context, handler_context


def _by_id(columns):
    return {c.id: c for c in columns}


class TestBuildColumns:
    """Test cases for build_columns."""

    def test_excluded_types_and_collections(self):
        columns, _ = build_columns(MetaFixtures.widget_meta())
        ids = [c.id for c in columns]

        assert 'notes' not in ids
        assert 'spec' not in ids
        assert 'photos' not in ids
        assert 'parts' not in ids
        assert ids[:3] == ['name', 'qty', 'price']

    def test_visibility_follows_partial_field_and_hidden(self):
        columns, _ = build_columns(MetaFixtures.widget_meta(), hidden_fields=['qty'])
        columns = _by_id(columns)

        assert columns['name'].visible
        assert not columns['qty'].visible
        assert not columns['color'].visible

    def test_filter_kinds(self):
        ref_options = {'status': [{'label': 'Active', 'value': 'Active'}]}
        columns = _by_id(build_columns(MetaFixtures.widget_meta(), ref_filter_options=ref_options)[0])

        assert columns['size'].filter_type == FilterType.SELECT
        assert columns['size'].filter_options == [
            {'label': 'S', 'value': 'S'}, {'label': 'M', 'value': 'M'}, {'label': 'L', 'value': 'L'}
        ]
        assert columns['status'].filter_type == FilterType.SELECT
        assert columns['status'].filter_options == ref_options['status']
        assert columns['enabled'].filter_options == BOOLEAN_FILTER_OPTIONS
        assert columns['name'].filter_type == FilterType.TEXT
        assert all(c.filterable for c in columns.values())

    def test_boolean_columns_are_not_sortable(self):
        columns = _by_id(build_columns(MetaFixtures.widget_meta())[0])

        assert not columns['enabled'].sortable
        assert columns['name'].sortable

    def test_searchable_fields(self):
        _, searchable = build_columns(MetaFixtures.widget_meta())

        assert searchable == ['name', 'size', 'status', 'color']

    def test_status_badges(self):
        columns = _by_id(build_columns(load_static_meta('task'))[0])

        assert columns['status'].badge
        assert columns['priority'].badge
        assert not columns['assignedTo'].badge


class TestColumnRender:
    """Test cases for cell rendering."""

    def test_boolean(self):
        column = Column(id='a', label='A', field_type=FieldType.BOOLEAN)

        assert column.render(True) == "Yes"
        assert column.render(False) == "No"
        assert column.render(None) == "-"

    def test_reference(self):
        column = Column(id='s', label='S', field_type=FieldType.REF_ENTITY, display_key='name')

        assert column.render({'id': 1, 'name': 'Active'}) == "Active"
        assert column.render({'id': 1}) == "—"
        assert column.render(None) == "—"

    def test_plain(self):
        column = Column(id='x', label='X')

        assert column.render(None) == "-"
        assert column.render("") == "-"
        assert column.render(12) == "12"

    def test_badge_style(self):
        badge = Column(id='status', label='Status', field_type=FieldType.ENUM, badge=True)

        assert badge.badge_style("Completed") == ("#166534", "#dcfce7")
        assert badge.badge_style("Unknown") is None
        assert Column(id='n', label='N').badge_style("Completed") is None


class TestColumnDeriver:
    """Test cases for ColumnDeriver with live filter options."""

    def test_reference_filter_options_come_from_backend(self):
        context, _ = demo_context()
        columns, _ = ColumnDeriver(ReferenceResolver(context)).derive(load_static_meta('dealer'), ['documents', 'metadata'])
        columns = _by_id(columns)

        labels = sorted(o['label'] for o in columns['status'].filter_options)
        assert labels == ['Active', 'Inactive', 'Pending']
        assert 'tasks' not in columns

    def test_parent_entity_is_used_for_child_filters(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json=[])

        ColumnDeriver(ReferenceResolver(handler_context(handler))).derive(MetaFixtures.widget_meta(), parent_entity='dealer')

        assert seen == ["/api/v3/dealers/status"]
