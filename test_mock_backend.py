"""
Unit tests for the in-process demo backend.
"""

import httpx
import pytest

from entity_engine.api_client import ApiClient
from entity_engine.mock_backend import MockBackend
from test_fixtures import TEST_BASE_URL


@pytest.fixture
def backend():
    return MockBackend()


@pytest.fixture
def client(backend):
    return ApiClient(TEST_BASE_URL, transport=backend.transport())


class TestReads:
    """Test cases for GET routes."""

    def test_list(self, client):
        response = client.get("/dealers")

        assert response.success
        assert [d['id'] for d in response.data] == [1, 2, 3, 4, 5]

    def test_list_filters_by_query(self, client):
        response = client.get("/tasks", params={'context_id': 1, 'context_type': 'dealer'})

        assert [t['id'] for t in response.data] == [1, 2, 3, 4, 5]

    def test_list_of_reference_entity(self, client):
        response = client.get("/statuss")

        assert [s['name'] for s in response.data] == ['Active', 'Inactive', 'Pending']

    def test_unknown_entity(self, client):
        response = client.get("/spaceships")

        assert not response.success
        assert response.status_code == 404

    def test_metainfo(self, client):
        response = client.get("/meetings/_metainfo")

        assert response.success
        assert response.data['entity'] == 'meeting'
        assert any(f['name'] == 'attended' for f in response.data['fields'])

    def test_get_record(self, client):
        response = client.get("/dealers/2")

        assert response.data['name'] == 'Priya Sharma'

    def test_get_missing_record(self, client):
        response = client.get("/dealers/99")

        assert not response.success
        assert "not found" in response.error

    def test_distinct_reference_values(self, client):
        response = client.get("/dealers/status")

        assert sorted(v['name'] for v in response.data) == ['Active', 'Inactive', 'Pending']

    def test_nested_children(self, client):
        response = client.get("/dealers/1/donations")

        assert len(response.data) == 4
        assert all(d['dealer_id'] == 1 for d in response.data)


class TestWrites:
    """Test cases for POST and PUT routes."""

    def test_create_assigns_next_id(self, client, backend):
        response = client.post("/meetings", json_body={'input_data': {'title': 'Kickoff', 'dealer_id': 2}})

        assert response.success
        assert response.status_code == 201
        assert response.data['id'] == 18
        assert backend.records['meeting'][-1]['title'] == 'Kickoff'

    def test_update_merges_fields(self, client):
        response = client.put("/dealers/3", json_body={'input_data': {'is_active': True}})

        assert response.data['is_active'] is True
        assert response.data['name'] == 'Mohammed Ali'

    def test_update_missing_record(self, client):
        assert not client.put("/dealers/42", json_body={'input_data': {}}).success

    def test_backends_do_not_share_state(self, client):
        client.post("/donations", json_body={'input_data': {'purpose': 'Test'}})

        fresh = ApiClient(TEST_BASE_URL, transport=MockBackend().transport())
        assert len(fresh.get("/donations").data) == 12

    def test_unsupported_method(self, backend):
        response = backend.handle(httpx.Request("DELETE", f"{TEST_BASE_URL}/api/v3/dealers/1"))
        assert response.status_code == 404
