"""
Test fixtures and fakes shared by the entity engine tests.

Provides metadata builders, an engine context backed by the in-process
demo backend, a notify recorder and a Streamlit stand-in whose session
state behaves like ``st.session_state``.
"""

from types import SimpleNamespace
from typing import Dict, Any, List, Optional
from unittest.mock import MagicMock

import httpx

from entity_engine.api_client import ApiClient
from entity_engine.context import EngineContext
from entity_engine.mock_backend import MockBackend
from entity_engine.models import EntityMeta

TEST_BASE_URL = "http://console.test"


class MetaFixtures:
    """EntityMeta payloads for common test scenarios."""

    @staticmethod
    def widget_payload() -> Dict[str, Any]:
        """One field of every display type plus a standalone child collection."""
        return {
            'entity': 'widget',
            'fields': [
                {'name': 'name', 'type': 'string', 'nullable': False, 'partial_field': True,
                 'display_type': 'Single Line', 'is_title': True},
                {'name': 'notes', 'type': 'multi_line', 'display_type': 'Multi Line'},
                {'name': 'qty', 'type': 'number', 'partial_field': True, 'display_type': 'Number'},
                {'name': 'price', 'type': 'decimal', 'partial_field': True, 'display_type': 'Decimal'},
                {'name': 'enabled', 'type': 'boolean', 'nullable': False, 'partial_field': True,
                 'display_type': 'Checkbox', 'constraints': {'default': True}},
                {'name': 'size', 'type': 'enum', 'partial_field': True, 'display_type': 'Dropdown',
                 'constraints': {'values': ['S', 'M', 'L']}},
                {'name': 'status', 'type': 'ref_entity', 'nullable': False, 'partial_field': True,
                 'display_type': 'Dropdown',
                 'relational_mapping': {'relationship_type': 'MANY_TO_ONE', 'ref_entity': 'status'}},
                {'name': 'made_on', 'type': 'date', 'partial_field': True, 'display_type': 'Date Picker'},
                {'name': 'color', 'type': 'string', 'display_type': 'Color Picker'},
                {'name': 'spec', 'type': 'json', 'display_type': 'JSON Editor'},
                {'name': 'photos', 'type': 'file', 'display_type': 'File Upload',
                 'constraints': {'allowed_types': ['png'], 'max_size_mb': 1}},
                {'name': 'parts', 'type': 'ref_entity', 'collection': True, 'standalone': True,
                 'display_type': 'Child Table',
                 'relational_mapping': {'relationship_type': 'ONE_TO_MANY', 'ref_entity': 'part',
                                        'mapped_by': 'widget_id'}},
            ]
        }

    @staticmethod
    def widget_meta() -> EntityMeta:
        return EntityMeta.model_validate(MetaFixtures.widget_payload())

    @staticmethod
    def simple_payload(entity: str = 'note') -> Dict[str, Any]:
        return {
            'entity': entity,
            'fields': [
                {'name': 'title', 'type': 'string', 'nullable': False, 'partial_field': True},
                {'name': 'body', 'type': 'multi_line', 'display_type': 'Multi Line'},
            ]
        }


class NotifyRecorder:
    """Notify callback that remembers every ``(message, level)`` call."""

    def __init__(self):
        self.calls: List[tuple] = []

    def __call__(self, message: str, level: str = "info") -> None:
        self.calls.append((message, level))

    def levels(self) -> List[str]:
        return [level for _, level in self.calls]

    def messages(self) -> List[str]:
        return [message for message, _ in self.calls]


def handler_context(handler, notify: Optional[NotifyRecorder] = None, prefix: str = "/api/v3") -> EngineContext:
    """Engine context whose api is served by a plain request handler."""
    api = ApiClient(TEST_BASE_URL, prefix=prefix, transport=httpx.MockTransport(handler))
    return EngineContext(api=api, notify=notify or NotifyRecorder())


def demo_context(notify: Optional[NotifyRecorder] = None):
    """Engine context backed by a fresh demo backend. Returns ``(context, backend)``."""
    backend = MockBackend()
    api = ApiClient(TEST_BASE_URL, transport=backend.transport())
    return EngineContext(api=api, notify=notify or NotifyRecorder(), use_mock=True), backend


def offline_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class DummyContext:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class SessionState:
    """Dict-backed stand-in for ``st.session_state`` with attribute access."""

    def __init__(self, initial=None):
        super().__setattr__("_data", dict(initial or {}))

    def get(self, key, default=None):
        return self._data.get(key, default)

    def setdefault(self, key, default=None):
        return self._data.setdefault(key, default)

    def pop(self, key, default=None):
        return self._data.pop(key, default)

    def keys(self):
        return self._data.keys()

    def __getitem__(self, key):
        return self._data[key]

    def __setitem__(self, key, value):
        self._data[key] = value

    def __delitem__(self, key):
        del self._data[key]

    def __contains__(self, key):
        return key in self._data

    def __getattr__(self, name):
        if name in self._data:
            return self._data[name]
        raise AttributeError(name)

    def __setattr__(self, name, value):
        if name == "_data":
            super().__setattr__(name, value)
        else:
            self._data[name] = value


def mock_st(session_state=None):
    """SimpleNamespace standing in for the streamlit module."""
    def _columns(spec, **_kwargs):
        count = spec if isinstance(spec, int) else len(spec)
        return tuple(DummyContext() for _ in range(count))

    def _tabs(labels):
        return tuple(DummyContext() for _ in labels)

    return SimpleNamespace(
        session_state=SessionState(session_state),
        header=MagicMock(),
        subheader=MagicMock(),
        divider=MagicMock(),
        caption=MagicMock(),
        markdown=MagicMock(),
        write=MagicMock(),
        info=MagicMock(),
        warning=MagicMock(),
        success=MagicMock(),
        error=MagicMock(),
        code=MagicMock(),
        toast=MagicMock(),
        rerun=MagicMock(),
        columns=MagicMock(side_effect=_columns),
        tabs=MagicMock(side_effect=_tabs),
        expander=MagicMock(return_value=DummyContext()),
        container=MagicMock(return_value=DummyContext()),
        popover=MagicMock(return_value=DummyContext()),
        spinner=MagicMock(return_value=DummyContext()),
        button=MagicMock(return_value=False),
        text_input=MagicMock(),
        text_area=MagicMock(),
        number_input=MagicMock(),
        checkbox=MagicMock(),
        selectbox=MagicMock(),
        date_input=MagicMock(),
        time_input=MagicMock(),
        file_uploader=MagicMock(),
        color_picker=MagicMock(),
        download_button=MagicMock(),
    )


def widget_callback(mock_widget, call_index: int = -1):
    """The ``on_change`` callback a widget mock was rendered with."""
    return mock_widget.call_args_list[call_index].kwargs['on_change']
