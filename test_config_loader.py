"""
Unit tests for configuration loader module.
"""

import pytest
import yaml
from pathlib import Path

import entity_engine.config_loader as config_loader
from entity_engine.config_loader import (
    deep_merge,
    get_config_value,
    get_default_config,
    get_entity_configs,
    load_config,
    reload_config,
    validate_config,
)


@pytest.fixture(autouse=True)
def _reset_cache():
    config_loader._config_cache = None
    yield
    config_loader._config_cache = None


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(data if isinstance(data, str) else yaml.safe_dump(data), encoding="utf-8")
    return path


class TestDeepMerge:
    """Test cases for deep_merge function."""

    def test_deep_merge_simple_dicts(self):
        base = {'a': 1, 'b': 2}
        update = {'b': 3, 'c': 4}

        result = deep_merge(base, update)

        assert result == {'a': 1, 'b': 3, 'c': 4}
        # Ensure original dicts are not modified
        assert base == {'a': 1, 'b': 2}
        assert update == {'b': 3, 'c': 4}

    def test_deep_merge_nested_dicts(self):
        base = {'api': {'base_url': 'http://a', 'timeout': 10.0}}
        update = {'api': {'timeout': 3.0, 'use_mock': True}}

        assert deep_merge(base, update) == {'api': {'base_url': 'http://a', 'timeout': 3.0, 'use_mock': True}}

    def test_lists_are_replaced(self):
        base = {'table': {'page_sizes': [10, 25]}}
        update = {'table': {'page_sizes': [5]}}

        assert deep_merge(base, update)['table']['page_sizes'] == [5]


class TestLoadConfig:
    """Test cases for load_config."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == get_default_config()

    def test_user_values_override_defaults(self, tmp_path):
        path = _write(tmp_path, {'api': {'use_mock': True, 'base_url': 'http://backend:9000'}})

        config = load_config(path)

        assert config['api']['use_mock'] is True
        assert config['api']['base_url'] == 'http://backend:9000'
        assert config['api']['prefix'] == '/api/v3'
        assert config['table']['default_page_size'] == 10

    def test_empty_file_uses_defaults(self, tmp_path):
        path = _write(tmp_path, "")
        assert load_config(path) == get_default_config()

    def test_non_mapping_uses_defaults(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        assert load_config(path) == get_default_config()

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        path = _write(tmp_path, "api: [unclosed\n")
        assert load_config(path) == get_default_config()

    def test_invalid_section_is_repaired(self, tmp_path):
        path = _write(tmp_path, {'table': {'page_sizes': [10, 'many'], 'default_page_size': 10}})

        config = load_config(path)

        assert config['table'] == get_default_config()['table']

    def test_default_file_is_cached(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {'ui': {'page_title': 'Cached'}})
        monkeypatch.setattr(config_loader, "CONFIG_FILE", path)

        first = load_config()
        path.write_text(yaml.safe_dump({'ui': {'page_title': 'Changed'}}), encoding="utf-8")

        assert load_config() is first
        assert reload_config()['ui']['page_title'] == 'Changed'

    def test_get_config_value(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_loader, "CONFIG_FILE", _write(tmp_path, {'api': {'timeout': 4.5}}))

        assert get_config_value('api', 'timeout') == 4.5
        assert get_config_value('api', 'missing', 'fallback') == 'fallback'
        assert get_config_value('nope', 'key', 1) == 1


class TestValidateConfig:
    """Test cases for validate_config."""

    def test_defaults_are_valid(self):
        assert validate_config(get_default_config()) is True

    @pytest.mark.parametrize("section,values", [
        ('api', {'timeout': 0}),
        ('api', {'timeout': 'fast'}),
        ('table', {'default_page_size': 7}),
        ('table', {'max_page_buttons': 0}),
    ])
    def test_invalid_values(self, section, values):
        config = get_default_config()
        config[section].update(values)
        assert validate_config(config) is False

    def test_entities_need_names(self):
        config = get_default_config()
        config['entities'] = [{'label': 'Nameless'}]
        assert validate_config(config) is False


class TestEntityConfigs:
    """Test cases for get_entity_configs."""

    def test_default_entities(self):
        entities = get_entity_configs(get_default_config())

        assert [e['name'] for e in entities] == ['dealer', 'task', 'donation', 'subscription', 'meeting']
        assert entities[0]['hidden_fields'] == ['documents', 'metadata']

    def test_names_are_normalized_and_labels_defaulted(self):
        config = {'entities': [{'name': ' Vendor '}]}

        assert get_entity_configs(config) == [{'name': 'vendor', 'label': 'Vendors', 'hidden_fields': []}]
