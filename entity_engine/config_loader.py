"""
Configuration loading utilities for the membership console.

This module loads config.yaml, merges it over the built-in defaults and
exposes small accessors used by the app and the engine.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("config.yaml")

# Cached merged configuration
_config_cache: Optional[Dict[str, Any]] = None


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Membership Console',
            'version': '1.0.0',
            'debug': False
        },
        'api': {
            'base_url': 'http://localhost:8080',
            'prefix': '/api/v3',
            'timeout': 10.0,
            'use_mock': False,
            'token_env': 'CONSOLE_API_TOKEN'
        },
        'entities': [
            {'name': 'dealer', 'label': 'Dealers', 'hidden_fields': ['documents', 'metadata']},
            {'name': 'task', 'label': 'Tasks', 'hidden_fields': []},
            {'name': 'donation', 'label': 'Donations', 'hidden_fields': []},
            {'name': 'subscription', 'label': 'Subscriptions', 'hidden_fields': []},
            {'name': 'meeting', 'label': 'Meetings', 'hidden_fields': []}
        ],
        'table': {
            'page_sizes': [10, 25, 50, 100],
            'default_page_size': 10,
            'max_page_buttons': 5
        },
        'ui': {
            'page_title': 'Membership Console',
            'sidebar_title': 'Navigation'
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        }
    }


def load_config(config_path: Optional[Path] = None, use_cache: bool = True) -> Dict[str, Any]:
    """
    Load application configuration.

    A missing, empty or malformed file never raises; the defaults are used
    instead and the problem is logged.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)
        use_cache: Return the cached configuration when available

    Returns:
        Complete configuration dictionary
    """
    global _config_cache

    if config_path is None:
        if use_cache and _config_cache is not None:
            return _config_cache
        config_path = CONFIG_FILE

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        config = default_config
    else:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                user_config = yaml.safe_load(f)

            if user_config is None:
                logger.warning(f"Configuration file is empty: {config_path}")
                config = default_config
            elif not isinstance(user_config, dict):
                logger.error(f"Configuration file is not a valid dictionary: {config_path}")
                logger.info("Using default configuration")
                config = default_config
            else:
                config = deep_merge(default_config, user_config)
                logger.info(f"Successfully loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error in {config_path}: {e}")
            logger.info("Using default configuration")
            config = default_config
        except OSError as e:
            logger.error(f"Error reading configuration {config_path}: {e}")
            logger.info("Using default configuration")
            config = default_config

    if not validate_config(config):
        config = _repair_config(config)

    if config_path == CONFIG_FILE:
        _config_cache = config
    return config


def reload_config() -> Dict[str, Any]:
    """Drop the cached configuration and read config.yaml again."""
    global _config_cache
    _config_cache = None
    return load_config()


def get_config_value(section: str, key: str, default: Any = None) -> Any:
    """
    Get a single configuration value.

    Args:
        section: Top-level section name
        key: Key within the section
        default: Value returned when the section or key is absent
    """
    config = load_config()
    section_values = config.get(section, {})
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)


def _config_problems(config: Dict[str, Any]) -> List[str]:
    problems = []

    api = config.get('api', {})
    timeout = api.get('timeout')
    if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
        problems.append(f"api.timeout must be a positive number, got {timeout!r}")
    if not isinstance(api.get('prefix', ''), str):
        problems.append("api.prefix must be a string")

    table = config.get('table', {})
    page_sizes = table.get('page_sizes')
    if (not isinstance(page_sizes, list) or not page_sizes
            or not all(isinstance(size, int) and not isinstance(size, bool) and size > 0 for size in page_sizes)):
        problems.append(f"table.page_sizes must be a list of positive integers, got {page_sizes!r}")
    elif table.get('default_page_size') not in page_sizes:
        problems.append("table.default_page_size must be one of table.page_sizes")

    max_buttons = table.get('max_page_buttons')
    if not isinstance(max_buttons, int) or isinstance(max_buttons, bool) or max_buttons < 1:
        problems.append(f"table.max_page_buttons must be a positive integer, got {max_buttons!r}")

    entities = config.get('entities')
    if not isinstance(entities, list) or not all(isinstance(e, dict) and e.get('name') for e in entities):
        problems.append("entities must be a list of mappings with a 'name'")

    return problems


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration values.

    Returns:
        True if the configuration is usable as-is, False otherwise
    """
    problems = _config_problems(config)
    for problem in problems:
        logger.warning(f"Invalid configuration: {problem}")
    return not problems


def _repair_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Replace invalid sections with their defaults."""
    defaults = get_default_config()
    repaired = deepcopy(config)

    for problem in _config_problems(config):
        section = problem.split('.', 1)[0].split(' ', 1)[0]
        if section in defaults:
            repaired[section] = deepcopy(defaults[section])
            logger.info(f"Using default '{section}' configuration")

    return repaired


def get_entity_configs(config: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Return the configured entity screens in sidebar order."""
    config = config or load_config()
    entities = []
    for entry in config.get('entities', []):
        name = str(entry['name']).strip().lower()
        entities.append({
            'name': name,
            'label': entry.get('label') or f"{name.capitalize()}s",
            'hidden_fields': list(entry.get('hidden_fields') or [])
        })
    return entities
