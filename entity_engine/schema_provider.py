"""
Schema provider for the entity engine.

Fetches entity metadata from the backend's ``_metainfo`` endpoint and falls
back to the YAML tables bundled in ``entity_engine/schemas`` when the live
source is unavailable or returns something unusable.
"""

import logging
from copy import deepcopy
from pathlib import Path
from typing import Dict, Any, Optional, List

import yaml
from pydantic import ValidationError

from .api_client import unwrap_record
from .context import EngineContext
from .error_handler import SchemaUnavailableError
from .models import EntityMeta

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).parent / "schemas"
REFERENCE_OPTIONS_FILE = "reference_options.yaml"
SAMPLE_RECORDS_FILE = "sample_records.yaml"

# Parsed YAML files keyed by path
_yaml_cache: Dict[Path, Any] = {}


def clear_static_cache() -> None:
    """Forget every parsed YAML table."""
    _yaml_cache.clear()


def _read_yaml(path: Path) -> Optional[Any]:
    if path in _yaml_cache:
        return _yaml_cache[path]

    if not path.exists():
        logger.debug(f"Static table not found: {path}")
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {path}: {e}")
        return None
    except OSError as e:
        logger.error(f"Error reading static table {path}: {e}")
        return None

    _yaml_cache[path] = data
    return data


def load_static_meta(entity_name: str, schemas_dir: Path = SCHEMAS_DIR) -> Optional[EntityMeta]:
    """
    Load the bundled metadata for an entity.

    Args:
        entity_name: Singular entity name, e.g. ``dealer``
        schemas_dir: Directory holding ``<entity>.yaml`` files

    Returns:
        EntityMeta or None if no valid table exists
    """
    data = _read_yaml(schemas_dir / f"{entity_name}.yaml")
    if data is None:
        return None

    try:
        meta = EntityMeta.model_validate(data)
    except ValidationError as e:
        logger.error(f"Invalid static metadata for '{entity_name}': {e}")
        return None

    if meta.entity != entity_name:
        logger.error(f"Static metadata file for '{entity_name}' describes '{meta.entity}'")
        return None
    return meta


def load_reference_options(ref_entity: str, schemas_dir: Path = SCHEMAS_DIR) -> List[Dict[str, Any]]:
    """Bundled candidate list for a reference entity (empty when none is bundled)."""
    data = _read_yaml(schemas_dir / REFERENCE_OPTIONS_FILE)
    if not isinstance(data, dict):
        return []
    options = data.get(ref_entity) or []
    return deepcopy([o for o in options if isinstance(o, dict)])


def load_sample_records(schemas_dir: Path = SCHEMAS_DIR) -> Dict[str, List[Dict[str, Any]]]:
    """Demo rows keyed by entity name; a fresh copy on every call."""
    data = _read_yaml(schemas_dir / SAMPLE_RECORDS_FILE)
    if not isinstance(data, dict):
        return {}
    return {
        str(name): [row for row in rows if isinstance(row, dict)]
        for name, rows in deepcopy(data).items()
        if isinstance(rows, list)
    }


class SchemaProvider:
    """
    Resolves EntityMeta for one screen.

    Holds a single cached result keyed by entity name. Asking for a
    different entity drops the previous result before anything else
    happens, so a stale schema is never paired with another entity's data.
    """

    def __init__(self, context: EngineContext, schemas_dir: Path = SCHEMAS_DIR):
        self.context = context
        self.schemas_dir = schemas_dir
        self._cached_name: Optional[str] = None
        self._cached_meta: Optional[EntityMeta] = None

    def get_entity_meta(self, entity_name: str) -> Optional[EntityMeta]:
        """
        Return metadata for an entity: live first, then the bundled table.

        Returns:
            EntityMeta, or None when neither source has it
        """
        name = entity_name.strip().lower()

        if name == self._cached_name and self._cached_meta is not None:
            return self._cached_meta

        self._cached_name = name
        self._cached_meta = None

        meta = self._fetch_live(name)
        if meta is None:
            meta = load_static_meta(name, self.schemas_dir)
            if meta is not None:
                logger.warning(f"Using bundled metadata for '{name}'")

        if meta is None:
            logger.error(f"No metadata available for entity '{name}'")
            return None

        # A later call for another entity may have run in between
        if self._cached_name == name:
            self._cached_meta = meta
        return meta

    def require_entity_meta(self, entity_name: str) -> EntityMeta:
        """Like get_entity_meta but raises SchemaUnavailableError instead of returning None."""
        meta = self.get_entity_meta(entity_name)
        if meta is None:
            raise SchemaUnavailableError(entity_name)
        return meta

    def invalidate(self) -> None:
        self._cached_name = None
        self._cached_meta = None

    def _fetch_live(self, name: str) -> Optional[EntityMeta]:
        api = self.context.api
        if api is None:
            return None

        response = api.get(f"/{name}s/_metainfo")
        if not response.success:
            logger.warning(f"Metadata fetch for '{name}' failed: {response.error}")
            return None

        payload = unwrap_record(response.data)
        if payload is None:
            logger.warning(f"Metadata response for '{name}' is not an object")
            return None

        try:
            meta = EntityMeta.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Malformed metadata for '{name}': {e}")
            return None

        if meta.entity != name:
            logger.warning(f"Metadata response for '{name}' describes '{meta.entity}'")
            return None
        return meta
