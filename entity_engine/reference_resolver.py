"""
Reference option lookup for ``ref_entity`` fields.

Lookups are best-effort: a failed fetch falls back to the bundled list and
then to no options at all. Nothing here raises to the caller.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Any, Optional, List

from .api_client import unwrap_list
from .context import EngineContext
from .models import EntityMeta
from .schema_provider import SCHEMAS_DIR, load_reference_options

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


def option_label(item: Dict[str, Any], display_key: str = "name") -> str:
    """Label for an option: the display key, then ``name``, then the id."""
    return str(item.get(display_key) or item.get("name") or item.get("id", ""))


def to_filter_options(items: List[Dict[str, Any]], display_key: str = "name") -> List[Dict[str, str]]:
    """Convert reference records into ``{label, value}`` pairs for a table filter."""
    options = []
    seen = set()
    for item in items:
        label = option_label(item, display_key)
        if not label or label in seen:
            continue
        seen.add(label)
        options.append({"label": label, "value": label})
    return options


class ReferenceResolver:
    """
    Candidate lists for reference pickers and reference filters.

    ``options`` is keyed by field name and lives as long as the resolver,
    which is one form or table instance.
    """

    def __init__(
        self,
        context: EngineContext,
        schemas_dir: Path = SCHEMAS_DIR,
        max_workers: int = DEFAULT_MAX_WORKERS
    ):
        self.context = context
        self.schemas_dir = schemas_dir
        self.max_workers = max_workers
        self.options: Dict[str, List[Dict[str, Any]]] = {}

    def get_ref_options(self, ref_entity: str, endpoint: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch the candidate records for a reference entity.

        Args:
            ref_entity: Target entity name
            endpoint: Narrower endpoint to query instead of ``/{ref_entity}s``

        Returns:
            List of option records; may be empty
        """
        path = endpoint or f"/{ref_entity}s"
        api = self.context.api

        if api is not None:
            response = api.get(path)
            if response.success:
                return [item for item in unwrap_list(response.data) if isinstance(item, dict)]
            logger.warning(f"Reference lookup {path} failed: {response.error}")

        fallback = load_reference_options(ref_entity, self.schemas_dir)
        if not fallback:
            logger.warning(f"No reference options available for '{ref_entity}'")
        return fallback

    def load_form_options(self, meta: EntityMeta) -> Dict[str, List[Dict[str, Any]]]:
        """
        Resolve options for every scalar reference field of a form.

        Lookups run concurrently and each result is written only into its
        own field's slot as it completes. Fields already resolved by this
        instance are not fetched again.
        """
        pending = [f for f in meta.reference_fields() if f.name not in self.options]
        if not pending:
            return self.options

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(self.get_ref_options, f.ref_entity): f for f in pending}
            for future in as_completed(futures):
                field = futures[future]
                try:
                    self.options[field.name] = future.result()
                except Exception as e:
                    logger.warning(f"Reference lookup for field '{field.name}' failed: {e}")
                    self.options[field.name] = []

        return self.options

    def options_for(self, field_name: str) -> List[Dict[str, Any]]:
        return self.options.get(field_name, [])

    def load_filter_options(
        self,
        meta: EntityMeta,
        parent_entity: Optional[str] = None
    ) -> Dict[str, List[Dict[str, str]]]:
        """
        Distinct values for each reference column filter.

        Queries ``/{parent_entity or entity}s/{field_name}``, the backend's
        per-field distinct-values endpoint.
        """
        base = parent_entity or meta.entity
        filter_options = {}
        for field in meta.reference_fields():
            if field.standalone:
                continue
            items = self.get_ref_options(field.ref_entity, endpoint=f"/{base}s/{field.name}")
            filter_options[field.name] = to_filter_options(items, field.display_key)
        return filter_options
