"""
Record access for list and detail pages.
"""

import logging
from typing import Dict, Any, Optional, List

from .api_client import ApiResponse, BACKEND_UNAVAILABLE_MESSAGE, unwrap_list, unwrap_record
from .context import EngineContext
from .models import EntityMeta, FieldMeta
from .reference_resolver import ReferenceResolver, option_label

logger = logging.getLogger(__name__)


class RecordStore:
    """Reads entity rows through the engine's api client."""

    def __init__(self, context: EngineContext):
        self.context = context

    def _get_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        api = self.context.api
        if api is None:
            return []
        response = api.get(path, params=params)
        if not response.success:
            logger.error(f"Loading {path} failed: {response.error}")
            self.context.notify(response.error_message, "error")
            return []
        return [row for row in unwrap_list(response.data) if isinstance(row, dict)]

    def list_records(self, entity_name: str) -> List[Dict[str, Any]]:
        """All rows of an entity (``GET /{entity}s``)."""
        return self._get_list(f"/{entity_name}s")

    def get_record(self, entity_name: str, record_id: Any) -> Optional[Dict[str, Any]]:
        """One row (``GET /{entity}s/{id}``), or None when it cannot be loaded."""
        api = self.context.api
        if api is None:
            return None
        response = api.get(f"/{entity_name}s/{record_id}")
        if not response.success:
            logger.warning(f"Loading {entity_name} {record_id} failed: {response.error}")
            return None
        return unwrap_record(response.data)

    def create_record(self, entity_name: str, data: Dict[str, Any]) -> ApiResponse:
        """``POST /{entity}s`` with ``{input_data: data}``."""
        api = self.context.api
        if api is None:
            return ApiResponse(success=False, error=BACKEND_UNAVAILABLE_MESSAGE)
        return api.post(f"/{entity_name}s", json_body={"input_data": data})

    def import_records(
        self,
        entity_name: str,
        rows: List[Dict[str, Any]],
        meta: Optional[EntityMeta] = None
    ) -> Dict[str, int]:
        """
        Create one record per imported row; empty cells are left out.

        With ``meta`` the cells are matched to the entity's fields: a
        reference label is turned back into ``{id, <display key>}`` and
        cells that name no editable field, or a label with no matching
        option, are dropped.

        Returns:
            ``{created, failed}`` counts
        """
        resolver = ReferenceResolver(self.context)
        ref_options: Dict[str, List[Dict[str, Any]]] = {}
        counts = {'created': 0, 'failed': 0}

        for row in rows:
            data = {k: v for k, v in row.items() if k != 'id' and v not in (None, "")}
            if meta is not None:
                data = self._resolve_cells(meta, data, resolver, ref_options)
            if not data:
                continue
            response = self.create_record(entity_name, data)
            if response.success:
                counts['created'] += 1
            else:
                counts['failed'] += 1
                logger.warning(f"Import of {entity_name} row failed: {response.error}")
        logger.info(f"Imported {entity_name}: {counts}")
        return counts

    @staticmethod
    def _resolve_cells(
        meta: EntityMeta,
        data: Dict[str, Any],
        resolver: ReferenceResolver,
        ref_options: Dict[str, List[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        resolved = {}
        for name, value in data.items():
            field = meta.field(name)
            if field is None or field.is_collection or field.is_file:
                continue
            if not field.is_scalar_reference:
                resolved[name] = value
                continue

            if field.ref_entity not in ref_options:
                ref_options[field.ref_entity] = resolver.get_ref_options(field.ref_entity)
            label = str(value).strip()
            match = next(
                (o for o in ref_options[field.ref_entity]
                 if option_label(o, field.display_key) == label or str(o.get('id')) == label),
                None
            )
            if match is None:
                logger.warning(f"Import: no {field.ref_entity} matches '{label}' for {meta.entity}.{name}")
                continue
            resolved[name] = {'id': match.get('id'), field.display_key: option_label(match, field.display_key)}
        return resolved

    def list_children(self, parent_entity: str, parent_id: Any, child_field: FieldMeta) -> List[Dict[str, Any]]:
        """
        Child rows of a collection field scoped to one parent.

        Uses ``GET /{child}s?{mapped_by}={parent_id}`` (plus the field's
        context filter) when the foreign key is known, otherwise the nested
        ``GET /{parent}s/{parent_id}/{child}s`` route.
        """
        child = child_field.ref_entity
        mapped_by = child_field.mapped_by

        if mapped_by:
            params = {mapped_by: parent_id}
            if child_field.relational_mapping is not None:
                params.update(child_field.relational_mapping.context_filter)
            return self._get_list(f"/{child}s", params=params)

        return self._get_list(f"/{parent_entity}s/{parent_id}/{child}s")
