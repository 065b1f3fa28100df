"""
In-process demo backend.

Serves the bundled metadata, reference lists and sample rows through an
httpx.MockTransport so the console can run without a server. Created and
updated records live in memory for the lifetime of the backend object.
"""

import json
import logging
from typing import Dict, Any, Optional, List

import httpx

from .api_client import DEFAULT_PREFIX
from .formatting import singularize
from .schema_provider import (
    SCHEMAS_DIR,
    load_static_meta,
    load_reference_options,
    load_sample_records,
)

logger = logging.getLogger(__name__)


def _ok(data: Any) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data})


def _not_found(message: str) -> httpx.Response:
    return httpx.Response(404, json={"success": False, "message": message})


def _same_id(left: Any, right: Any) -> bool:
    return str(left) == str(right)


class MockBackend:
    """REST surface of the console backend over the bundled YAML tables."""

    def __init__(self, prefix: str = DEFAULT_PREFIX, schemas_dir=SCHEMAS_DIR):
        self.prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""
        self.schemas_dir = schemas_dir
        self.records: Dict[str, List[Dict[str, Any]]] = load_sample_records(schemas_dir)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.prefix and path.startswith(self.prefix):
            path = path[len(self.prefix):]
        parts = [p for p in path.split("/") if p]
        params = dict(request.url.params)

        logger.debug(f"Mock backend: {request.method} {path} {params}")

        if not parts:
            return _not_found("Unknown endpoint")

        entity = singularize(parts[0])

        if request.method == "GET":
            if len(parts) == 1:
                return self._list(entity, params)
            if len(parts) == 2 and parts[1] == "_metainfo":
                return self._metainfo(entity)
            if len(parts) == 2:
                field_values = self._distinct_values(entity, parts[1])
                if field_values is not None:
                    return _ok(field_values)
                return self._get(entity, parts[1])
            if len(parts) == 3:
                return self._children(entity, parts[1], singularize(parts[2]))

        if request.method == "POST" and len(parts) == 1:
            return self._create(entity, self._input_data(request))

        if request.method == "PUT" and len(parts) == 2:
            return self._update(entity, parts[1], self._input_data(request))

        return _not_found(f"Unknown endpoint: {request.method} {path}")

    @staticmethod
    def _input_data(request: httpx.Request) -> Dict[str, Any]:
        try:
            body = json.loads(request.content or b"{}")
        except ValueError:
            return {}
        data = body.get("input_data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}

    def _metainfo(self, entity: str) -> httpx.Response:
        meta = load_static_meta(entity, self.schemas_dir)
        if meta is None:
            return _not_found(f"No metadata for {entity}")
        return httpx.Response(200, json=meta.model_dump(mode="json"))

    def _list(self, entity: str, params: Dict[str, str]) -> httpx.Response:
        if entity in self.records:
            rows = [
                row for row in self.records[entity]
                if all(_same_id(row.get(key), value) for key, value in params.items())
            ]
            return _ok(rows)

        options = load_reference_options(entity, self.schemas_dir)
        if options:
            return _ok(options)
        return _not_found(f"Unknown entity: {entity}")

    def _find(self, entity: str, record_id: str) -> Optional[Dict[str, Any]]:
        for row in self.records.get(entity, []):
            if _same_id(row.get("id"), record_id):
                return row
        return None

    def _get(self, entity: str, record_id: str) -> httpx.Response:
        row = self._find(entity, record_id)
        if row is None:
            return _not_found(f"{entity} {record_id} not found")
        return _ok(row)

    def _distinct_values(self, entity: str, field_name: str) -> Optional[List[Any]]:
        """Distinct values of a reference field across an entity's rows."""
        meta = load_static_meta(entity, self.schemas_dir)
        field = meta.field(field_name) if meta else None
        if field is None or not field.is_scalar_reference:
            return None

        values = []
        seen = set()
        for row in self.records.get(entity, []):
            value = row.get(field_name)
            if not isinstance(value, dict) or "id" not in value:
                continue
            if str(value["id"]) in seen:
                continue
            seen.add(str(value["id"]))
            values.append(value)
        return values

    def _children(self, parent: str, parent_id: str, child: str) -> httpx.Response:
        meta = load_static_meta(parent, self.schemas_dir)
        if meta is None or self._find(parent, parent_id) is None:
            return _not_found(f"{parent} {parent_id} not found")

        mapped_by = None
        for field in meta.collection_fields():
            if field.ref_entity == child:
                mapped_by = field.mapped_by
                break
        if not mapped_by:
            return _not_found(f"{parent} has no {child} relationship")

        rows = [r for r in self.records.get(child, []) if _same_id(r.get(mapped_by), parent_id)]
        return _ok(rows)

    def _create(self, entity: str, data: Dict[str, Any]) -> httpx.Response:
        if load_static_meta(entity, self.schemas_dir) is None:
            return _not_found(f"Unknown entity: {entity}")

        rows = self.records.setdefault(entity, [])
        next_id = max((int(r["id"]) for r in rows if str(r.get("id", "")).isdigit()), default=0) + 1
        record = dict(data)
        record["id"] = next_id
        rows.append(record)
        logger.info(f"Mock backend created {entity} {next_id}")
        return httpx.Response(201, json={"success": True, "data": record})

    def _update(self, entity: str, record_id: str, data: Dict[str, Any]) -> httpx.Response:
        row = self._find(entity, record_id)
        if row is None:
            return _not_found(f"{entity} {record_id} not found")
        row.update(data)
        logger.info(f"Mock backend updated {entity} {record_id}: {sorted(data)}")
        return _ok(row)
