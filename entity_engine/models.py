"""
Pydantic models describing entity metadata.

The backend's ``_metainfo`` payloads use snake_case keys (``partial_field``,
``display_type``, ``relational_mapping``); camelCase spellings are accepted
as aliases. Unknown keys are ignored so newer backends do not break the
console.
"""

from enum import Enum
from typing import Dict, Any, Optional, List
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .formatting import to_label

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_KEY = "name"


class FieldType:
    """Field type constants."""
    STRING = "string"
    NUMBER = "number"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    ENUM = "enum"
    DATE = "date"
    DATETIME = "datetime"
    REF_ENTITY = "ref_entity"
    FILE = "file"
    JSON = "json"
    MULTI_LINE = "multi_line"
    EMAIL = "email"
    PHONE = "phone"

    # Spellings seen on the wire that map onto a canonical type
    ALIASES = {
        "date_time": DATETIME,
        "multiline": MULTI_LINE,
    }


class DisplayType(Enum):
    """Closed set of presentation hints a field can carry."""
    SINGLE_LINE = "Single Line"
    MULTI_LINE = "Multi Line"
    EMAIL = "Email"
    PHONE = "Phone"
    NUMBER = "Number"
    DECIMAL = "Decimal"
    CHECKBOX = "Checkbox"
    DATE_PICKER = "Date Picker"
    DATE_TIME_PICKER = "Date Time Picker"
    DROPDOWN = "Dropdown"
    FILE_UPLOAD = "File Upload"
    JSON_EDITOR = "JSON Editor"
    COLOR_PICKER = "Color Picker"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["DisplayType"]:
        """
        Resolve a display type string, tolerating case, underscores and
        extra spaces. Returns None for unknown values.
        """
        if not value:
            return None
        normalized = _normalize_token(value)
        for member in cls:
            if _normalize_token(member.value) == normalized or _normalize_token(member.name) == normalized:
                return member
        return None


def _normalize_token(value: str) -> str:
    return "".join(ch for ch in str(value).lower() if ch.isalnum())


class _MetaModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class RelationalMapping(_MetaModel):
    """How a ``ref_entity`` field points at another entity."""
    relationship_type: Optional[str] = None
    ref_entity: Optional[str] = None
    join_column: Optional[str] = None
    referenced_column: Optional[str] = None
    mapped_by: Optional[str] = None
    context_filter: Dict[str, Any] = Field(default_factory=dict)
    fetch: Optional[str] = None
    on_delete: Optional[str] = None


class FieldMeta(_MetaModel):
    """Metadata for one entity attribute."""
    name: str
    type: str = FieldType.STRING
    display_type: Optional[str] = None
    nullable: bool = True
    partial_field: bool = False
    collection: bool = False
    standalone: bool = False
    constraints: Dict[str, Any] = Field(default_factory=dict)
    relational_mapping: Optional[RelationalMapping] = None
    display_key: str = DEFAULT_DISPLAY_KEY
    default: Any = None
    is_title: bool = False

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("field name must not be empty")
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        if value is None or str(value).strip() == "":
            return FieldType.STRING
        value = str(value).strip().lower()
        return FieldType.ALIASES.get(value, value)

    @field_validator("display_key", mode="before")
    @classmethod
    def _default_display_key(cls, value: Any) -> str:
        return value or DEFAULT_DISPLAY_KEY

    @field_validator("nullable", "partial_field", "collection", "standalone", "is_title", mode="before")
    @classmethod
    def _default_flags(cls, value: Any, info: ValidationInfo) -> Any:
        # An explicit null means the flag is absent
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("constraints", mode="before")
    @classmethod
    def _default_constraints(cls, value: Any) -> Dict[str, Any]:
        return value or {}

    @model_validator(mode="after")
    def _check_relationships(self) -> "FieldMeta":
        if self.type == FieldType.REF_ENTITY:
            if self.relational_mapping is None or not self.relational_mapping.ref_entity:
                raise ValueError(f"ref_entity field '{self.name}' requires relational_mapping.ref_entity")
        if self.collection and self.type != FieldType.REF_ENTITY:
            raise ValueError(f"collection field '{self.name}' must have type ref_entity")
        return self

    @property
    def display_kind(self) -> DisplayType:
        """Display type to render with; unknown hints fall back to Single Line."""
        return DisplayType.parse(self.display_type) or DisplayType.SINGLE_LINE

    @property
    def label(self) -> str:
        return to_label(self.name)

    @property
    def is_required(self) -> bool:
        return not self.nullable

    @property
    def is_collection(self) -> bool:
        return self.collection and self.type == FieldType.REF_ENTITY

    @property
    def is_scalar_reference(self) -> bool:
        return self.type == FieldType.REF_ENTITY and not self.collection

    @property
    def is_standalone_collection(self) -> bool:
        return self.is_collection and self.standalone

    @property
    def is_file(self) -> bool:
        return self.type == FieldType.FILE

    @property
    def ref_entity(self) -> Optional[str]:
        if self.relational_mapping is None:
            return None
        return self.relational_mapping.ref_entity

    @property
    def mapped_by(self) -> Optional[str]:
        if self.relational_mapping is None:
            return None
        return self.relational_mapping.mapped_by

    @property
    def enum_values(self) -> List[str]:
        return [str(v) for v in self.constraints.get("values") or []]

    @property
    def boolean_default(self) -> bool:
        """Initial checkbox state: ``constraints.default``, then ``default``, else False."""
        if self.constraints.get("default") is not None:
            return bool(self.constraints["default"])
        if self.default is not None:
            return bool(self.default)
        return False


class EntityMeta(_MetaModel):
    """Metadata for one entity type. Field order is display order."""
    entity: str
    table_name: Optional[str] = None
    primary_key: str = "id"
    fields: List[FieldMeta] = Field(default_factory=list)

    @field_validator("entity")
    @classmethod
    def _normalize_entity(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("entity name must not be empty")
        return value

    @model_validator(mode="after")
    def _check_fields(self) -> "EntityMeta":
        seen = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(f"duplicate field name '{field.name}' in entity '{self.entity}'")
            seen.add(field.name)

        titles = [f.name for f in self.fields if f.is_title]
        if len(titles) > 1:
            raise ValueError(f"entity '{self.entity}' has more than one title field: {titles}")
        return self

    @property
    def plural(self) -> str:
        return f"{self.entity}s"

    @property
    def label(self) -> str:
        return to_label(self.entity)

    def field(self, name: str) -> Optional[FieldMeta]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def scalar_fields(self) -> List[FieldMeta]:
        """Fields that can be edited as a single control (everything but collections)."""
        return [f for f in self.fields if not f.is_collection]

    def collection_fields(self) -> List[FieldMeta]:
        return [f for f in self.fields if f.is_collection]

    def standalone_collections(self) -> List[FieldMeta]:
        return [f for f in self.fields if f.is_standalone_collection]

    def reference_fields(self) -> List[FieldMeta]:
        return [f for f in self.fields if f.is_scalar_reference]

    def title_field(self) -> Optional[FieldMeta]:
        for field in self.fields:
            if field.is_title:
                return field
        return None
