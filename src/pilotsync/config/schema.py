"""Configuration schema for sync profiles."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..backends.base import CollectionDescriptor, RecordKind
from ..core.resolver import ConflictPolicy, SyncMode


class CollectionConfig(BaseModel):
    """Configuration for one synced collection."""

    id: str = Field(..., min_length=1, description="Collection identifier")
    display_name: Optional[str] = Field(None, description="Human-readable name")
    storage_locator: Optional[str] = Field(None, description="Backend location, defaults to the id")
    kind: RecordKind = Field(default=RecordKind.UNKNOWN, description="Kind of records held")
    enabled: bool = Field(default=True, description="Whether the collection is synced")
    run_after: List[str] = Field(default_factory=list, description="Collections synced before this one")
    run_before: List[str] = Field(default_factory=list, description="Collections synced after this one")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Collection ids become directory and file names."""
        v = v.strip()
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"Invalid collection id: {v!r}")
        return v

    def to_descriptor(self) -> CollectionDescriptor:
        """Convert to the descriptor the engine and backends use."""
        return CollectionDescriptor(
            id=self.id,
            display_name=self.display_name or self.id.capitalize(),
            storage_locator=self.storage_locator,
            kind=self.kind,
        )


class LoggingConfig(BaseModel):
    """Logging section of a profile."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Only standard level names are accepted."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Console or JSON rendering."""
        if v not in ("console", "json"):
            raise ValueError("Log format must be 'console' or 'json'")
        return v


class SyncProfileConfig(BaseModel):
    """A complete sync profile."""

    name: str = Field(default="default", description="Profile name")
    version: str = Field(default="1.0.0", description="Profile format version")

    local_base_path: str = Field(default="./data/collections", description="Local collection store root")
    state_directory: str = Field(default="./data/state", description="Sync state directory")

    conflict_policy: ConflictPolicy = Field(default=ConflictPolicy.KEEP_LOCAL)
    mode: SyncMode = Field(default=SyncMode.SYNC)
    parallel_load: bool = Field(default=False)
    volatility_threshold: float = Field(default=70.0, ge=0, le=100)
    volatility_min_records: int = Field(default=5, ge=0)
    name_attempt_limit: int = Field(default=10000, ge=1)

    extensions: Dict[RecordKind, str] = Field(
        default_factory=dict,
        description="Per-kind file extension overrides"
    )
    collections: List[CollectionConfig] = Field(default_factory=list)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: Dict[RecordKind, str]) -> Dict[RecordKind, str]:
        """Extensions are normalized to a leading dot."""
        normalized = {}
        for kind, extension in v.items():
            extension = extension.strip().lower()
            if not extension or extension == ".":
                raise ValueError(f"Empty extension for {kind.value}")
            normalized[kind] = extension if extension.startswith(".") else f".{extension}"
        return normalized

    @model_validator(mode="after")
    def check_unique_collections(self) -> "SyncProfileConfig":
        """Collection ids must be unique."""
        seen = set()
        for collection in self.collections:
            if collection.id in seen:
                raise ValueError(f"Duplicate collection id: {collection.id}")
            seen.add(collection.id)
        return self

    def get_collection(self, collection_id: str) -> Optional[CollectionConfig]:
        """Find a collection by id."""
        for collection in self.collections:
            if collection.id == collection_id:
                return collection
        return None

    def enabled_collections(self) -> List[CollectionConfig]:
        """Collections that take part in sessions."""
        return [collection for collection in self.collections if collection.enabled]


def default_collections() -> List[CollectionConfig]:
    """The four built-in collections."""
    return [
        CollectionConfig(id="memos", display_name="Memos", kind=RecordKind.MEMO),
        CollectionConfig(id="contacts", display_name="Contacts", kind=RecordKind.CONTACT),
        CollectionConfig(id="calendar", display_name="Calendar", kind=RecordKind.EVENT),
        CollectionConfig(id="todos", display_name="Todos", kind=RecordKind.TODO),
    ]
