"""Centralized configuration for catalog-search using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


if TYPE_CHECKING:
    from catalog_search.indexing.join_strategy import JoinStrategyKind


KNOWN_INDEXES = ("artist", "release")


class ConfigurationError(ValueError):
    """Raised for invalid configuration, before any chunk or query is processed."""


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``CATALOG_*`` environment variables.

    All values are validated at startup; invalid combinations surface as
    ``ConfigurationError`` through ``load_settings()``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Source database
    database_path: Path | None = Field(default=None, description="SQLite catalog database to index from")

    # Index build settings
    indexes_dir: Path = Field(default=Path("./data"), description="Directory holding one sub-directory per index")
    indexes: str = Field(default="artist,release", description="Comma-separated names of the indexes to build")
    ids_per_chunk: int = Field(default=10000, ge=1, description="Width of each id range processed in one chunk")
    test_mode: bool = Field(default=False, description="Only index rows with ids up to max_test_id")
    max_test_id: int = Field(default=50000, ge=0, description="Highest id indexed in test mode")
    join_strategy: Literal["none", "temptable", "map"] = Field(
        default="map",
        description="How the release to PUID join is resolved: per chunk, via a temp table, or cached in memory",
    )

    # Search settings
    dismax_tie: float = Field(default=0.1, ge=0.0, lt=1.0, description="Tie breaker applied to non-best dismax fields")
    default_limit: int = Field(default=25, ge=1, description="Results returned when no limit is requested")
    max_limit: int = Field(default=100, ge=1, description="Upper bound on results per request")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("join_strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> Settings:
        if self.default_limit > self.max_limit:
            raise ValueError(f"default_limit ({self.default_limit}) must not exceed max_limit ({self.max_limit})")
        unknown = [name for name in self.get_index_names() if name not in KNOWN_INDEXES]
        if unknown:
            raise ValueError(f"Unknown index names {unknown}; available: {list(KNOWN_INDEXES)}")
        if not self.get_index_names():
            raise ValueError("At least one index name must be configured")
        return self

    def get_index_names(self) -> list[str]:
        """Get configured index names in declaration order, without duplicates."""
        names: list[str] = []
        for name in self.indexes.split(","):
            normalized = name.strip().lower()
            if normalized and normalized not in names:
                names.append(normalized)
        return names

    def effective_max_id(self, max_id: int) -> int:
        """Apply the test-mode cap to the highest id found in a table."""
        if self.test_mode:
            return min(max_id, self.max_test_id)
        return max_id

    def join_strategy_kind(self) -> JoinStrategyKind:
        """Return the configured join resolution strategy kind."""
        from catalog_search.indexing.join_strategy import JoinStrategyKind

        return JoinStrategyKind.from_name(self.join_strategy)

    def index_directory(self, name: str) -> Path:
        return self.indexes_dir / f"{name}_index"


def load_settings(**overrides: object) -> Settings:
    """Build ``Settings`` from the environment plus explicit overrides.

    Overrides set to ``None`` are ignored so CLI options that were not given
    fall through to the environment.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
