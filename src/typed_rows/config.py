"""Store configuration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

MEMORY_DATABASE = ":memory:"


@dataclass
class StoreConfig:
    """SQLite store connection configuration.

    Attributes:
        database: Path of the database file, or ``":memory:"``.
        timeout: Seconds to wait for a locked database.
        echo: Log every SQL statement at DEBUG level.
    """

    database: str = MEMORY_DATABASE
    timeout: float = 5.0
    echo: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.database, Path):
            self.database = str(self.database)
        if not isinstance(self.database, str) or not self.database:
            raise ValueError("database must be a non-empty path or ':memory:'")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @property
    def in_memory(self) -> bool:
        return self.database == MEMORY_DATABASE

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> StoreConfig:
        """Build a config from plain settings.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"Unknown store options: {', '.join(unknown)}")
        return cls(**dict(options))
