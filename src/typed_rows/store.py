"""Relational store interface and the SQLite implementation."""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from typed_rows.columns import ColumnDefinition
from typed_rows.config import StoreConfig
from typed_rows.errors import InvalidPredicateError
from typed_rows.predicate import Predicate
from typed_rows.types import StorageKind

logger = logging.getLogger(__name__)

# Raised when the driver cannot bind a parameter, or by the database itself
STORE_ERRORS = (sqlite3.Error, OverflowError, UnicodeEncodeError)


def quote(identifier: str) -> str:
    """Quote an SQL identifier."""
    return '"' + identifier.replace('"', '""') + '"'


class RowCursor(ABC):
    """Forward cursor over the rows of a query result."""

    @abstractmethod
    def move_first(self) -> bool:
        """Position on the first row; return False if there is none."""

    @abstractmethod
    def move_next(self) -> bool:
        """Advance one row; return False past the last row."""

    @abstractmethod
    def has_current(self) -> bool:
        """Return whether the cursor is positioned on a row."""

    @abstractmethod
    def has_column(self, name: str) -> bool:
        """Return whether the result has a column of that name."""

    @abstractmethod
    def get_text(self, name: str) -> str | None: ...

    @abstractmethod
    def get_integer(self, name: str) -> int | None: ...

    @abstractmethod
    def get_real(self, name: str) -> float | None: ...

    @abstractmethod
    def get_blob(self, name: str) -> bytes | None: ...

    def get(self, kind: StorageKind, name: str) -> Any:
        """Read a column of the current row with the getter for its kind."""
        if kind is StorageKind.TEXT:
            return self.get_text(name)
        if kind is StorageKind.INTEGER:
            return self.get_integer(name)
        if kind is StorageKind.REAL:
            return self.get_real(name)
        if kind is StorageKind.BLOB:
            return self.get_blob(name)
        return None

    def close(self) -> None:
        """Release the cursor."""

    def __enter__(self) -> RowCursor:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class RelationalStore(ABC):
    """Operations the persistence engine needs from a relational database."""

    @abstractmethod
    def create_relation(
        self, name: str, columns: Sequence[ColumnDefinition], drop_existing: bool = False
    ) -> bool:
        """Create a relation if it does not exist, optionally dropping it first."""

    @abstractmethod
    def drop_relation(self, name: str) -> bool: ...

    @abstractmethod
    def has_relation(self, name: str) -> bool: ...

    @abstractmethod
    def query(self, relation: str, predicate: Predicate | None = None) -> RowCursor:
        """Select rows, all of them when ``predicate`` is None."""

    @abstractmethod
    def insert(self, relation: str, values: Mapping[str, Any]) -> int:
        """Insert one row and return its generated identity, negative on failure."""

    @abstractmethod
    def update(self, relation: str, values: Mapping[str, Any], predicate: Predicate) -> int:
        """Update matching rows and return how many were affected."""

    @abstractmethod
    def delete(self, relation: str, predicate: Predicate) -> int:
        """Delete matching rows and return how many were removed."""

    @abstractmethod
    def row_count(self, relation: str) -> int: ...


class SQLiteCursor(RowCursor):
    """Cursor over rows already fetched from SQLite."""

    def __init__(self, columns: Iterable[str] = (), rows: Iterable[Sequence[Any]] = ()) -> None:
        self._index = {name: i for i, name in enumerate(columns)}
        self._rows = list(rows)
        self._position = -1

    def move_first(self) -> bool:
        self._position = 0
        return self.has_current()

    def move_next(self) -> bool:
        if self._position < len(self._rows):
            self._position += 1
        return self.has_current()

    def has_current(self) -> bool:
        return 0 <= self._position < len(self._rows)

    def has_column(self, name: str) -> bool:
        return name in self._index

    def _value(self, name: str) -> Any:
        if not self.has_current():
            raise IndexError("Cursor is not positioned on a row")
        return self._rows[self._position][self._index[name]]

    def _convert(self, name: str, convert: Any) -> Any:
        value = self._value(name)
        if value is None:
            return None
        try:
            return convert(value)
        except (TypeError, ValueError) as e:
            logger.warning("Cannot read column %s as %s: %s", name, convert.__name__, e)
            return None

    def get_text(self, name: str) -> str | None:
        value = self._value(name)
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return None if value is None else str(value)

    def get_integer(self, name: str) -> int | None:
        return self._convert(name, int)

    def get_real(self, name: str) -> float | None:
        return self._convert(name, float)

    def get_blob(self, name: str) -> bytes | None:
        value = self._value(name)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode("utf-8")
        return None

    def close(self) -> None:
        self._rows = []
        self._position = -1

    def __len__(self) -> int:
        return len(self._rows)


class SQLiteStore(RelationalStore):
    """Relational store on a ``sqlite3`` connection in autocommit mode.

    Database errors are logged and reported through return values: ``-1``
    for a failed insert, ``0`` affected rows, or an empty cursor.
    """

    def __init__(self, config: StoreConfig | None = None) -> None:
        self.config = config if config is not None else StoreConfig()
        self.connection = sqlite3.connect(
            self.config.database, timeout=self.config.timeout, isolation_level=None
        )

    @classmethod
    def from_config(cls, config: StoreConfig) -> SQLiteStore:
        return cls(config)

    @classmethod
    def open(cls, database: str = ":memory:", **options: Any) -> SQLiteStore:
        """Open a store on a database path with extra :class:`StoreConfig` options."""
        return cls(StoreConfig.from_mapping({"database": database, **options}))

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        if self.config.echo:
            logger.debug("%s %s", sql, list(params))
        return self.connection.execute(sql, tuple(params))

    @staticmethod
    def _where(predicate: Predicate) -> str:
        if not predicate.is_valid:
            raise InvalidPredicateError("Predicate has no comparisons")
        return f" WHERE {predicate.where}"

    def create_relation(
        self, name: str, columns: Sequence[ColumnDefinition], drop_existing: bool = False
    ) -> bool:
        if drop_existing and not self.drop_relation(name):
            return False
        parts = []
        for column in columns:
            sql = f"{quote(column.name)} {column.kind.value}"
            if column.primary_key:
                sql += " PRIMARY KEY"
            parts.append(sql)
        try:
            self._execute(f"CREATE TABLE IF NOT EXISTS {quote(name)} ({', '.join(parts)})")
        except sqlite3.Error as e:
            logger.error("Cannot create table %s: %s", name, e)
            return False
        return True

    def drop_relation(self, name: str) -> bool:
        try:
            self._execute(f"DROP TABLE IF EXISTS {quote(name)}")
        except sqlite3.Error as e:
            logger.error("Cannot drop table %s: %s", name, e)
            return False
        return True

    def has_relation(self, name: str) -> bool:
        try:
            row = self._execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("Cannot list tables: %s", e)
            return False
        return row is not None

    def relations(self) -> list[str]:
        """List the tables in the database."""
        try:
            rows = self._execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("Cannot list tables: %s", e)
            return []
        return [row[0] for row in rows]

    def query(self, relation: str, predicate: Predicate | None = None) -> SQLiteCursor:
        sql = f"SELECT * FROM {quote(relation)}"
        params: tuple[Any, ...] = ()
        if predicate is not None:
            sql += self._where(predicate)
            params = predicate.values
        try:
            cursor = self._execute(sql, params)
            columns = [description[0] for description in cursor.description]
            return SQLiteCursor(columns, cursor.fetchall())
        except STORE_ERRORS as e:
            logger.error("Cannot query %s: %s", relation, e)
            return SQLiteCursor()

    def insert(self, relation: str, values: Mapping[str, Any]) -> int:
        if values:
            names = ", ".join(quote(name) for name in values)
            placeholders = ", ".join("?" for _ in values)
            sql = f"INSERT INTO {quote(relation)} ({names}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {quote(relation)} DEFAULT VALUES"
        try:
            cursor = self._execute(sql, list(values.values()))
        except STORE_ERRORS as e:
            logger.error("Cannot insert into %s: %s", relation, e)
            return -1
        return cursor.lastrowid if cursor.lastrowid is not None else -1

    def update(self, relation: str, values: Mapping[str, Any], predicate: Predicate) -> int:
        where = self._where(predicate)
        if not values:
            logger.warning("Nothing to update in %s", relation)
            return 0
        assignments = ", ".join(f"{quote(name)} = ?" for name in values)
        try:
            cursor = self._execute(
                f"UPDATE {quote(relation)} SET {assignments}{where}",
                [*values.values(), *predicate.values],
            )
        except STORE_ERRORS as e:
            logger.error("Cannot update %s: %s", relation, e)
            return 0
        return cursor.rowcount

    def delete(self, relation: str, predicate: Predicate) -> int:
        where = self._where(predicate)
        try:
            cursor = self._execute(f"DELETE FROM {quote(relation)}{where}", predicate.values)
        except STORE_ERRORS as e:
            logger.error("Cannot delete from %s: %s", relation, e)
            return 0
        return cursor.rowcount

    def row_count(self, relation: str) -> int:
        try:
            row = self._execute(f"SELECT COUNT(*) FROM {quote(relation)}").fetchone()
        except sqlite3.Error as e:
            logger.error("Cannot count %s: %s", relation, e)
            return 0
        return row[0]

    def columns_of(self, relation: str) -> list[str]:
        """Return the column names of an existing table."""
        try:
            rows = self._execute(f"PRAGMA table_info({quote(relation)})").fetchall()
        except sqlite3.Error as e:
            logger.error("Cannot describe %s: %s", relation, e)
            return []
        return [row[1] for row in rows]

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> SQLiteStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
