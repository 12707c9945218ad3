"""Tests for the persistence engine."""

import logging
from datetime import datetime
from typing import Annotated

import pytest

from typed_rows import (
    INVALID_ID,
    Column,
    Comparison,
    EntityTable,
    InvalidPredicateError,
    Predicate,
    SchemaError,
    SchemaIntrospector,
    SQLiteStore,
    StorageKind,
    Storable,
    all_of,
    any_of,
    column_accessor,
)


class Note(Storable):
    title: Annotated[str, Column()] = ""
    done: Annotated[bool, Column()] = False


class Reading(Storable):
    taken: Annotated[datetime | None, Column()] = None
    value: Annotated[float, Column()] = 0.0
    count: Annotated[int | None, Column()] = None
    raw: Annotated[bytes, Column()] = b""
    tags: Annotated[list[str], Column()] = None


class Task(Storable):
    def __init__(self) -> None:
        self._priority = 0

    @column_accessor("priority")
    def get_priority(self) -> int:
        return self._priority

    @column_accessor("priority")
    def set_priority(self, value: int) -> None:
        self._priority = value


def make_note(title, done):
    note = Note()
    note.title = title
    note.done = done
    return note


def make_table(target_type, store):
    table = EntityTable(SchemaIntrospector().build(target_type), store)
    table.create()
    return table


@pytest.fixture
def store():
    with SQLiteStore() as store:
        yield store


@pytest.fixture
def notes(store):
    table = make_table(Note, store)
    table.save_all([make_note("x", True), make_note("x", False), make_note("y", True)])
    return table


class TestSave:
    """Tests for inserting and updating entities."""

    def test_first_save_assigns_id(self, store):
        """Test that the first saved entity gets identity 1."""
        table = make_table(Note, store)
        note = make_note("hello", False)

        assert note.id == INVALID_ID
        assert table.save(note)
        assert note.id == 1

        loaded = table.get(1)
        assert loaded.id == 1
        assert loaded.title == "hello"
        assert loaded.done is False

    def test_saved_entity_in_get_all(self, store):
        """Test that a saved entity is returned by get_all."""
        table = make_table(Note, store)
        note = make_note("a", True)
        table.save(note)

        everything = table.get_all()

        assert [(n.id, n.title, n.done) for n in everything] == [(note.id, "a", True)]

    def test_second_save_updates(self, store):
        """Test that saving a persisted entity updates its row."""
        table = make_table(Note, store)
        note = make_note("draft", False)
        table.save(note)

        note.title = "final"
        assert table.save(note)

        assert note.id == 1
        assert table.count() == 1
        assert table.get(1).title == "final"

    def test_update_of_missing_row_fails(self, store):
        """Test that updating a row that does not exist reports failure."""
        table = make_table(Note, store)
        note = make_note("ghost", False)
        note.id = 42

        assert not table.save(note)
        assert table.count() == 0

    def test_save_all_does_not_short_circuit(self, store):
        """Test that every entity is attempted even after a failure."""
        table = make_table(Note, store)
        ghost = make_note("ghost", False)
        ghost.id = 42
        first = make_note("a", False)
        last = make_note("b", False)

        assert not table.save_all([first, ghost, last])

        assert first.id == 1
        assert last.id == 2
        assert table.count() == 2

    def test_save_without_relation_fails(self, store, caplog):
        """Test that a store failure is reported as False."""
        table = EntityTable(SchemaIntrospector().build(Note), store)
        note = make_note("a", False)

        assert not table.save(note)
        assert note.id == INVALID_ID
        assert "Cannot insert into Note" in caplog.text

    def test_accessor_columns(self, store):
        """Test saving and loading through getter/setter columns."""
        table = make_table(Task, store)
        task = Task()
        task.set_priority(3)
        table.save(task)

        assert table.get(task.id).get_priority() == 3

    def test_value_round_trip(self, store):
        """Test storing and restoring several value types."""
        table = make_table(Reading, store)
        reading = Reading()
        reading.taken = datetime(2024, 6, 1, 9, 30)
        reading.value = 3
        reading.raw = b"\x00\xff"
        reading.tags = ["a", "b"]
        table.save(reading)

        loaded = table.get(reading.id)

        assert loaded.taken == datetime(2024, 6, 1, 9, 30)
        assert loaded.value == 3.0
        assert loaded.count is None
        assert loaded.raw == b"\x00\xff"
        assert loaded.tags == ["a", "b"]

    def test_mismatched_value_is_skipped(self, store, caplog):
        """Test that a member of the wrong type is not written but the row is."""
        table = make_table(Note, store)
        note = make_note("a", False)
        note.title = ["not", "text"]

        with caplog.at_level(logging.WARNING):
            assert table.save(note)

        assert table.get(note.id).title is None
        assert "Column title of Note not written" in caplog.text


class TestUnbindableValues:
    """Tests for values the database driver cannot bind."""

    def test_oversized_integer(self, store, caplog):
        """Test that an integer beyond 64 bits fails the save instead of raising."""
        table = make_table(Reading, store)
        reading = Reading()
        reading.count = 2**70

        assert not table.save(reading)
        assert reading.id == INVALID_ID
        assert table.count() == 0
        assert "Cannot insert into Reading" in caplog.text

    def test_lone_surrogate(self, store, caplog):
        """Test that text the driver cannot encode fails the save instead of raising."""
        table = make_table(Note, store)
        note = make_note("\ud800", False)

        assert not table.save(note)
        assert table.count() == 0
        assert "Cannot insert into Note" in caplog.text

    def test_update_with_unbindable_value(self, store, caplog):
        """Test that an update the driver rejects reports failure."""
        table = make_table(Note, store)
        note = make_note("fine", False)
        table.save(note)

        note.title = "\ud800"

        assert not table.save(note)
        assert table.get(note.id).title == "fine"
        assert "Cannot update Note" in caplog.text

    def test_query_with_unbindable_value(self, store):
        """Test that a filter value the driver rejects matches nothing."""
        table = make_table(Note, store)
        table.save(make_note("a", False))

        assert table.get_where(all_of(Comparison.equal("ID", 2**70))) == []


class TestQueries:
    """Tests for reading entities."""

    def test_get_missing(self, notes):
        """Test that an unknown identity returns None."""
        assert notes.get(99) is None

    def test_and_predicate(self, notes):
        """Test that an AND predicate narrows the result."""
        predicate = all_of(Comparison.equal("done", True), Comparison.equal("title", "x"))

        found = notes.get_where(predicate)

        assert len(found) == 1
        assert found[0].title == "x"
        assert found[0].done is True

    def test_or_predicate(self, notes):
        """Test that an OR predicate widens the result."""
        predicate = any_of(Comparison.equal("done", True), Comparison.equal("title", "x"))

        assert len(notes.get_where(predicate)) == 3

    def test_like_predicate(self, notes):
        """Test a LIKE comparison."""
        assert len(notes.get_where(all_of(Comparison.like("title", "y%")))) == 1

    def test_empty_predicate_rejected(self, notes):
        """Test that a predicate without comparisons is never executed."""
        with pytest.raises(InvalidPredicateError):
            notes.get_where(Predicate())
        with pytest.raises(InvalidPredicateError):
            notes.get_where(all_of())

    def test_count(self, notes):
        """Test counting rows."""
        assert notes.count() == 3


class TestDelete:
    """Tests for deleting entities."""

    def test_delete_resets_id(self, notes):
        """Test that a deleted entity becomes transient again."""
        note = notes.get(1)

        assert notes.delete(note)
        assert note.id == INVALID_ID
        assert notes.count() == 2
        assert notes.get(1) is None

    def test_delete_transient_entity(self, notes):
        """Test that deleting an unsaved entity fails without touching the store."""
        assert not notes.delete(make_note("new", False))
        assert notes.count() == 3

    def test_delete_missing_row(self, notes):
        """Test that deleting an already deleted row fails."""
        note = notes.get(2)
        stale = notes.get(2)
        notes.delete(note)

        assert not notes.delete(stale)
        assert stale.id == 2


class TestSchemaDescription:
    """Tests for create and describe_schema."""

    def test_describe_schema(self, store):
        """Test the column definitions of a table."""
        table = EntityTable(SchemaIntrospector().build(Reading), store)

        assert [(d.name, d.kind) for d in table.describe_schema()] == [
            ("ID", StorageKind.INTEGER),
            ("ParentID", StorageKind.INTEGER),
            ("taken", StorageKind.TEXT),
            ("value", StorageKind.REAL),
            ("count", StorageKind.INTEGER),
            ("raw", StorageKind.BLOB),
            ("tags", StorageKind.BLOB),
        ]
        assert table.describe_schema()[0].primary_key

    def test_create_drop_existing(self, notes):
        """Test recreating a table discards its rows."""
        assert notes.create(drop_existing=True)
        assert notes.count() == 0

    def test_invalid_schema_rejected(self, store):
        """Test that a table cannot be built on an invalid schema."""
        class NeedsArgument(Storable):
            def __init__(self, title):
                self.title = title

        schema = SchemaIntrospector().inspect(NeedsArgument)

        with pytest.raises(SchemaError):
            EntityTable(schema, store)
