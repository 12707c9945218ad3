"""Tests for the collection registry and cascading persistence."""

from dataclasses import dataclass
from typing import Annotated

import pytest

from typed_rows import (
    INVALID_ID,
    CollectionRegistry,
    Column,
    Comparison,
    EntityList,
    InvalidPredicateError,
    Predicate,
    SchemaError,
    SerializedEntity,
    SQLiteStore,
    Storable,
    UnregisteredTypeError,
    all_of,
    register,
)
from typed_rows.predicate import equals_id


class Song(Storable):
    title: Annotated[str, Column()] = ""


class Album(EntityList[Song]):
    name: Annotated[str, Column()] = ""


class Shelf(EntityList[Album]):
    label: Annotated[str, Column()] = ""


class Unparameterized(EntityList):
    pass


class Note(Storable):
    title: Annotated[str, Column()] = ""
    done: Annotated[bool, Column()] = False


class SpecialNote(Note):
    pass


class Gadget:
    pass


class Broken(Storable):
    gadget: Annotated[Gadget, Column()] = None


class BrokenSong(Storable):
    gadget: Annotated[Gadget, Column()] = None


class BrokenAlbum(EntityList[BrokenSong]):
    pass


@dataclass
class Settings:
    theme: str
    columns: int


class SavedSettings(SerializedEntity[Settings]):
    pass


def make_song(title):
    song = Song()
    song.title = title
    return song


def make_album(name, *titles):
    album = Album([make_song(title) for title in titles])
    album.name = name
    return album


@pytest.fixture
def store():
    with SQLiteStore() as store:
        yield store


@pytest.fixture
def registry(store):
    return register(store, Album, Note, SavedSettings)


class TestRegistration:
    """Tests for registering types."""

    def test_child_type_registered(self, registry):
        """Test that registering a collection registers its child type."""
        assert registry.types == [Song, Album, Note, SavedSettings]
        assert Song in registry
        assert registry.has_table(Song)
        assert registry.has_table(Album)

    def test_broken_type_is_isolated(self, store):
        """Test that a failing type is skipped and the others stay usable."""
        registry = register(store, Broken, Note)
        note = Note()
        note.title = "ok"

        assert Broken not in registry
        assert isinstance(registry.errors[Broken], SchemaError)
        assert registry.save(note)
        assert registry.count(Note) == 1

    def test_register_raises_for_one_type(self, store):
        """Test that register() raises for a type that cannot be persisted."""
        registry = CollectionRegistry(store)

        with pytest.raises(SchemaError):
            registry.register(Broken)

    def test_broken_child_rejects_collection(self, store):
        """Test that a collection whose child type fails is not registered."""
        registry = CollectionRegistry(store, [BrokenAlbum])

        assert BrokenAlbum not in registry
        assert BrokenAlbum in registry.errors

    def test_collection_without_child_type(self, store):
        """Test that a collection with no child type is rejected at registration."""
        registry = CollectionRegistry(store, [Unparameterized, Note])

        assert Unparameterized not in registry
        assert isinstance(registry.errors[Unparameterized], SchemaError)
        assert Note in registry

    def test_register_is_idempotent(self, registry):
        """Test that registering twice returns the same table."""
        assert registry.register(Note) is registry.table_for(Note)

    def test_relation_name_clash(self, store):
        """Test that two classes cannot share a relation name."""
        registry = CollectionRegistry(store, [Note])
        clash = type("Note", (Storable,), {})

        with pytest.raises(SchemaError, match="already used"):
            registry.register(clash)

    def test_unregistered_type(self, registry):
        """Test that an unregistered class raises UnregisteredTypeError."""
        with pytest.raises(UnregisteredTypeError, match="Broken"):
            registry.get_all(Broken)
        with pytest.raises(KeyError):
            registry.save(Broken())

    def test_subclass_uses_base_table(self, registry):
        """Test that an entity of a subclass is saved in its base table."""
        note = SpecialNote()
        note.title = "special"

        assert registry.save(note)
        assert registry.get(Note, note.id).title == "special"

    def test_columns_for(self, registry):
        """Test describing a registered type."""
        assert [c.name for c in registry.columns_for(Album)] == ["ID", "ParentID", "name"]

    def test_create_tables_drop_existing(self, registry):
        """Test recreating every relation."""
        registry.save(make_album("a", "x"))

        assert registry.create_tables(drop_existing=True)
        assert registry.count(Album) == 0
        assert registry.count(Song) == 0

    def test_register_without_creating(self, store):
        """Test building a registry without creating relations."""
        registry = register(store, Note, create_tables=False)

        assert Note in registry
        assert not registry.has_table(Note)


class TestCascadingSave:
    """Tests for saving collections."""

    def test_children_point_at_parent(self, registry):
        """Test that after saving, every child's related_id is the parent id."""
        album = make_album("Demo", "a", "b", "c")

        assert registry.save(album)

        assert album.id == 1
        assert [song.id for song in album] == [1, 2, 3]
        assert all(song.related_id == album.id for song in album)
        assert registry.count(Song) == 3

    def test_second_save_updates_children(self, registry):
        """Test that saving again updates the existing child rows."""
        album = make_album("Demo", "a")
        registry.save(album)
        album[0].title = "renamed"
        album.append(make_song("new"))

        assert registry.save(album)

        assert registry.count(Song) == 2
        titles = [song.title for song in registry.get(Album, album.id)]
        assert titles == ["renamed", "new"]

    def test_failed_parent_skips_children(self, store):
        """Test that children are not saved when the parent save fails."""
        registry = register(store, Album, create_tables=False)
        registry.table_for(Song).create()
        album = make_album("Demo", "a", "b")

        assert not registry.save(album)

        assert all(song.id == INVALID_ID for song in album)
        assert registry.count(Song) == 0

    def test_failed_child_fails_save(self, registry):
        """Test that one failing child makes the cascade fail."""
        album = make_album("Demo", "a", "b")
        ghost = album[0]
        ghost.id = 99

        assert not registry.save(album)

        assert album[1].id != INVALID_ID
        assert registry.count(Song) == 1

    def test_save_all(self, registry):
        """Test saving entities of different types together."""
        note = Note()
        album = make_album("Demo", "a")

        assert registry.save_all([note, album])
        assert note.id == 1
        assert album[0].related_id == album.id

    def test_nested_collections(self, store):
        """Test that collections of collections cascade all the way down."""
        registry = register(store, Shelf)
        shelf = Shelf([make_album("one", "a", "b"), make_album("two", "c")])
        shelf.label = "top"

        assert registry.save(shelf)
        assert registry.types == [Song, Album, Shelf]

        loaded = registry.get(Shelf, shelf.id)
        assert loaded.label == "top"
        assert [album.name for album in loaded] == ["one", "two"]
        assert [[song.title for song in album] for album in loaded] == [["a", "b"], ["c"]]
        assert all(album.related_id == loaded.id for album in loaded)


class TestCascadingLoad:
    """Tests for loading collections."""

    def test_get_loads_children(self, registry):
        """Test that get attaches the children of a collection."""
        album = make_album("Demo", "a", "b")
        registry.save(album)

        loaded = registry.get(Album, album.id)

        assert loaded.name == "Demo"
        assert [song.title for song in loaded] == ["a", "b"]
        assert all(song.related_id == loaded.id for song in loaded)

    def test_get_all_and_get_where(self, registry):
        """Test that every loaded collection receives only its own children."""
        registry.save_all([make_album("one", "a"), make_album("two", "b", "c")])

        everything = registry.get_all(Album)
        found = registry.get_where(Album, all_of(Comparison.equal("name", "two")))

        assert [len(album) for album in everything] == [1, 2]
        assert len(found) == 1
        assert [song.title for song in found[0]] == ["b", "c"]

    def test_get_missing(self, registry):
        """Test that an unknown identity returns None."""
        assert registry.get(Album, 5) is None

    def test_empty_predicate_rejected(self, registry):
        """Test that get_where refuses an empty predicate."""
        with pytest.raises(InvalidPredicateError):
            registry.get_where(Note, Predicate())

    def test_serialized_entity(self, registry):
        """Test storing a single value through a serialized entity."""
        saved = SavedSettings(Settings("dark", 80))
        registry.save(saved)

        assert registry.get(SavedSettings, saved.id).content == Settings("dark", 80)


class TestCascadingDelete:
    """Tests for deleting collections."""

    def test_delete_removes_children(self, registry):
        """Test that deleting a collection deletes its n children."""
        album = make_album("Demo", "a", "b", "c")
        registry.save(album)

        assert registry.delete(album)

        assert registry.count(Album) == 0
        assert registry.count(Song) == 0
        assert album.id == INVALID_ID
        assert all(song.id == INVALID_ID for song in album)

    def test_missing_child_fails_delete(self, registry, store):
        """Test that deleting fewer children than held is an overall failure."""
        album = make_album("Demo", "a", "b", "c")
        registry.save(album)
        store.delete("Song", equals_id(album[1].id))

        assert not registry.delete(album)

        assert registry.count(Song) == 0
        assert registry.count(Album) == 0

    def test_delete_unsaved_collection(self, registry):
        """Test that deleting a transient collection fails."""
        assert not registry.delete(make_album("Demo", "a"))

    def test_delete_all(self, registry):
        """Test deleting several entities, continuing after a failure."""
        saved = Note()
        registry.save(saved)

        assert not registry.delete_all([Note(), saved])
        assert registry.count(Note) == 0
