"""Example usage of the typed_rows library."""

from typing import Annotated

from typed_rows import Column, EntityList, SQLiteStore, Storable, parse_filter, register


class Song(Storable):
    title: Annotated[str, Column()] = ""
    seconds: Annotated[int, Column()] = 0

    def __init__(self, title: str = "", seconds: int = 0) -> None:
        self.title = title
        self.seconds = seconds


class Album(EntityList[Song]):
    name: Annotated[str, Column()] = ""


with SQLiteStore.open(":memory:") as store:
    registry = register(store, Album)

    album = Album([Song("Intro", 95), Song("Theme", 241), Song("Outro", 180)])
    album.name = "Demo"
    registry.save(album)
    print(f"Saved album {album.id} with songs {[song.id for song in album]}")

    loaded = registry.get(Album, album.id)
    print(f"Loaded {loaded.name}: {[song.title for song in loaded]}")

    long_songs = registry.get_where(Song, parse_filter("seconds > 120"))
    print(f"Songs over two minutes: {[song.title for song in long_songs]}")

    registry.delete(loaded)
    print(f"Songs left: {registry.count(Song)}")
