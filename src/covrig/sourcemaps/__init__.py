"""Source map discovery, storage and coverage remapping."""

from covrig.sourcemaps.discovery import discover, from_map_file_source, from_source
from covrig.sourcemaps.store import (
    MAP_EXT,
    HashedMapIndex,
    LoadedSourceMap,
    SourceMapCache,
    parse_source_map,
)

__all__ = [
    "MAP_EXT",
    "HashedMapIndex",
    "LoadedSourceMap",
    "SourceMapCache",
    "discover",
    "from_map_file_source",
    "from_source",
    "parse_source_map",
]
