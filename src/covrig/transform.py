"""Content-addressed, disk-backed cache for instrumented source.

Entries are keyed by a hash of the source text, the file name and a salt
that folds in the instrumenter and covrig versions.  Because the key is a
pure function of its inputs, entries never need invalidation: a changed file
or a new engine version simply produces a new key.  Two processes racing to
write the same key write identical bytes.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_EXT = ".py"


@dataclass(frozen=True, slots=True)
class TransformMetadata:
    """Identity of the file being transformed."""

    filename: str
    """Absolute path of the source file."""

    rel_file: str
    """Path relative to the project root, ``/``-separated."""


class TransformFn(Protocol):
    def __call__(self, source: str, metadata: TransformMetadata, content_hash: str | None) -> str:
        """Return instrumented text; *content_hash* is ``None`` when caching is off."""


TransformFactory = Callable[[Path], TransformFn]
HashFn = Callable[[str, TransformMetadata, str], str]


def content_hash(source: str, filename: str, salt: str) -> str:
    """Compute the cache key for *source* loaded from *filename*."""
    digest = hashlib.sha256()
    for part in (source, filename, salt):
        digest.update(part.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


def make_salt(engine_version: str, tool_version: str) -> str:
    """Build the salt mixed into every cache key.

    Upgrading either the instrumenter or covrig changes the salt and thereby
    every key, so stale entries are never served.
    """
    return json.dumps({"covrig": tool_version, "instrumenter": engine_version}, sort_keys=True)


def _default_hash(source: str, metadata: TransformMetadata, salt: str) -> str:
    return content_hash(source, metadata.filename, salt)


class CachingTransform:
    """Wrap a transform factory with a content-addressed disk cache.

    Args:
        factory: Called once, lazily, with the cache directory; returns the
            function that does the real work.
        cache_dir: Directory holding ``<hash><ext>`` entries.
        salt: Versioning salt mixed into every key.
        hash_fn: Key function; called for every transform, cached or not.
        disable_cache: Skip disk lookups and writes entirely.
        ext: Extension of cached entries.
    """

    def __init__(
        self,
        factory: TransformFactory,
        *,
        cache_dir: Path,
        salt: str,
        hash_fn: HashFn = _default_hash,
        disable_cache: bool = False,
        ext: str = DEFAULT_EXT,
    ) -> None:
        self._factory = factory
        self._transform: TransformFn | None = None
        self.cache_dir = cache_dir
        self.salt = salt
        self._hash_fn = hash_fn
        self.disable_cache = disable_cache
        self.ext = ext

        if not disable_cache:
            try:
                cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.warning("Cannot create cache directory %s: %s", cache_dir, exc)

    def _get_transform(self) -> TransformFn:
        if self._transform is None:
            self._transform = self._factory(self.cache_dir)
        return self._transform

    def entry_path(self, key: str) -> Path:
        """Return the path of the cache entry for *key*."""
        return self.cache_dir / f"{key}{self.ext}"

    def __call__(self, source: str, metadata: TransformMetadata) -> str:
        key = self._hash_fn(source, metadata, self.salt)

        if self.disable_cache:
            return self._get_transform()(source, metadata, None)

        entry = self.entry_path(key)
        try:
            return entry.read_text(encoding="utf-8")
        except FileNotFoundError:
            pass
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", entry, exc)

        result = self._get_transform()(source, metadata, key)
        write_atomic(entry, result)
        return result

    def clear(self) -> None:
        """Delete the whole cache directory."""
        shutil.rmtree(self.cache_dir, ignore_errors=True)


def write_atomic(path: Path, text: str) -> bool:
    """Write *text* to *path* via a temp file and rename.

    Returns False (after logging) instead of raising; callers use this for
    cache artefacts that can always be regenerated.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        logger.warning("Failed to write cache entry %s: %s", path, exc)
        return False
    return True
