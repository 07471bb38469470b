"""The covrig orchestrator.

:class:`Covrig` ties the pieces together for one process: it classifies
files, instruments them through the content-addressed transform cache,
collects counters in a :class:`~covrig.accumulator.CoverageAccumulator`,
flushes them to ``<temp_dir>/<pid>.json`` on exit and, at report time, reads
every process's snapshot back with its source maps applied.
"""

from __future__ import annotations

import glob
import importlib
import logging
import os
import runpy
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from covrig import __version__
from covrig.accumulator import REGISTER_NAME, CoverageAccumulator
from covrig.config import ENV_CWD, CovrigConfig
from covrig.hooks.importer import install_import_hook, strip_bom
from covrig.hooks.shutdown import ShutdownHooks
from covrig.instrument import AstInstrumenter
from covrig.matching import GlobClassifier
from covrig.reporting import Collector, Reporter
from covrig.snapshots import list_snapshots, read_snapshot, write_snapshot
from covrig.sourcemaps import HashedMapIndex, SourceMapCache, discover
from covrig.sourcemaps.store import MAP_EXT
from covrig.transform import (
    CachingTransform,
    TransformFn,
    TransformMetadata,
    content_hash,
    make_salt,
    write_atomic,
)

if TYPE_CHECKING:
    from rich.console import Console

    from covrig.instrument import Instrumenter

logger = logging.getLogger(__name__)

SOURCE_GLOB = "**/*.py"


@dataclass
class FileRecord:
    """One source file as seen by :meth:`Covrig.add_file`."""

    absolute_path: str
    relative_path: str
    raw_source: str
    instrumented: bool
    content: str


class Covrig:
    """Coverage orchestration for one process.

    Args:
        config: Loaded settings (see :func:`covrig.config.load_config`).
        instrumenter: Engine override; defaults to :class:`AstInstrumenter`.
        accumulator: Counter store override, mostly for tests.
        shutdown_hooks: Hook registry override, mostly for tests.
    """

    def __init__(
        self,
        config: CovrigConfig,
        *,
        instrumenter: Instrumenter | None = None,
        accumulator: CoverageAccumulator | None = None,
        shutdown_hooks: ShutdownHooks | None = None,
    ) -> None:
        self.config = config
        self.cwd = Path(config.cwd).resolve()
        self._instrumenter = instrumenter
        self.accumulator = accumulator if accumulator is not None else CoverageAccumulator()
        self.shutdown_hooks = shutdown_hooks if shutdown_hooks is not None else ShutdownHooks()

        self.classifier = GlobClassifier(config.include, config.exclude)
        self.enable_cache = config.enable_cache
        self.require = list(config.require)
        self.reporter = list(config.reporter)

        self._create_datastore_directories()

        self.salt = make_salt(self.instrumenter().version, __version__)
        self.hash_cache: dict[str, str] = {}
        self.source_map_cache = SourceMapCache(self.cwd)
        self.loaded_maps = HashedMapIndex(self.cache_directory())
        self.transform = self._create_transform()

    # ── Directories ─────────────────────────────────────────────

    def temp_directory(self) -> Path:
        return (self.cwd / self.config.temp_directory).resolve()

    def cache_directory(self) -> Path:
        return (self.cwd / self.config.cache_directory).resolve()

    def _create_datastore_directories(self) -> None:
        # Failure propagates.
        self.temp_directory().mkdir(parents=True, exist_ok=True)

    def cleanup(self) -> None:
        """Remove the snapshot directory, unless this is a covered child process."""
        if not os.environ.get(ENV_CWD):
            shutil.rmtree(self.temp_directory(), ignore_errors=True)

    def clear_cache(self) -> None:
        """Delete every cached transform; entries are regenerated on demand."""
        self.transform.clear()

    # ── Instrumentation ─────────────────────────────────────────

    def instrumenter(self) -> Instrumenter:
        if self._instrumenter is None:
            self._instrumenter = AstInstrumenter()
        return self._instrumenter

    def _create_transform(self) -> CachingTransform:
        return CachingTransform(
            self._transform_factory,
            cache_dir=self.cache_directory(),
            salt=self.salt,
            hash_fn=self._hash,
            disable_cache=not self.enable_cache,
        )

    def _hash(self, source: str, metadata: TransformMetadata, salt: str) -> str:
        key = content_hash(source, metadata.filename, salt)
        self.hash_cache[metadata.rel_file] = key
        return key

    def _transform_factory(self, cache_dir: Path) -> TransformFn:
        instrumenter = self.instrumenter()

        def transform(source: str, metadata: TransformMetadata, key: str | None) -> str:
            source_map = discover(source, metadata.filename)
            if source_map:
                if key:
                    write_atomic(cache_dir / f"{key}{MAP_EXT}", source_map)
                else:
                    self.source_map_cache.add_map(metadata.rel_file, source_map)
            return instrumenter.instrument(source, metadata.rel_file)

        return transform

    def relative_path(self, filename: str | Path) -> str:
        return Path(os.path.relpath(filename, self.cwd)).as_posix()

    def should_instrument_file(self, filename: str, rel_file: str) -> bool:
        return self.classifier.should_instrument(str(filename), rel_file)

    def _maybe_instrument_source(self, source: str, filename: str, rel_file: str) -> str | None:
        if not self.should_instrument_file(filename, rel_file):
            return None
        return self.transform(source, TransformMetadata(filename=filename, rel_file=rel_file))

    def accepts(self, filename: str) -> bool:
        """Import-hook check made before a module's source is read."""
        absolute = str(Path(filename).resolve())
        return self.should_instrument_file(absolute, self.relative_path(absolute))

    def provide(self, source: str, filename: str) -> str:
        """Source provider used by the import hook."""
        absolute = str(Path(filename).resolve())
        instrumented = self._maybe_instrument_source(
            source, absolute, self.relative_path(absolute)
        )
        return source if instrumented is None else instrumented

    def add_file(self, filename: str | Path) -> FileRecord:
        """Read *filename* and instrument it if the classifier allows."""
        absolute = str(Path(self.cwd, filename).resolve())
        rel_file = self.relative_path(absolute)
        source = strip_bom(Path(absolute).read_text(encoding="utf-8"))
        instrumented = self._maybe_instrument_source(source, absolute, rel_file)
        return FileRecord(
            absolute_path=absolute,
            relative_path=rel_file,
            raw_source=source,
            instrumented=instrumented is not None,
            content=source if instrumented is None else instrumented,
        )

    def add_all_files(self) -> None:
        """Register every matching file with zero counts, then flush.

        Only each file's preamble is executed, so files no test imports still
        show up in the report.
        """
        instrumenter = self.instrumenter()
        for rel_name in sorted(glob.glob(SOURCE_GLOB, root_dir=self.cwd, recursive=True)):
            rel_name = Path(rel_name).as_posix()
            absolute = str(self.cwd / rel_name)
            if not os.path.isfile(absolute) or not self.should_instrument_file(
                absolute, rel_name
            ):
                continue
            record = self.add_file(absolute)
            if record.instrumented:
                preamble = instrumenter.preamble(record.content, record.relative_path)
                namespace: dict[str, Any] = {REGISTER_NAME: self.accumulator.register}
                exec(compile(preamble, absolute, "exec", dont_inherit=True), namespace)
        self.write_coverage_file()

    # ── Process wiring ──────────────────────────────────────────

    def wrap(self) -> Covrig:
        """Instrument everything this process imports from now on."""
        self._wrap_require()
        self._wrap_exit()
        self._load_additional_modules()
        return self

    def _wrap_require(self) -> None:
        install_import_hook(self, self.accumulator)

    def _wrap_exit(self) -> None:
        self.shutdown_hooks.register(self.write_coverage_file, always_last=True)
        # A forked child starts counting from zero under its own pid.
        self.shutdown_hooks.register_fork(self.accumulator.reset)
        self.shutdown_hooks.install()

    def _load_additional_modules(self) -> None:
        for name in self.require:
            # A script relative to the project first, then an importable module.
            script = self.cwd / name
            if script.is_file():
                runpy.run_path(str(script))
            else:
                importlib.import_module(name)

    # ── Persistence ─────────────────────────────────────────────

    def write_coverage_file(self) -> Path | None:
        """Flush this process's counters to ``<temp_dir>/<pid>.json``.

        Safe to call repeatedly; each call overwrites the previous snapshot.
        """
        if not self.accumulator:
            return None
        coverage = self.accumulator.snapshot()

        if self.enable_cache:
            for rel_file, record in coverage.items():
                key = self.hash_cache.get(rel_file)
                if key:
                    record["contentHash"] = key
        else:
            self.source_map_cache.apply_source_maps(coverage)

        return write_snapshot(self.temp_directory(), coverage)

    # ── Reporting ───────────────────────────────────────────────

    def load_reports(self) -> list[dict[str, Any]]:
        """Read every snapshot, with source maps resolved and applied.

        Records without a ``contentHash`` were already remapped when their
        process flushed, so only hash-resolved maps are applied here.
        """
        reports = []
        for path in list_snapshots(self.temp_directory()):
            report = read_snapshot(path)
            maps = SourceMapCache(self.cwd)
            for rel_file, record in report.items():
                key = record.get("contentHash") if isinstance(record, dict) else None
                if not key:
                    continue
                loaded = self.loaded_maps.get(key)
                if loaded is not None:
                    maps.add_map(rel_file, loaded)
            maps.apply_source_maps(report)
            reports.append(report)
        return reports

    def report(
        self,
        reporters: list[str] | None = None,
        *,
        collector: Collector | None = None,
        console: Console | None = None,
    ) -> Collector:
        """Merge every snapshot and render it with *reporters*."""
        collector = collector if collector is not None else Collector()
        for report in self.load_reports():
            collector.add(report)

        reporter = Reporter(self.cwd / self.config.report_dir, console=console)
        for name in reporters or self.reporter:
            reporter.add(name)
        reporter.write(collector)
        return collector
