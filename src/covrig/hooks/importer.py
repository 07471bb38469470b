"""Import-system hook that routes module source through a provider.

The finder sits at the front of ``sys.meta_path``.  For every module that
resolves to a plain ``.py`` source file it swaps the loader for an
:class:`InstrumentingLoader`.  Files the provider accepts have their decoded
source handed to it before compiling; everything else, and every module that
is not plain source (extension modules, bytecode-only modules, namespace
packages), loads normally.

Instrumented modules find ``__covrig_register__`` in their own globals.  Code
that :mod:`runpy` executes in ``__main__`` (``python -m``) never goes through
``exec_module``, so the hook also publishes the name in :mod:`builtins`.
"""

from __future__ import annotations

import builtins
import importlib.machinery
import importlib.util
import logging
import sys
from importlib.abc import MetaPathFinder
from typing import TYPE_CHECKING, Protocol

from covrig.accumulator import REGISTER_NAME
from covrig.instrument.ast_engine import compile_instrumented

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import CodeType, ModuleType

    from covrig.accumulator import CoverageAccumulator

logger = logging.getLogger(__name__)

_BOM = "\ufeff"


class SourceProvider(Protocol):
    """Supplies the text that is actually compiled for a module."""

    def accepts(self, filename: str) -> bool:
        """Whether *filename* should be handed to :meth:`provide` at all."""

    def provide(self, source: str, filename: str) -> str:
        """Return *source* unchanged or a rewritten version of it."""


def strip_bom(source: str) -> str:
    return source[1:] if source.startswith(_BOM) else source


class InstrumentingLoader(importlib.machinery.SourceFileLoader):
    """Source loader that compiles whatever the provider returns."""

    def __init__(
        self,
        fullname: str,
        path: str,
        provider: SourceProvider,
        accumulator: CoverageAccumulator,
    ) -> None:
        super().__init__(fullname, path)
        self._provider = provider
        self._accumulator = accumulator

    def get_code(self, fullname: str) -> CodeType:
        path = self.get_filename(fullname)
        if not self._provider.accepts(path):
            # Untouched modules keep the regular bytecode cache.
            return super().get_code(fullname)
        source = strip_bom(importlib.util.decode_source(self.get_data(path)))
        provided = self._provider.provide(source, path)
        if provided is source:
            return compile(source, path, "exec", dont_inherit=True)
        return compile_instrumented(provided, path)

    def exec_module(self, module: ModuleType) -> None:
        code = self.get_code(module.__name__)
        if REGISTER_NAME in code.co_names:
            module.__dict__.setdefault(REGISTER_NAME, self._accumulator.register)
        exec(code, module.__dict__)  # noqa: S102


class InstrumentingFinder(MetaPathFinder):
    """Meta-path finder that installs :class:`InstrumentingLoader` on source modules."""

    def __init__(self, provider: SourceProvider, accumulator: CoverageAccumulator) -> None:
        self.provider = provider
        self.accumulator = accumulator

    def find_spec(
        self,
        fullname: str,
        path: Sequence[str] | None = None,
        target: ModuleType | None = None,
    ) -> importlib.machinery.ModuleSpec | None:
        spec = importlib.machinery.PathFinder.find_spec(fullname, path, target)
        if spec is None or spec.origin is None:
            return None
        if type(spec.loader) is not importlib.machinery.SourceFileLoader:
            return None
        spec.loader = InstrumentingLoader(fullname, spec.origin, self.provider, self.accumulator)
        return spec

    def invalidate_caches(self) -> None:
        importlib.machinery.PathFinder.invalidate_caches()


def install_import_hook(
    provider: SourceProvider, accumulator: CoverageAccumulator
) -> InstrumentingFinder:
    """Put an :class:`InstrumentingFinder` at the front of ``sys.meta_path``."""
    finder = InstrumentingFinder(provider, accumulator)
    sys.meta_path.insert(0, finder)
    setattr(builtins, REGISTER_NAME, accumulator.register)
    logger.debug("Installed covrig import hook")
    return finder
