"""Process-level hooks: module loading and shutdown."""

from covrig.hooks.importer import (
    InstrumentingFinder,
    InstrumentingLoader,
    SourceProvider,
    install_import_hook,
    strip_bom,
)
from covrig.hooks.shutdown import DEFAULT_SIGNALS, ShutdownHooks

__all__ = [
    "DEFAULT_SIGNALS",
    "InstrumentingFinder",
    "InstrumentingLoader",
    "ShutdownHooks",
    "SourceProvider",
    "install_import_hook",
    "strip_bom",
]
