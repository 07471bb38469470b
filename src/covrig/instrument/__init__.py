"""Instrumentation engines."""

from covrig.instrument.ast_engine import (
    ENGINE_VERSION,
    HEADER_PREFIX,
    AstInstrumenter,
    compile_instrumented,
)
from covrig.instrument.base import Instrumenter

__all__ = [
    "ENGINE_VERSION",
    "HEADER_PREFIX",
    "AstInstrumenter",
    "Instrumenter",
    "compile_instrumented",
]
