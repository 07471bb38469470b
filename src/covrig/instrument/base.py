"""Interface between covrig and an instrumentation engine."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Instrumenter(Protocol):
    """Rewrites source so that running it updates coverage counters.

    Implementations must be deterministic: identical ``(source, rel_file)``
    input produces identical output.

    Instrumented code looks up ``__covrig_register__`` in its module globals
    (falling back to :mod:`builtins`) and registers its coverage record
    through it before counting.
    """

    @property
    def version(self) -> str:
        """Engine version; part of the cache salt."""

    def instrument(self, source: str, rel_file: str) -> str:
        """Return the instrumented form of *source*.

        Raises:
            SyntaxError: If *source* cannot be parsed.
        """

    def preamble(self, instrumented: str, rel_file: str) -> str:
        """Return only the part of *instrumented* that registers the record.

        Executing the preamble makes a file show up with zero counts without
        running any of its code.
        """
