"""Default instrumentation engine built on :mod:`ast`.

Every statement is preceded by a statement counter, every function body
starts with a function counter and both arms of each ``if`` start with a
branch counter.  The counters live in an Istanbul-style record::

    {
        "path": "pkg/mod.py",
        "statementMap": {"0": {"start": {"line": 1, "column": 0}, "end": {...}}},
        "fnMap": {"0": {"name": "f", "line": 3, "loc": {...}}},
        "branchMap": {"0": {"line": 5, "type": "if", "loc": {...}, "locations": [...]}},
        "s": {"0": 0}, "f": {"0": 0}, "b": {"0": [0, 0]},
    }

which the module registers through ``__covrig_register__`` before anything
else runs.  Locations always refer to the original source.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from covrig.accumulator import COUNTERS_NAME, REGISTER_NAME

if TYPE_CHECKING:
    from types import CodeType

ENGINE_VERSION = "1.0"

HEADER_PREFIX = f"{COUNTERS_NAME} = {REGISTER_NAME}("

_FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)
_BODY_FIELDS = ("body", "orelse", "finalbody")


def _loc(first: ast.AST, last: ast.AST | None = None) -> dict[str, dict[str, int]]:
    last = last or first
    return {
        "start": {"line": first.lineno, "column": first.col_offset},
        "end": {
            "line": last.end_lineno or last.lineno,
            "column": last.end_col_offset or 0,
        },
    }


def _is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def _is_future_import(stmt: ast.stmt) -> bool:
    return isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__"


def _leading_count(body: list[ast.stmt], *, module: bool) -> int:
    """Number of leading statements that must stay first (docstring, futures)."""
    count = 0
    if body and _is_docstring(body[0]):
        count = 1
    if module:
        while count < len(body) and _is_future_import(body[count]):
            count += 1
    return count


class _RecordBuilder:
    """Collects locations and inserts counters for one module."""

    def __init__(self, rel_file: str) -> None:
        self.record: dict[str, Any] = {
            "path": rel_file,
            "statementMap": {},
            "fnMap": {},
            "branchMap": {},
            "s": {},
            "f": {},
            "b": {},
        }

    @staticmethod
    def _bump(*keys: str | int) -> ast.stmt:
        subscript = "".join(f"[{key!r}]" for key in keys)
        return ast.parse(f"{COUNTERS_NAME}{subscript} += 1").body[0]

    def _new_statement(self, stmt: ast.stmt) -> str:
        key = str(len(self.record["statementMap"]))
        self.record["statementMap"][key] = _loc(stmt)
        self.record["s"][key] = 0
        return key

    def _new_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
        key = str(len(self.record["fnMap"]))
        self.record["fnMap"][key] = {"name": node.name, "line": node.lineno, "loc": _loc(node)}
        self.record["f"][key] = 0
        return key

    def _new_branch(self, node: ast.If) -> str:
        key = str(len(self.record["branchMap"]))
        else_loc = _loc(node.orelse[0], node.orelse[-1]) if node.orelse else _loc(node)
        self.record["branchMap"][key] = {
            "line": node.lineno,
            "type": "if",
            "loc": _loc(node),
            "locations": [_loc(node.body[0], node.body[-1]), else_loc],
        }
        self.record["b"][key] = [0, 0]
        return key

    def instrument_module(self, body: list[ast.stmt]) -> tuple[list[ast.stmt], int]:
        """Return the instrumented body and the index where the header belongs."""
        lead = _leading_count(body, module=True)
        return body[:lead] + self._block(body[lead:]), lead

    def _block(self, stmts: list[ast.stmt]) -> list[ast.stmt]:
        out: list[ast.stmt] = []
        for stmt in stmts:
            out.append(self._bump("s", self._new_statement(stmt)))
            out.append(self._visit(stmt))
        return out

    def _visit(self, stmt: ast.stmt) -> ast.stmt:
        if isinstance(stmt, _FUNCTION_NODES):
            key = self._new_function(stmt)
            lead = _leading_count(stmt.body, module=False)
            stmt.body = [
                *stmt.body[:lead],
                self._bump("f", key),
                *self._block(stmt.body[lead:]),
            ]
            return stmt

        if isinstance(stmt, ast.ClassDef):
            lead = _leading_count(stmt.body, module=False)
            stmt.body = stmt.body[:lead] + self._block(stmt.body[lead:])
            return stmt

        if isinstance(stmt, ast.If):
            key = self._new_branch(stmt)
            stmt.body = [self._bump("b", key, 0), *self._block(stmt.body)]
            stmt.orelse = [self._bump("b", key, 1), *self._block(stmt.orelse)]
            return stmt

        for field in _BODY_FIELDS:
            block = getattr(stmt, field, None)
            if isinstance(block, list) and block:
                setattr(stmt, field, self._block(block))
        for handler in getattr(stmt, "handlers", None) or ():
            handler.body = self._block(handler.body)
        for case in getattr(stmt, "cases", None) or ():
            case.body = self._block(case.body)
        return stmt


class AstInstrumenter:
    """Statement, function and ``if``-branch counters for Python source."""

    version = ENGINE_VERSION

    def instrument(self, source: str, rel_file: str) -> str:
        tree = ast.parse(source, filename=rel_file)
        builder = _RecordBuilder(rel_file)
        body, header_at = builder.instrument_module(tree.body)
        header = ast.parse(f"{HEADER_PREFIX}{rel_file!r}, {builder.record!r})").body[0]
        body.insert(header_at, header)
        tree.body = body
        ast.fix_missing_locations(tree)
        return ast.unparse(tree) + "\n"

    def preamble(self, instrumented: str, rel_file: str) -> str:
        for line in instrumented.splitlines():
            if line.startswith(HEADER_PREFIX):
                return line + "\n"
        msg = f"{rel_file} has no covrig registration header"
        raise ValueError(msg)


def _header_record(body: list[ast.stmt]) -> dict[str, Any] | None:
    for stmt in body:
        if (
            isinstance(stmt, ast.Assign)
            and isinstance(stmt.value, ast.Call)
            and isinstance(stmt.value.func, ast.Name)
            and stmt.value.func.id == REGISTER_NAME
            and len(stmt.value.args) == 2
        ):
            return ast.literal_eval(stmt.value.args[1])
    return None


def _statement_key(stmt: ast.stmt) -> str | None:
    """Key of a ``__covrig_cov__['s'][key] += 1`` counter, else ``None``."""
    if not isinstance(stmt, ast.AugAssign) or not isinstance(stmt.target, ast.Subscript):
        return None
    inner = stmt.target.value
    if (
        isinstance(inner, ast.Subscript)
        and isinstance(inner.value, ast.Name)
        and inner.value.id == COUNTERS_NAME
        and isinstance(inner.slice, ast.Constant)
        and inner.slice.value == "s"
        and isinstance(stmt.target.slice, ast.Constant)
    ):
        return stmt.target.slice.value
    return None


def _child_blocks(stmt: ast.stmt) -> list[list[ast.stmt]]:
    blocks = [getattr(stmt, field, None) for field in _BODY_FIELDS]
    blocks += [handler.body for handler in getattr(stmt, "handlers", None) or ()]
    blocks += [case.body for case in getattr(stmt, "cases", None) or ()]
    return [block for block in blocks if isinstance(block, list)]


def _restore_lines(stmts: list[ast.stmt], statement_map: dict[str, Any]) -> None:
    # Outer statements move first; their bodies are then corrected one by one.
    for index, stmt in enumerate(stmts):
        key = _statement_key(stmt)
        if key is not None and key in statement_map and index + 1 < len(stmts):
            line = statement_map[key]["start"]["line"]
            ast.increment_lineno(stmt, line - stmt.lineno)
            ast.increment_lineno(stmts[index + 1], line - stmts[index + 1].lineno)
        for block in _child_blocks(stmt):
            _restore_lines(block, statement_map)


def compile_instrumented(source: str, filename: str) -> CodeType:
    """Compile instrumented *source* with each statement on its original line.

    Tracebacks and :mod:`linecache` then agree with the file on disk.  Text
    without a registration header compiles as is.
    """
    tree = ast.parse(source, filename=filename)
    record = _header_record(tree.body)
    if record:
        _restore_lines(tree.body, record.get("statementMap", {}))
    return compile(tree, filename, "exec", dont_inherit=True)
