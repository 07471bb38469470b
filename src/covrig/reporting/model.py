"""Summary coverage model built from Istanbul-style file records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class LineCoverage:
    """Coverage data for a single line of code."""

    line_number: int
    execution_count: int

    @property
    def is_covered(self) -> bool:
        """Return True if this line was executed at least once."""
        return self.execution_count > 0


@dataclass
class FunctionCoverage:
    """Coverage data for a single function."""

    name: str
    line_number: int
    execution_count: int

    @property
    def is_covered(self) -> bool:
        """Return True if this function was executed at least once."""
        return self.execution_count > 0


@dataclass
class BranchCoverage:
    """Coverage data for a single branch point (every arm of one ``if``)."""

    line_number: int
    branch_id: int
    taken_count: int
    total_count: int

    @property
    def coverage_percentage(self) -> float:
        """Return branch coverage as a percentage (0.0-100.0)."""
        if self.total_count == 0:
            return 100.0
        return (self.taken_count / self.total_count) * 100.0


def _percentage(covered: int, total: int) -> float:
    if total == 0:
        return 100.0
    return (covered / total) * 100.0


@dataclass
class FileCoverage:
    """Coverage data for a single source file."""

    file_path: str
    lines: list[LineCoverage] = field(default_factory=list)
    functions: list[FunctionCoverage] = field(default_factory=list)
    branches: list[BranchCoverage] = field(default_factory=list)

    @property
    def line_coverage_percentage(self) -> float:
        """Return line coverage percentage (0.0-100.0)."""
        return _percentage(sum(1 for line in self.lines if line.is_covered), len(self.lines))

    @property
    def function_coverage_percentage(self) -> float:
        """Return function coverage percentage (0.0-100.0)."""
        return _percentage(sum(1 for fn in self.functions if fn.is_covered), len(self.functions))

    @property
    def branch_coverage_percentage(self) -> float:
        """Return branch coverage percentage (0.0-100.0)."""
        return _percentage(
            sum(branch.taken_count for branch in self.branches),
            sum(branch.total_count for branch in self.branches),
        )

    @property
    def uncovered_lines(self) -> list[int]:
        return [line.line_number for line in self.lines if not line.is_covered]


@dataclass
class CoverageReport:
    """Summary across all files of one merged coverage model."""

    files: dict[str, FileCoverage] = field(default_factory=dict)

    @property
    def overall_line_coverage(self) -> float:
        """Return overall line coverage percentage across all files."""
        lines = [line for file in self.files.values() for line in file.lines]
        return _percentage(sum(1 for line in lines if line.is_covered), len(lines))

    @property
    def overall_function_coverage(self) -> float:
        """Return overall function coverage percentage across all files."""
        functions = [fn for file in self.files.values() for fn in file.functions]
        return _percentage(sum(1 for fn in functions if fn.is_covered), len(functions))

    @property
    def overall_branch_coverage(self) -> float:
        """Return overall branch coverage percentage across all files."""
        branches = [branch for file in self.files.values() for branch in file.branches]
        return _percentage(
            sum(branch.taken_count for branch in branches),
            sum(branch.total_count for branch in branches),
        )


def parse_file_record(file_path: str, data: dict[str, Any]) -> FileCoverage:
    """Summarise one Istanbul-style record."""
    return FileCoverage(
        file_path=file_path,
        lines=_parse_line_coverage(data),
        functions=_parse_function_coverage(data),
        branches=_parse_branch_coverage(data),
    )


def build_report(coverage: dict[str, Any]) -> CoverageReport:
    """Summarise a whole ``{path: record}`` coverage model."""
    return CoverageReport(
        files={
            path: parse_file_record(path, record)
            for path, record in sorted(coverage.items())
            if isinstance(record, dict)
        }
    )


def _parse_line_coverage(data: dict[str, Any]) -> list[LineCoverage]:
    """Aggregate statement hits by their starting line."""
    statement_map = data.get("statementMap", {})
    lines: dict[int, int] = {}
    for stmt_id, count in data.get("s", {}).items():
        line = statement_map.get(stmt_id, {}).get("start", {}).get("line")
        if line is not None:
            lines[line] = lines.get(line, 0) + count
    return [
        LineCoverage(line_number=line_num, execution_count=count)
        for line_num, count in sorted(lines.items())
    ]


def _parse_function_coverage(data: dict[str, Any]) -> list[FunctionCoverage]:
    fn_map = data.get("fnMap", {})
    functions = []
    for fn_id, count in data.get("f", {}).items():
        fn_info = fn_map.get(fn_id, {})
        functions.append(
            FunctionCoverage(
                name=fn_info.get("name", f"anonymous_{fn_id}"),
                line_number=fn_info.get("line", 0),
                execution_count=count,
            )
        )
    return functions


def _parse_branch_coverage(data: dict[str, Any]) -> list[BranchCoverage]:
    branch_map = data.get("branchMap", {})
    branches = []
    for branch_id, counts in data.get("b", {}).items():
        if not isinstance(counts, list):
            continue
        branches.append(
            BranchCoverage(
                line_number=branch_map.get(branch_id, {}).get("line", 0),
                branch_id=int(branch_id) if str(branch_id).isdigit() else 0,
                taken_count=sum(1 for count in counts if count > 0),
                total_count=len(counts),
            )
        )
    return branches
