"""Merging and rendering of aggregated coverage."""

from covrig.reporting.collector import Collector
from covrig.reporting.model import (
    BranchCoverage,
    CoverageReport,
    FileCoverage,
    FunctionCoverage,
    LineCoverage,
    build_report,
    parse_file_record,
)
from covrig.reporting.reporters import JsonReporter, Reporter, TextReporter

__all__ = [
    "BranchCoverage",
    "Collector",
    "CoverageReport",
    "FileCoverage",
    "FunctionCoverage",
    "JsonReporter",
    "LineCoverage",
    "Reporter",
    "TextReporter",
    "build_report",
    "parse_file_record",
]
