"""
Conformance reports: per-vector outcomes rolled up into suites and a run.
"""

import json
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .comparator import ComparisonResult, Divergence


@dataclass
class VectorResult:
    """Outcome of one vector across every client."""
    vector_name: str
    suite_name: str
    passed: bool
    execution_time_ms: float
    comparison: Optional[ComparisonResult] = None
    error: Optional[str] = None

    @property
    def divergences(self) -> List[Divergence]:
        return self.comparison.divergences if self.comparison else []


@dataclass
class SuiteResult:
    """Outcome of one vector file."""
    suite_name: str
    total_tests: int
    passed_tests: int
    failed_tests: int
    skipped_tests: int
    execution_time_ms: float
    test_results: List[VectorResult]

    @classmethod
    def from_results(
        cls,
        suite_name: str,
        results: List[VectorResult],
        skipped: int,
        execution_time_ms: float,
    ) -> "SuiteResult":
        passed = sum(1 for r in results if r.passed)
        return cls(
            suite_name=suite_name,
            total_tests=len(results),
            passed_tests=passed,
            failed_tests=len(results) - passed,
            skipped_tests=skipped,
            execution_time_ms=execution_time_ms,
            test_results=results,
        )

    @property
    def pass_rate(self) -> float:
        if self.total_tests == 0:
            return 0.0
        return self.passed_tests / self.total_tests * 100

    @property
    def failures(self) -> List[VectorResult]:
        return [r for r in self.test_results if not r.passed]


@dataclass
class ConformanceReport:
    """Whole run: every suite, every client."""
    timestamp: str
    clients: List[str]
    reference_client: str
    suite_results: List[SuiteResult]
    execution_time_ms: float
    divergences: List[Divergence] = field(default_factory=list)

    @property
    def total_tests(self) -> int:
        return sum(s.total_tests for s in self.suite_results)

    @property
    def total_passed(self) -> int:
        return sum(s.passed_tests for s in self.suite_results)

    @property
    def total_failed(self) -> int:
        return sum(s.failed_tests for s in self.suite_results)

    @property
    def total_divergences(self) -> int:
        return len(self.divergences)

    @property
    def pass_rate(self) -> float:
        return self.total_passed / max(self.total_tests, 1) * 100

    def divergences_by_client(self) -> Dict[str, int]:
        return dict(Counter(d.client for d in self.divergences))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "clients": self.clients,
            "reference_client": self.reference_client,
            "total_suites": len(self.suite_results),
            "total_tests": self.total_tests,
            "total_passed": self.total_passed,
            "total_failed": self.total_failed,
            "total_divergences": self.total_divergences,
            "divergences_by_client": self.divergences_by_client(),
            "execution_time_ms": self.execution_time_ms,
            "suite_results": [_suite_to_dict(s) for s in self.suite_results],
            "divergences": [_divergence_to_dict(d) for d in self.divergences],
        }


def _suite_to_dict(suite: SuiteResult) -> Dict[str, Any]:
    return {
        "suite_name": suite.suite_name,
        "total_tests": suite.total_tests,
        "passed_tests": suite.passed_tests,
        "failed_tests": suite.failed_tests,
        "skipped_tests": suite.skipped_tests,
        "execution_time_ms": suite.execution_time_ms,
        "pass_rate": suite.pass_rate,
        "failures": [
            {
                "vector_name": r.vector_name,
                "error": r.error,
                "fields": sorted({d.field for d in r.divergences}),
            }
            for r in suite.failures
        ],
    }


def _divergence_to_dict(d: Divergence) -> Dict[str, Any]:
    # expected/actual are rendered as text.
    return {
        "vector_name": d.vector_name,
        "client": d.client,
        "reference_client": d.reference_client,
        "field": d.field,
        "expected": str(d.expected),
        "actual": str(d.actual),
        "details": d.details,
    }


class ReportGenerator:
    """Builds a ConformanceReport and writes it under ``result_dir``."""

    def __init__(self, result_dir: str):
        self.result_dir = result_dir
        os.makedirs(result_dir, exist_ok=True)

    def generate_report(
        self,
        suite_results: List[SuiteResult],
        clients: List[str],
        reference_client: str,
        execution_time_ms: float,
    ) -> ConformanceReport:
        divergences = [
            d
            for suite in suite_results
            for result in suite.test_results
            for d in result.divergences
        ]
        return ConformanceReport(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            clients=clients,
            reference_client=reference_client,
            suite_results=suite_results,
            execution_time_ms=execution_time_ms,
            divergences=divergences,
        )

    def write_json_report(
        self,
        report: ConformanceReport,
        filename: str = "conformance-report.json",
    ) -> str:
        path = os.path.join(self.result_dir, filename)
        with open(path, "w") as f:
            json.dump(report.to_dict(), f, indent=2)
        return path

    def write_summary(
        self,
        report: ConformanceReport,
        filename: str = "conformance-summary.txt",
    ) -> str:
        path = os.path.join(self.result_dir, filename)
        with open(path, "w") as f:
            f.write("\n".join(self.summary_lines(report, detailed=True)) + "\n")
        return path

    def summary_lines(self, report: ConformanceReport, detailed: bool = False) -> List[str]:
        """Human-readable summary; ``detailed`` lists every divergence."""
        rule = "=" * 60
        lines = [
            rule,
            "Escrow Conformance Results",
            rule,
            f"Run at:      {report.timestamp}",
            f"Reference:   {report.reference_client}",
            f"Clients:     {', '.join(report.clients)}",
            f"Vectors:     {report.total_passed}/{report.total_tests} passed "
            f"({report.pass_rate:.1f}%)",
            f"Divergences: {report.total_divergences}",
            f"Duration:    {report.execution_time_ms:.2f}ms",
            "",
        ]

        for suite in report.suite_results:
            status = "PASS" if suite.failed_tests == 0 else "FAIL"
            lines.append(
                f"[{status}] {suite.suite_name}: {suite.passed_tests}/{suite.total_tests}"
                + (f", {suite.skipped_tests} skipped" if suite.skipped_tests else "")
            )
            for failure in suite.failures:
                reason = failure.error or ", ".join(sorted({d.field for d in failure.divergences}))
                lines.append(f"    {failure.vector_name}: {reason}")

        per_client = report.divergences_by_client()
        if per_client:
            lines.append("")
            lines.append("Divergences per client:")
            for client in sorted(per_client):
                lines.append(f"    {client}: {per_client[client]}")

        if detailed and report.divergences:
            lines.append("")
            for d in report.divergences:
                lines.append(f"  - {d.vector_name} [{d.client}] {d.field}")
                lines.append(f"      {d.reference_client}: {d.expected}")
                lines.append(f"      {d.client}: {d.actual}")
                if d.details:
                    lines.append(f"      {d.details}")

        lines.append("")
        lines.append(f"Overall: {'PASSED' if report.total_failed == 0 else 'FAILED'}")
        lines.append(rule)
        return lines

    def print_summary(self, report: ConformanceReport) -> None:
        print("\n".join(self.summary_lines(report)))
