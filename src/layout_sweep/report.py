"""Per-sweep result collection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from layout_sweep._exceptions import ComparisonError
from layout_sweep.comparators import ComparisonResult


@dataclass
class SweepReport:
    """Every comparison one harness invocation made, plus any fatal error.

    A report is *passed* only if no infrastructure error occurred and every
    recorded comparison passed.  Comparisons recorded before a fatal error
    are kept, so a partial sweep still shows which layouts were exercised.
    """

    computation: str
    mode: str
    device: str = ""
    results: List[ComparisonResult] = field(default_factory=list)
    error: Optional[BaseException] = None
    elapsed_ms: float = 0.0

    def record(self, result: ComparisonResult) -> ComparisonResult:
        self.results.append(result)
        return result

    @property
    def failures(self) -> List[ComparisonResult]:
        return [r for r in self.results if not r.passed]

    @property
    def passed(self) -> bool:
        return self.error is None and not self.failures

    @property
    def contexts(self) -> List[str]:
        return [r.context for r in self.results]

    def raise_for_status(self) -> None:
        """Re-raise the fatal error, or raise one :class:`ComparisonError`
        naming every failed combination."""
        if self.error is not None:
            raise self.error
        failures = self.failures
        if failures:
            header = (
                f"{self.computation}: {len(failures)} of {len(self.results)} "
                f"comparison(s) failed ({self.mode})"
            )
            body = "\n\n".join(f.message for f in failures)
            raise ComparisonError(f"{header}\n\n{body}", failures)

    def format_report(self) -> str:
        """Format the sweep as a human-readable report."""
        lines = [
            f"Layout sweep: {self.computation} [{self.mode}] on {self.device or '?'}",
            "-" * 70,
        ]
        for r in self.results:
            status = "PASS" if r.passed else "FAIL"
            lines.append(f"  [{status}] {r.context or 'default layout'}")
            if not r.passed and r.first_mismatch is not None:
                lines.append(f"         first mismatch at {r.first_mismatch} ({r.mismatch_count} total)")
        if self.error is not None:
            lines.append(f"  [ERROR] {type(self.error).__name__}: {self.error}")
        lines.append("-" * 70)
        lines.append(
            f"Total: {len(self.results)} | Passed: {len(self.results) - len(self.failures)} "
            f"| Failed: {len(self.failures)} | {self.elapsed_ms:.1f}ms"
        )
        return "\n".join(lines)
