"""Self-check: run built-in computations through every layout sweep.

Useful as a smoke test of a device: if a backend copies strided tensors
incorrectly, the transposition and matmul checks fail under some layout and
the report names it.

Usage::

    from layout_sweep.selfcheck import LayoutSelfCheck
    check = LayoutSelfCheck(device="cpu", options=HarnessOptions(test_all_input_layouts=True))
    reports = check.run_all()
    print(check.format_summary(reports))
"""

from __future__ import annotations

from typing import Callable, List, Optional

from layout_sweep._backend import get_torch
from layout_sweep._logging import get_logger
from layout_sweep.builder import ComputationBuilder
from layout_sweep.client import Client, GlobalData
from layout_sweep.comparators import ErrorSpec
from layout_sweep.computations import (
    create_patterned_matrix,
    create_scalar_max,
    create_scalar_relu,
    create_scalar_relu_sensitivity,
)
from layout_sweep.config import HarnessOptions
from layout_sweep.harness import LayoutTestHarness
from layout_sweep.literal import Literal, create_r0, create_r2, create_r3, from_tensor, make_tuple
from layout_sweep.report import SweepReport

logger = get_logger(__name__)

_ERROR = ErrorSpec(abs=1e-4, rel=1e-4)


class LayoutSelfCheck:
    """Run sample computations under the configured layout sweep.

    Args:
        device: Device to execute on; ``None`` selects the preferred backend.
        options: Sweep options; ``device`` overrides ``options.device``.
    """

    def __init__(self, device: Optional[str] = None, options: Optional[HarnessOptions] = None) -> None:
        options = options if options is not None else HarnessOptions()
        if device is not None:
            options = options.replace(device=device)
        self.harness = LayoutTestHarness(Client(options.device), options)

    @property
    def client(self) -> Client:
        return self.harness.client

    def _upload(self, literal: Literal) -> GlobalData:
        return self.client.transfer_to_server(literal)

    def check_relu(self) -> SweepReport:
        torch = get_torch()
        args = [self._upload(create_r0(-2.5, torch.float32))]
        return self.harness.compute_and_compare_literal_with_status(
            create_scalar_relu(), create_r0(0.0, torch.float32), args, _ERROR
        )

    def check_max(self) -> SweepReport:
        torch = get_torch()
        args = [self._upload(create_r0(1.5, torch.float32)), self._upload(create_r0(4.0, torch.float32))]
        return self.harness.compute_and_compare_literal_with_status(
            create_scalar_max(), create_r0(4.0, torch.float32), args, _ERROR
        )

    def check_relu_sensitivity(self) -> SweepReport:
        torch = get_torch()
        args = [self._upload(create_r0(3.0, torch.float32)), self._upload(create_r0(0.25, torch.float32))]
        return self.harness.compute_and_compare_literal_with_status(
            create_scalar_relu_sensitivity(), create_r0(0.25, torch.float32), args, _ERROR
        )

    def check_transpose(self) -> SweepReport:
        matrix = create_patterned_matrix(2, 3)
        b = ComputationBuilder("transpose")
        arg, x = self.harness.create_parameter_and_transfer_literal(b, 0, from_tensor(matrix), "x")
        b.transpose(x, [1, 0])
        return self.harness.compute_and_compare_literal_with_status(
            b, from_tensor(matrix.t().contiguous()), [arg], _ERROR
        )

    def check_matmul(self) -> SweepReport:
        lhs = create_patterned_matrix(2, 3)
        rhs = create_patterned_matrix(3, 2, offset=0.5)
        b = ComputationBuilder("matmul")
        x = b.parameter(0, from_tensor(lhs).shape, "lhs")
        y = b.parameter(1, from_tensor(rhs).shape, "rhs")
        b.dot(x, y)
        args = [self._upload(from_tensor(lhs)), self._upload(from_tensor(rhs))]
        return self.harness.compute_and_compare_literal_with_status(
            b, from_tensor(lhs @ rhs), args, ErrorSpec(abs=1e-2, rel=1e-5)
        )

    def check_reduce_int(self) -> SweepReport:
        torch = get_torch()
        values = torch.arange(24, dtype=torch.int32).reshape(2, 3, 4)
        b = ComputationBuilder("reduce_sum_s32")
        x = b.parameter(0, from_tensor(values).shape, "x")
        b.reduce_sum(x, [2])
        expected = create_r2(values.sum(dim=2).tolist(), torch.int32)
        return self.harness.compute_and_compare_literal_with_status(
            b, expected, [self._upload(create_r3(values.tolist(), torch.int32))]
        )

    def check_tuple_argument(self) -> SweepReport:
        torch = get_torch()
        pair = make_tuple(create_r0(10, torch.int32), create_r0(1, torch.int32))
        matrix = create_r2([[1, 2], [3, 4]], torch.int32)
        b = ComputationBuilder("tuple_argument")
        t = b.parameter(0, pair.shape, "pair")
        m = b.parameter(1, matrix.shape, "m")
        b.mul(m, b.get_tuple_element(t, 0))
        expected = create_r2([[10, 20], [30, 40]], torch.int32)
        return self.harness.compute_and_compare_literal_with_status(
            b, expected, [self._upload(pair), self._upload(matrix)]
        )

    def run_all(self) -> List[SweepReport]:
        """Run every check and return its report."""
        checks: List[Callable[[], SweepReport]] = [
            self.check_relu,
            self.check_max,
            self.check_relu_sensitivity,
            self.check_transpose,
            self.check_matmul,
            self.check_reduce_int,
            self.check_tuple_argument,
        ]

        reports = []
        for check in checks:
            logger.info("Running %s...", check.__name__)
            report = check()
            reports.append(report)
            status = "PASS" if report.passed else "FAIL"
            logger.info("  [%s] %s: %d comparison(s)", status, report.computation, len(report.results))
        return reports

    @staticmethod
    def format_summary(reports: List[SweepReport]) -> str:
        """Format self-check reports as a human-readable table."""
        lines = [
            "Layout Self-Check Report",
            "=" * 70,
            f"{'Computation':<25} {'Mode':<20} {'Status':<8} {'Runs':>6} {'Time':>8}",
            "-" * 70,
        ]

        for r in reports:
            if r.error is not None:
                lines.append(f"{r.computation:<25} {r.mode:<20} {'ERROR':<8} {r.error}")
                continue
            status = "PASS" if r.passed else "FAIL"
            lines.append(
                f"{r.computation:<25} {r.mode:<20} {status:<8} {len(r.results):>6} "
                f"{r.elapsed_ms:>7.1f}ms"
            )

        lines.append("-" * 70)
        passed = sum(1 for r in reports if r.passed)
        failed = len(reports) - passed
        lines.append(f"Total: {len(reports)} | Passed: {passed} | Failed: {failed}")

        if failed > 0:
            lines.append("")
            lines.append("FAILED computations:")
            for r in reports:
                if r.passed:
                    continue
                if r.error is not None:
                    lines.append(f"  - {r.computation}: {r.error}")
                for f in r.failures:
                    lines.append(f"  - {r.computation}: {f.context or 'default layout'}")

        lines.append("=" * 70)
        return "\n".join(lines)
