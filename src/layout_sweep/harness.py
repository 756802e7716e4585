"""Test harness entry points.

:class:`LayoutTestHarness` builds a computation, executes it, and compares
the result with an expected literal under the layouts selected by its
:class:`~layout_sweep.config.HarnessOptions`:

==========================  ==================================================
options                     runs
==========================  ==================================================
neither flag                one execution (optionally with an output layout)
``test_all_output_layouts`` baseline + every output layout
``test_all_input_layouts``  every input-layout combination
both                        output-layout sweep only (a warning is logged)
==========================  ==================================================

Two families of entry points:

- ``compute_and_compare_*`` assert: they raise
  :class:`~layout_sweep._exceptions.ComparisonError` listing every failed
  combination once the sweep is done, and re-raise build / execution /
  transfer errors unchanged;
- ``*_with_status`` return a :class:`~layout_sweep.report.SweepReport`
  instead, with any infrastructure error stored in ``report.error``.

Comparator preconditions (near comparison for floating/complex values,
exact comparison for integral/pred values) are checked before the
computation is built.

Example::

    harness = LayoutTestHarness(options=HarnessOptions(test_all_output_layouts=True))
    b = ComputationBuilder("transpose")
    x = b.parameter(0, make_shape(torch.float32, [2, 3]), "x")
    b.transpose(x, [1, 0])
    arg = harness.client.transfer_to_server(create_r2([[1, 2, 3], [4, 5, 6]], torch.float32))
    harness.compute_and_compare_r2(b, [[1, 4], [2, 5], [3, 6]], [arg], error=ErrorSpec(1e-6))
"""

from __future__ import annotations

import time
from typing import Any, Optional, Sequence, Tuple, Union

from layout_sweep._backend import get_torch
from layout_sweep._exceptions import BuildError, ExecutionError, TransferError
from layout_sweep._logging import get_logger, sweep_logger
from layout_sweep.builder import Computation, ComputationBuilder, Op
from layout_sweep.client import Client, GlobalData
from layout_sweep.comparators import (
    ComparisonResult,
    ErrorSpec,
    check_comparator_precondition,
    compare_equal,
    compare_near,
)
from layout_sweep.config import HarnessOptions
from layout_sweep.literal import (
    ArrayLiteral,
    Literal,
    create_r0,
    create_r1,
    create_r1_pred,
    create_r1_u8,
    create_r2,
    create_r3,
    create_r4,
)
from layout_sweep.report import SweepReport
from layout_sweep.shape import AnyShape
from layout_sweep.sweep import (
    Verify,
    compare_baseline,
    compare_with_all_input_layouts,
    compare_with_all_output_layouts,
)

logger = get_logger(__name__)

BuilderOrComputation = Union[ComputationBuilder, Computation]

_INFRA_ERRORS = (BuildError, ExecutionError, TransferError)


def _build(builder: BuilderOrComputation) -> Computation:
    if isinstance(builder, Computation):
        return builder
    return builder.build()


class LayoutTestHarness:
    """Build, execute and compare computations across layouts.

    Args:
        client: Client to execute on.  Created from ``options.device`` when
            omitted.
        options: Sweep options.  Defaults to :meth:`HarnessOptions.from_env`.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        options: Optional[HarnessOptions] = None,
    ) -> None:
        self.options = options if options is not None else HarnessOptions.from_env()
        self.client = client if client is not None else Client(self.options.device)
        if self.options.test_all_output_layouts and self.options.test_all_input_layouts:
            logger.warning(
                "Both output- and input-layout sweeps requested; only the output-layout sweep runs"
            )

    # -- execution helpers ---------------------------------------------------

    def execute(self, builder: BuilderOrComputation, arguments: Sequence[GlobalData]) -> GlobalData:
        """Build (if needed) and execute, returning the device-resident result."""
        return self.client.execute(_build(builder), arguments)

    def execute_and_transfer(
        self,
        builder: BuilderOrComputation,
        arguments: Sequence[GlobalData],
        shape_with_output_layout: Optional[AnyShape] = None,
    ) -> Literal:
        """Build (if needed), execute, and download the result."""
        return self.client.execute_and_transfer(_build(builder), arguments, shape_with_output_layout)

    def execute_to_string(self, builder: BuilderOrComputation, arguments: Sequence[GlobalData]) -> str:
        """Result dump, or the error text if building or executing fails."""
        try:
            return self.execute_and_transfer(builder, arguments).to_string()
        except _INFRA_ERRORS as exc:
            return str(exc)

    def create_parameter_and_transfer_literal(
        self, builder: ComputationBuilder, number: int, literal: Literal, name: str = ""
    ) -> Tuple[GlobalData, Op]:
        """Upload *literal* and declare a matching parameter on *builder*."""
        data = self.client.transfer_to_server(literal)
        return data, builder.parameter(number, literal.shape, name)

    # -- sweeps --------------------------------------------------------------

    def compute_and_compare_literal_with_all_output_layouts(
        self,
        computation: Computation,
        expected: Literal,
        arguments: Sequence[GlobalData],
        verify: Verify,
        report: Optional[SweepReport] = None,
    ) -> SweepReport:
        """Run the output-layout sweep with a caller-supplied comparison."""
        if report is None:
            report = SweepReport(computation.name, "all-output-layouts", self.client.device)
        compare_with_all_output_layouts(self.client, computation, expected, arguments, verify, report)
        return report

    def compute_and_compare_literal_with_all_input_layouts(
        self,
        computation: Computation,
        expected: Literal,
        arguments: Sequence[GlobalData],
        verify: Verify,
        output_with_layout: Optional[AnyShape] = None,
        report: Optional[SweepReport] = None,
    ) -> SweepReport:
        """Run the input-layout sweep with a caller-supplied comparison."""
        if report is None:
            report = SweepReport(computation.name, "all-input-layouts", self.client.device)
        compare_with_all_input_layouts(
            self.client, computation, arguments, verify, report, output_with_layout
        )
        return report

    def _run(
        self,
        builder: BuilderOrComputation,
        expected: Literal,
        arguments: Sequence[GlobalData],
        verify: Verify,
        shape_with_layout: Optional[AnyShape],
    ) -> SweepReport:
        report = SweepReport(builder.name, self.options.mode, self.client.device)
        log = sweep_logger(logger, report)
        start = time.perf_counter()
        log.info("comparing on %s", report.device)
        try:
            computation = _build(builder)
            if self.options.test_all_output_layouts:
                self.compute_and_compare_literal_with_all_output_layouts(
                    computation, expected, arguments, verify, report
                )
            elif self.options.test_all_input_layouts:
                self.compute_and_compare_literal_with_all_input_layouts(
                    computation, expected, arguments, verify, shape_with_layout, report
                )
            else:
                compare_baseline(self.client, computation, arguments, verify, report, shape_with_layout)
        except _INFRA_ERRORS as exc:
            log.error("aborted: %s", exc)
            report.error = exc
        report.elapsed_ms = (time.perf_counter() - start) * 1000
        log.info(
            "%d comparison(s), %d failed%s",
            len(report.results),
            len(report.failures),
            " (aborted)" if report.error is not None else "",
        )
        return report

    def compute_and_compare_literal_with_status(
        self,
        builder: BuilderOrComputation,
        expected: Literal,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        shape_with_layout: Optional[AnyShape] = None,
    ) -> SweepReport:
        """Compare without asserting; see the module docstring for modes.

        Raises:
            PreconditionError: if the comparator does not fit the expected
                element kind.  Nothing is built or executed in that case.
        """
        check_comparator_precondition(
            expected, near=error is not None,
            allow_exact_float=self.options.allow_exact_float_comparison,
        )
        if error is not None:
            def verify(actual: Literal, context: str) -> ComparisonResult:
                return compare_near(expected, actual, error, context)
        else:
            def verify(actual: Literal, context: str) -> ComparisonResult:
                return compare_equal(expected, actual, context)
        return self._run(builder, expected, arguments, verify, shape_with_layout)

    def compute_and_compare_literal(
        self,
        builder: BuilderOrComputation,
        expected: Literal,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        shape_with_layout: Optional[AnyShape] = None,
    ) -> SweepReport:
        """Compare and assert.

        Raises:
            ComparisonError: after the sweep, if any combination mismatched.
            BuildError, ExecutionError, TransferError: unchanged from the
                collaborator that failed.
        """
        report = self.compute_and_compare_literal_with_status(
            builder, expected, arguments, error, shape_with_layout
        )
        report.raise_for_status()
        return report

    # -- typed conveniences --------------------------------------------------

    def _compare_ranked(
        self,
        create: Any,
        builder: BuilderOrComputation,
        expected: Any,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec],
        dtype: Any,
    ) -> SweepReport:
        if isinstance(expected, ArrayLiteral):
            literal = expected
        else:
            if dtype is None and error is not None and not isinstance(expected, get_torch().Tensor):
                dtype = get_torch().float32
            literal = create(expected, dtype)
        return self.compute_and_compare_literal(builder, literal, arguments, error)

    def compute_and_compare_r0(
        self,
        builder: BuilderOrComputation,
        expected: Any,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        dtype: Any = None,
    ) -> SweepReport:
        return self._compare_ranked(create_r0, builder, expected, arguments, error, dtype)

    def compute_and_compare_r1(
        self,
        builder: BuilderOrComputation,
        expected: Any,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        dtype: Any = None,
    ) -> SweepReport:
        return self._compare_ranked(create_r1, builder, expected, arguments, error, dtype)

    def compute_and_compare_r2(
        self,
        builder: BuilderOrComputation,
        expected: Any,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        dtype: Any = None,
    ) -> SweepReport:
        return self._compare_ranked(create_r2, builder, expected, arguments, error, dtype)

    def compute_and_compare_r3(
        self,
        builder: BuilderOrComputation,
        expected: Any,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        dtype: Any = None,
    ) -> SweepReport:
        return self._compare_ranked(create_r3, builder, expected, arguments, error, dtype)

    def compute_and_compare_r4(
        self,
        builder: BuilderOrComputation,
        expected: Any,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
        dtype: Any = None,
    ) -> SweepReport:
        return self._compare_ranked(create_r4, builder, expected, arguments, error, dtype)

    def compute_and_compare_r1_pred(
        self, builder: BuilderOrComputation, expected: Sequence[bool], arguments: Sequence[GlobalData]
    ) -> SweepReport:
        return self.compute_and_compare_literal(builder, create_r1_pred(expected), arguments)

    def compute_and_compare_r1_u8(
        self, builder: BuilderOrComputation, expected: Union[str, bytes], arguments: Sequence[GlobalData]
    ) -> SweepReport:
        """Compare a rank-1 ``u8`` result against a string or bytes."""
        return self.compute_and_compare_literal(builder, create_r1_u8(expected), arguments)

    def compute_and_compare_tuple(
        self,
        builder: BuilderOrComputation,
        expected: Literal,
        arguments: Sequence[GlobalData],
        error: Optional[ErrorSpec] = None,
    ) -> SweepReport:
        """Single execution compared component-wise; no element-kind check.

        With *error*, floating and complex components are compared within
        tolerance and all others exactly.
        """
        report = SweepReport(builder.name, "tuple", self.client.device)
        actual = self.execute_and_transfer(builder, arguments)
        if error is not None:
            report.record(compare_near(expected, actual, error))
        else:
            report.record(compare_equal(expected, actual))
        report.raise_for_status()
        return report
