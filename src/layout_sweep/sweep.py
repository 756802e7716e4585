"""Exhaustive layout sweeps.

Two sweeps, both depth-first and synchronous:

- **output layouts**: one baseline run with no layout constraint, then one
  run per minor-to-major order of the expected value's rank;
- **input layouts**: every argument is downloaded, relaid out and
  re-uploaded under each of its layouts, and the computation runs once per
  element of the cartesian product.  Tuple arguments are passed through
  unchanged and contribute a single choice.

Each run is handed to a ``verify(actual, context)`` callback whose result is
recorded in the :class:`~layout_sweep.report.SweepReport`.  A failed
comparison never stops a sweep.  Any build, execution or transfer error
propagates immediately and ends it.

The input sweep carries the combination built so far as immutable tuples
passed down the recursion, so sibling branches can never see each other's
choices.  Handles uploaded for a branch live in a :class:`DataScope` and are
released as soon as that branch returns.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence, Tuple

from layout_sweep._logging import get_logger, sweep_logger
from layout_sweep.builder import Computation
from layout_sweep.client import Client, DataScope, GlobalData
from layout_sweep.comparators import ComparisonResult
from layout_sweep.layouts import LayoutPermutations, layout_count
from layout_sweep.literal import Literal
from layout_sweep.report import SweepReport
from layout_sweep.shape import AnyShape, Shape

logger = get_logger(__name__)

Verify = Callable[[Literal, str], ComparisonResult]
Visit = Callable[[Tuple[GlobalData, ...], Tuple[str, ...]], None]

TUPLE_DESCRIPTOR_SUFFIX = " (tuple, no relayout)"


def _choose(
    client: Client,
    arguments: Sequence[GlobalData],
    index: int,
    chosen: Tuple[GlobalData, ...],
    descriptors: Tuple[str, ...],
    visit: Visit,
) -> int:
    if index == len(arguments):
        visit(chosen, descriptors)
        return 1

    argument = arguments[index]
    if argument.shape.is_tuple:
        descriptor = argument.shape.human_string_with_layout() + TUPLE_DESCRIPTOR_SUFFIX
        return _choose(client, arguments, index + 1, chosen + (argument,), descriptors + (descriptor,), visit)

    visited = 0
    for minor_to_major in LayoutPermutations(argument.shape.rank):
        literal = client.transfer(argument)
        relaid = literal.relayout(minor_to_major)
        with DataScope(client) as scope:
            data = scope.transfer_to_server(relaid)
            visited += _choose(
                client,
                arguments,
                index + 1,
                chosen + (data,),
                descriptors + (relaid.shape.human_string_with_layout(),),
                visit,
            )
    return visited


def for_each_input_layout_combination(
    client: Client, arguments: Sequence[GlobalData], visit: Visit
) -> int:
    """Call ``visit(arguments_with_layout, descriptors)`` once per combination.

    Returns:
        The number of combinations visited.
    """
    return _choose(client, arguments, 0, (), (), visit)


def input_layouts_context(descriptors: Sequence[str]) -> str:
    return "Test with input layouts: " + " ".join(descriptors)


def output_layout_context(shape: Shape) -> str:
    return "Test with output layout: " + shape.human_string_with_layout()


def compare_baseline(
    client: Client,
    computation: Computation,
    arguments: Sequence[GlobalData],
    verify: Verify,
    report: SweepReport,
    shape_with_layout: Optional[AnyShape] = None,
) -> None:
    """Single run, optionally constrained to *shape_with_layout*."""
    actual = client.execute_and_transfer(computation, arguments, shape_with_layout)
    context = output_layout_context(shape_with_layout) if isinstance(shape_with_layout, Shape) else ""
    report.record(verify(actual, context))


def compare_with_all_output_layouts(
    client: Client,
    computation: Computation,
    expected: Literal,
    arguments: Sequence[GlobalData],
    verify: Verify,
    report: SweepReport,
) -> None:
    """Baseline, then every output layout of the expected value's rank."""
    log = sweep_logger(logger, report)
    actual = client.execute_and_transfer(computation, arguments)
    report.record(verify(actual, ""))

    if expected.is_tuple:
        log.debug("expected value %s is a tuple; only the baseline runs", expected.shape)
        return

    for minor_to_major in LayoutPermutations(expected.rank):
        layout = expected.shape.with_layout(minor_to_major)
        context = output_layout_context(layout)
        log.debug(context)
        actual = client.execute_and_transfer(computation, arguments, layout)
        report.record(verify(actual, context))


def compare_with_all_input_layouts(
    client: Client,
    computation: Computation,
    arguments: Sequence[GlobalData],
    verify: Verify,
    report: SweepReport,
    output_with_layout: Optional[AnyShape] = None,
) -> int:
    """Every input-layout combination, each executed once.

    Returns:
        The number of combinations executed.
    """
    log = sweep_logger(logger, report)
    log.debug("%d input-layout combination(s)", layout_count(a.shape for a in arguments))

    def visit(arguments_with_layout: Tuple[GlobalData, ...], descriptors: Tuple[str, ...]) -> None:
        context = input_layouts_context(descriptors)
        log.debug(context)
        actual = client.execute_and_transfer(computation, arguments_with_layout, output_with_layout)
        report.record(verify(actual, context))

    return for_each_input_layout_combination(client, arguments, visit)
