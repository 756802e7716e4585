"""layout-sweep: run computations under every physical memory layout.

A computation is correct only if its result is independent of how its
inputs and outputs are laid out in memory.  layout-sweep checks that
exhaustively: for a rank-R value there are R! minor-to-major orders, and the
harness executes the computation under each one (or under each combination
of argument layouts), comparing every result against the expected value.

Quick start::

    import torch
    from layout_sweep import (
        ComputationBuilder, ErrorSpec, HarnessOptions, LayoutTestHarness, create_r2,
    )

    harness = LayoutTestHarness(options=HarnessOptions(test_all_input_layouts=True))
    b = ComputationBuilder("double")
    arg, x = harness.create_parameter_and_transfer_literal(
        b, 0, create_r2([[1.0, 2.0], [3.0, 4.0]], torch.float32), "x")
    b.add(x, x)
    harness.compute_and_compare_r2(b, [[2.0, 4.0], [6.0, 8.0]], [arg], error=ErrorSpec(1e-6))

Environment Variables
---------------------
``LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS`` / ``LAYOUT_SWEEP_TEST_ALL_INPUT_LAYOUTS``
    Set to ``1`` to select a sweep for every harness built from the environment.
``LAYOUT_SWEEP_LOG_LEVEL``
    Set to ``DEBUG`` to see every layout combination. Default: ``WARNING``.
"""

from __future__ import annotations

__version__ = "0.1.0"

from layout_sweep._backend import Backend, detect_backends, preferred_backend
from layout_sweep._logging import set_log_level
from layout_sweep.builder import Computation, ComputationBuilder, Op
from layout_sweep.client import Client, DataScope, GlobalData
from layout_sweep.comparators import (
    ComparisonResult,
    ErrorSpec,
    compare_equal,
    compare_near,
    expect_equal,
    expect_near,
)
from layout_sweep.config import HarnessOptions
from layout_sweep.harness import LayoutTestHarness
from layout_sweep.layouts import LayoutPermutations
from layout_sweep.literal import (
    ArrayLiteral,
    TupleLiteral,
    create_r0,
    create_r1,
    create_r2,
    create_r3,
    create_r4,
    from_tensor,
    make_tuple,
)
from layout_sweep.report import SweepReport
from layout_sweep.shape import ElementKind, Shape, TupleShape, make_shape, make_shape_with_layout
from layout_sweep.sweep import for_each_input_layout_combination

__all__ = [
    "__version__",
    # Backend introspection
    "Backend",
    "detect_backends",
    "preferred_backend",
    "set_log_level",
    # Values and shapes
    "ArrayLiteral",
    "TupleLiteral",
    "ElementKind",
    "Shape",
    "TupleShape",
    "make_shape",
    "make_shape_with_layout",
    "create_r0",
    "create_r1",
    "create_r2",
    "create_r3",
    "create_r4",
    "from_tensor",
    "make_tuple",
    # Building and executing
    "Computation",
    "ComputationBuilder",
    "Op",
    "Client",
    "DataScope",
    "GlobalData",
    # Comparison and sweeps
    "ComparisonResult",
    "ErrorSpec",
    "compare_equal",
    "compare_near",
    "expect_equal",
    "expect_near",
    "HarnessOptions",
    "LayoutPermutations",
    "LayoutTestHarness",
    "SweepReport",
    "for_each_input_layout_combination",
]
