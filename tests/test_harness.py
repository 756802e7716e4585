"""Tests for LayoutTestHarness entry points and sweep modes."""

from __future__ import annotations

import logging
import typing
from unittest.mock import patch

import pytest
import torch

from layout_sweep._exceptions import BuildError, ComparisonError, ExecutionError, PreconditionError
from layout_sweep.builder import ComputationBuilder
from layout_sweep.comparators import ErrorSpec
from layout_sweep.harness import LayoutTestHarness
from layout_sweep.layouts import strides_for_layout
from layout_sweep.literal import create_r0, create_r1, create_r1_u8, create_r2, create_r3, make_tuple
from layout_sweep.shape import make_shape_with_layout

MATRIX = [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]
ERROR = ErrorSpec(1e-6)


def _matrix():
    return create_r2(MATRIX, torch.float32)


def _cube():
    return create_r3(torch.arange(24, dtype=torch.int32).reshape(2, 3, 4).tolist(), torch.int32)


def _abs_of_first(harness, *literals):
    """Builder computing ``abs(arg0)``; later arguments are ignored."""
    b = ComputationBuilder("abs_of_first")
    args = []
    for number, literal in enumerate(literals):
        data, op = harness.create_parameter_and_transfer_literal(b, number, literal, f"p{number}")
        args.append(data)
        if number == 0:
            first = op
    b.abs(first)
    return b, args


def _row_major_reader(harness):
    b = ComputationBuilder("row_major_reader")
    data, x = harness.create_parameter_and_transfer_literal(b, 0, _matrix(), "x")
    b.map(
        lambda t: torch.as_strided(t, tuple(t.shape), strides_for_layout(tuple(t.shape), (1, 0))),
        x,
    )
    return b, [data]


class TestModes:
    """Number of comparisons per mode."""

    def test_baseline(self, make_harness) -> None:
        harness = make_harness()
        b, args = _abs_of_first(harness, _matrix())
        report = harness.compute_and_compare_literal(b, _matrix(), args, ERROR)
        assert report.mode == "baseline"
        assert report.contexts == [""]

    def test_all_output_layouts(self, make_harness) -> None:
        harness = make_harness(test_all_output_layouts=True)
        b, args = _abs_of_first(harness, _matrix())
        report = harness.compute_and_compare_literal(b, _matrix(), args, ERROR)
        assert report.mode == "all-output-layouts"
        assert len(report.results) == 3

    def test_all_input_layouts(self, make_harness) -> None:
        harness = make_harness(test_all_input_layouts=True)
        b, args = _abs_of_first(harness, _matrix(), _cube())
        report = harness.compute_and_compare_literal(b, _matrix(), args, ERROR)
        assert report.mode == "all-input-layouts"
        assert len(report.results) == 12
        assert len(set(report.contexts)) == 12

    def test_both_flags_run_output_sweep_only(self, make_harness, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="layout_sweep"):
            harness = make_harness(test_all_output_layouts=True, test_all_input_layouts=True)
        assert "only the output-layout sweep runs" in caplog.text
        b, args = _abs_of_first(harness, _matrix(), _cube())
        report = harness.compute_and_compare_literal(b, _matrix(), args, ERROR)
        assert report.mode == "all-output-layouts"
        assert len(report.results) == 3

    def test_options_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS", "1")
        monkeypatch.setenv("LAYOUT_SWEEP_DEVICE", "cpu")
        harness = LayoutTestHarness()
        assert harness.client.device == "cpu"
        assert harness.options.mode == "all-output-layouts"

    def test_baseline_with_output_layout(self, make_harness) -> None:
        harness = make_harness()
        b, args = _abs_of_first(harness, _matrix())
        layout = make_shape_with_layout(torch.float32, [2, 3], [0, 1])
        report = harness.compute_and_compare_literal(b, _matrix(), args, ERROR, shape_with_layout=layout)
        assert report.contexts == ["Test with output layout: f32[2,3]{0,1}"]

    def test_repeatable(self, make_harness) -> None:
        harness = make_harness(test_all_input_layouts=True)
        b, args = _abs_of_first(harness, _matrix(), _cube())
        computation = b.build()
        first = harness.compute_and_compare_literal(computation, _matrix(), args, ERROR)
        second = harness.compute_and_compare_literal(computation, _matrix(), args, ERROR)
        assert first.contexts == second.contexts
        assert first.passed and second.passed


class TestFailures:
    """Mismatches, preconditions and infrastructure errors."""

    def test_layout_bug_raises_comparison_error(self, make_harness) -> None:
        harness = make_harness(test_all_input_layouts=True)
        b, args = _row_major_reader(harness)
        with pytest.raises(ComparisonError) as excinfo:
            harness.compute_and_compare_literal(b, _matrix(), args, ERROR)
        message = str(excinfo.value)
        assert "row_major_reader: 1 of 2 comparison(s) failed (all-input-layouts)" in message
        assert "Test with input layouts: f32[2,3]{0,1}" in message
        assert len(excinfo.value.failures) == 1

    def test_layout_bug_invisible_in_baseline(self, make_harness) -> None:
        harness = make_harness()
        b, args = _row_major_reader(harness)
        assert harness.compute_and_compare_literal(b, _matrix(), args, ERROR).passed

    def test_with_status_does_not_raise(self, make_harness) -> None:
        harness = make_harness(test_all_input_layouts=True)
        b, args = _row_major_reader(harness)
        report = harness.compute_and_compare_literal_with_status(b, _matrix(), args, ERROR)
        assert not report.passed
        assert report.error is None
        assert len(report.failures) == 1

    def test_precondition_checked_before_execution(self, make_harness) -> None:
        harness = make_harness()
        b, args = _abs_of_first(harness, _cube())
        with patch.object(harness.client, "execute_and_transfer") as execute:
            with pytest.raises(PreconditionError, match="integral"):
                harness.compute_and_compare_literal(b, _cube(), args, ERROR)
        execute.assert_not_called()

    def test_exact_float_rejected(self, make_harness) -> None:
        harness = make_harness()
        b, args = _abs_of_first(harness, _matrix())
        with pytest.raises(PreconditionError):
            harness.compute_and_compare_literal(b, _matrix(), args)

    def test_exact_float_allowed(self, make_harness) -> None:
        harness = make_harness(allow_exact_float_comparison=True)
        b, args = _abs_of_first(harness, _matrix())
        assert harness.compute_and_compare_literal(b, _matrix(), args).passed

    def test_exact_float_distinguishes_signed_zero(self, make_harness) -> None:
        harness = make_harness(allow_exact_float_comparison=True)
        b = ComputationBuilder("times_zero")
        data, x = harness.create_parameter_and_transfer_literal(
            b, 0, create_r1([-1.0, 2.0], torch.float32), "x"
        )
        b.mul(x, b.constant_r0(0.0, torch.float32))
        with pytest.raises(ComparisonError, match=r"first at element \(0,\)"):
            harness.compute_and_compare_literal(b, create_r1([0.0, 0.0], torch.float32), [data])
        assert harness.compute_and_compare_literal(b, create_r1([-0.0, 0.0], torch.float32), [data]).passed

    def test_build_error_propagates(self, make_harness) -> None:
        harness = make_harness(test_all_output_layouts=True)
        b = ComputationBuilder("broken")
        b.parameter(1, _matrix().shape, "x")
        with pytest.raises(BuildError, match="not contiguous"):
            harness.compute_and_compare_literal(b, _matrix(), [], ERROR)

    def test_build_error_in_status(self, make_harness) -> None:
        harness = make_harness()
        report = harness.compute_and_compare_literal_with_status(
            ComputationBuilder("empty"), _matrix(), [], ERROR
        )
        assert isinstance(report.error, BuildError)
        assert not report.passed
        assert report.results == []

    def test_execution_error_aborts(self, make_harness) -> None:
        harness = make_harness(test_all_output_layouts=True)
        b, _ = _abs_of_first(harness, _matrix())
        with pytest.raises(ExecutionError, match="takes 1 argument"):
            harness.compute_and_compare_literal(b, _matrix(), [], ERROR)


class TestTypedHelpers:
    """compute_and_compare_rN and friends."""

    @pytest.mark.parametrize("rank", [0, 1, 2, 3, 4])
    def test_ranked_helpers_are_annotated(self, rank) -> None:
        method = getattr(LayoutTestHarness, f"compute_and_compare_r{rank}")
        hints = typing.get_type_hints(method)
        assert {"builder", "expected", "arguments", "error", "dtype", "return"} <= set(hints)

    def test_r0(self, make_harness) -> None:
        harness = make_harness(test_all_output_layouts=True)
        b, args = _abs_of_first(harness, create_r0(-2.5, torch.float32))
        assert harness.compute_and_compare_r0(b, 2.5, args, ERROR).passed

    def test_r2_defaults_to_f32_with_error(self, make_harness) -> None:
        harness = make_harness(test_all_output_layouts=True)
        b, args = _abs_of_first(harness, _matrix())
        assert harness.compute_and_compare_r2(b, MATRIX, args, ERROR).passed

    def test_r3_exact(self, make_harness) -> None:
        harness = make_harness(test_all_input_layouts=True)
        b, args = _abs_of_first(harness, _cube())
        report = harness.compute_and_compare_r3(b, _cube().tensor.tolist(), args, dtype=torch.int32)
        assert len(report.results) == 6

    def test_r1_u8(self, make_harness) -> None:
        harness = make_harness()
        b = ComputationBuilder("echo")
        data, x = harness.create_parameter_and_transfer_literal(b, 0, create_r1_u8(b"hello"), "x")
        b.reshape(x, [5])
        assert harness.compute_and_compare_r1_u8(b, "hello", [data]).passed

    def test_r1_pred(self, make_harness) -> None:
        harness = make_harness(test_all_output_layouts=True)
        b = ComputationBuilder("positive")
        data, x = harness.create_parameter_and_transfer_literal(
            b, 0, create_r1([1.0, -1.0, 0.5], torch.float32), "x"
        )
        b.gt(x, b.constant_r0(0.0, torch.float32))
        assert harness.compute_and_compare_r1_pred(b, [True, False, True], [data]).passed

    def test_tuple(self, make_harness) -> None:
        harness = make_harness(test_all_input_layouts=True)
        b = ComputationBuilder("split")
        data, x = harness.create_parameter_and_transfer_literal(b, 0, _matrix(), "x")
        b.tuple([b.neg(x), b.convert(x, torch.int32)])
        expected = make_tuple(
            create_r2([[-v for v in row] for row in MATRIX], torch.float32),
            create_r2([[1, 2, 3], [4, 5, 6]], torch.int32),
        )
        report = harness.compute_and_compare_tuple(b, expected, [data], ERROR)
        assert report.mode == "tuple"
        assert len(report.results) == 1

    def test_tuple_mismatch(self, make_harness) -> None:
        harness = make_harness()
        b = ComputationBuilder("pair")
        data, x = harness.create_parameter_and_transfer_literal(b, 0, create_r0(1, torch.int32), "x")
        b.tuple([x, x])
        expected = make_tuple(create_r0(1, torch.int32), create_r0(2, torch.int32))
        with pytest.raises(ComparisonError, match="pair: 1 of 1 comparison"):
            harness.compute_and_compare_tuple(b, expected, [data])


class TestExecutionHelpers:

    def test_execute_to_string(self, make_harness) -> None:
        harness = make_harness()
        b, args = _abs_of_first(harness, _matrix())
        assert harness.execute_to_string(b, args).startswith("f32[2,3]{1,0} [[1.0, 2.0, 3.0]")

    def test_execute_to_string_reports_error(self, make_harness) -> None:
        harness = make_harness()
        assert "no operations" in harness.execute_to_string(ComputationBuilder("empty"), [])

    def test_execute_returns_handle(self, make_harness) -> None:
        harness = make_harness()
        b, args = _abs_of_first(harness, _matrix())
        result = harness.execute(b, args)
        assert harness.client.transfer(result).tensor.tolist() == MATRIX

    def test_create_parameter_and_transfer_literal(self, make_harness) -> None:
        harness = make_harness()
        b = ComputationBuilder("p")
        data, op = harness.create_parameter_and_transfer_literal(b, 0, _matrix(), "x")
        assert data.shape == _matrix().shape
        assert b.build().parameter_shapes == (_matrix().shape,)
