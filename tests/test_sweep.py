"""Tests for the input- and output-layout sweeps."""

from __future__ import annotations

import pytest
import torch

from layout_sweep._exceptions import ExecutionError
from layout_sweep.builder import ComputationBuilder
from layout_sweep.comparators import ErrorSpec, compare_equal, compare_near
from layout_sweep.layouts import strides_for_layout
from layout_sweep.literal import create_r0, create_r1, create_r2, create_r3, make_tuple
from layout_sweep.report import SweepReport
from layout_sweep.shape import make_shape_with_layout
from layout_sweep.sweep import (
    TUPLE_DESCRIPTOR_SUFFIX,
    compare_baseline,
    compare_with_all_input_layouts,
    compare_with_all_output_layouts,
    for_each_input_layout_combination,
    input_layouts_context,
)

MATRIX = [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]


def _cube():
    return create_r3(torch.arange(24, dtype=torch.int32).reshape(2, 3, 4).tolist(), torch.int32)


def _identity(literal):
    b = ComputationBuilder("identity")
    x = b.parameter(0, literal.shape, "x")
    b.abs(x)
    return b.build()


def _row_major_reader():
    """Reads its argument's storage as if it were row-major."""
    b = ComputationBuilder("row_major_reader")
    x = b.parameter(0, create_r2(MATRIX, torch.float32).shape, "x")
    b.map(
        lambda t: torch.as_strided(t, tuple(t.shape), strides_for_layout(tuple(t.shape), (1, 0))),
        x,
        name="reinterpret",
    )
    return b.build()


def _near(expected):
    return lambda actual, context: compare_near(expected, actual, ErrorSpec(1e-6), context)


class TestInputLayoutCombinations:
    """Cartesian product over argument layouts."""

    def test_rank2_and_rank3_give_twelve(self, client) -> None:
        args = [client.transfer_to_server(create_r2(MATRIX, torch.float32)), client.transfer_to_server(_cube())]
        seen = []

        def visit(handles, descriptors):
            for handle in handles:
                value = handle.value
                assert value.stride() == strides_for_layout(tuple(value.shape), handle.shape.minor_to_major)
            seen.append(descriptors)

        assert for_each_input_layout_combination(client, args, visit) == 12
        assert len(seen) == 12
        assert len(set(seen)) == 12
        assert seen[0] == ("f32[2,3]{0,1}", "s32[2,3,4]{0,1,2}")

    def test_tuple_argument_passes_through(self, client) -> None:
        pair = client.transfer_to_server(make_tuple(create_r0(1, torch.int32), create_r1([1, 2], torch.int32)))
        args = [
            client.transfer_to_server(create_r2(MATRIX, torch.float32)),
            pair,
            client.transfer_to_server(_cube()),
        ]
        seen = []

        def visit(handles, descriptors):
            assert handles[1] is pair
            seen.append(descriptors[1])

        assert for_each_input_layout_combination(client, args, visit) == 12
        assert set(seen) == {"(s32[], s32[2]{0})" + TUPLE_DESCRIPTOR_SUFFIX}

    def test_no_arguments_visits_once(self, client) -> None:
        calls = []
        assert for_each_input_layout_combination(client, [], lambda h, d: calls.append(d)) == 1
        assert calls == [()]

    def test_scalar_argument_has_one_layout(self, client) -> None:
        args = [client.transfer_to_server(create_r0(2.0, torch.float32))]
        seen = []
        for_each_input_layout_combination(client, args, lambda h, d: seen.append(d))
        assert seen == [("f32[]",)]

    def test_relaid_handles_released_originals_kept(self, client) -> None:
        args = [client.transfer_to_server(create_r2(MATRIX, torch.float32)), client.transfer_to_server(_cube())]
        handles = []
        for_each_input_layout_combination(client, args, lambda h, d: handles.extend(h))
        assert len(handles) == 24
        assert all(h.released for h in handles)
        assert not any(a.released for a in args)

    def test_error_aborts_sweep(self, client) -> None:
        args = [client.transfer_to_server(_cube())]
        handles = []

        def visit(h, d):
            handles.extend(h)
            if len(handles) == 3:
                raise ExecutionError("device lost")

        with pytest.raises(ExecutionError, match="device lost"):
            for_each_input_layout_combination(client, args, visit)
        assert len(handles) == 3
        assert all(h.released for h in handles)

    def test_context_string(self) -> None:
        assert input_layouts_context(["f32[2,3]{0,1}", "s32[]"]) == (
            "Test with input layouts: f32[2,3]{0,1} s32[]"
        )


class TestInputSweep:
    """compare_with_all_input_layouts records one result per combination."""

    def test_all_pass(self, client) -> None:
        matrix = create_r2(MATRIX, torch.float32)
        report = SweepReport("identity", "all-input-layouts")
        count = compare_with_all_input_layouts(
            client, _identity(matrix), [client.transfer_to_server(matrix)], _near(matrix), report
        )
        assert count == 2
        assert report.passed
        assert report.contexts == [
            "Test with input layouts: f32[2,3]{0,1}",
            "Test with input layouts: f32[2,3]{1,0}",
        ]

    def test_layout_dependent_bug_is_found(self, client) -> None:
        matrix = create_r2(MATRIX, torch.float32)
        report = SweepReport("row_major_reader", "all-input-layouts")
        compare_with_all_input_layouts(
            client, _row_major_reader(), [client.transfer_to_server(matrix)], _near(matrix), report
        )
        assert len(report.results) == 2
        assert len(report.failures) == 1
        assert "f32[2,3]{0,1}" in report.failures[0].context
        assert "f32[2,3]{0,1}" in report.failures[0].message

    def test_output_layout_forwarded(self, client) -> None:
        matrix = create_r2(MATRIX, torch.float32)
        layout = make_shape_with_layout(torch.float32, [2, 3], [0, 1])
        report = SweepReport("identity", "all-input-layouts")
        layouts = []

        def verify(actual, context):
            layouts.append(actual.minor_to_major)
            return compare_near(matrix, actual, ErrorSpec(1e-6), context)

        compare_with_all_input_layouts(
            client, _identity(matrix), [client.transfer_to_server(matrix)], verify, report, layout
        )
        assert layouts == [(0, 1), (0, 1)]


class TestOutputSweep:
    """Baseline plus every output layout."""

    def test_baseline_then_each_layout(self, client) -> None:
        matrix = create_r2(MATRIX, torch.float32)
        report = SweepReport("identity", "all-output-layouts")
        compare_with_all_output_layouts(
            client, _identity(matrix), matrix, [client.transfer_to_server(matrix)], _near(matrix), report
        )
        assert report.contexts == [
            "",
            "Test with output layout: f32[2,3]{0,1}",
            "Test with output layout: f32[2,3]{1,0}",
        ]
        assert report.passed

    def test_actual_is_in_requested_layout(self, client) -> None:
        cube = _cube()
        layouts = []

        def verify(actual, context):
            layouts.append(actual.minor_to_major)
            return compare_equal(cube, actual, context)

        report = SweepReport("identity", "all-output-layouts")
        compare_with_all_output_layouts(
            client, _identity(cube), cube, [client.transfer_to_server(cube)], verify, report
        )
        assert len(layouts) == 7
        assert layouts[0] == (2, 1, 0)
        assert sorted(layouts[1:]) == layouts[1:]
        assert len(set(layouts[1:])) == 6

    def test_tuple_expected_runs_baseline_only(self, client) -> None:
        b = ComputationBuilder("pair")
        x = b.parameter(0, create_r0(1, torch.int32).shape, "x")
        b.tuple([x, x])
        expected = make_tuple(create_r0(1, torch.int32), create_r0(1, torch.int32))
        report = SweepReport("pair", "all-output-layouts")
        compare_with_all_output_layouts(
            client,
            b.build(),
            expected,
            [client.transfer_to_server(create_r0(1, torch.int32))],
            lambda actual, context: compare_equal(expected, actual, context),
            report,
        )
        assert report.contexts == [""]
        assert report.passed


class TestBaseline:
    """Single execution."""

    def test_default(self, client) -> None:
        matrix = create_r2(MATRIX, torch.float32)
        report = SweepReport("identity", "baseline")
        compare_baseline(client, _identity(matrix), [client.transfer_to_server(matrix)], _near(matrix), report)
        assert report.contexts == [""]

    def test_with_output_layout(self, client) -> None:
        matrix = create_r2(MATRIX, torch.float32)
        layout = make_shape_with_layout(torch.float32, [2, 3], [0, 1])
        report = SweepReport("identity", "baseline")
        compare_baseline(
            client, _identity(matrix), [client.transfer_to_server(matrix)], _near(matrix), report, layout
        )
        assert report.contexts == ["Test with output layout: f32[2,3]{0,1}"]
        assert report.passed
