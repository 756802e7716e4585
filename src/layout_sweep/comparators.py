"""Exact and tolerance-bounded literal comparison.

Two comparators, both structural over scalars, arrays and tuples:

- :func:`compare_equal`: every element identical.  Meant for integral and
  boolean values; floating and complex elements, when compared at all, must
  match bit for bit.
- :func:`compare_near`: floating and complex elements accepted when
  ``|actual - expected| <= abs`` **or** ``|actual - expected| / |expected| <= rel``.
  Matching NaNs and equal infinities are accepted.  Integral and boolean
  components inside a tuple are still compared exactly.

Neither raises on a mismatch; both return a :class:`ComparisonResult` whose
``message`` holds the context string, the first offending element and the
full expected/actual dumps.  :func:`expect_equal` and :func:`expect_near`
turn a failed result into a :class:`~layout_sweep._exceptions.ComparisonError`.

Picking the comparator that matches the expected element kind is checked
separately by :func:`check_comparator_precondition`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from layout_sweep._backend import get_torch
from layout_sweep._exceptions import ComparisonError, PreconditionError
from layout_sweep._logging import get_logger
from layout_sweep.literal import ArrayLiteral, Literal
from layout_sweep.shape import ElementKind

logger = get_logger(__name__)

_TOLERANT_KINDS = (ElementKind.FLOATING, ElementKind.COMPLEX)


@dataclass(frozen=True)
class ErrorSpec:
    """Absolute and relative tolerance for :func:`compare_near`."""

    abs: float
    rel: float = 0.0

    def __post_init__(self) -> None:
        if self.abs < 0 or self.rel < 0:
            raise ValueError(f"tolerances must be non-negative, got abs={self.abs} rel={self.rel}")


@dataclass
class ComparisonResult:
    """Outcome of comparing one actual literal against the expected one."""

    passed: bool
    context: str = ""
    message: str = ""
    mismatch_count: int = 0
    first_mismatch: Optional[Tuple[int, ...]] = None
    max_abs_error: float = 0.0
    max_rel_error: float = 0.0


@dataclass
class _Walk:
    mismatches: int = 0
    elements: int = 0
    first_index: Optional[Tuple[int, ...]] = None
    first_detail: str = ""
    structural: str = ""
    max_abs: float = 0.0
    max_rel: float = 0.0

    def note(self, index: Tuple[int, ...], detail: str) -> None:
        if self.first_index is None:
            self.first_index = index
            self.first_detail = detail


def check_comparator_precondition(
    expected: Literal, near: bool, allow_exact_float: bool = False
) -> None:
    """Reject a comparator that does not fit the expected element kind.

    Raises:
        PreconditionError: near comparison of a non-floating value, exact
            comparison of a floating value (unless *allow_exact_float*), or a
            tuple passed to a per-kind comparator.
    """
    if expected.is_tuple:
        raise PreconditionError(
            f"expected value {expected.shape} is a tuple; use compute_and_compare_tuple"
        )
    kind = expected.element_kind
    if near:
        if kind not in _TOLERANT_KINDS:
            raise PreconditionError(
                f"near comparison requires a floating or complex expected value, "
                f"got {kind.value} ({expected.shape.human_string()})"
            )
        return
    if kind in _TOLERANT_KINDS:
        if not allow_exact_float:
            raise PreconditionError(
                f"exact comparison requires an integral or pred expected value, "
                f"got {kind.value} ({expected.shape.human_string()}); pass an ErrorSpec"
            )
        logger.warning("performing exact comparison of floating point numbers")


def _element(tensor: Any, index: Tuple[int, ...]) -> Any:
    return tensor[index].item()


def _first_index(bad: Any) -> Tuple[int, ...]:
    """Logical multi-index of the first True element, row-major order."""
    flat = int(bad.reshape(-1).nonzero()[0].item())
    index: List[int] = []
    for size in reversed(tuple(bad.shape)):
        index.append(flat % size)
        flat //= size
    return tuple(reversed(index))


_BIT_VIEWS = {1: "int8", 2: "int16", 4: "int32", 8: "int64"}


def _bits(tensor: Any) -> Any:
    """Reinterpret floating or complex elements as same-width integers."""
    torch = get_torch()
    if tensor.is_complex():
        tensor = torch.view_as_real(tensor)
    return tensor.contiguous().view(getattr(torch, _BIT_VIEWS[tensor.element_size()]))


def _mismatched_bits(e: Any, a: Any) -> Any:
    bad = _bits(e) != _bits(a)
    if e.is_complex():
        bad = bad.any(dim=-1)
    return bad


def _compare_equal_arrays(
    expected: ArrayLiteral, actual: ArrayLiteral, path: Tuple[int, ...], walk: _Walk
) -> None:
    e, a = expected.tensor, actual.tensor
    walk.elements += e.numel()
    if e.numel() == 0:
        return
    if expected.element_kind in _TOLERANT_KINDS:
        # -0.0 differs from 0.0; a NaN matches only the identical NaN
        bad = _mismatched_bits(e, a)
    else:
        bad = e != a
    count = int(bad.sum().item())
    if count:
        walk.mismatches += count
        index = _first_index(bad)
        walk.note(path + index, f"expected {_element(e, index)!r}, actual {_element(a, index)!r}")


def _compare_near_arrays(
    expected: ArrayLiteral,
    actual: ArrayLiteral,
    error: ErrorSpec,
    path: Tuple[int, ...],
    walk: _Walk,
) -> None:
    torch = get_torch()
    wide = torch.complex128 if expected.element_kind is ElementKind.COMPLEX else torch.float64
    e, a = expected.tensor.to(wide), actual.tensor.to(wide)
    walk.elements += e.numel()
    if e.numel() == 0:
        return
    diff = (a - e).abs()
    rel = diff / e.abs()
    ok = (diff <= error.abs) | (rel <= error.rel) | (a == e) | (torch.isnan(a) & torch.isnan(e))
    finite_diff = diff[torch.isfinite(diff)]
    if finite_diff.numel():
        walk.max_abs = max(walk.max_abs, float(finite_diff.max().item()))
    finite_rel = rel[torch.isfinite(rel)]
    if finite_rel.numel():
        walk.max_rel = max(walk.max_rel, float(finite_rel.max().item()))
    bad = ~ok
    count = int(bad.sum().item())
    if count:
        walk.mismatches += count
        index = _first_index(bad)
        walk.note(
            path + index,
            f"expected {_element(expected.tensor, index)!r}, actual {_element(actual.tensor, index)!r} "
            f"(abs error {_element(diff, index):.6g}, rel error {_element(rel, index):.6g})",
        )


def _walk(
    expected: Literal, actual: Literal, error: Optional[ErrorSpec], path: Tuple[int, ...], walk: _Walk
) -> None:
    if walk.structural:
        return
    if expected.is_tuple or actual.is_tuple:
        if not (expected.is_tuple and actual.is_tuple) or len(expected) != len(actual):
            walk.structural = (
                f"shape mismatch at tuple index {path}: expected "
                f"{expected.shape.human_string()}, actual {actual.shape.human_string()}"
            )
            return
        for i, (e, a) in enumerate(zip(expected.elements, actual.elements)):
            _walk(e, a, error, path + (i,), walk)
        return
    if not expected.shape.compatible(actual.shape):
        walk.structural = (
            f"shape mismatch: expected {expected.shape.human_string()}, "
            f"actual {actual.shape.human_string()}"
        )
        return
    if error is not None and expected.element_kind in _TOLERANT_KINDS:
        _compare_near_arrays(expected, actual, error, path, walk)
    else:
        _compare_equal_arrays(expected, actual, path, walk)


def _compare(
    expected: Literal, actual: Literal, error: Optional[ErrorSpec], context: str
) -> ComparisonResult:
    walk = _Walk()
    _walk(expected, actual, error, (), walk)
    passed = not walk.structural and walk.mismatches == 0
    result = ComparisonResult(
        passed=passed,
        context=context,
        mismatch_count=walk.mismatches,
        first_mismatch=walk.first_index,
        max_abs_error=walk.max_abs,
        max_rel_error=walk.max_rel,
    )
    if passed:
        return result

    lines: List[str] = []
    if walk.structural:
        lines.append(walk.structural)
    else:
        kind = "near" if error is not None else "equal"
        lines.append(
            f"{kind} comparison failed: {walk.mismatches} of {walk.elements} element(s) "
            f"mismatched; first at element {walk.first_index}: {walk.first_detail}"
        )
        if error is not None:
            lines.append(
                f"max abs error {walk.max_abs:.6g}, max rel error {walk.max_rel:.6g} "
                f"(abs tolerance {error.abs:g}, rel tolerance {error.rel:g})"
            )
    if context:
        lines.append(context)
    lines.append("expected: " + expected.to_string())
    lines.append("actual:   " + actual.to_string())
    result.message = "\n".join(lines)
    return result


def compare_equal(expected: Literal, actual: Literal, context: str = "") -> ComparisonResult:
    """Compare element-for-element."""
    return _compare(expected, actual, None, context)


def compare_near(
    expected: Literal, actual: Literal, error: ErrorSpec, context: str = ""
) -> ComparisonResult:
    """Compare floating and complex elements within *error*."""
    return _compare(expected, actual, error, context)


def expect_equal(expected: Literal, actual: Literal, context: str = "") -> ComparisonResult:
    """Like :func:`compare_equal` but raise on mismatch."""
    result = compare_equal(expected, actual, context)
    if not result.passed:
        raise ComparisonError(result.message, [result])
    return result


def expect_near(
    expected: Literal, actual: Literal, error: ErrorSpec, context: str = ""
) -> ComparisonResult:
    """Like :func:`compare_near` but raise on mismatch."""
    result = compare_near(expected, actual, error, context)
    if not result.passed:
        raise ComparisonError(result.message, [result])
    return result
