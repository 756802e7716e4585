"""Custom exception hierarchy for layout-sweep.

Errors fall into three families that a sweep treats differently:

- infrastructure errors (:class:`BuildError`, :class:`ExecutionError`,
  :class:`TransferError`) abort the sweep immediately and are surfaced as-is;
- :class:`PreconditionError` signals harness misuse (e.g. requesting a
  tolerance comparison on integers) and is raised before anything executes;
- :class:`ComparisonError` is an :class:`AssertionError` raised after a sweep
  has finished, listing every layout combination that produced a mismatch.

Usage::

    from layout_sweep._exceptions import ComparisonError

    try:
        harness.compute_and_compare_literal(builder, expected, args)
    except ComparisonError as e:
        for failure in e.failures:
            print(failure.context)
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class LayoutSweepError(Exception):
    """Base exception for all layout-sweep errors.

    Catch this to handle any error raised by the library without
    catching unrelated exceptions.
    """


class BuildError(LayoutSweepError):
    """Raised when a computation graph is malformed and cannot be built."""


class ExecutionError(LayoutSweepError):
    """Raised when the backend fails to execute a computation.

    Covers argument arity and shape mismatches at the backend boundary as
    well as exceptions raised by the tensor library during evaluation.
    """


class TransferError(LayoutSweepError):
    """Raised when a value cannot be moved between host and device.

    Also raised when a released :class:`~layout_sweep.client.GlobalData`
    handle is used again.
    """


class PreconditionError(LayoutSweepError):
    """Raised when the harness is used incorrectly.

    The most common cause is picking the wrong comparator for the element
    kind of the expected value.  This is never a verdict on the computation
    under test.
    """


class ComparisonError(LayoutSweepError, AssertionError):
    """Raised when one or more layout combinations produced a wrong result.

    Attributes:
        failures: The failed comparison results, one per combination.
    """

    def __init__(self, message: str, failures: Optional[Sequence[Any]] = None) -> None:
        super().__init__(message)
        self.failures: List[Any] = list(failures or [])
