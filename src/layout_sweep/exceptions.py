"""Public exception hierarchy for layout-sweep.

All layout-sweep exceptions inherit from :class:`LayoutSweepError`, so users
can ``except LayoutSweepError`` to catch any library error, or be specific
with a subclass.

Example::

    from layout_sweep.exceptions import ExecutionError, PreconditionError

    try:
        harness.compute_and_compare_literal(builder, expected, args, error=spec)
    except PreconditionError:
        print("wrong comparator for this element type")
    except ExecutionError as e:
        print(f"backend failed: {e}")
"""

from layout_sweep._exceptions import (  # noqa: F401
    BuildError,
    ComparisonError,
    ExecutionError,
    LayoutSweepError,
    PreconditionError,
    TransferError,
)

__all__ = [
    "LayoutSweepError",
    "BuildError",
    "ComparisonError",
    "ExecutionError",
    "PreconditionError",
    "TransferError",
]
