"""Layout enumeration and stride arithmetic.

A layout is a *minor-to-major* ordering of a shape's dimensions: entry ``0``
names the dimension whose elements are adjacent in memory, the last entry
names the slowest-varying one.  Row-major (C order) for rank 2 is ``(1, 0)``,
column-major is ``(0, 1)``.

Every permutation of ``range(rank)`` is a valid layout, so a rank-R value has
exactly ``R!`` physical layouts.  :class:`LayoutPermutations` enumerates them
lazily in lexicographic order starting from the identity; the input-layout
sweep takes the cartesian product of those sequences across arguments.

On the torch side a layout is realised purely through strides: see
:func:`strides_for_layout` and :func:`infer_minor_to_major`.
"""

from __future__ import annotations

import math
from typing import Iterable, Iterator, List, MutableSequence, Sequence, Tuple

MinorToMajor = Tuple[int, ...]


def is_permutation(seq: Sequence[int], rank: int) -> bool:
    """Return True if *seq* is a bijection over ``range(rank)``."""
    return len(seq) == rank and sorted(seq) == list(range(rank))


def default_minor_to_major(rank: int) -> MinorToMajor:
    """Row-major layout: the last dimension is minor-most."""
    return tuple(range(rank - 1, -1, -1))


def next_permutation(seq: MutableSequence[int]) -> bool:
    """Advance *seq* in place to its lexicographic successor.

    Returns False once *seq* was the last permutation, in which case it is
    reset to ascending order (the same contract as ``std::next_permutation``).
    """
    i = len(seq) - 2
    while i >= 0 and seq[i] >= seq[i + 1]:
        i -= 1
    if i < 0:
        seq.reverse()
        return False
    j = len(seq) - 1
    while seq[j] <= seq[i]:
        j -= 1
    seq[i], seq[j] = seq[j], seq[i]
    seq[i + 1:] = reversed(seq[i + 1:])
    return True


class LayoutPermutations:
    """Every minor-to-major order for a given rank.

    Iterating is lazy and restartable: each ``iter()`` starts again from the
    identity permutation.  Ranks 0 and 1 yield exactly one (trivial) layout.

    Example::

        >>> list(LayoutPermutations(2))
        [(0, 1), (1, 0)]
        >>> len(LayoutPermutations(4))
        24
    """

    def __init__(self, rank: int) -> None:
        if rank < 0:
            raise ValueError(f"rank must be non-negative, got {rank}")
        self.rank = rank

    def __iter__(self) -> Iterator[MinorToMajor]:
        order = list(range(self.rank))
        yield tuple(order)
        while next_permutation(order):
            yield tuple(order)

    def __len__(self) -> int:
        return math.factorial(self.rank)

    def __repr__(self) -> str:
        return f"LayoutPermutations(rank={self.rank})"


def strides_for_layout(dimensions: Sequence[int], minor_to_major: Sequence[int]) -> Tuple[int, ...]:
    """Element strides that store *dimensions* in the given minor-to-major order."""
    if not is_permutation(minor_to_major, len(dimensions)):
        raise ValueError(
            f"layout {tuple(minor_to_major)} is not a permutation of "
            f"range({len(dimensions)})"
        )
    strides: List[int] = [0] * len(dimensions)
    step = 1
    for dim in minor_to_major:
        strides[dim] = step
        step *= max(dimensions[dim], 1)
    return tuple(strides)


def infer_minor_to_major(sizes: Sequence[int], strides: Sequence[int]) -> MinorToMajor:
    """Recover a minor-to-major order from tensor strides.

    Dimensions with equal strides (size-1 dims, empty tensors) are ordered
    the way row-major would order them, so a contiguous tensor always maps
    to :func:`default_minor_to_major`.
    """
    if len(sizes) != len(strides):
        raise ValueError("sizes and strides must have the same length")
    return tuple(sorted(range(len(sizes)), key=lambda dim: (strides[dim], -dim)))


def layout_count(shapes: Iterable[object]) -> int:
    """Number of input-layout combinations a sweep over *shapes* will visit.

    Tuple shapes are passed through without relayout and contribute a
    factor of one.
    """
    total = 1
    for shape in shapes:
        if getattr(shape, "is_tuple", False):
            continue
        total *= len(LayoutPermutations(shape.rank))  # type: ignore[attr-defined]
    return total
