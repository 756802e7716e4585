"""Shapes, element kinds and their human-readable rendering.

A :class:`Shape` is an element type plus dimension sizes and, optionally, a
fixed layout.  A :class:`TupleShape` groups other shapes and has neither a
rank nor a layout of its own.

Human strings follow the compact ``<type>[<dims>]{<minor_to_major>}`` form
used in every failure message, e.g. ``f32[2,3]{0,1}`` for a column-major
2x3 float matrix.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from layout_sweep._backend import get_torch
from layout_sweep.layouts import (
    MinorToMajor,
    default_minor_to_major,
    infer_minor_to_major,
    is_permutation,
)


class ElementKind(enum.Enum):
    """Comparison category of an element type."""

    PRED = "pred"
    INTEGRAL = "integral"
    FLOATING = "floating"
    COMPLEX = "complex"


def element_kind(dtype: Any) -> ElementKind:
    """Classify a ``torch.dtype``."""
    torch = get_torch()
    if dtype == torch.bool:
        return ElementKind.PRED
    if dtype.is_complex:
        return ElementKind.COMPLEX
    if dtype.is_floating_point:
        return ElementKind.FLOATING
    return ElementKind.INTEGRAL


_TYPE_NAMES: Dict[str, str] = {
    "bool": "pred",
    "int8": "s8",
    "int16": "s16",
    "int32": "s32",
    "int64": "s64",
    "uint8": "u8",
    "float16": "f16",
    "bfloat16": "bf16",
    "float32": "f32",
    "float64": "f64",
    "complex64": "c64",
    "complex128": "c128",
}


def element_type_name(dtype: Any) -> str:
    """Short name for a dtype: ``torch.float32`` -> ``"f32"``."""
    name = str(dtype).replace("torch.", "")
    return _TYPE_NAMES.get(name, name)


@dataclass(frozen=True)
class Shape:
    """Array shape with an optional minor-to-major layout."""

    element_type: Any
    dimensions: Tuple[int, ...]
    minor_to_major: Optional[MinorToMajor] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "dimensions", tuple(int(d) for d in self.dimensions))
        if any(d < 0 for d in self.dimensions):
            raise ValueError(f"negative dimension in {self.dimensions}")
        if self.minor_to_major is not None:
            layout = tuple(int(d) for d in self.minor_to_major)
            if not is_permutation(layout, len(self.dimensions)):
                raise ValueError(
                    f"layout {layout} is not a permutation of range({len(self.dimensions)})"
                )
            object.__setattr__(self, "minor_to_major", layout)

    is_tuple = False

    @property
    def rank(self) -> int:
        return len(self.dimensions)

    @property
    def element_kind(self) -> ElementKind:
        return element_kind(self.element_type)

    @property
    def has_layout(self) -> bool:
        return self.minor_to_major is not None

    def with_layout(self, minor_to_major: Sequence[int]) -> "Shape":
        return Shape(self.element_type, self.dimensions, tuple(minor_to_major))

    def without_layout(self) -> "Shape":
        return Shape(self.element_type, self.dimensions)

    def compatible(self, other: "AnyShape") -> bool:
        """Same element type and dimensions; layouts are ignored."""
        return (
            isinstance(other, Shape)
            and other.element_type == self.element_type
            and other.dimensions == self.dimensions
        )

    def human_string(self) -> str:
        dims = ",".join(str(d) for d in self.dimensions)
        return f"{element_type_name(self.element_type)}[{dims}]"

    def human_string_with_layout(self) -> str:
        text = self.human_string()
        if self.rank == 0:
            return text
        layout = self.minor_to_major
        if layout is None:
            layout = default_minor_to_major(self.rank)
        return text + "{" + ",".join(str(d) for d in layout) + "}"

    def __str__(self) -> str:
        return self.human_string_with_layout()


@dataclass(frozen=True)
class TupleShape:
    """Composite shape; each component carries its own layout."""

    tuple_shapes: Tuple["AnyShape", ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "tuple_shapes", tuple(self.tuple_shapes))

    is_tuple = True

    def compatible(self, other: "AnyShape") -> bool:
        return (
            isinstance(other, TupleShape)
            and len(other.tuple_shapes) == len(self.tuple_shapes)
            and all(a.compatible(b) for a, b in zip(self.tuple_shapes, other.tuple_shapes))
        )

    def human_string(self) -> str:
        return "(" + ", ".join(s.human_string() for s in self.tuple_shapes) + ")"

    def human_string_with_layout(self) -> str:
        return "(" + ", ".join(s.human_string_with_layout() for s in self.tuple_shapes) + ")"

    def __str__(self) -> str:
        return self.human_string_with_layout()


AnyShape = Union[Shape, TupleShape]


def make_shape(element_type: Any, dimensions: Sequence[int]) -> Shape:
    return Shape(element_type, tuple(dimensions))


def make_shape_with_layout(
    element_type: Any, dimensions: Sequence[int], minor_to_major: Sequence[int]
) -> Shape:
    return Shape(element_type, tuple(dimensions), tuple(minor_to_major))


def make_tuple_shape(shapes: Sequence[AnyShape]) -> TupleShape:
    return TupleShape(tuple(shapes))


def shape_of(tensor: Any) -> Shape:
    """Shape of a tensor, with the layout its strides describe."""
    dims = tuple(tensor.shape)
    return Shape(tensor.dtype, dims, infer_minor_to_major(dims, tuple(tensor.stride())))
