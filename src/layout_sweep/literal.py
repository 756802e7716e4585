"""Host-resident values.

A literal is either an :class:`ArrayLiteral` (a CPU tensor stored in an
explicit minor-to-major layout) or a :class:`TupleLiteral` (an ordered group
of literals).  These are the only two kinds; code that consumes literals
branches on :attr:`is_tuple` and never inspects anything else.

The layout is held next to the tensor rather than re-derived from strides,
because strides cannot tell layouts apart along size-1 dimensions: a
``[1, 3]`` tensor has the same strides in ``{0,1}`` and ``{1,0}`` order.

Literals are immutable by convention.  :meth:`ArrayLiteral.relayout` returns
a new literal with the same logical content in a different physical order.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple, Union

from layout_sweep._backend import get_torch
from layout_sweep.layouts import MinorToMajor, infer_minor_to_major, strides_for_layout
from layout_sweep.shape import ElementKind, Shape, TupleShape


def materialize(tensor: Any, minor_to_major: Sequence[int], device: Any = "cpu") -> Any:
    """Copy *tensor* into fresh storage on *device* laid out as *minor_to_major*."""
    torch = get_torch()
    strides = strides_for_layout(tuple(tensor.shape), minor_to_major)
    out = torch.empty_strided(tuple(tensor.shape), strides, dtype=tensor.dtype, device=device)
    out.copy_(tensor)
    return out


def tensor_layout(tensor: Any) -> MinorToMajor:
    """The minor-to-major order a tensor's strides describe."""
    return infer_minor_to_major(tuple(tensor.shape), tuple(tensor.stride()))


class ArrayLiteral:
    """A dense array (or scalar) held on the host in a fixed layout."""

    __slots__ = ("_tensor", "_shape")

    is_tuple = False

    def __init__(self, tensor: Any, minor_to_major: Optional[Sequence[int]] = None) -> None:
        torch = get_torch()
        if not isinstance(tensor, torch.Tensor):
            raise TypeError(f"ArrayLiteral needs a torch.Tensor, got {type(tensor).__name__}")
        tensor = tensor.detach()
        if minor_to_major is None:
            if tensor.device.type != "cpu" or not _is_dense(tensor):
                tensor = materialize(tensor, tensor_layout(tensor))
            minor_to_major = tensor_layout(tensor)
        else:
            minor_to_major = tuple(minor_to_major)
            expected = strides_for_layout(tuple(tensor.shape), minor_to_major)
            if tensor.device.type != "cpu" or tuple(tensor.stride()) != expected:
                tensor = materialize(tensor, minor_to_major)
        self._tensor = tensor
        self._shape = Shape(tensor.dtype, tuple(tensor.shape), tuple(minor_to_major))

    @property
    def tensor(self) -> Any:
        """The backing CPU tensor.  Do not modify it in place."""
        return self._tensor

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def rank(self) -> int:
        return self._shape.rank

    @property
    def minor_to_major(self) -> MinorToMajor:
        return self._shape.minor_to_major  # type: ignore[return-value]

    @property
    def element_kind(self) -> ElementKind:
        return self._shape.element_kind

    def relayout(self, minor_to_major: Sequence[int]) -> "ArrayLiteral":
        """Return a copy of this literal stored in a different layout."""
        return ArrayLiteral(materialize(self._tensor, minor_to_major), minor_to_major)

    def equal_values(self, other: "Literal") -> bool:
        """Same shape and elements, whatever either layout is."""
        if other.is_tuple or not self._shape.compatible(other.shape):
            return False
        return bool(get_torch().equal(self._tensor, other.tensor))

    def to_string(self) -> str:
        return f"{self._shape.human_string_with_layout()} {self._tensor.tolist()}"

    def __repr__(self) -> str:
        return f"ArrayLiteral({self.to_string()})"


class TupleLiteral:
    """An ordered group of literals."""

    __slots__ = ("_elements",)

    is_tuple = True

    def __init__(self, elements: Sequence["Literal"]) -> None:
        self._elements: Tuple[Literal, ...] = tuple(elements)

    @property
    def elements(self) -> Tuple["Literal", ...]:
        return self._elements

    @property
    def shape(self) -> TupleShape:
        return TupleShape(tuple(e.shape for e in self._elements))

    def relayout(self, minor_to_major: Sequence[int]) -> "TupleLiteral":
        raise TypeError("tuple literals have no layout of their own")

    def equal_values(self, other: "Literal") -> bool:
        if not other.is_tuple or len(other) != len(self):
            return False
        return all(a.equal_values(b) for a, b in zip(self._elements, other.elements))

    def to_string(self) -> str:
        inner = ",\n".join("  " + e.to_string() for e in self._elements)
        return f"{self.shape.human_string_with_layout()} (\n{inner}\n)"

    def __len__(self) -> int:
        return len(self._elements)

    def __getitem__(self, index: int) -> "Literal":
        return self._elements[index]

    def __repr__(self) -> str:
        return f"TupleLiteral({self.shape.human_string_with_layout()})"


Literal = Union[ArrayLiteral, TupleLiteral]


def _is_dense(tensor: Any) -> bool:
    # Dense means the strides are exactly those of some permutation layout.
    return tuple(tensor.stride()) == strides_for_layout(tuple(tensor.shape), tensor_layout(tensor))


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def from_tensor(tensor: Any) -> ArrayLiteral:
    """Wrap a tensor, keeping its current layout if it is dense."""
    return ArrayLiteral(tensor)


def _create_rank(values: Any, rank: int, dtype: Any) -> ArrayLiteral:
    torch = get_torch()
    if isinstance(values, torch.Tensor):
        tensor = values if dtype is None else values.to(dtype)
    else:
        tensor = torch.tensor(values, dtype=dtype)
    if tensor.dim() != rank:
        raise ValueError(f"expected a rank-{rank} value, got shape {tuple(tensor.shape)}")
    return ArrayLiteral(tensor)


def create_r0(value: Any, dtype: Any = None) -> ArrayLiteral:
    return _create_rank(value, 0, dtype)


def create_r1(values: Any, dtype: Any = None) -> ArrayLiteral:
    return _create_rank(values, 1, dtype)


def create_r2(values: Any, dtype: Any = None) -> ArrayLiteral:
    return _create_rank(values, 2, dtype)


def create_r3(values: Any, dtype: Any = None) -> ArrayLiteral:
    return _create_rank(values, 3, dtype)


def create_r4(values: Any, dtype: Any = None) -> ArrayLiteral:
    return _create_rank(values, 4, dtype)


def create_r1_pred(bits: Sequence[bool]) -> ArrayLiteral:
    return _create_rank([bool(b) for b in bits], 1, get_torch().bool)


def create_r1_u8(data: Union[str, bytes]) -> ArrayLiteral:
    """Rank-1 ``u8`` literal from a string (latin-1) or bytes."""
    if isinstance(data, str):
        data = data.encode("latin-1")
    return _create_rank(list(data), 1, get_torch().uint8)


def make_tuple(*elements: Literal) -> TupleLiteral:
    return TupleLiteral(elements)
