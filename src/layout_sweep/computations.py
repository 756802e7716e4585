"""Reusable sample computations and input patterns."""

from __future__ import annotations

from typing import Any

from layout_sweep._backend import get_torch
from layout_sweep.builder import Computation, ComputationBuilder
from layout_sweep.shape import make_shape


def create_scalar_relu() -> Computation:
    """``max(z, 0)`` over one f32 scalar."""
    torch = get_torch()
    b = ComputationBuilder("relu")
    z_value = b.parameter(0, make_shape(torch.float32, []), "z_value")
    zero = b.constant_r0(0.0, torch.float32)
    b.max(z_value, zero)
    return b.build()


def create_scalar_max() -> Computation:
    """``max(x, y)`` over two f32 scalars."""
    torch = get_torch()
    b = ComputationBuilder("max")
    x = b.parameter(0, make_shape(torch.float32, []), "x")
    y = b.parameter(1, make_shape(torch.float32, []), "y")
    b.max(x, y)
    return b.build()


def create_scalar_relu_sensitivity() -> Computation:
    """``backprop if activation > 0 else 0``."""
    torch = get_torch()
    b = ComputationBuilder("relu_sensitivity")
    activation = b.parameter(0, make_shape(torch.float32, []), "activation")
    backprop = b.parameter(1, make_shape(torch.float32, []), "backprop")
    zero = b.constant_r0(0.0, torch.float32)
    activation_gtz = b.gt(activation, zero)
    b.select(activation_gtz, backprop, zero)
    return b.build()


def create_patterned_matrix(rows: int, cols: int, offset: float = 0.0) -> Any:
    """f32 matrix with ``m[r, c] = c + 1000 * r + offset``.

    Every element is distinct, so any transposition or layout mix-up shows
    up as a value mismatch.
    """
    torch = get_torch()
    r = torch.arange(rows, dtype=torch.float32).unsqueeze(1)
    c = torch.arange(cols, dtype=torch.float32).unsqueeze(0)
    return c + r * 1000.0 + offset


def create_patterned_matrix_with_zero_padding(
    rows: int, cols: int, rows_padded: int, cols_padded: int
) -> Any:
    """Patterned ``rows x cols`` block inside a zero ``rows_padded x cols_padded`` matrix."""
    if rows_padded < rows or cols_padded < cols:
        raise ValueError(
            f"padded size {rows_padded}x{cols_padded} is smaller than {rows}x{cols}"
        )
    torch = get_torch()
    out = torch.zeros(rows_padded, cols_padded, dtype=torch.float32)
    out[:rows, :cols] = create_patterned_matrix(rows, cols)
    return out
