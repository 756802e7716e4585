"""Minimal computation builder.

Records a small dataflow graph of tensor operations and evaluates it with
torch on whichever device the arguments live on.  The builder exists so that
the harness has something real to execute; it is deliberately small and has
no optimiser.

Construction errors (an operand from another builder, a bad transpose
permutation, a duplicate parameter number...) do not raise at the call site.
The first one is remembered and reported by :meth:`ComputationBuilder.build`
as a :class:`~layout_sweep._exceptions.BuildError`, so a test can chain
operations freely and still get a single, precise error.

Example::

    b = ComputationBuilder("axpy")
    a = b.parameter(0, make_shape(torch.float32, []), "a")
    x = b.parameter(1, make_shape(torch.float32, [3]), "x")
    y = b.parameter(2, make_shape(torch.float32, [3]), "y")
    b.add(b.mul(a, x), y)
    computation = b.build()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from layout_sweep._backend import get_torch
from layout_sweep._exceptions import BuildError
from layout_sweep._logging import get_logger
from layout_sweep.layouts import is_permutation
from layout_sweep.literal import ArrayLiteral, Literal, create_r0, create_r1, create_r2
from layout_sweep.shape import AnyShape, Shape, TupleShape

logger = get_logger(__name__)


@dataclass(frozen=True)
class Instruction:
    """One node of the graph; operands are indices of earlier nodes."""

    opcode: str
    operands: Tuple[int, ...] = ()
    attrs: Dict[str, Any] = field(default_factory=dict)


class Op:
    """Handle to an instruction inside a :class:`ComputationBuilder`."""

    __slots__ = ("builder", "index")

    def __init__(self, builder: "ComputationBuilder", index: int) -> None:
        self.builder = builder
        self.index = index

    def __add__(self, other: "Op") -> "Op":
        return self.builder.add(self, other)

    def __sub__(self, other: "Op") -> "Op":
        return self.builder.sub(self, other)

    def __mul__(self, other: "Op") -> "Op":
        return self.builder.mul(self, other)

    def __truediv__(self, other: "Op") -> "Op":
        return self.builder.div(self, other)

    def __neg__(self) -> "Op":
        return self.builder.neg(self)

    def __repr__(self) -> str:
        return f"Op({self.builder.name}#{self.index})"


class ComputationBuilder:
    """Records operations and builds an immutable :class:`Computation`."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._instructions: List[Instruction] = []
        self._parameters: Dict[int, Tuple[AnyShape, str]] = {}
        self._first_error: Optional[str] = None

    # -- bookkeeping ---------------------------------------------------------

    def _note_error(self, message: str) -> None:
        if self._first_error is None:
            self._first_error = message
            logger.debug("Builder %r recorded error: %s", self.name, message)

    def _add(self, opcode: str, operands: Sequence[Op] = (), **attrs: Any) -> Op:
        indices = []
        for operand in operands:
            if not isinstance(operand, Op) or operand.builder is not self:
                self._note_error(f"{opcode}: operand {operand!r} does not belong to builder {self.name!r}")
                indices.append(-1)
            else:
                indices.append(operand.index)
        self._instructions.append(Instruction(opcode, tuple(indices), dict(attrs)))
        return Op(self, len(self._instructions) - 1)

    @property
    def first_error(self) -> Optional[str]:
        return self._first_error

    # -- leaves --------------------------------------------------------------

    def parameter(self, number: int, shape: AnyShape, name: str = "") -> Op:
        if not isinstance(shape, (Shape, TupleShape)):
            self._note_error(f"parameter {number}: {shape!r} is not a shape")
        elif number in self._parameters:
            self._note_error(f"parameter number {number} already used")
        else:
            self._parameters[number] = (shape, name)
        return self._add("parameter", number=number, shape=shape, name=name)

    def constant(self, literal: Literal) -> Op:
        return self._add("constant", literal=literal)

    def constant_r0(self, value: Any, dtype: Any = None) -> Op:
        return self.constant(create_r0(value, dtype))

    def constant_r1(self, values: Any, dtype: Any = None) -> Op:
        return self.constant(create_r1(values, dtype))

    def constant_r2(self, values: Any, dtype: Any = None) -> Op:
        return self.constant(create_r2(values, dtype))

    # -- element-wise --------------------------------------------------------

    def add(self, lhs: Op, rhs: Op) -> Op:
        return self._add("add", (lhs, rhs))

    def sub(self, lhs: Op, rhs: Op) -> Op:
        return self._add("sub", (lhs, rhs))

    def mul(self, lhs: Op, rhs: Op) -> Op:
        return self._add("mul", (lhs, rhs))

    def div(self, lhs: Op, rhs: Op) -> Op:
        return self._add("div", (lhs, rhs))

    def max(self, lhs: Op, rhs: Op) -> Op:
        return self._add("max", (lhs, rhs))

    def min(self, lhs: Op, rhs: Op) -> Op:
        return self._add("min", (lhs, rhs))

    def gt(self, lhs: Op, rhs: Op) -> Op:
        return self._add("gt", (lhs, rhs))

    def lt(self, lhs: Op, rhs: Op) -> Op:
        return self._add("lt", (lhs, rhs))

    def eq(self, lhs: Op, rhs: Op) -> Op:
        return self._add("eq", (lhs, rhs))

    def ne(self, lhs: Op, rhs: Op) -> Op:
        return self._add("ne", (lhs, rhs))

    def neg(self, operand: Op) -> Op:
        return self._add("neg", (operand,))

    def abs(self, operand: Op) -> Op:
        return self._add("abs", (operand,))

    def exp(self, operand: Op) -> Op:
        return self._add("exp", (operand,))

    def select(self, pred: Op, on_true: Op, on_false: Op) -> Op:
        return self._add("select", (pred, on_true, on_false))

    def map(self, fn: Callable[..., Any], *operands: Op, name: str = "map") -> Op:
        """Apply an arbitrary torch function to the operands' tensors."""
        if not callable(fn):
            self._note_error(f"{name}: {fn!r} is not callable")
        return self._add("map", operands, fn=fn, name=name)

    # -- structural ----------------------------------------------------------

    def dot(self, lhs: Op, rhs: Op) -> Op:
        return self._add("dot", (lhs, rhs))

    def transpose(self, operand: Op, permutation: Sequence[int]) -> Op:
        permutation = tuple(permutation)
        if not is_permutation(permutation, len(permutation)):
            self._note_error(f"transpose: {permutation} is not a permutation")
        return self._add("transpose", (operand,), permutation=permutation)

    def reshape(self, operand: Op, new_sizes: Sequence[int]) -> Op:
        return self._add("reshape", (operand,), new_sizes=tuple(new_sizes))

    def reduce_sum(self, operand: Op, dimensions: Sequence[int]) -> Op:
        return self._add("reduce_sum", (operand,), dimensions=tuple(dimensions))

    def convert(self, operand: Op, dtype: Any) -> Op:
        return self._add("convert", (operand,), dtype=dtype)

    def tuple(self, elements: Sequence[Op]) -> Op:
        return self._add("tuple", tuple(elements))

    def get_tuple_element(self, operand: Op, index: int) -> Op:
        if index < 0:
            self._note_error(f"get_tuple_element: negative index {index}")
        return self._add("get_tuple_element", (operand,), index=index)

    # -- build ---------------------------------------------------------------

    def build(self) -> "Computation":
        """Validate the graph and freeze it.

        Raises:
            BuildError: if any construction error was recorded, the graph is
                empty, or parameter numbers are not exactly ``0..n-1``.
        """
        if self._first_error is not None:
            raise BuildError(f"computation {self.name!r}: {self._first_error}")
        if not self._instructions:
            raise BuildError(f"computation {self.name!r} has no operations")
        numbers = sorted(self._parameters)
        if numbers != list(range(len(numbers))):
            raise BuildError(
                f"computation {self.name!r}: parameter numbers {numbers} are not contiguous from 0"
            )
        parameter_shapes = tuple(self._parameters[n][0] for n in numbers)
        logger.debug(
            "Built computation %r: %d instruction(s), %d parameter(s)",
            self.name, len(self._instructions), len(parameter_shapes),
        )
        return Computation(self.name, tuple(self._instructions), parameter_shapes)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _literal_value(literal: Literal, device: Any) -> Any:
    if isinstance(literal, ArrayLiteral):
        return literal.tensor.to(device)
    return tuple(_literal_value(e, device) for e in literal.elements)


def _evaluators(torch: Any) -> Dict[str, Callable[..., Any]]:
    return {
        "add": lambda a, b: a + b,
        "sub": lambda a, b: a - b,
        "mul": lambda a, b: a * b,
        "div": lambda a, b: a / b,
        "max": torch.maximum,
        "min": torch.minimum,
        "gt": torch.gt,
        "lt": torch.lt,
        "eq": torch.eq,
        "ne": torch.ne,
        "neg": torch.neg,
        "abs": torch.abs,
        "exp": torch.exp,
        "select": torch.where,
        "dot": torch.matmul,
    }


class Computation:
    """An immutable, built graph."""

    def __init__(
        self,
        name: str,
        instructions: Tuple[Instruction, ...],
        parameter_shapes: Tuple[AnyShape, ...],
    ) -> None:
        self.name = name
        self.instructions = instructions
        self.parameter_shapes = parameter_shapes

    @property
    def arity(self) -> int:
        return len(self.parameter_shapes)

    def evaluate(self, arguments: Sequence[Any], device: Any) -> Any:
        """Run the graph on *arguments* (tensors or nested tuples of tensors)."""
        torch = get_torch()
        evaluators = _evaluators(torch)
        values: List[Any] = []
        for inst in self.instructions:
            operands = [values[i] for i in inst.operands]
            opcode = inst.opcode
            if opcode == "parameter":
                value = arguments[inst.attrs["number"]]
            elif opcode == "constant":
                value = _literal_value(inst.attrs["literal"], device)
            elif opcode in evaluators:
                value = evaluators[opcode](*operands)
            elif opcode == "map":
                value = inst.attrs["fn"](*operands)
            elif opcode == "transpose":
                value = operands[0].permute(*inst.attrs["permutation"])
            elif opcode == "reshape":
                value = operands[0].reshape(inst.attrs["new_sizes"])
            elif opcode == "reduce_sum":
                dims = inst.attrs["dimensions"]
                value = operands[0].sum(dim=dims, dtype=operands[0].dtype) if dims else operands[0].clone()
            elif opcode == "convert":
                value = operands[0].to(inst.attrs["dtype"])
            elif opcode == "tuple":
                value = tuple(operands)
            elif opcode == "get_tuple_element":
                value = operands[0][inst.attrs["index"]]
            else:
                raise ValueError(f"unknown opcode {opcode!r}")
            values.append(value)
        return values[-1]

    def __repr__(self) -> str:
        return f"Computation({self.name!r}, arity={self.arity})"
