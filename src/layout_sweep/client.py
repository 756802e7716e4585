"""Execution and transfer client.

The :class:`Client` owns one device and moves values across the host/device
boundary:

- :meth:`Client.transfer_to_server` uploads a literal, keeping its layout;
- :meth:`Client.transfer` downloads a handle back to a literal;
- :meth:`Client.execute` runs a :class:`~layout_sweep.builder.Computation`
  and lays the result out as requested (row-major when nothing is asked for).

Device-resident values are wrapped in :class:`GlobalData` handles.  A handle
is never modified after creation, and using it after :meth:`GlobalData.release`
raises :class:`~layout_sweep._exceptions.TransferError`.  :class:`DataScope`
releases every handle it created when its ``with`` block exits; the
input-layout sweep opens one scope per combination.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from layout_sweep._backend import default_device, get_torch
from layout_sweep._exceptions import ExecutionError, LayoutSweepError, TransferError
from layout_sweep._logging import get_logger
from layout_sweep.builder import Computation
from layout_sweep.layouts import default_minor_to_major
from layout_sweep.literal import ArrayLiteral, Literal, TupleLiteral, materialize
from layout_sweep.shape import AnyShape, Shape, TupleShape

logger = get_logger(__name__)


class GlobalData:
    """Opaque handle to a value resident on the client's device."""

    __slots__ = ("_client", "_value", "_shape", "_released")

    def __init__(self, client: "Client", value: Any, shape: AnyShape) -> None:
        self._client = client
        self._value = value
        self._shape = shape
        self._released = False

    @property
    def client(self) -> "Client":
        return self._client

    @property
    def shape(self) -> AnyShape:
        return self._shape

    @property
    def released(self) -> bool:
        return self._released

    @property
    def value(self) -> Any:
        if self._released:
            raise TransferError(f"handle {self._shape} was already released")
        return self._value

    def release(self) -> None:
        """Drop the device storage.  Releasing twice is a no-op."""
        self._value = None
        self._released = True

    def __repr__(self) -> str:
        state = "released" if self._released else self._client.device
        return f"GlobalData({self._shape}, {state})"


class DataScope:
    """Owns the handles created inside one ``with`` block."""

    def __init__(self, client: "Client") -> None:
        self._client = client
        self._handles: List[GlobalData] = []

    def transfer_to_server(self, literal: Literal) -> GlobalData:
        data = self._client.transfer_to_server(literal)
        self._handles.append(data)
        return data

    def release_all(self) -> None:
        while self._handles:
            self._handles.pop().release()

    def __enter__(self) -> "DataScope":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release_all()


def _layout_of(shape: Shape) -> Sequence[int]:
    if shape.minor_to_major is not None:
        return shape.minor_to_major
    return default_minor_to_major(shape.rank)


class Client:
    """Executes computations and transfers values for one device.

    Args:
        device: Torch device string.  Defaults to the preferred backend
            (``npu`` > ``cuda`` > ``cpu``).
    """

    def __init__(self, device: Optional[str] = None) -> None:
        torch = get_torch()
        self.device = device or default_device()
        try:
            torch.device(self.device)
        except RuntimeError as exc:
            raise ValueError(f"invalid device {self.device!r}: {exc}") from exc

    # -- transfer ------------------------------------------------------------

    def _upload(self, literal: Literal) -> Any:
        if literal.is_tuple:
            return tuple(self._upload(e) for e in literal.elements)
        return materialize(literal.tensor, literal.minor_to_major, self.device)

    def _download(self, value: Any, shape: AnyShape) -> Literal:
        if isinstance(shape, TupleShape):
            return TupleLiteral([self._download(v, s) for v, s in zip(value, shape.tuple_shapes)])
        layout = _layout_of(shape)
        return ArrayLiteral(materialize(value, layout, "cpu"), layout)

    def transfer_to_server(self, literal: Literal) -> GlobalData:
        """Upload *literal* to the device, preserving its layout."""
        try:
            value = self._upload(literal)
        except RuntimeError as exc:
            raise TransferError(f"failed to transfer {literal.shape} to {self.device}: {exc}") from exc
        return GlobalData(self, value, literal.shape)

    def transfer(self, data: GlobalData, shape_with_layout: Optional[AnyShape] = None) -> Literal:
        """Download *data* to the host, optionally into another layout."""
        shape = data.shape
        if shape_with_layout is not None:
            if not shape_with_layout.compatible(shape):
                raise TransferError(
                    f"cannot transfer {shape.human_string()} as {shape_with_layout.human_string()}"
                )
            shape = shape_with_layout
        value = data.value
        try:
            return self._download(value, shape)
        except RuntimeError as exc:
            raise TransferError(f"failed to transfer {shape} from {self.device}: {exc}") from exc

    # -- execution -----------------------------------------------------------

    def _check_arguments(self, computation: Computation, arguments: Sequence[GlobalData]) -> None:
        if len(arguments) != computation.arity:
            raise ExecutionError(
                f"computation {computation.name!r} takes {computation.arity} argument(s), "
                f"got {len(arguments)}"
            )
        for number, (expected, argument) in enumerate(zip(computation.parameter_shapes, arguments)):
            if not expected.compatible(argument.shape):
                raise ExecutionError(
                    f"computation {computation.name!r} parameter {number} expects "
                    f"{expected.human_string()}, got {argument.shape.human_string()}"
                )

    def _lay_out(self, value: Any, requested: Optional[AnyShape]) -> Any:
        torch = get_torch()
        if isinstance(value, tuple):
            if requested is not None and not isinstance(requested, TupleShape):
                raise ExecutionError(f"computation produced a tuple, requested {requested}")
            parts = [
                self._lay_out(v, None if requested is None else requested.tuple_shapes[i])
                for i, v in enumerate(value)
            ]
            return tuple(p[0] for p in parts), TupleShape(tuple(p[1] for p in parts))
        if not isinstance(value, torch.Tensor):
            raise ExecutionError(f"computation produced {type(value).__name__}, not a tensor")
        if requested is None:
            shape = Shape(value.dtype, tuple(value.shape), default_minor_to_major(value.dim()))
        else:
            if not isinstance(requested, Shape) or not requested.compatible(
                Shape(value.dtype, tuple(value.shape))
            ):
                raise ExecutionError(
                    f"computation produced {Shape(value.dtype, tuple(value.shape)).human_string()}, "
                    f"requested output {requested.human_string()}"
                )
            shape = requested.with_layout(_layout_of(requested))
        return materialize(value, shape.minor_to_major, self.device), shape

    def execute(
        self,
        computation: Computation,
        arguments: Sequence[GlobalData],
        shape_with_output_layout: Optional[AnyShape] = None,
    ) -> GlobalData:
        """Run *computation* and return a handle to its result.

        Raises:
            ExecutionError: on arity or shape mismatch, or when the tensor
                library fails during evaluation.
            TransferError: if an argument handle was already released.
        """
        self._check_arguments(computation, arguments)
        values = [argument.value for argument in arguments]
        try:
            result = computation.evaluate(values, self.device)
            value, shape = self._lay_out(result, shape_with_output_layout)
        except LayoutSweepError:
            raise
        except Exception as exc:
            raise ExecutionError(f"executing {computation.name!r} failed: {exc}") from exc
        logger.debug("Executed %r -> %s", computation.name, shape)
        return GlobalData(self, value, shape)

    def execute_and_transfer(
        self,
        computation: Computation,
        arguments: Sequence[GlobalData],
        shape_with_output_layout: Optional[AnyShape] = None,
    ) -> Literal:
        """Run *computation* and download the result in the requested layout."""
        data = self.execute(computation, arguments, shape_with_output_layout)
        try:
            return self.transfer(data)
        finally:
            data.release()

    def __repr__(self) -> str:
        return f"Client(device={self.device!r})"
