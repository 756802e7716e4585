"""Backend detection.

This module is the single source of truth for "which device does the
harness execute on by default?"  The client, the CLI and the self-check all
import from here rather than probing hardware themselves.

``torch`` (and ``torch_npu`` for Ascend devices) are imported lazily so that
``layout-sweep info`` can report a missing installation instead of crashing
on import.

Detection order:

1. **Ascend NPU** via ``torch_npu``
2. **NVIDIA CUDA** via ``torch.cuda``
3. **CPU**: always available, used for development & CI
"""

from __future__ import annotations

import enum
import functools
from typing import Any, Optional

from layout_sweep._logging import get_logger

logger = get_logger(__name__)


class Backend(enum.Enum):
    """Available compute backends, ordered by preference."""

    NPU = "npu"      # Huawei Ascend via torch_npu
    CUDA = "cuda"    # NVIDIA via torch.cuda
    CPU = "cpu"      # Always available


# ---------------------------------------------------------------------------
# Lazy module references (populated on first access)
# ---------------------------------------------------------------------------

_torch: Optional[Any] = None
_torch_npu: Optional[Any] = None


def _import_torch() -> Any:
    """Lazily import torch, caching the result."""
    global _torch  # noqa: PLW0603
    if _torch is None:
        try:
            import torch  # type: ignore[import-untyped]
            _torch = torch
        except ImportError:
            raise ImportError(
                "PyTorch is required but not installed. "
                "Install it with: pip install torch>=2.0"
            ) from None
    return _torch


def _import_torch_npu() -> Optional[Any]:
    """Lazily import torch_npu, returning None if unavailable."""
    global _torch_npu  # noqa: PLW0603
    if _torch_npu is None:
        try:
            import torch_npu  # type: ignore[import-untyped]
            _torch_npu = torch_npu
            logger.debug("torch_npu imported successfully; Ascend backend available")
        except ImportError:
            logger.debug("torch_npu not found; Ascend backend unavailable")
            _torch_npu = False  # sentinel: tried and failed
    return _torch_npu if _torch_npu is not False else None


# ---------------------------------------------------------------------------
# Detection logic
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=1)
def detect_backends() -> tuple[Backend, ...]:
    """Probe the system and return all available backends, best-first.

    The result is cached for the lifetime of the process because hardware
    doesn't change at runtime.
    """
    available: list[Backend] = []
    torch = _import_torch()

    if _import_torch_npu() is not None:
        try:
            if hasattr(torch, "npu") and torch.npu.is_available():
                available.append(Backend.NPU)
                logger.info("Ascend NPU detected (%d device(s))", torch.npu.device_count())
        except Exception as exc:  # noqa: BLE001
            logger.warning("torch_npu installed but NPU detection failed: %s", exc)

    if torch.cuda.is_available():
        available.append(Backend.CUDA)
        logger.info("NVIDIA CUDA detected (%d device(s))", torch.cuda.device_count())

    available.append(Backend.CPU)

    logger.debug("Detected backends (preference order): %s", available)
    return tuple(available)


@functools.lru_cache(maxsize=1)
def preferred_backend() -> Backend:
    """Return the single best backend for this system."""
    return detect_backends()[0]


def has_npu() -> bool:
    """Return True if at least one Ascend NPU is usable."""
    return Backend.NPU in detect_backends()


def has_cuda() -> bool:
    """Return True if at least one NVIDIA GPU is usable."""
    return Backend.CUDA in detect_backends()


def get_torch() -> Any:
    """Return the ``torch`` module (importing it if necessary)."""
    return _import_torch()


def default_device() -> str:
    """Return the device string computations run on when none is given."""
    return preferred_backend().value
