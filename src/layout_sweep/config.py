"""Harness configuration.

Options can be set in code or through environment variables, so that an
existing test suite can be rerun under exhaustive layout sweeps without
editing a single test::

    LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS=1 pytest tests/

Environment Variables
---------------------
``LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS``
    Set to ``1`` to run every computation under every output layout.
``LAYOUT_SWEEP_TEST_ALL_INPUT_LAYOUTS``
    Set to ``1`` to run every computation under every input-layout combination.
``LAYOUT_SWEEP_ALLOW_EXACT_FLOAT``
    Set to ``1`` to allow exact comparison of floating-point results
    (logged as a warning instead of rejected).
``LAYOUT_SWEEP_DEVICE``
    Device string to execute on (``cpu``, ``cuda:0``, ``npu``...).  Defaults
    to the preferred detected backend.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Optional

_ENV_ALL_OUTPUT_LAYOUTS = "LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS"
_ENV_ALL_INPUT_LAYOUTS = "LAYOUT_SWEEP_TEST_ALL_INPUT_LAYOUTS"
_ENV_ALLOW_EXACT_FLOAT = "LAYOUT_SWEEP_ALLOW_EXACT_FLOAT"
_ENV_DEVICE = "LAYOUT_SWEEP_DEVICE"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip() == "1"


@dataclass(frozen=True)
class HarnessOptions:
    """Execution options for :class:`~layout_sweep.harness.LayoutTestHarness`.

    Attributes:
        test_all_output_layouts: Run a baseline, then every output layout.
        test_all_input_layouts: Run every input-layout combination.  Ignored
            when ``test_all_output_layouts`` is also set.
        allow_exact_float_comparison: Accept exact comparison of floating or
            complex results with a warning instead of failing the
            precondition check.  The comparison is bit for bit: ``-0.0``
            and ``0.0`` differ, and a NaN matches only an identical NaN.
        device: Device to execute on; ``None`` selects the preferred backend.
    """

    test_all_output_layouts: bool = False
    test_all_input_layouts: bool = False
    allow_exact_float_comparison: bool = False
    device: Optional[str] = None

    @classmethod
    def from_env(cls) -> "HarnessOptions":
        """Build options from ``LAYOUT_SWEEP_*`` environment variables."""
        device = os.environ.get(_ENV_DEVICE, "").strip() or None
        return cls(
            test_all_output_layouts=_env_flag(_ENV_ALL_OUTPUT_LAYOUTS),
            test_all_input_layouts=_env_flag(_ENV_ALL_INPUT_LAYOUTS),
            allow_exact_float_comparison=_env_flag(_ENV_ALLOW_EXACT_FLOAT),
            device=device,
        )

    def replace(self, **changes: Any) -> "HarnessOptions":
        """Return a copy with the given fields overridden."""
        return dataclasses.replace(self, **changes)

    @property
    def mode(self) -> str:
        """Name of the sweep these options select."""
        if self.test_all_output_layouts:
            return "all-output-layouts"
        if self.test_all_input_layouts:
            return "all-input-layouts"
        return "baseline"
