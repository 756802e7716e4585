"""Shared test fixtures for layout-sweep.

Everything runs on the CPU device so the suite needs no accelerator.

Design decisions:
- Backend detection is mocked at the ``layout_sweep._backend`` level, so we
  control what the harness *thinks* is available
- Detection caches and ``LAYOUT_SWEEP_*`` variables are cleared around every
  test to prevent cross-contamination
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from layout_sweep._backend import Backend

_ENV_VARS = (
    "LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS",
    "LAYOUT_SWEEP_TEST_ALL_INPUT_LAYOUTS",
    "LAYOUT_SWEEP_ALLOW_EXACT_FLOAT",
    "LAYOUT_SWEEP_DEVICE",
    "LAYOUT_SWEEP_LOG_LEVEL",
    "LAYOUT_SWEEP_LOG_VERBOSE",
)


def _clear_backend_caches() -> None:
    """Clear all cached backend detection state."""
    from layout_sweep import _backend

    _backend.detect_backends.cache_clear()
    _backend.preferred_backend.cache_clear()
    _backend._torch_npu = None


@pytest.fixture(autouse=True)
def _isolate_state(monkeypatch):
    """Ensure clean detection state and environment before every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    _clear_backend_caches()
    yield
    _clear_backend_caches()


@pytest.fixture
def cpu_only_backend():
    """Simulate a CPU-only environment (no GPU, no NPU)."""
    with patch("layout_sweep._backend.detect_backends",
               return_value=(Backend.CPU,)) as mock_detect:
        mock_detect.cache_clear = lambda: None
        with patch("layout_sweep._backend.preferred_backend",
                   return_value=Backend.CPU) as mock_pref:
            mock_pref.cache_clear = lambda: None
            yield


@pytest.fixture
def client():
    """A client executing on the CPU."""
    from layout_sweep.client import Client

    return Client("cpu")


@pytest.fixture
def make_harness(client):
    """Factory for CPU harnesses: ``make_harness(test_all_output_layouts=True)``."""
    from layout_sweep.config import HarnessOptions
    from layout_sweep.harness import LayoutTestHarness

    def _make(**options):
        return LayoutTestHarness(client, HarnessOptions(device="cpu", **options))

    return _make
