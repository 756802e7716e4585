"""Tests for HarnessOptions and environment handling."""

from __future__ import annotations

import pytest

from layout_sweep.config import HarnessOptions


class TestHarnessOptions:

    def test_defaults(self) -> None:
        options = HarnessOptions()
        assert not options.test_all_output_layouts
        assert not options.test_all_input_layouts
        assert options.device is None
        assert options.mode == "baseline"

    def test_from_env_empty(self) -> None:
        assert HarnessOptions.from_env() == HarnessOptions()

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("LAYOUT_SWEEP_TEST_ALL_INPUT_LAYOUTS", "1")
        monkeypatch.setenv("LAYOUT_SWEEP_ALLOW_EXACT_FLOAT", "1")
        monkeypatch.setenv("LAYOUT_SWEEP_DEVICE", " cuda:0 ")
        options = HarnessOptions.from_env()
        assert options.test_all_input_layouts
        assert options.allow_exact_float_comparison
        assert options.device == "cuda:0"
        assert options.mode == "all-input-layouts"

    @pytest.mark.parametrize("value", ["0", "true", "", "yes"])
    def test_only_one_enables_flags(self, monkeypatch, value) -> None:
        monkeypatch.setenv("LAYOUT_SWEEP_TEST_ALL_OUTPUT_LAYOUTS", value)
        assert not HarnessOptions.from_env().test_all_output_layouts

    def test_output_sweep_takes_priority(self) -> None:
        options = HarnessOptions(test_all_output_layouts=True, test_all_input_layouts=True)
        assert options.mode == "all-output-layouts"

    def test_replace_is_a_copy(self) -> None:
        options = HarnessOptions()
        changed = options.replace(device="cpu")
        assert changed.device == "cpu"
        assert options.device is None

    def test_frozen(self) -> None:
        with pytest.raises(AttributeError):
            HarnessOptions().device = "cpu"  # type: ignore[misc]
