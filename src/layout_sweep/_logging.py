"""Logging for layout-sweep.

Records emitted while a sweep runs are tagged with the computation name and
sweep mode, and the package handler prints that tag in place of the logger
name.  An exhaustive run at DEBUG therefore reads combination by
combination::

    [layout-sweep] DEBUG transpose [all-input-layouts]: 2 input-layout combination(s)
    [layout-sweep] DEBUG transpose [all-input-layouts]: Test with input layouts: f32[2,3]{0,1}

Inside a sweep use :func:`sweep_logger`; everywhere else :func:`get_logger`.

``LAYOUT_SWEEP_LOG_LEVEL`` sets the level (default ``WARNING``) and
``LAYOUT_SWEEP_LOG_VERBOSE=1`` adds timestamps and source locations.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, MutableMapping, Optional, Tuple

_PACKAGE = "layout_sweep"
_ENV_LOG_LEVEL = "LAYOUT_SWEEP_LOG_LEVEL"
_ENV_LOG_VERBOSE = "LAYOUT_SWEEP_LOG_VERBOSE"


class SweepFormatter(logging.Formatter):
    """Shows ``computation [mode]`` for sweep records, the logger name otherwise."""

    def __init__(self, verbose: bool = False) -> None:
        if verbose:
            fmt = "[layout-sweep %(asctime)s] %(levelname)s %(origin)s (%(filename)s:%(lineno)d): %(message)s"
        else:
            fmt = "[layout-sweep] %(levelname)s %(origin)s: %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        computation = getattr(record, "computation", None)
        if computation is None:
            record.origin = record.name
        else:
            record.origin = f"{computation} [{getattr(record, 'mode', '?')}]"
        return super().format(record)


class SweepLoggerAdapter(logging.LoggerAdapter):
    """Attaches ``computation`` and ``mode`` to every record it emits."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def _level_from_env() -> int:
    name = os.environ.get(_ENV_LOG_LEVEL, "").strip().upper()
    level = logging.getLevelName(name) if name else logging.WARNING
    return level if isinstance(level, int) else logging.WARNING


def _package_logger() -> logging.Logger:
    package = logging.getLogger(_PACKAGE)
    if not any(isinstance(h.formatter, SweepFormatter) for h in package.handlers):
        verbose = os.environ.get(_ENV_LOG_VERBOSE, "").strip() == "1"
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(SweepFormatter(verbose))
        package.addHandler(handler)
        package.setLevel(_level_from_env())
    return package


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``layout_sweep`` namespace; installs the handler once."""
    _package_logger()
    return logging.getLogger(name)


def sweep_logger(logger: logging.Logger, report: Any) -> SweepLoggerAdapter:
    """Wrap *logger* so its records name the sweep *report* belongs to."""
    return SweepLoggerAdapter(logger, {"computation": report.computation, "mode": report.mode})


def set_log_level(level: Optional[str] = None) -> None:
    """Change the package level at runtime; ``None`` re-reads the environment.

    Example::

        import layout_sweep
        layout_sweep.set_log_level("DEBUG")  # one line per layout combination
    """
    package = _package_logger()
    package.setLevel(_level_from_env() if level is None else level.upper())
