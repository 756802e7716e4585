"""CLI package for layout-sweep.

Subcommands are registered from separate modules for maintainability.

Usage::

    layout-sweep info
    layout-sweep verify --device cpu --all-input-layouts
"""

from __future__ import annotations

import click

from layout_sweep._logging import get_logger

logger = get_logger(__name__)


@click.group()
@click.version_option(package_name="layout-sweep")
def main() -> None:
    """layout-sweep: verify computations under every memory layout."""


# Register subcommands from separate modules
from layout_sweep.cli.info import info  # noqa: E402
from layout_sweep.cli.verify import verify  # noqa: E402

main.add_command(info)
main.add_command(verify)
