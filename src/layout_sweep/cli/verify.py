"""``layout-sweep verify``: run the built-in computations across layouts."""

from __future__ import annotations

import sys
from typing import Optional

import click


@click.command()
@click.option("--device", default=None, help="Device to verify on: npu, cuda, or cpu (default: detected)")
@click.option("--all-output-layouts", is_flag=True, help="Sweep every output layout after a baseline run")
@click.option("--all-input-layouts", is_flag=True, help="Sweep every input-layout combination")
@click.option("--verbose", "-v", is_flag=True, help="Print the per-layout report of each computation")
def verify(device: Optional[str], all_output_layouts: bool, all_input_layouts: bool, verbose: bool) -> None:
    """Run the self-check computations under the selected layout sweep."""
    from layout_sweep.config import HarnessOptions
    from layout_sweep.selfcheck import LayoutSelfCheck

    options = HarnessOptions.from_env()
    if all_output_layouts:
        options = options.replace(test_all_output_layouts=True)
    if all_input_layouts:
        options = options.replace(test_all_input_layouts=True)

    check = LayoutSelfCheck(device=device, options=options)
    click.echo(f"Running layout self-check on device={check.client.device} (mode: {options.mode})...\n")
    reports = check.run_all()
    if verbose:
        for report in reports:
            click.echo(report.format_report())
            click.echo()
    click.echo(check.format_summary(reports))
    if any(not r.passed for r in reports):
        sys.exit(1)
