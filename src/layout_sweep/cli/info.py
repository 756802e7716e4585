"""``layout-sweep info``: show detected backends and effective options."""

from __future__ import annotations

import click


@click.command()
def info() -> None:
    """Show detected backends and the options read from the environment."""
    from layout_sweep import __version__
    from layout_sweep._backend import detect_backends, preferred_backend
    from layout_sweep.config import HarnessOptions

    options = HarnessOptions.from_env()
    click.echo(f"layout-sweep {__version__}")
    click.echo(f"Detected backends:  {', '.join(b.value for b in detect_backends())}")
    click.echo(f"Preferred backend:  {preferred_backend().value}")
    click.echo(f"Device override:    {options.device or '(none)'}")
    click.echo(f"Sweep mode:         {options.mode}")
    click.echo(f"Exact float allowed: {'yes' if options.allow_exact_float_comparison else 'no'}")
