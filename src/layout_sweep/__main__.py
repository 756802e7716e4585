"""Support ``python -m layout_sweep``.

Usage::

    python -m layout_sweep verify --all-output-layouts
    python -m layout_sweep info
"""

from __future__ import annotations


def main() -> None:
    from layout_sweep.cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
