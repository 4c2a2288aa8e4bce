"""
Styled terminal output built on click.

click.style handles NO_COLOR and dumb terminals.
"""

from __future__ import annotations

import click

_CHECK = "✓"
_CROSS = "✗"
_CIRCLE = "○"
_L_H = "─"


def success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)


def warning(message: str) -> None:
    click.echo(click.style(message, fg="yellow"))


def info(message: str) -> None:
    click.echo(click.style(message, fg="cyan"))


def section(title: str, width: int = 48) -> None:
    """
    Print a section header with a ruled line.

        ── Session store ─────────────────────
    """
    dashes = max(4, width - len(title) - 4)
    click.echo(click.style(f"{_L_H}{_L_H} {title} {_L_H * dashes}", fg="cyan", bold=True))


def kv(key: str, value: str, *, key_width: int = 20, indent: int = 2) -> None:
    """Print an aligned key-value pair."""
    label = click.style(f"{key}:".ljust(key_width), fg="white")
    click.echo(f"{' ' * indent}{label}{click.style(str(value), fg='cyan')}")


def badge(label: str, *, style: str = "ok") -> str:
    """
    Return an inline badge string (not echoed).

        [OK]  [FAIL]  [SKIP]
    """
    colours = {
        "ok": ("green", _CHECK),
        "fail": ("red", _CROSS),
        "skip": ("yellow", _CIRCLE),
    }
    fg, mark = colours.get(style, ("white", ""))
    return click.style(f"{mark} {label}", fg=fg, bold=True)
