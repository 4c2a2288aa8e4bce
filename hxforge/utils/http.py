"""
Small HTTP header helpers shared by several middleware.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..response import Response


def add_vary(response: "Response", value: str) -> None:
    """
    Append ``value`` to the response's ``Vary`` header.

    Idempotent: a value already present (case-insensitively) is not added
    again. Values are joined with ``", "``.
    """
    current = response.header("vary", "") or ""
    if not current.strip():
        response.set_header("vary", value)
        return
    parts = [part.strip() for part in current.split(",")]
    if any(part.lower() == value.lower() for part in parts):
        return
    response.set_header("vary", f"{current}, {value}")


__all__ = ["add_vary"]
