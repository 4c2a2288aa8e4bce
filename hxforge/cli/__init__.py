"""
hxforge CLI.

Usage:
    hxforge serve [--host HOST] [--port PORT] [--env-file PATH]
    hxforge doctor [--env-file PATH]
"""

from .. import __version__

__cli_name__ = "hxforge"

__all__ = ["__version__", "__cli_name__"]
