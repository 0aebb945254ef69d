"""CLI commands for marquee."""

from . import plan, query, config_cmd

__all__ = ["plan", "query", "config_cmd"]
