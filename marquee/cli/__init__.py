"""Command-line interface for marquee."""
