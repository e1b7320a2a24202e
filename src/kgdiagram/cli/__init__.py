"""Command-line interface for kgdiagram."""
