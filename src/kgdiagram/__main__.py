"""
Entry point for running the CLI as a module.

Usage:
    python -m kgdiagram <command>
"""

from kgdiagram.cli.commands import cli

if __name__ == "__main__":
    cli()
