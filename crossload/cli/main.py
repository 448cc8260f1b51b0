"""
Crossload CLI - Command-line interface for cross-storage transfers.

Commands:
    crossload scan local:data/projects            # Enumerate a tree
    crossload check SRC DEST models/ README.md    # Conflicts before copying
    crossload copy SRC DEST models/ --on-conflict skip

Configuration comes from ``--config crossload.yaml`` or CROSSLOAD_*
environment variables (a ``.env`` file is loaded when present).

This creates the 'crossload' command via entry point in pyproject.toml.
"""

from crossload.cli.app import cli


def main():
    """Main entry point for the crossload CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
