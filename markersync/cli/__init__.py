"""markersync CLI — Typer-based command-line interface.

Provides the ``markersync`` command with subcommands for running the sync
loop, running a single tick, listing overlay markers, and tearing the
overlay down.

All output uses Rich for formatted terminal display.
"""
