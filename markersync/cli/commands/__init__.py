"""Subcommand implementations registered by ``markersync.cli.app``."""
