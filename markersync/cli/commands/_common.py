"""Shared helpers for CLI commands: config overrides and error output."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console

from markersync.config import SyncConfig

console = Console()


def load_config(
    *,
    store: Path | None = None,
    overlay: Path | None = None,
    **overrides: Any,
) -> SyncConfig:
    """Build a ``SyncConfig`` from env/.env plus explicit CLI overrides.

    ``None`` overrides are ignored so unset options keep env values.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    if store is not None:
        values["store_path"] = store
    if overlay is not None:
        values["overlay_path"] = overlay
    try:
        return SyncConfig(**values)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red]\n{exc}")
        raise typer.Exit(code=2) from exc
