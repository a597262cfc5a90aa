"""Snapshot Reader — read-only view over the live-entity record store.

The record store is a SQLite database owned by another process (the
tracker that receives position updates).  This module never writes to it:
the connection is opened with ``mode=ro`` and every ``read_snapshot()``
re-queries the table.  Nothing is cached between calls.

A failed read is reported as a ``SnapshotError`` and never retried here;
the scheduler simply tries again on its next tick.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from markersync.models.entities import LiveEntity, Position

logger = logging.getLogger(__name__)


class SnapshotError(RuntimeError):
    """Base class for record-store read failures."""


class StoreUnavailableError(SnapshotError):
    """Raised when the record store cannot be reached or is not open."""


class QueryFailedError(SnapshotError):
    """Raised when the snapshot query or row decoding fails."""


class SnapshotReader:
    """Reads the current set of live entities from the record store.

    Parameters
    ----------
    db_path:
        Path to the SQLite record store.  Must already exist.
    table:
        Table holding one row per live entity.
    identity_column:
        Column with the stable, unique identity (e.g. ``token``).
    name_column:
        Column with the display name.
    world_column:
        Optional column naming the world of each row (e.g. ``dimension``).
        When ``None`` every entity is placed in ``default_world``.
    default_world:
        World used when ``world_column`` is unset or NULL.
    timeout_seconds:
        SQLite busy timeout; bounds how long a read may block on a writer.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        table: str = "players",
        identity_column: str = "token",
        name_column: str = "name",
        world_column: str | None = None,
        default_world: str = "world",
        timeout_seconds: float = 5.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._default_world = default_world
        self._timeout = timeout_seconds
        self._conn: sqlite3.Connection | None = None

        columns = [identity_column, name_column]
        if world_column is not None:
            columns.append(world_column)
        columns.extend(["x", "y", "z"])
        self._has_world = world_column is not None
        self._query = f"SELECT {', '.join(columns)} FROM {table}"

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        """``True`` while a connection to the record store is held."""
        return self._conn is not None

    def open(self) -> None:
        """Open a read-only connection to the record store.

        Raises
        ------
        StoreUnavailableError
            If the database file does not exist or cannot be opened.
        """
        if self._conn is not None:
            return
        if not self._db_path.exists():
            raise StoreUnavailableError(
                f"Record store not found at {self._db_path}"
            )
        uri = f"{self._db_path.resolve().as_uri()}?mode=ro"
        try:
            self._conn = sqlite3.connect(
                uri,
                uri=True,
                timeout=self._timeout,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(
                f"Failed to open record store {self._db_path}: {exc}"
            ) from exc
        logger.info("SnapshotReader: opened %s (read-only).", self._db_path)

    def close(self) -> None:
        """Release the connection.  Safe to call more than once."""
        if self._conn is None:
            return
        try:
            self._conn.close()
        finally:
            self._conn = None
        logger.info("SnapshotReader: closed %s.", self._db_path)

    def __enter__(self) -> SnapshotReader:
        self.open()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read_snapshot(self) -> tuple[LiveEntity, ...]:
        """Query the record store for every live entity as of now.

        Returns
        -------
        tuple[LiveEntity, ...]
            An immutable sequence in unspecified order.

        Raises
        ------
        StoreUnavailableError
            If the connection is not open or the database is locked/gone.
        QueryFailedError
            If the query fails or a row cannot be decoded.
        """
        if self._conn is None:
            raise StoreUnavailableError("Record store connection is not open")

        try:
            rows = self._conn.execute(self._query).fetchall()
        except sqlite3.OperationalError as exc:
            # Locked, missing table, unreadable file: the store is not usable now.
            raise StoreUnavailableError(f"Record store read failed: {exc}") from exc
        except sqlite3.Error as exc:
            raise QueryFailedError(f"Snapshot query failed: {exc}") from exc

        entities: list[LiveEntity] = []
        for row in rows:
            entity = self._row_to_entity(row)
            if entity is not None:
                entities.append(entity)
        return tuple(entities)

    def _row_to_entity(self, row: tuple[Any, ...]) -> LiveEntity | None:
        if self._has_world:
            identity, name, world, x, y, z = row
        else:
            identity, name, x, y, z = row
            world = None

        if identity is None or str(identity) == "":
            logger.warning("SnapshotReader: skipping row without identity: %r", row)
            return None

        try:
            return LiveEntity(
                identity=str(identity),
                display_name="" if name is None else str(name),
                position=Position(
                    world=self._default_world if world is None else str(world),
                    x=0.0 if x is None else float(x),
                    y=0.0 if y is None else float(y),
                    z=0.0 if z is None else float(z),
                ),
            )
        except (TypeError, ValueError, ValidationError) as exc:
            raise QueryFailedError(
                f"Malformed row for identity {identity!r}: {exc}"
            ) from exc
