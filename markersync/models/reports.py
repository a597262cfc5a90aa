"""Per-tick reconciliation reports."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MarkerOperation(str, Enum):
    """Mutation kinds the reconciler applies to the overlay."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MarkerFailure(BaseModel):
    """A single per-marker mutation that failed during a tick."""

    model_config = ConfigDict(frozen=True)

    marker_id: str
    operation: MarkerOperation
    error: str


class TickReport(BaseModel):
    """Outcome of one reconciliation pass.

    A skipped tick (preconditions unmet, snapshot read failed, listing
    failed, or another tick already in flight) carries ``skipped=True``
    and a ``reason``; no mutation was attempted in that case.
    """

    model_config = ConfigDict(frozen=True)

    tick: int = 0
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    duration_seconds: float = 0.0
    skipped: bool = False
    reason: str | None = None
    entity_count: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failures: list[MarkerFailure] = []

    @property
    def ok(self) -> bool:
        """Whether the tick ran and every mutation succeeded."""
        return not self.skipped and not self.failures

    @property
    def mutation_count(self) -> int:
        """Number of successful create/update/delete calls."""
        return self.created + self.updated + self.deleted
