"""Record-store side value types: positions and live entities."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Position(BaseModel):
    """A point in a named world."""

    model_config = ConfigDict(frozen=True)

    world: str = "world"
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def as_tuple(self) -> tuple[str, float, float, float]:
        return (self.world, self.x, self.y, self.z)


class LiveEntity(BaseModel):
    """One row of the record store as of a single snapshot read.

    A fresh, immutable sequence of these is produced on every tick.  The
    ``identity`` is the stable key from which the overlay marker id is
    derived.
    """

    model_config = ConfigDict(frozen=True)

    identity: str = Field(min_length=1)
    display_name: str = ""
    position: Position = Position()
