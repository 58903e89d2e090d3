"""
Move-selection policies.

The orchestrator only depends on `propose(context, forbidden)`. Whatever a policy returns is checked against
MoveProposal and the forbidden set before it is used.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from pydantic import BaseModel, Field

from src.core.exceptions import NoAvailableCellsError
from src.game.board import BOARD_SIZE, Coordinate, all_coordinates

# Centre first, then corners, then edges
PREFERRED_ORDER = [
    Coordinate(1, 1),
    Coordinate(2, 1),
    Coordinate(1, 2),
    Coordinate(2, 2),
    Coordinate(0, 0),
    Coordinate(3, 0),
    Coordinate(0, 3),
    Coordinate(3, 3),
    Coordinate(1, 0),
    Coordinate(2, 0),
    Coordinate(0, 1),
    Coordinate(3, 1),
    Coordinate(0, 2),
    Coordinate(3, 2),
    Coordinate(1, 3),
    Coordinate(2, 3),
]


class MoveProposal(BaseModel):
    x: int = Field(ge=0, lt=BOARD_SIZE)
    y: int = Field(ge=0, lt=BOARD_SIZE)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.x, self.y)


@dataclass(frozen=True)
class MoveContext:
    game_id: int
    round: int
    is_player1: bool
    my_moves: list[Coordinate] = field(default_factory=list)
    collision_occurred: bool = False


class MovePolicy(Protocol):
    def propose(self, context: MoveContext, forbidden: set[Coordinate]) -> Any:
        """Return a Coordinate, a MoveProposal, a (x, y) tuple or a {"x": .., "y": ..} mapping."""
        ...


def available_cells(forbidden: Iterable[Coordinate]) -> list[Coordinate]:
    blocked = set(forbidden)
    return [coordinate for coordinate in all_coordinates() if coordinate not in blocked]


def fallback_move(forbidden: set[Coordinate]) -> Coordinate:
    for coordinate in PREFERRED_ORDER:
        if coordinate not in forbidden:
            return coordinate
    raise NoAvailableCellsError("No valid cells remaining.")


def parse_proposal(raw: Any) -> MoveProposal:
    """Raises pydantic.ValidationError for anything that is not a legal coordinate."""
    if isinstance(raw, MoveProposal):
        return raw
    if isinstance(raw, Coordinate):
        return MoveProposal(x=raw.x, y=raw.y)
    if isinstance(raw, (tuple, list)) and len(raw) == 2:
        return MoveProposal(x=raw[0], y=raw[1])
    return MoveProposal.model_validate(raw)


class PreferredOrderPolicy:
    """Deterministic: first free cell in centre / corner / edge order."""

    def propose(self, context: MoveContext, forbidden: set[Coordinate]) -> Coordinate:
        return fallback_move(forbidden)


class RandomPolicy:
    def __init__(self, seed: int | None = None) -> None:
        self.rng = random.Random(seed)

    def propose(self, context: MoveContext, forbidden: set[Coordinate]) -> Coordinate:
        cells = available_cells(forbidden)
        if not cells:
            raise NoAvailableCellsError("No valid cells remaining.")
        return self.rng.choice(cells)


class ScriptedPolicy:
    """Plays a fixed list of answers in order, then falls back to the preferred order. Handy in tests."""

    def __init__(self, answers: Iterable[Any]) -> None:
        self.answers = list(answers)
        self.calls = 0

    def propose(self, context: MoveContext, forbidden: set[Coordinate]) -> Any:
        self.calls += 1
        if self.answers:
            return self.answers.pop(0)
        return fallback_move(forbidden)
