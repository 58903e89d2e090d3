"""
Boundary layer data model(s).

These objects are what the orchestrator sends to / receives from its durable local store.
(Decouples the SQLAlchemy tables in src/db from the agent logic in src/agent)
"""

from dataclasses import dataclass
from datetime import datetime

from src.core.shared_types import AgentPhase, AttemptStatus, MarkerStatus, TrackingStatus, Winner

# Type aliases to make the models easier to read
GameKey = str
Address = str
TxHash = str


def make_game_key(ledger_id: str, game_id: int, player: Address) -> GameKey:
    """One key per (ledger, game, player), so one store can serve several agents and deployments."""
    return f"{ledger_id}:{player}:{game_id}"


@dataclass
class TrackedGameModel:
    """Everything the orchestrator remembers about one game between ticks (and between restarts)."""

    game_key: GameKey
    game_id: int
    player_address: Address
    is_player1: bool
    current_phase: AgentPhase = AgentPhase.IDLE
    current_round: int = 0
    winner: Winner = Winner.NONE
    status: TrackingStatus = TrackingStatus.ACTIVE
    collision_occurred: bool = False
    pending_x: int | None = None
    pending_y: int | None = None
    last_error: str | None = None
    last_state_handles: str | None = None
    waiting_since: datetime | None = None
    last_opponent_activity: datetime | None = None
    next_check_at: datetime | None = None


@dataclass
class AttemptedMoveRecord:
    """A cell we tried (or are about to try). Written before the submitting call goes out."""

    game_key: GameKey
    x: int
    y: int
    round: int
    status: AttemptStatus = AttemptStatus.PENDING
    tx_hash: TxHash | None = None


@dataclass
class TxMarker:
    """The one in-flight (or last) transaction for a (game, action) pair."""

    game_key: GameKey
    action: str
    tx_hash: TxHash
    status: MarkerStatus = MarkerStatus.PENDING
