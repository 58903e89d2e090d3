"""Protocol for the orchestrator's durable store (SQLAlchemy today, anything key-value shaped would do)."""

from datetime import datetime
from typing import Protocol

from src.core.models import AttemptedMoveRecord, GameKey, TrackedGameModel, TxMarker
from src.core.shared_types import AttemptStatus, MarkerStatus


class AgentStore(Protocol):
    """Persistence layer orchestration"""

    # --- tracked games ---
    def create_tracked_game(self, game: TrackedGameModel) -> TrackedGameModel:
        """Start tracking a game. Raises RepositoryError if it is already tracked."""
        ...

    def get_tracked_game(self, game_key: GameKey) -> TrackedGameModel | None:
        ...

    def update_tracked_game(self, game: TrackedGameModel) -> TrackedGameModel:
        """Overwrite the stored record with `game`."""
        ...

    def get_active_games(self, player_address: str | None = None) -> list[TrackedGameModel]:
        ...

    def get_games_ready_to_check(self, now: datetime, player_address: str | None = None) -> list[TrackedGameModel]:
        """Active games whose next_check_at has passed (or was never set), soonest first."""
        ...

    def get_games_waiting_for_opponent(self, player_address: str | None = None) -> list[TrackedGameModel]:
        ...

    # --- attempted moves ---
    def add_attempted_move(self, record: AttemptedMoveRecord) -> AttemptedMoveRecord:
        """Raises DuplicateMoveError if the (game, x, y, round) cell was already attempted."""
        ...

    def update_attempted_move_status(
        self, game_key: GameKey, x: int, y: int, round: int, status: AttemptStatus, tx_hash: str | None = None
    ) -> AttemptedMoveRecord | None:
        ...

    def get_attempted_moves(self, game_key: GameKey, round: int | None = None) -> list[AttemptedMoveRecord]:
        ...

    def get_confirmed_moves(self, game_key: GameKey) -> list[AttemptedMoveRecord]:
        ...

    # --- transaction markers ---
    def get_tx_marker(self, game_key: GameKey, action: str) -> TxMarker | None:
        ...

    def set_tx_marker(self, marker: TxMarker) -> TxMarker:
        """Insert or replace the marker for (game, action)."""
        ...

    def update_tx_marker_status(self, game_key: GameKey, action: str, status: MarkerStatus) -> TxMarker | None:
        ...

    def clear_tx_marker(self, game_key: GameKey, action: str) -> None:
        ...
