"""Implementation of AgentStore using SQLAlchemy"""

from datetime import datetime, timezone

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.exceptions import DuplicateMoveError, RepositoryError
from src.core.models import AttemptedMoveRecord, GameKey, TrackedGameModel, TxMarker
from src.core.shared_types import AgentPhase, AttemptStatus, MarkerStatus, TrackingStatus, Winner
from src.db.schema import DBAttemptedMove, DBTrackedGame, DBTxMarker


class SQLAgentStore:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    # --- tracked games ---
    def create_tracked_game(self, game: TrackedGameModel) -> TrackedGameModel:
        if self._fetch_tracked_game(game.game_key):
            raise RepositoryError(f"Game {game.game_key} is already tracked.")
        game_db = DBTrackedGame(game_key=game.game_key)
        self._copy_into(game_db, game)
        self.db.add(game_db)
        self.db.commit()
        self.db.refresh(game_db)
        return self._to_model(game_db)

    def get_tracked_game(self, game_key: GameKey) -> TrackedGameModel | None:
        game_db = self._fetch_tracked_game(game_key)
        if game_db:
            return self._to_model(game_db)
        return None

    def update_tracked_game(self, game: TrackedGameModel) -> TrackedGameModel:
        game_db = self._fetch_tracked_game(game.game_key)
        if not game_db:
            raise RepositoryError(f"Game {game.game_key} is not tracked.")
        self._copy_into(game_db, game)
        self.db.commit()
        self.db.refresh(game_db)
        return self._to_model(game_db)

    def get_active_games(self, player_address: str | None = None) -> list[TrackedGameModel]:
        query = self._active_query(player_address)
        return [self._to_model(game_db) for game_db in self.db.scalars(query)]

    def get_games_ready_to_check(self, now: datetime, player_address: str | None = None) -> list[TrackedGameModel]:
        query = (
            self._active_query(player_address)
            .where(or_(DBTrackedGame.next_check_at.is_(None), DBTrackedGame.next_check_at <= _naive_utc(now)))
            .order_by(DBTrackedGame.next_check_at)
        )
        return [self._to_model(game_db) for game_db in self.db.scalars(query)]

    def get_games_waiting_for_opponent(self, player_address: str | None = None) -> list[TrackedGameModel]:
        query = self._active_query(player_address).where(
            DBTrackedGame.current_phase == AgentPhase.WAITING_FOR_OPPONENT.value
        )
        return [self._to_model(game_db) for game_db in self.db.scalars(query)]

    # --- attempted moves ---
    def add_attempted_move(self, record: AttemptedMoveRecord) -> AttemptedMoveRecord:
        record_db = DBAttemptedMove(
            game_key=record.game_key,
            x=record.x,
            y=record.y,
            round=record.round,
            tx_hash=record.tx_hash,
            status=record.status.value,
        )
        self.db.add(record_db)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateMoveError(
                f"Cell ({record.x},{record.y}) was already attempted.",
                context={"game_key": record.game_key, "round": record.round},
            ) from e
        self.db.refresh(record_db)
        return self._attempt_to_model(record_db)

    def update_attempted_move_status(
        self, game_key: GameKey, x: int, y: int, round: int, status: AttemptStatus, tx_hash: str | None = None
    ) -> AttemptedMoveRecord | None:
        query = select(DBAttemptedMove).where(
            DBAttemptedMove.game_key == game_key,
            DBAttemptedMove.x == x,
            DBAttemptedMove.y == y,
            DBAttemptedMove.round == round,
        )
        record_db = self.db.scalar(query)
        if not record_db:
            return None
        record_db.status = status.value
        if tx_hash is not None:
            record_db.tx_hash = tx_hash
        self.db.commit()
        self.db.refresh(record_db)
        return self._attempt_to_model(record_db)

    def get_attempted_moves(self, game_key: GameKey, round: int | None = None) -> list[AttemptedMoveRecord]:
        query = select(DBAttemptedMove).where(DBAttemptedMove.game_key == game_key)
        if round is not None:
            query = query.where(DBAttemptedMove.round == round)
        query = query.order_by(DBAttemptedMove.id)
        return [self._attempt_to_model(record_db) for record_db in self.db.scalars(query)]

    def get_confirmed_moves(self, game_key: GameKey) -> list[AttemptedMoveRecord]:
        query = (
            select(DBAttemptedMove)
            .where(DBAttemptedMove.game_key == game_key)
            .where(DBAttemptedMove.status == AttemptStatus.CONFIRMED.value)
            .order_by(DBAttemptedMove.id)
        )
        return [self._attempt_to_model(record_db) for record_db in self.db.scalars(query)]

    # --- transaction markers ---
    def get_tx_marker(self, game_key: GameKey, action: str) -> TxMarker | None:
        marker_db = self.db.get(DBTxMarker, (game_key, action))
        if marker_db:
            return self._marker_to_model(marker_db)
        return None

    def set_tx_marker(self, marker: TxMarker) -> TxMarker:
        marker_db = self.db.get(DBTxMarker, (marker.game_key, marker.action))
        if marker_db is None:
            marker_db = DBTxMarker(game_key=marker.game_key, action=marker.action)
            self.db.add(marker_db)
        marker_db.tx_hash = marker.tx_hash
        marker_db.status = marker.status.value
        self.db.commit()
        self.db.refresh(marker_db)
        return self._marker_to_model(marker_db)

    def update_tx_marker_status(self, game_key: GameKey, action: str, status: MarkerStatus) -> TxMarker | None:
        marker_db = self.db.get(DBTxMarker, (game_key, action))
        if not marker_db:
            return None
        marker_db.status = status.value
        self.db.commit()
        self.db.refresh(marker_db)
        return self._marker_to_model(marker_db)

    def clear_tx_marker(self, game_key: GameKey, action: str) -> None:
        marker_db = self.db.get(DBTxMarker, (game_key, action))
        if marker_db:
            self.db.delete(marker_db)
            self.db.commit()

    # -- PRIVATE HELPERS ---
    @staticmethod
    def _active_query(player_address: str | None) -> Select[tuple[DBTrackedGame]]:
        query = select(DBTrackedGame).where(DBTrackedGame.status == TrackingStatus.ACTIVE.value)
        if player_address is not None:
            query = query.where(DBTrackedGame.player_address == player_address)
        return query

    def _fetch_tracked_game(self, game_key: GameKey) -> DBTrackedGame | None:
        query = select(DBTrackedGame).where(DBTrackedGame.game_key == game_key)
        return self.db.scalar(query)

    @staticmethod
    def _copy_into(game_db: DBTrackedGame, game: TrackedGameModel) -> None:
        game_db.game_id = game.game_id
        game_db.player_address = game.player_address
        game_db.is_player1 = game.is_player1
        game_db.current_phase = game.current_phase.value
        game_db.current_round = game.current_round
        game_db.winner = int(game.winner)
        game_db.status = game.status.value
        game_db.collision_occurred = game.collision_occurred
        game_db.pending_x = game.pending_x
        game_db.pending_y = game.pending_y
        game_db.last_error = game.last_error
        game_db.last_state_handles = game.last_state_handles
        game_db.waiting_since = _naive_utc(game.waiting_since)
        game_db.last_opponent_activity = _naive_utc(game.last_opponent_activity)
        game_db.next_check_at = _naive_utc(game.next_check_at)

    @staticmethod
    def _to_model(game_db: DBTrackedGame) -> TrackedGameModel:
        """Convert SQLAlchemy model to data transfer model."""
        return TrackedGameModel(
            game_key=game_db.game_key,
            game_id=game_db.game_id,
            player_address=game_db.player_address,
            is_player1=game_db.is_player1,
            current_phase=AgentPhase(game_db.current_phase),
            current_round=game_db.current_round,
            winner=Winner(game_db.winner),
            status=TrackingStatus(game_db.status),
            collision_occurred=game_db.collision_occurred,
            pending_x=game_db.pending_x,
            pending_y=game_db.pending_y,
            last_error=game_db.last_error,
            last_state_handles=game_db.last_state_handles,
            waiting_since=_aware_utc(game_db.waiting_since),
            last_opponent_activity=_aware_utc(game_db.last_opponent_activity),
            next_check_at=_aware_utc(game_db.next_check_at),
        )

    @staticmethod
    def _attempt_to_model(record_db: DBAttemptedMove) -> AttemptedMoveRecord:
        return AttemptedMoveRecord(
            game_key=record_db.game_key,
            x=record_db.x,
            y=record_db.y,
            round=record_db.round,
            status=AttemptStatus(record_db.status),
            tx_hash=record_db.tx_hash,
        )

    @staticmethod
    def _marker_to_model(marker_db: DBTxMarker) -> TxMarker:
        return TxMarker(
            game_key=marker_db.game_key,
            action=marker_db.action,
            tx_hash=marker_db.tx_hash,
            status=MarkerStatus(marker_db.status),
        )


# SQLite drops tzinfo, so timestamps are stored as naive UTC and made aware again on the way out.
def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _aware_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
