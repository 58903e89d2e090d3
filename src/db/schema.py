"""Database tables / schema of the orchestrator's local store"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBTrackedGame(Base):
    __tablename__ = "tracked_games"
    game_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    game_id: Mapped[int]
    player_address: Mapped[str]
    is_player1: Mapped[bool]
    current_phase: Mapped[str]
    current_round: Mapped[int] = mapped_column(default=0)
    winner: Mapped[int] = mapped_column(default=0)
    status: Mapped[str]
    collision_occurred: Mapped[bool] = mapped_column(default=False)
    pending_x: Mapped[Optional[int]]
    pending_y: Mapped[Optional[int]]
    last_error: Mapped[Optional[str]]
    # "<winner handle>,<collision handle>" of the last game state we finalized
    last_state_handles: Mapped[Optional[str]]
    waiting_since: Mapped[Optional[datetime]]
    last_opponent_activity: Mapped[Optional[datetime]]
    next_check_at: Mapped[Optional[datetime]] = mapped_column(index=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class DBAttemptedMove(Base):
    __tablename__ = "attempted_moves"
    __table_args__ = (UniqueConstraint("game_key", "x", "y", "round", name="uq_attempt_cell_round"),)
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    game_key: Mapped[str] = mapped_column(String(128), index=True)
    x: Mapped[int]
    y: Mapped[int]
    round: Mapped[int]
    tx_hash: Mapped[Optional[str]]
    status: Mapped[str]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBTxMarker(Base):
    __tablename__ = "tx_markers"
    game_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    action: Mapped[str] = mapped_column(String(64), primary_key=True)
    tx_hash: Mapped[str]
    status: Mapped[str]
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)
