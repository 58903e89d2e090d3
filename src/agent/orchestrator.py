"""
Crash-safe client driving one player's games through the protocol.

Every tick re-derives the phase of a game from the ledger, so the orchestrator can be killed at any point and
resumed from its local store. Two records make that safe:

- AttemptedMoveRecord: written before a move goes out, so a cell is never tried twice in a game.
- TxMarker: the one in-flight transaction per (game, action). A pending marker is resolved before anything else
  happens for that game: success -> advance, reverted or dropped -> clear and retry, still pending -> wait.
"""

import logging
import random
import time
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError

from src.agent.decryption import RelayerClient
from src.agent.policy import MoveContext, MovePolicy, available_cells, fallback_move, parse_proposal
from src.agent.retry import RetryPolicy, with_retry
from src.api.models import GameResponse, MoveResponse, MovesResponse
from src.core.clock import Clock, utc_now
from src.core.config import Settings, get_settings
from src.core.exceptions import DuplicateMoveError, GameError, NoAvailableCellsError, TransactionRevertedError
from src.core.models import AttemptedMoveRecord, GameKey, TrackedGameModel, TxMarker, make_game_key
from src.core.shared_types import (
    Action,
    AgentPhase,
    AttemptStatus,
    EventName,
    MarkerStatus,
    TrackingStatus,
    TxStatus,
    View,
    Winner,
)
from src.db.repository import AgentStore
from src.game.board import BOARD_SIZE, Coordinate, format_board
from src.game.events import GameEvent
from src.ledger.transactions import LocalChain, Transaction

logger = logging.getLogger(__name__)

MAX_POLICY_ATTEMPTS = 3

WAITING_FOR_OPPONENT_INTERVAL = timedelta(seconds=20)
WAITING_FOR_MOVE_BASE_INTERVAL = timedelta(seconds=30)
WAITING_FOR_MOVE_MAX_INTERVAL = timedelta(minutes=5)
ACTIVE_INTERVAL = timedelta(seconds=5)
ERROR_INTERVAL = timedelta(seconds=60)
COMPLETE_INTERVAL = timedelta(days=365)
ABANDON_AFTER = timedelta(days=3)

WAITING_PHASES = (AgentPhase.WAITING_FOR_OPPONENT, AgentPhase.WAITING_FOR_OPPONENT_MOVE)

# Actions whose markers are keyed by a tracked game, checked at the start of every tick
GAME_ACTIONS = (
    Action.JOIN_GAME,
    Action.SUBMIT_MOVE,
    Action.FINALIZE_MOVE,
    Action.FINALIZE_GAME_STATE,
    Action.CLAIM_TIMEOUT,
    Action.REVEAL_BOARD,
)

OPPONENT_ACTIVITY_EVENTS = (
    EventName.PLAYER_JOINED,
    EventName.MOVE_SUBMITTED,
    EventName.MOVE_MADE,
    EventName.MOVES_PROCESSED,
)
WAIT_RESET_EVENTS = (EventName.PLAYER_JOINED, EventName.MOVES_PROCESSED, EventName.COLLISION)


def derive_phase(
    game: GameResponse, my_move: MoveResponse, opponent_move: MoveResponse, can_submit: bool
) -> AgentPhase:
    """Where a game stands for us, read off the ledger alone. Checks run in priority order."""
    if game.winner != Winner.NONE:
        if game.winner == Winner.CANCELLED or game.board_revealed:
            return AgentPhase.GAME_COMPLETE
        return AgentPhase.REVEALING_BOARD
    if game.player2 is None:
        return AgentPhase.WAITING_FOR_OPPONENT
    if game.awaiting_state_finalization:
        return AgentPhase.FINALIZING_GAME_STATE
    if my_move.is_submitted and not my_move.is_made:
        return AgentPhase.FINALIZING_MOVE
    if my_move.is_made and not opponent_move.is_made:
        return AgentPhase.WAITING_FOR_OPPONENT_MOVE
    if can_submit:
        return AgentPhase.SELECTING_MOVE
    return AgentPhase.WAITING_FOR_OPPONENT_MOVE


def next_check_delay(phase: AgentPhase, waiting_since: datetime | None, now: datetime) -> timedelta:
    if phase == AgentPhase.WAITING_FOR_OPPONENT:
        return WAITING_FOR_OPPONENT_INTERVAL
    if phase == AgentPhase.WAITING_FOR_OPPONENT_MOVE:
        # 30s growing by 10% per half hour of waiting, capped at 5 minutes
        waited_hours = (now - waiting_since).total_seconds() / 3600 if waiting_since else 0.0
        interval = WAITING_FOR_MOVE_BASE_INTERVAL * (1.1 ** (waited_hours * 2))
        return min(interval, WAITING_FOR_MOVE_MAX_INTERVAL)
    if phase == AgentPhase.GAME_COMPLETE:
        return COMPLETE_INTERVAL
    if phase == AgentPhase.ERROR:
        return ERROR_INTERVAL
    return ACTIVE_INTERVAL


class ProtocolOrchestrator:
    def __init__(
        self,
        chain: LocalChain,
        store: AgentStore,
        relayer: RelayerClient,
        policy: MovePolicy,
        player_address: str,
        ledger_id: str = "local",
        settings: Settings | None = None,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.chain = chain
        self.store = store
        self.relayer = relayer
        self.policy = policy
        self.player_address = player_address
        self.ledger_id = ledger_id
        self.settings = settings or get_settings()
        self.clock = clock
        self.sleep = sleep
        self.rng = rng
        self.retry_policy = RetryPolicy(
            max_retries=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay_seconds,
            max_delay=self.settings.retry_max_delay_seconds,
        )
        self._read_cache: dict[tuple[Any, ...], Any] = {}
        self._stopped = False
        self._subscribed = False

    # --- lifecycle ---
    def start(self) -> None:
        """Listen to ledger events, pick up games we are already in and unstick anything left half-done."""
        if not self._subscribed:
            self.chain.subscribe(self.on_event)
            self._subscribed = True
        self.sync_games_from_ledger()
        self.recover()

    def stop(self) -> None:
        self._stopped = True
        if self._subscribed:
            self.chain.unsubscribe(self.on_event)
            self._subscribed = False

    def run(self, max_cycles: int | None = None) -> int:
        """Main loop. Returns the number of cycles run."""
        self._stopped = False
        self.start()
        cycles = 0
        while not self._stopped and (max_cycles is None or cycles < max_cycles):
            self.run_cycle()
            cycles += 1
            self.sleep(self.settings.main_loop_delay_seconds)
        return cycles

    def run_cycle(self) -> int:
        """One round-robin pass: a single step for every game that is due. Returns how many games were stepped."""
        if self.settings.auto_open_game:
            try:
                self.ensure_open_game()
            except GameError as e:
                logger.error("Could not open a new game: %s", e)

        processed = 0
        for due in self.store.get_games_ready_to_check(self.clock(), self.player_address):
            # events may have touched the record since the query ran
            tracked = self.store.get_tracked_game(due.game_key)
            if tracked is None or tracked.status != TrackingStatus.ACTIVE:
                continue
            try:
                self.step(tracked)
            except GameError as e:
                self._record_error(tracked, e)
            processed += 1
        return processed

    # --- game discovery ---
    def ensure_open_game(self) -> int | None:
        """Keep one game of ours open for newcomers. Returns the id of a newly opened game, if any."""
        if self.store.get_games_waiting_for_opponent(self.player_address):
            return None
        logger.info("No open game found, creating one for new players")
        return self.start_new_game()

    def start_new_game(self, stake: int | None = None) -> int | None:
        """Open a game and track it. Returns None while the creating transaction is still pending."""
        marker_key = self._new_game_key()
        resolved = self._resolve_marker(marker_key, Action.START_GAME)
        if resolved is not None:
            status, receipt = resolved
            if status == TxStatus.PENDING:
                return None
            if status == TxStatus.SUCCESS and receipt is not None:
                self.store.clear_tx_marker(marker_key, Action.START_GAME)
                return self._track_new_game(receipt.result)

        tx = self._send(
            marker_key,
            Action.START_GAME,
            stake=self.settings.default_stake if stake is None else stake,
            move_timeout_seconds=self.settings.move_timeout_seconds,
        )
        if tx.status == TxStatus.PENDING:
            return None
        self.store.clear_tx_marker(marker_key, Action.START_GAME)
        if tx.status != TxStatus.SUCCESS:
            raise TransactionRevertedError(tx.tx_hash, tx.revert_reason)
        return self._track_new_game(tx.result)

    def join_open_game(self) -> int | None:
        """Join the oldest open game someone else created. Returns its id, or None if there is nothing to join."""
        self._invalidate_reads()
        for game_id in self._read(View.GET_OPEN_GAMES):
            game = self._read(View.GET_GAME, game_id=game_id)
            if game.player1 == self.player_address:
                continue
            tracked = self.track_game(game_id)
            tx = self._send(tracked.game_key, Action.JOIN_GAME, game_id=game_id, stake=game.stake)
            if tx.status == TxStatus.REVERTED:
                tracked.status = TrackingStatus.ABANDONED
                self.store.update_tracked_game(tracked)
                raise TransactionRevertedError(tx.tx_hash, tx.revert_reason)
            logger.info("Joined game %s", game_id)
            return game_id
        return None

    def track_game(self, game_id: int) -> TrackedGameModel:
        """Start tracking `game_id` (idempotent)."""
        game_key = self._game_key(game_id)
        existing = self.store.get_tracked_game(game_key)
        if existing is not None:
            return existing
        game = self._read(View.GET_GAME, game_id=game_id)
        now = self.clock()
        tracked = TrackedGameModel(
            game_key=game_key,
            game_id=game_id,
            player_address=self.player_address,
            is_player1=game.player1 == self.player_address,
            current_phase=AgentPhase.WAITING_FOR_OPPONENT if game.player2 is None else AgentPhase.IDLE,
            waiting_since=now if game.player2 is None else None,
            next_check_at=now,
        )
        logger.info("Tracking game %s as %s", game_id, "player1" if tracked.is_player1 else "player2")
        return self.store.create_tracked_game(tracked)

    def sync_games_from_ledger(self) -> list[int]:
        """Track every unfinished game we play in that the local store does not know yet."""
        self._invalidate_reads()
        synced = []
        for game_id in self._read(View.GET_GAMES_BY_PLAYER, player=self.player_address):
            if self.store.get_tracked_game(self._game_key(game_id)) is not None:
                continue
            game = self._read(View.GET_GAME, game_id=game_id)
            finished = game.winner == Winner.CANCELLED or (game.winner != Winner.NONE and game.board_revealed)
            if finished:
                continue
            self.track_game(game_id)
            synced.append(game_id)
        if synced:
            logger.info("Synced %d game(s) from the ledger: %s", len(synced), synced)
        return synced

    def recover(self) -> list[GameKey]:
        """Find moves submitted but never finalized (we crashed in between) and schedule them right away."""
        stuck = []
        now = self.clock()
        self._invalidate_reads()
        for tracked in self.store.get_active_games(self.player_address):
            my_move, _ = self._split_moves(tracked, self._read(View.GET_MOVES, game_id=tracked.game_id))
            if my_move.is_submitted and not my_move.is_made:
                logger.warning("Game %s has a stuck move, scheduling finalization", tracked.game_id)
                tracked.current_phase = AgentPhase.FINALIZING_MOVE
                stuck.append(tracked.game_key)
            tracked.next_check_at = now
            self.store.update_tracked_game(tracked)
        return stuck

    # --- events ---
    def on_event(self, event: GameEvent) -> None:
        """Ledger events for a tracked game make it due immediately and keep the opponent-activity clock fresh."""
        tracked = self.store.get_tracked_game(self._game_key(event.game_id))
        if tracked is None or tracked.status != TrackingStatus.ACTIVE:
            return
        now = self.clock()
        tracked.next_check_at = now
        if event.name in OPPONENT_ACTIVITY_EVENTS and event.player != self.player_address:
            tracked.last_opponent_activity = now
        if event.name in WAIT_RESET_EVENTS:
            tracked.waiting_since = None
        self.store.update_tracked_game(tracked)

    # --- one tick for one game ---
    def step(self, tracked: TrackedGameModel) -> TrackedGameModel:
        if tracked.status != TrackingStatus.ACTIVE:
            return tracked
        now = self.clock()
        if self._is_abandoned(tracked, now):
            logger.info("Abandoning game %s, opponent inactive for %s", tracked.game_id, ABANDON_AFTER)
            tracked.status = TrackingStatus.ABANDONED
            return self.store.update_tracked_game(tracked)

        self._invalidate_reads()
        if self._resolve_game_markers(tracked):
            logger.debug("Game %s has a pending transaction, waiting", tracked.game_id)
            tracked.next_check_at = now + ACTIVE_INTERVAL
            return self.store.update_tracked_game(tracked)

        game = self._read(View.GET_GAME, game_id=tracked.game_id)
        if game.player2 is not None and self.player_address not in (game.player1, game.player2):
            logger.warning("Game %s was joined by someone else, dropping it", tracked.game_id)
            tracked.status = TrackingStatus.ABANDONED
            return self.store.update_tracked_game(tracked)
        my_move, opponent_move = self._split_moves(tracked, self._read(View.GET_MOVES, game_id=tracked.game_id))
        self._sync_round(tracked)
        can_submit = self._read(View.CAN_SUBMIT_MOVE, game_id=tracked.game_id, player=self.player_address)
        phase = derive_phase(game, my_move, opponent_move, can_submit)
        self._update_waiting(tracked, phase, now)
        tracked.current_phase = phase
        tracked.winner = game.winner

        match phase:
            case AgentPhase.SELECTING_MOVE | AgentPhase.SUBMITTING_MOVE:
                try:
                    self._submit_next_move(tracked)
                except NoAvailableCellsError:
                    # nothing left to play, the timeout is the only way to end the game
                    if not self._claim_timeout_if_due(tracked, game, now):
                        raise
            case AgentPhase.FINALIZING_MOVE:
                self._finalize_move(tracked, my_move)
            case AgentPhase.FINALIZING_GAME_STATE:
                self._finalize_game_state(tracked, game)
            case AgentPhase.WAITING_FOR_OPPONENT_MOVE:
                self._claim_timeout_if_due(tracked, game, now)
            case AgentPhase.REVEALING_BOARD:
                self._reveal_board(tracked, game)
            case AgentPhase.GAME_COMPLETE:
                self._complete(tracked, game)

        tracked.last_error = None
        tracked.next_check_at = now + next_check_delay(tracked.current_phase, tracked.waiting_since, now)
        return self.store.update_tracked_game(tracked)

    # --- moves ---
    def forbidden_cells(self, game_key: GameKey) -> set[Coordinate]:
        """Every cell we ever attempted in this game, whatever came of it."""
        return {Coordinate(record.x, record.y) for record in self.store.get_attempted_moves(game_key)}

    def submit_move(self, game_key: GameKey, x: int, y: int) -> Transaction:
        """Submit a specific cell. Cells already attempted in this game are refused before anything goes out."""
        tracked = self._get_tracked(game_key)
        coordinate = Coordinate(x, y)
        if coordinate in self.forbidden_cells(game_key):
            raise DuplicateMoveError(
                f"Cell {coordinate} was already attempted in game {tracked.game_id}.",
                context={"game_key": game_key},
            )
        self._record_attempt(tracked, coordinate)
        tx = self._send_move(tracked, coordinate)
        self.store.update_tracked_game(tracked)
        return tx

    def select_move(self, tracked: TrackedGameModel) -> Coordinate:
        """Ask the policy for a cell, retrying bad answers, then fall back to the preferred order."""
        forbidden = self.forbidden_cells(tracked.game_key)
        if not available_cells(forbidden):
            raise NoAvailableCellsError("No valid cells remaining.", context={"game_id": tracked.game_id})

        context = MoveContext(
            game_id=tracked.game_id,
            round=tracked.current_round,
            is_player1=tracked.is_player1,
            my_moves=[Coordinate(r.x, r.y) for r in self.store.get_confirmed_moves(tracked.game_key)],
            collision_occurred=tracked.collision_occurred,
        )
        for attempt in range(1, MAX_POLICY_ATTEMPTS + 1):
            try:
                coordinate = parse_proposal(self.policy.propose(context, set(forbidden))).to_coordinate()
            except (ValidationError, GameError) as e:
                logger.warning("Policy gave an unusable answer (attempt %d): %s", attempt, e)
                continue
            if coordinate in forbidden:
                logger.warning("Policy chose forbidden cell %s (attempt %d)", coordinate, attempt)
                continue
            return coordinate

        coordinate = fallback_move(forbidden)
        logger.warning("Policy failed %d times, falling back to %s", MAX_POLICY_ATTEMPTS, coordinate)
        return coordinate

    # -- PRIVATE HELPERS: phase handlers ---
    def _submit_next_move(self, tracked: TrackedGameModel) -> None:
        if tracked.pending_x is not None and tracked.pending_y is not None:
            # recorded earlier but never landed: send the same cell again
            coordinate = Coordinate(tracked.pending_x, tracked.pending_y)
            logger.info("Re-sending pending move %s in game %s", coordinate, tracked.game_id)
        else:
            coordinate = self.select_move(tracked)
            self._record_attempt(tracked, coordinate)
        tracked.current_phase = AgentPhase.SUBMITTING_MOVE
        self._send_move(tracked, coordinate)

    def _record_attempt(self, tracked: TrackedGameModel, coordinate: Coordinate) -> None:
        """Persist the attempt (and the pending cell) before the move is sent."""
        self.store.add_attempted_move(
            AttemptedMoveRecord(tracked.game_key, coordinate.x, coordinate.y, tracked.current_round)
        )
        tracked.pending_x, tracked.pending_y = coordinate.x, coordinate.y
        self.store.update_tracked_game(tracked)

    def _send_move(self, tracked: TrackedGameModel, coordinate: Coordinate) -> Transaction:
        encrypted = self.relayer.encrypt_move(coordinate.x, coordinate.y)
        logger.info("Submitting move %s in game %s (round %d)", coordinate, tracked.game_id, tracked.current_round)
        tx = self._send(
            tracked.game_key,
            Action.SUBMIT_MOVE,
            game_id=tracked.game_id,
            x_handle=encrypted.handles[0],
            y_handle=encrypted.handles[1],
            input_proof=encrypted.input_proof,
        )
        self._apply_outcome(tracked, Action.SUBMIT_MOVE, tx.status, tx)
        return tx

    def _finalize_move(self, tracked: TrackedGameModel, my_move: MoveResponse) -> None:
        if my_move.is_invalid is None:
            return
        is_invalid, proof = self.relayer.decrypt_bool(my_move.is_invalid)
        if is_invalid and my_move.is_cell_occupied is not None:
            occupied = self.relayer.user_decrypt(my_move.is_cell_occupied)
            logger.info("Move in game %s is invalid (cell occupied: %s)", tracked.game_id, bool(occupied))
        tx = self._send(
            tracked.game_key,
            Action.FINALIZE_MOVE,
            game_id=tracked.game_id,
            is_invalid=is_invalid,
            proof=proof,
        )
        self._apply_outcome(tracked, Action.FINALIZE_MOVE, tx.status, tx)

    def _finalize_game_state(self, tracked: TrackedGameModel, game: GameResponse) -> None:
        handles = f"{game.encrypted_winner},{game.encrypted_collision}"
        if handles == tracked.last_state_handles:
            logger.debug("Game state %s of game %s already handled", handles, tracked.game_id)
            return
        state = self.relayer.decrypt_game_state(game.encrypted_winner, game.encrypted_collision)
        logger.info(
            "Game %s state decrypted: winner=%s collision=%s", tracked.game_id, state.winner.name, state.collision
        )
        tx = self._send(
            tracked.game_key,
            Action.FINALIZE_GAME_STATE,
            game_id=tracked.game_id,
            winner=int(state.winner),
            collision=state.collision,
            proof=state.proof,
        )
        if tx.status in (TxStatus.SUCCESS, TxStatus.PENDING):
            tracked.last_state_handles = handles
        self._apply_outcome(tracked, Action.FINALIZE_GAME_STATE, tx.status, tx)

    def _claim_timeout_if_due(self, tracked: TrackedGameModel, game: GameResponse, now: datetime) -> bool:
        """Claim the timeout once the deadline has passed. True if the claim landed."""
        deadline = game.last_action_at + timedelta(seconds=game.move_timeout_seconds)
        if now <= deadline:
            return False
        logger.info("Opponent timed out in game %s (deadline %s), claiming", tracked.game_id, deadline.isoformat())
        tx = self._send(tracked.game_key, Action.CLAIM_TIMEOUT, game_id=tracked.game_id)
        if tx.status == TxStatus.SUCCESS:
            tracked.current_phase = AgentPhase.REVEALING_BOARD
            return True
        return False

    def _reveal_board(self, tracked: TrackedGameModel, game: GameResponse) -> None:
        handles = [handle for row in game.encrypted_board for handle in row]
        decrypted = self.relayer.decrypt_board(handles)
        board = [decrypted.values[row * BOARD_SIZE : (row + 1) * BOARD_SIZE] for row in range(BOARD_SIZE)]
        tx = self._send(
            tracked.game_key, Action.REVEAL_BOARD, game_id=tracked.game_id, board=board, proof=decrypted.proof
        )
        if tx.status == TxStatus.SUCCESS:
            logger.info("Board of game %s revealed", tracked.game_id)

    def _complete(self, tracked: TrackedGameModel, game: GameResponse) -> None:
        tracked.status = TrackingStatus.COMPLETED
        tracked.pending_x = tracked.pending_y = None
        if game.winner == Winner.CANCELLED:
            logger.info("Game %s was cancelled", tracked.game_id)
            return
        player1_symbol, player2_symbol = ("X", "O") if tracked.is_player1 else ("O", "X")
        logger.info(
            "Game %s complete, outcome for us: %s\n%s",
            tracked.game_id,
            self._outcome(tracked, game.winner),
            format_board(game.board, player1_symbol, player2_symbol),
        )

    # -- PRIVATE HELPERS: transactions ---
    def _send(self, marker_key: GameKey, action: Action, **args: Any) -> Transaction:
        """Submit a transaction with retries, record its marker and settle it if it is already mined."""
        tx_hash = with_retry(
            lambda: self.chain.call(self.player_address, action, **args),
            self.retry_policy,
            sleep=self.sleep,
            rng=self.rng,
            description=f"{action} ({marker_key})",
        )
        self.store.set_tx_marker(TxMarker(marker_key, action.value, tx_hash))
        status = self.chain.get_status(tx_hash)
        self._settle_marker(marker_key, action, tx_hash, status)
        receipt = self.chain.get_receipt(tx_hash)
        if receipt is None:
            # dropped between submission and the status check
            return Transaction(tx_hash, self.player_address, action, dict(args), status=TxStatus.NOT_FOUND)
        return receipt

    def _resolve_marker(self, marker_key: GameKey, action: Action) -> tuple[TxStatus, Transaction | None] | None:
        """Look up the in-flight transaction for (game, action). None when nothing is in flight."""
        marker = self.store.get_tx_marker(marker_key, action.value)
        if marker is None or marker.status != MarkerStatus.PENDING:
            return None
        status = self.chain.get_status(marker.tx_hash)
        receipt = self.chain.get_receipt(marker.tx_hash)
        self._settle_marker(marker_key, action, marker.tx_hash, status)
        return status, receipt

    def _resolve_game_markers(self, tracked: TrackedGameModel) -> bool:
        """Settle every in-flight transaction of a game. True if one is still pending."""
        still_pending = False
        for action in GAME_ACTIONS:
            resolved = self._resolve_marker(tracked.game_key, action)
            if resolved is None:
                continue
            status, receipt = resolved
            if status == TxStatus.PENDING:
                still_pending = True
            else:
                self._apply_outcome(tracked, action, status, receipt)
        return still_pending

    def _settle_marker(self, marker_key: GameKey, action: Action, tx_hash: str, status: TxStatus) -> None:
        match status:
            case TxStatus.SUCCESS:
                self.store.update_tx_marker_status(marker_key, action.value, MarkerStatus.CONFIRMED)
                self._invalidate_reads()
            case TxStatus.REVERTED:
                receipt = self.chain.get_receipt(tx_hash)
                reason = receipt.revert_reason if receipt else None
                logger.warning("%s transaction %s reverted: %s", action, tx_hash, reason)
                self.store.clear_tx_marker(marker_key, action.value)
                self._invalidate_reads()
            case TxStatus.NOT_FOUND:
                logger.warning("%s transaction %s not found (dropped?), will retry", action, tx_hash)
                self.store.clear_tx_marker(marker_key, action.value)
            case TxStatus.PENDING:
                logger.debug("%s transaction %s still pending", action, tx_hash)

    def _apply_outcome(
        self, tracked: TrackedGameModel, action: Action, status: TxStatus, receipt: Transaction | None
    ) -> None:
        """Bookkeeping once a transaction of `action` has landed (or is known to never land)."""
        pending = (
            Coordinate(tracked.pending_x, tracked.pending_y)
            if tracked.pending_x is not None and tracked.pending_y is not None
            else None
        )
        if action == Action.SUBMIT_MOVE and status == TxStatus.SUCCESS and pending and receipt:
            self.store.update_attempted_move_status(
                tracked.game_key, pending.x, pending.y, tracked.current_round, AttemptStatus.PENDING, receipt.tx_hash
            )
            tracked.current_phase = AgentPhase.FINALIZING_MOVE
        elif action == Action.FINALIZE_MOVE and status == TxStatus.SUCCESS and receipt:
            is_invalid = bool(receipt.args["is_invalid"])
            if pending:
                self.store.update_attempted_move_status(
                    tracked.game_key,
                    pending.x,
                    pending.y,
                    tracked.current_round,
                    AttemptStatus.INVALID if is_invalid else AttemptStatus.CONFIRMED,
                )
            tracked.pending_x = tracked.pending_y = None
            tracked.current_phase = AgentPhase.SELECTING_MOVE if is_invalid else AgentPhase.WAITING_FOR_OPPONENT_MOVE
        elif action == Action.FINALIZE_GAME_STATE and status in (TxStatus.REVERTED, TxStatus.NOT_FOUND):
            # never applied, so these handles still need finalizing
            tracked.last_state_handles = None

    # -- PRIVATE HELPERS: bookkeeping ---
    def _sync_round(self, tracked: TrackedGameModel) -> None:
        """
        Follow rounds and collisions from the ledger's event log, whoever finalized them.

        A Collision event we have not accounted for yet turns our confirmed move of the current round into a
        collision (the cell stays empty and is never played again).
        """
        finalizations = [
            event
            for event in self.chain.get_events(tracked.game_id)
            if event.name in (EventName.COLLISION, EventName.GAME_UPDATED)
        ]
        collisions = sum(1 for event in finalizations if event.name == EventName.COLLISION)
        attempts = self.store.get_attempted_moves(tracked.game_key)
        known_collisions = sum(1 for record in attempts if record.status == AttemptStatus.COLLISION)
        if collisions > known_collisions:
            for record in attempts:
                if record.round == tracked.current_round and record.status == AttemptStatus.CONFIRMED:
                    logger.info("Move (%d,%d) in game %s collided", record.x, record.y, tracked.game_id)
                    self.store.update_attempted_move_status(
                        record.game_key, record.x, record.y, record.round, AttemptStatus.COLLISION
                    )
        tracked.collision_occurred = bool(finalizations) and finalizations[-1].name == EventName.COLLISION
        tracked.current_round = sum(1 for event in finalizations if event.name == EventName.GAME_UPDATED)

    def _update_waiting(self, tracked: TrackedGameModel, phase: AgentPhase, now: datetime) -> None:
        if phase not in WAITING_PHASES:
            tracked.waiting_since = None
            return
        if tracked.waiting_since is None or tracked.current_phase != phase:
            tracked.waiting_since = now
        if tracked.last_opponent_activity is None:
            tracked.last_opponent_activity = now

    def _is_abandoned(self, tracked: TrackedGameModel, now: datetime) -> bool:
        if tracked.current_phase != AgentPhase.WAITING_FOR_OPPONENT_MOVE or tracked.last_opponent_activity is None:
            return False
        return now - tracked.last_opponent_activity >= ABANDON_AFTER

    def _record_error(self, tracked: TrackedGameModel, error: GameError) -> None:
        logger.error("Error in game %s: %s", tracked.game_id, error)
        tracked.current_phase = AgentPhase.ERROR
        tracked.last_error = str(error)
        tracked.next_check_at = self.clock() + ERROR_INTERVAL
        self.store.update_tracked_game(tracked)

    def _track_new_game(self, game: GameResponse) -> int:
        self.track_game(game.game_id)
        logger.info("Opened game %s (stake=%s)", game.game_id, game.stake)
        return game.game_id

    def _split_moves(self, tracked: TrackedGameModel, moves: MovesResponse) -> tuple[MoveResponse, MoveResponse]:
        if tracked.is_player1:
            return moves.move1, moves.move2
        return moves.move2, moves.move1

    def _outcome(self, tracked: TrackedGameModel, winner: Winner) -> str:
        if winner == Winner.DRAW:
            return "draw"
        won = (winner == Winner.PLAYER1) == tracked.is_player1
        return "won" if won else "lost"

    def _get_tracked(self, game_key: GameKey) -> TrackedGameModel:
        tracked = self.store.get_tracked_game(game_key)
        if tracked is None:
            raise GameError(f"Game {game_key} is not tracked.", code="NOT_TRACKED")
        return tracked

    def _game_key(self, game_id: int) -> GameKey:
        return make_game_key(self.ledger_id, game_id, self.player_address)

    def _new_game_key(self) -> GameKey:
        return f"{self.ledger_id}:{self.player_address}:new"

    # -- PRIVATE HELPERS: cached reads ---
    def _read(self, view: View, **args: Any) -> Any:
        key = (view, *sorted(args.items()))
        if key not in self._read_cache:
            self._read_cache[key] = with_retry(
                lambda: self.chain.read(view, **args),
                self.retry_policy,
                sleep=self.sleep,
                rng=self.rng,
                description=f"read {view}",
            )
        return self._read_cache[key]

    def _invalidate_reads(self) -> None:
        self._read_cache.clear()
