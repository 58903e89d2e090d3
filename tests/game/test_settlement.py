"""Unit tests for src/game/settlement.py"""

import pytest

from src.core.clock import SimulatedClock
from src.core.exceptions import GameStateError, InsufficientFundsError, InvalidRequestError, NotAPlayerError
from src.core.shared_types import EventName, Winner
from src.game.settlement import Treasury
from src.services.game_service import GameService
from tests.helpers import ALICE, BOB, CAROL, STARTING_BALANCE, GameDriver

STAKE = 100
TIMEOUT_SECONDS = 3_600


# --- TREASURY ----
def test_treasury_books_balance() -> None:
    treasury = Treasury()
    treasury.mint("0xa", 50)
    treasury.escrow("0xa", 30)
    assert treasury.balance_of("0xa") == 20
    assert treasury.escrow_balance == 30
    assert treasury.total_supply() == 50

    treasury.release("0xb", 30)
    assert treasury.balance_of("0xb") == 30
    assert treasury.escrow_balance == 0
    assert treasury.total_supply() == 50


def test_treasury_rejects_overdrafts() -> None:
    treasury = Treasury()
    treasury.mint("0xa", 10)
    with pytest.raises(InsufficientFundsError):
        treasury.escrow("0xa", 11)
    with pytest.raises(InsufficientFundsError):
        treasury.release("0xa", 1)
    with pytest.raises(InvalidRequestError):
        treasury.mint("0xa", -1)


# --- PRIZES ----
def test_winner_takes_the_pot(service: GameService, driver: GameDriver) -> None:
    supply = service.treasury.total_supply()
    game_id = driver.new_game(stake=STAKE)
    assert service.balance_of(ALICE) == STARTING_BALANCE - STAKE
    assert service.treasury.escrow_balance == 2 * STAKE

    for a, b in [((0, 0), (1, 0)), ((1, 1), (2, 0)), ((2, 2), (3, 1)), ((3, 3), (0, 2))]:
        driver.play_round(game_id, a, b)

    assert service.balance_of(ALICE) == STARTING_BALANCE + STAKE
    assert service.balance_of(BOB) == STARTING_BALANCE - STAKE
    assert service.get_game(game_id).stake == 0
    assert service.treasury.escrow_balance == 0
    assert service.treasury.total_supply() == supply


def test_draw_splits_the_pot(service: GameService, driver: GameDriver) -> None:
    game_id = driver.new_game(stake=STAKE)
    game = service.ledger.get_game(game_id)
    game.winner = Winner.DRAW
    assert service.settlement.distribute_prizes(game) == {ALICE: STAKE, BOB: STAKE}
    assert service.balance_of(ALICE) == service.balance_of(BOB) == STARTING_BALANCE


def test_prizes_are_paid_once(service: GameService, driver: GameDriver) -> None:
    game_id = driver.new_game(stake=STAKE)
    game = service.ledger.get_game(game_id)
    game.winner = Winner.PLAYER2
    assert service.settlement.distribute_prizes(game) == {BOB: 2 * STAKE}
    assert service.settlement.distribute_prizes(game) == {}
    assert service.balance_of(BOB) == STARTING_BALANCE + STAKE


def test_reentrant_payout_cannot_double_pay(service: GameService, driver: GameDriver) -> None:
    """A transfer hook that calls back into settlement sees the stake already zeroed."""
    game_id = driver.new_game(stake=STAKE)
    game = service.ledger.get_game(game_id)
    reentrant_payouts: list[dict[str, int]] = []

    def hook(address: str, amount: int) -> None:
        reentrant_payouts.append(service.settlement.distribute_prizes(game))

    service.treasury.add_transfer_hook(hook)
    game.winner = Winner.PLAYER1
    service.settlement.distribute_prizes(game)

    assert reentrant_payouts == [{}]
    assert service.balance_of(ALICE) == STARTING_BALANCE + STAKE
    assert service.treasury.escrow_balance == 0


# --- CANCEL ----
def test_cancel_refunds_the_creator(service: GameService, driver: GameDriver) -> None:
    game_id = driver.start(ALICE, stake=STAKE)
    game = service.ledger.get_game(game_id)
    service.settlement.cancel_game(game, ALICE)

    assert game.winner == Winner.CANCELLED
    assert game.stake == 0
    assert service.balance_of(ALICE) == STARTING_BALANCE
    assert game_id not in service.get_open_games()
    with pytest.raises(GameStateError):
        service.settlement.cancel_game(game, ALICE)


def test_cancel_rules(service: GameService, driver: GameDriver) -> None:
    open_game = service.ledger.get_game(driver.start(ALICE, stake=STAKE))
    with pytest.raises(NotAPlayerError):
        service.settlement.cancel_game(open_game, BOB)

    full_game = service.ledger.get_game(driver.new_game())
    with pytest.raises(GameStateError):
        service.settlement.cancel_game(full_game, ALICE)


# --- TIMEOUT ----
@pytest.mark.parametrize(
    "alice_made, bob_made, expected",
    [
        (True, False, Winner.PLAYER1),
        (False, True, Winner.PLAYER2),
        (True, True, Winner.DRAW),
        (False, False, Winner.DRAW),
    ],
)
def test_timeout_outcome(
    service: GameService,
    driver: GameDriver,
    clock: SimulatedClock,
    alice_made: bool,
    bob_made: bool,
    expected: Winner,
) -> None:
    game_id = driver.new_game(stake=STAKE, move_timeout_seconds=TIMEOUT_SECONDS)
    game = service.ledger.get_game(game_id)
    # Both made means the second finalize processes the round: the state finalization is then the stalled step
    for player, made in ((ALICE, alice_made), (BOB, bob_made)):
        driver.submit(game_id, player, 0 if player == ALICE else 1, 0)
        if made:
            driver.finalize(game_id, player)
    if alice_made and bob_made:
        assert game.awaiting_state_finalization

    clock.advance(TIMEOUT_SECONDS + 1)
    assert service.settlement.claim_timeout(game, BOB, clock()) == expected
    assert game.winner == expected
    assert not game.awaiting_state_finalization
    assert service.get_moves(game_id).move1.is_submitted is False
    assert service.treasury.escrow_balance == 0
    assert service.events.events_for(game_id, EventName.GAME_TIMEOUT)


def test_timeout_not_yet_reached(service: GameService, driver: GameDriver, clock: SimulatedClock) -> None:
    game_id = driver.new_game(move_timeout_seconds=TIMEOUT_SECONDS)
    game = service.ledger.get_game(game_id)
    clock.advance(TIMEOUT_SECONDS)
    with pytest.raises(GameStateError):
        service.settlement.claim_timeout(game, ALICE, clock())


def test_timeout_deadline_moves_with_activity(service: GameService, driver: GameDriver, clock: SimulatedClock) -> None:
    game_id = driver.new_game(move_timeout_seconds=TIMEOUT_SECONDS)
    game = service.ledger.get_game(game_id)
    clock.advance(TIMEOUT_SECONDS - 10)
    driver.submit(game_id, ALICE, 0, 0)
    clock.advance(20)
    with pytest.raises(GameStateError):
        service.settlement.claim_timeout(game, BOB, clock())


def test_timeout_rules(service: GameService, driver: GameDriver, clock: SimulatedClock) -> None:
    open_game = service.ledger.get_game(driver.start(ALICE, move_timeout_seconds=TIMEOUT_SECONDS))
    full_game = service.ledger.get_game(driver.new_game(move_timeout_seconds=TIMEOUT_SECONDS))
    clock.advance(TIMEOUT_SECONDS + 1)

    with pytest.raises(GameStateError):
        service.settlement.claim_timeout(open_game, ALICE, clock())
    with pytest.raises(NotAPlayerError):
        service.settlement.claim_timeout(full_game, CAROL, clock())

    service.settlement.claim_timeout(full_game, ALICE, clock())
    with pytest.raises(GameStateError):
        service.settlement.claim_timeout(full_game, BOB, clock())
