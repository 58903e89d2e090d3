"""
Local self-play: two orchestrators play a confidential game against each other on an in-process ledger.

    python -m src.main --stake 10 --seed 7
"""

import argparse
import random

from src.agent.decryption import RelayerClient
from src.agent.orchestrator import ProtocolOrchestrator
from src.agent.policy import MovePolicy, RandomPolicy
from src.api.models import GameResponse
from src.core.clock import SimulatedClock
from src.core.config import Settings, get_settings
from src.core.log_config import configure_logging
from src.core.shared_types import View, Winner
from src.db.database import build_session_factory
from src.db.sql_repository import SQLAgentStore
from src.fhe.encrypted import ConfidentialSubstrate
from src.fhe.oracle import DecryptionOracle
from src.game.board import format_board
from src.ledger.transactions import LocalChain
from src.services.game_service import GameService

PLAYER_ONE = "0xa11ce"
PLAYER_TWO = "0xb0b"
STARTING_BALANCE = 1_000
# simulated seconds between two cycles
CYCLE_SECONDS = 10


def build_orchestrator(
    chain: LocalChain,
    store: SQLAgentStore,
    oracle: DecryptionOracle,
    policy: MovePolicy,
    player: str,
    settings: Settings,
    clock: SimulatedClock,
    seed: int,
) -> ProtocolOrchestrator:
    rng = random.Random(seed)
    relayer = RelayerClient(chain.service.substrate, oracle, player, sleep=clock.sleep, rng=rng)
    return ProtocolOrchestrator(
        chain, store, relayer, policy, player, settings=settings, clock=clock, sleep=clock.sleep, rng=rng
    )


def play(stake: int, seed: int, max_cycles: int, database_url: str) -> GameResponse:
    settings = get_settings().model_copy(update={"auto_open_game": False, "default_stake": stake})
    clock = SimulatedClock()
    substrate = ConfidentialSubstrate()
    service = GameService(substrate, clock=clock)
    chain = LocalChain(service)
    oracle = DecryptionOracle(substrate)
    store = SQLAgentStore(build_session_factory(database_url)())

    for player in (PLAYER_ONE, PLAYER_TWO):
        service.treasury.mint(player, STARTING_BALANCE)

    alice = build_orchestrator(chain, store, oracle, RandomPolicy(seed), PLAYER_ONE, settings, clock, seed)
    bob = build_orchestrator(chain, store, oracle, RandomPolicy(seed + 1), PLAYER_TWO, settings, clock, seed + 1)
    alice.start()
    bob.start()

    game_id = alice.start_new_game()
    if game_id is None:
        raise RuntimeError("Game creation did not go through")
    bob.join_open_game()

    for _ in range(max_cycles):
        alice.run_cycle()
        bob.run_cycle()
        game = chain.read(View.GET_GAME, game_id=game_id)
        if game.winner == Winner.CANCELLED or game.board_revealed:
            break
        clock.advance(CYCLE_SECONDS)

    alice.stop()
    bob.stop()
    return chain.read(View.GET_GAME, game_id=game_id)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Two local agents play one game of confidential 4x4 tic-tac-toe")
    parser.add_argument("--stake", type=int, default=10, help="Stake each player escrows")
    parser.add_argument("--seed", type=int, default=0, help="Seed for the move policies and retry jitter")
    parser.add_argument("--max-cycles", type=int, default=500, help="Give up after this many cycles")
    parser.add_argument(
        "--database-url",
        type=str,
        default="sqlite://",
        help="Agent store (defaults to an in-memory SQLite database)",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Overrides PHANTOM_LOG_LEVEL")
    args = parser.parse_args(argv)

    configure_logging(args.log_level or get_settings().log_level)
    game = play(args.stake, args.seed, args.max_cycles, args.database_url)

    print(f"Game {game.game_id}: winner={game.winner.name}")
    if game.board_revealed:
        print(format_board(game.board))
    return 0 if game.winner != Winner.NONE else 1


if __name__ == "__main__":
    raise SystemExit(main())
