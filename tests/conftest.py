"""Fixtures shared across the test layers: an in-memory agent store, a simulated clock and a funded game service."""

from typing import Iterator

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.clock import SimulatedClock
from src.db.schema import Base
from src.fhe.encrypted import ConfidentialSubstrate
from src.fhe.oracle import DecryptionOracle
from src.ledger.transactions import LocalChain
from src.services.game_service import GameService
from tests.helpers import ALICE, BOB, CAROL, STARTING_BALANCE, GameDriver

# In-memory SQLite shared by every connection of the test session
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db_session_repo() -> Iterator[Session]:
    """Fresh agent store tables per test, dropped again at teardown."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> SimulatedClock:
    return SimulatedClock()


@pytest.fixture
def substrate() -> ConfidentialSubstrate:
    return ConfidentialSubstrate(secret=b"test-secret")


@pytest.fixture
def oracle(substrate: ConfidentialSubstrate) -> DecryptionOracle:
    return DecryptionOracle(substrate)


@pytest.fixture
def service(substrate: ConfidentialSubstrate, clock: SimulatedClock) -> GameService:
    """A game service where Alice, Bob and Carol each hold STARTING_BALANCE."""
    game_service = GameService(substrate, clock=clock)
    for player in (ALICE, BOB, CAROL):
        game_service.treasury.mint(player, STARTING_BALANCE)
    return game_service


@pytest.fixture
def chain(service: GameService) -> LocalChain:
    return LocalChain(service)


@pytest.fixture
def driver(service: GameService, oracle: DecryptionOracle) -> GameDriver:
    return GameDriver(service, oracle)
