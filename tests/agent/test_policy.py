"""Unit tests for src/agent/policy.py"""

import pytest
from pydantic import ValidationError

from src.agent.policy import (
    PREFERRED_ORDER,
    MoveContext,
    MoveProposal,
    PreferredOrderPolicy,
    RandomPolicy,
    ScriptedPolicy,
    available_cells,
    fallback_move,
    parse_proposal,
)
from src.core.exceptions import NoAvailableCellsError
from src.game.board import Coordinate, all_coordinates

CONTEXT = MoveContext(game_id=0, round=0, is_player1=True)


def test_preferred_order_covers_the_board() -> None:
    assert sorted(PREFERRED_ORDER) == sorted(all_coordinates())
    assert PREFERRED_ORDER[0] == Coordinate(1, 1)


def test_fallback_skips_forbidden_cells() -> None:
    assert fallback_move(set()) == Coordinate(1, 1)
    assert fallback_move({Coordinate(1, 1), Coordinate(2, 1)}) == Coordinate(1, 2)
    with pytest.raises(NoAvailableCellsError):
        fallback_move(set(all_coordinates()))


def test_available_cells() -> None:
    assert len(available_cells([])) == 16
    assert Coordinate(0, 0) not in available_cells([Coordinate(0, 0)])


@pytest.mark.parametrize(
    "raw",
    [
        MoveProposal(x=2, y=3),
        Coordinate(2, 3),
        (2, 3),
        [2, 3],
        {"x": 2, "y": 3},
        {"x": "2", "y": "3"},
    ],
)
def test_parse_proposal(raw: object) -> None:
    assert parse_proposal(raw).to_coordinate() == Coordinate(2, 3)


@pytest.mark.parametrize("raw", [(4, 0), (0, -1), {"x": 1}, "a1", None, (1, 2, 3)])
def test_parse_bad_proposal(raw: object) -> None:
    with pytest.raises(ValidationError):
        parse_proposal(raw)


def test_preferred_order_policy() -> None:
    assert PreferredOrderPolicy().propose(CONTEXT, {Coordinate(1, 1)}) == Coordinate(2, 1)


def test_random_policy_is_seeded_and_respects_forbidden() -> None:
    forbidden = set(all_coordinates()[:15])
    assert RandomPolicy(seed=3).propose(CONTEXT, forbidden) == Coordinate(3, 3)
    assert RandomPolicy(seed=3).propose(CONTEXT, set()) == RandomPolicy(seed=3).propose(CONTEXT, set())
    with pytest.raises(NoAvailableCellsError):
        RandomPolicy().propose(CONTEXT, set(all_coordinates()))


def test_scripted_policy() -> None:
    policy = ScriptedPolicy([(0, 0), "garbage"])
    assert policy.propose(CONTEXT, set()) == (0, 0)
    assert policy.propose(CONTEXT, set()) == "garbage"
    assert policy.propose(CONTEXT, set()) == Coordinate(1, 1)
    assert policy.calls == 3
