"""
Result override: voiding everything downstream that consumed the old winner.
"""
import pytest
from sqlmodel import Session

from dojo_brackets.models.bracket import Bracket, BracketStatus
from dojo_brackets.models.match import Match, MatchStatus
from dojo_brackets.models.tournament import Tournament, TournamentStatus
from dojo_brackets.services.bracket_builder import Fighter, bracket_matches, replace_category_bracket
from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.errors import ValidationError
from dojo_brackets.services.progression import (
    override_result,
    record_result,
    start_match,
    update_live_score,
)

KEY = CategoryKey("Junior", "-40kg", "Green")


@pytest.fixture
def eight(session: Session, tournament):
    """Fully played 8-fighter bracket: 101, 103, 105, 107 win round 1; 101 and 105 the semis; 101 the final."""
    fighters = [Fighter(registration_id=100 + i, name=f"F{i}") for i in range(1, 9)]
    bracket = replace_category_bracket(session, tournament.id, KEY, fighters)
    m = {(x.round_number, x.match_number): x.id for x in bracket_matches(session, bracket.id)}
    for number, winner in ((1, 101), (2, 103), (3, 105), (4, 107)):
        record_result(session, m[1, number], winner)
    record_result(session, m[2, 1], 101, 4, 1)
    record_result(session, m[2, 2], 105)
    record_result(session, m[3, 1], 101)
    return bracket, m


def test_override_voids_recursively_down_to_the_final(session: Session, tournament, eight):
    bracket, m = eight
    assert session.get(Bracket, bracket.id).status == BracketStatus.COMPLETED

    result = override_result(session, m[1, 1], 102)

    semi = session.get(Match, m[2, 1])
    assert semi.fighter_a_id == 102
    assert semi.fighter_a_name == "F2"
    assert semi.fighter_b_id == 103
    assert semi.status == MatchStatus.PENDING
    assert semi.winner_id is None
    assert (semi.fighter_a_score, semi.fighter_b_score) == (None, None)

    final = session.get(Match, m[3, 1])
    assert final.fighter_a_id is None
    assert final.fighter_b_id == 105
    assert final.status == MatchStatus.PENDING
    assert final.winner_id is None

    assert {c.id for c in result.changed} == {m[1, 1], m[2, 1], m[3, 1]}
    assert session.get(Match, m[1, 1]).winner_id == 102
    assert session.get(Bracket, bracket.id).status == BracketStatus.IN_PROGRESS
    assert session.get(Tournament, tournament.id).status == TournamentStatus.UPCOMING


def test_sibling_branch_is_untouched(session: Session, eight):
    _, m = eight
    override_result(session, m[1, 1], 102)

    other_semi = session.get(Match, m[2, 2])
    assert other_semi.status == MatchStatus.COMPLETED
    assert other_semi.winner_id == 105
    for number in (2, 3, 4):
        assert session.get(Match, m[1, number]).status == MatchStatus.COMPLETED


def test_override_of_the_final_only_changes_the_final(session: Session, eight):
    bracket, m = eight
    result = override_result(session, m[3, 1], 105)
    assert [c.id for c in result.changed] == [m[3, 1]]
    assert session.get(Match, m[3, 1]).winner_id == 105
    assert session.get(Bracket, bracket.id).status == BracketStatus.COMPLETED


def test_voided_live_match_returns_to_pending(session: Session, tournament):
    fighters = [Fighter(registration_id=100 + i, name=f"F{i}") for i in range(1, 5)]
    bracket = replace_category_bracket(session, tournament.id, KEY, fighters)
    m = {(x.round_number, x.match_number): x.id for x in bracket_matches(session, bracket.id)}
    record_result(session, m[1, 1], 101)
    record_result(session, m[1, 2], 104)
    start_match(session, m[2, 1])
    update_live_score(session, m[2, 1], 2, 2)

    override_result(session, m[1, 2], 103)

    final = session.get(Match, m[2, 1])
    assert final.status == MatchStatus.PENDING
    assert final.started_at is None
    assert (final.fighter_a_id, final.fighter_b_id) == (101, 103)
    assert (final.fighter_a_score, final.fighter_b_score) == (None, None)


def test_same_winner_override_only_updates_scores(session: Session, eight):
    _, m = eight
    result = override_result(session, m[2, 1], 101, 6, 1)
    assert [c.id for c in result.changed] == [m[2, 1]]
    assert session.get(Match, m[2, 1]).fighter_a_score == 6
    assert session.get(Match, m[3, 1]).status == MatchStatus.COMPLETED


def test_override_requires_completed_match(session: Session, tournament):
    fighters = [Fighter(registration_id=100 + i, name=f"F{i}") for i in range(1, 3)]
    bracket = replace_category_bracket(session, tournament.id, KEY, fighters)
    (match,) = bracket_matches(session, bracket.id)
    with pytest.raises(ValidationError) as exc:
        override_result(session, match.id, 101)
    assert exc.value.kind == "MATCH_NOT_COMPLETED"
