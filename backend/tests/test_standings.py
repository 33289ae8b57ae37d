"""
Standings: gold/silver from the final, shared bronze for semi-final losers.
"""
import random

import pytest
from sqlmodel import Session

from dojo_brackets.models.bracket import Bracket, BracketStatus
from dojo_brackets.models.match import MatchStatus
from dojo_brackets.models.tournament import Tournament, TournamentStatus
from dojo_brackets.services.bracket_builder import Fighter, bracket_matches, replace_category_bracket
from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.errors import StandingsNotFinalError
from dojo_brackets.services.progression import record_result, start_match
from dojo_brackets.services.standings import (
    CategoryStandings,
    Medal,
    Standing,
    bracket_standings,
    dojo_leaderboard,
    tournament_standings,
    tournament_summary,
)

KEY = CategoryKey("Senior", "+90kg", "Black")


def _build(session: Session, tournament_id: int, n: int, key: CategoryKey = KEY):
    fighters = [Fighter(registration_id=100 + i, name=f"F{i}") for i in range(1, n + 1)]
    bracket = replace_category_bracket(session, tournament_id, key, fighters)
    m = {(x.round_number, x.match_number): x.id for x in bracket_matches(session, bracket.id)}
    return bracket, m


def test_single_participant_is_champion_without_silver_or_bronze(session: Session, tournament):
    bracket, _ = _build(session, tournament.id, 1)
    result = bracket_standings(session, bracket.id)

    assert result.final is True
    (only,) = result.standings
    assert only.registration_id == 101
    assert only.rank == 1
    assert only.medal == Medal.GOLD
    assert only.matches_won == 0
    assert only.eliminated_in_round == "Champion"


def test_open_bracket_is_not_final(session: Session, tournament):
    bracket, m = _build(session, tournament.id, 4)
    with pytest.raises(StandingsNotFinalError):
        bracket_standings(session, bracket.id)

    record_result(session, m[1, 1], 101)
    record_result(session, m[1, 2], 103)
    start_match(session, m[2, 1])
    with pytest.raises(StandingsNotFinalError) as exc:
        bracket_standings(session, bracket.id)
    assert exc.value.entity_id == bracket.id


def test_two_fighters_get_gold_and_silver_only(session: Session, tournament):
    bracket, m = _build(session, tournament.id, 2)
    record_result(session, m[1, 1], 102, 1, 3)

    standings = bracket_standings(session, bracket.id).standings
    assert [(s.registration_id, s.rank, s.medal) for s in standings] == [
        (102, 1, Medal.GOLD),
        (101, 2, Medal.SILVER),
    ]
    assert standings[1].eliminated_in_round == "Final"


def test_five_fighters_with_byes(session: Session, tournament):
    bracket, m = _build(session, tournament.id, 5)
    record_result(session, m[1, 1], 101)
    record_result(session, m[2, 1], 103)
    record_result(session, m[2, 2], 104)
    record_result(session, m[3, 1], 103)

    standings = bracket_standings(session, bracket.id).standings
    assert [(s.registration_id, s.rank, s.medal) for s in standings] == [
        (103, 1, Medal.GOLD),
        (104, 2, Medal.SILVER),
        (101, 3, Medal.BRONZE),
        (105, 3, Medal.BRONZE),
        (102, None, None),
    ]
    by_id = {s.registration_id: s for s in standings}
    # Byes are not wins
    assert (by_id[103].matches_won, by_id[103].matches_lost) == (2, 0)
    assert (by_id[104].matches_won, by_id[104].matches_lost) == (1, 1)
    assert by_id[105].matches_won == 0
    assert by_id[105].eliminated_in_round == "Semi-Finals"
    assert by_id[102].eliminated_in_round == "Round 1"


def test_tournament_standings_mark_open_categories(session: Session, tournament):
    done, m = _build(session, tournament.id, 2)
    record_result(session, m[1, 1], 101)
    _build(session, tournament.id, 3, key=CategoryKey("Junior", None, "White"))

    results = tournament_standings(session, tournament.id)
    assert [r.category_name for r in results] == ["Junior, Open, White", "Senior, +90kg, Black"]
    open_result, final_result = results
    assert open_result.final is False
    assert open_result.standings == []
    assert open_result.reason
    assert final_result.final is True
    assert final_result.bracket_id == done.id
    assert final_result.standings[0].medal == Medal.GOLD


@pytest.mark.parametrize("seed", [0, 1, 2])
@pytest.mark.parametrize("n", [2, 3, 5, 6, 7, 9, 13, 16, 17])
def test_results_in_any_order_complete_the_bracket(session: Session, tournament, n, seed):
    rng = random.Random(seed)
    bracket, _ = _build(session, tournament.id, n)

    while True:
        session.expire_all()
        ready = [
            m for m in bracket_matches(session, bracket.id)
            if not m.is_bye and m.status == MatchStatus.PENDING and m.is_ready
        ]
        if not ready:
            break
        match = rng.choice(ready)
        record_result(session, match.id, rng.choice([match.fighter_a_id, match.fighter_b_id]))

    session.expire_all()
    matches = bracket_matches(session, bracket.id)
    assert all(m.status == MatchStatus.COMPLETED for m in matches)
    assert matches[-1].round_name == "Final"
    assert matches[-1].winner_id is not None

    result = bracket_standings(session, bracket.id)
    assert result.final is True
    assert result.standings[0].registration_id == matches[-1].winner_id
    assert len(result.standings) == n
    # Three fighters: one semi-final is a bye, so only one bronze
    assert [s.medal for s in result.standings].count(Medal.BRONZE) == {2: 0, 3: 1}.get(n, 2)
    assert session.get(Bracket, bracket.id).status == BracketStatus.COMPLETED
    assert session.get(Tournament, tournament.id).status == TournamentStatus.COMPLETED


def test_dojo_leaderboard_order():
    categories = [
        CategoryStandings(
            bracket_id=1,
            category_name="Adult, -70kg, Black",
            final=True,
            standings=[
                Standing(registration_id=1, name="A", rank=1, medal=Medal.GOLD),
                Standing(registration_id=2, name="B", rank=2, medal=Medal.SILVER),
                Standing(registration_id=3, name="C", rank=3, medal=Medal.BRONZE),
                Standing(registration_id=4, name="D", rank=3, medal=Medal.BRONZE),
                Standing(registration_id=5, name="E"),
            ],
        ),
        CategoryStandings(
            bracket_id=2,
            category_name="Adult, -70kg, Brown",
            final=True,
            standings=[
                Standing(registration_id=6, name="F", rank=1, medal=Medal.GOLD),
                Standing(registration_id=7, name="G", rank=2, medal=Medal.SILVER),
            ],
        ),
        CategoryStandings(bracket_id=3, category_name="Adult, -70kg, White", final=False),
    ]
    dojo_of = {1: "North", 2: "South", 3: "South", 4: "East", 5: "North", 6: "West", 7: None}

    board = dojo_leaderboard(categories, dojo_of)
    assert [(d.dojo_name, d.gold, d.silver, d.bronze, d.total) for d in board] == [
        ("North", 1, 0, 0, 1),
        ("West", 1, 0, 0, 1),
        ("South", 0, 1, 1, 2),
        ("East", 0, 0, 1, 1),
    ]


def test_tournament_summary(session: Session, tournament, register):
    black = [
        register("Ken", dojo="Kenshin"),
        register("Ryo", dojo="Ryu"),
        register("Kai", dojo="Kenshin"),
        register("Hana", dojo="Hoshi"),
    ]
    brown = [register("Hiro", belt="Brown", dojo="Hoshi"), register("Nao", belt="Brown", dojo=None)]
    white = [register(f"W{i}", belt="White", dojo="Ryu") for i in range(3)]

    def build(registrations, belt):
        fighters = [Fighter(registration_id=r.id, name=r.competitor_name) for r in registrations]
        bracket = replace_category_bracket(session, tournament.id, CategoryKey("Adult", "-70kg", belt), fighters)
        return {(x.round_number, x.match_number): x.id for x in bracket_matches(session, bracket.id)}

    m = build(black, "Black")
    record_result(session, m[1, 1], black[0].id)
    record_result(session, m[1, 2], black[3].id)
    record_result(session, m[2, 1], black[0].id)
    m = build(brown, "Brown")
    record_result(session, m[1, 1], brown[0].id)
    build(white, "White")

    summary = tournament_summary(session, tournament.id)
    assert summary.tournament_id == tournament.id
    assert [c.final for c in summary.categories] == [True, True, False]
    # Black: 3 played; Brown: 1 played; White: one open match plus the final (bye not counted)
    assert (summary.completed_matches, summary.total_matches) == (4, 6)
    assert [(d.dojo_name, d.gold, d.silver, d.bronze, d.total) for d in summary.dojo_leaderboard] == [
        ("Hoshi", 1, 1, 0, 2),
        ("Kenshin", 1, 0, 1, 2),
        ("Ryu", 0, 0, 1, 1),
    ]


def test_tournament_summary_without_brackets(session: Session, tournament):
    summary = tournament_summary(session, tournament.id)
    assert summary.categories == []
    assert summary.dojo_leaderboard == []
    assert (summary.completed_matches, summary.total_matches) == (0, 0)
