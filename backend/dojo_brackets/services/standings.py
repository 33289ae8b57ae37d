"""
Final standings of a completed bracket.

Fixed policy: final winner GOLD (rank 1), final loser SILVER (rank 2), both
semi-final losers BRONZE (shared rank 3, no bronze playoff). Everyone else is
listed without rank or medal. Byes are not counted as contested matches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session, select

from dojo_brackets.models.bracket import Bracket
from dojo_brackets.models.match import Match, MatchStatus
from dojo_brackets.models.registration import Registration
from dojo_brackets.services.bracket_builder import bracket_matches
from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.errors import BracketIntegrityError, NotFoundError, StandingsNotFinalError

CHAMPION = "Champion"


class Medal(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"


@dataclass
class Standing:
    registration_id: int
    name: Optional[str]
    rank: Optional[int] = None
    medal: Optional[Medal] = None
    matches_won: int = 0
    matches_lost: int = 0
    eliminated_in_round: Optional[str] = None
    eliminated_round_number: int = 0


@dataclass
class CategoryStandings:
    bracket_id: int
    category_name: str
    final: bool
    standings: List[Standing] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass
class DojoMedals:
    dojo_name: str
    gold: int = 0
    silver: int = 0
    bronze: int = 0

    @property
    def total(self) -> int:
        return self.gold + self.silver + self.bronze


@dataclass
class TournamentSummary:
    tournament_id: int
    categories: List[CategoryStandings]
    dojo_leaderboard: List[DojoMedals]
    completed_matches: int
    total_matches: int


def compute_standings(matches: Sequence[Match], bracket_id: Optional[int] = None) -> List[Standing]:
    """Rank the participants of one bracket from its (all completed) matches."""
    if not matches:
        raise BracketIntegrityError("Bracket has no matches", entity_id=bracket_id)

    pending = [m for m in matches if m.status != MatchStatus.COMPLETED]
    if pending:
        raise StandingsNotFinalError(
            f"Standings not final: {len(pending)} matches are not completed", entity_id=bracket_id
        )

    final_round = max(m.round_number for m in matches)
    finals = [m for m in matches if m.round_number == final_round]
    if len(finals) != 1 or finals[0].winner_id is None:
        raise BracketIntegrityError("Bracket does not have a single decided final", entity_id=bracket_id)
    final = finals[0]

    ordered = sorted(matches, key=lambda m: (m.round_number, m.match_number))
    table: Dict[int, Standing] = {}
    for match in ordered:
        for fid, fname in ((match.fighter_a_id, match.fighter_a_name), (match.fighter_b_id, match.fighter_b_name)):
            if fid is not None and fid not in table:
                table[fid] = Standing(registration_id=fid, name=fname)

    for match in ordered:
        if match.is_bye:
            continue
        loser_id = match.loser_id()
        table[match.winner_id].matches_won += 1
        if loser_id is not None:
            loser = table[loser_id]
            loser.matches_lost += 1
            loser.eliminated_in_round = match.round_name
            loser.eliminated_round_number = match.round_number

    def award(registration_id: Optional[int], rank: int, medal: Medal) -> None:
        if registration_id is None:
            return
        table[registration_id].rank = rank
        table[registration_id].medal = medal

    champion = table[final.winner_id]
    champion.eliminated_in_round = CHAMPION
    champion.eliminated_round_number = final_round + 1
    award(final.winner_id, 1, Medal.GOLD)
    award(final.loser_id(), 2, Medal.SILVER)
    if final_round >= 2:
        for semi in (m for m in ordered if m.round_number == final_round - 1):
            award(semi.loser_id(), 3, Medal.BRONZE)

    position = {fid: i for i, fid in enumerate(table)}
    return sorted(
        table.values(),
        key=lambda s: (
            s.rank if s.rank is not None else 4,
            -s.eliminated_round_number,
            -s.matches_won,
            position[s.registration_id],
        ),
    )


def bracket_standings(session: Session, bracket_id: int) -> CategoryStandings:
    """Standings of one bracket; raises StandingsNotFinalError while it is incomplete."""
    bracket = session.get(Bracket, bracket_id)
    if not bracket:
        raise NotFoundError("Bracket not found", entity_id=bracket_id)
    standings = compute_standings(bracket_matches(session, bracket_id), bracket_id=bracket_id)
    return CategoryStandings(
        bracket_id=bracket.id, category_name=bracket.category_name, final=True, standings=standings
    )


def tournament_standings(session: Session, tournament_id: int) -> List[CategoryStandings]:
    """Per-category standings; incomplete categories come back with final=False and no ranking."""
    brackets = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).all()
    results: List[CategoryStandings] = []
    for bracket in sorted(brackets, key=lambda b: CategoryKey.of(b).sort_key()):
        try:
            results.append(bracket_standings(session, bracket.id))
        except StandingsNotFinalError as exc:
            results.append(
                CategoryStandings(
                    bracket_id=bracket.id,
                    category_name=bracket.category_name,
                    final=False,
                    reason=exc.message,
                )
            )
    return results


def dojo_leaderboard(
    categories: Sequence[CategoryStandings], dojo_of: Dict[int, Optional[str]]
) -> List[DojoMedals]:
    """Medal table per dojo over final categories: gold, then silver, bronze and total, descending."""
    tally: Dict[str, DojoMedals] = {}
    for category in categories:
        if not category.final:
            continue
        for standing in category.standings:
            dojo = dojo_of.get(standing.registration_id)
            if standing.medal is None or not dojo:
                continue
            medals = tally.setdefault(dojo, DojoMedals(dojo_name=dojo))
            if standing.medal == Medal.GOLD:
                medals.gold += 1
            elif standing.medal == Medal.SILVER:
                medals.silver += 1
            else:
                medals.bronze += 1
    return sorted(tally.values(), key=lambda d: (-d.gold, -d.silver, -d.bronze, -d.total, d.dojo_name))


def tournament_summary(session: Session, tournament_id: int) -> TournamentSummary:
    """Standings of every category plus the dojo medal table and contested-match progress."""
    categories = tournament_standings(session, tournament_id)
    registrations = session.exec(select(Registration).where(Registration.tournament_id == tournament_id)).all()
    dojo_of = {r.id: r.dojo_name for r in registrations}

    bracket_ids = [c.bracket_id for c in categories]
    contested = []
    if bracket_ids:
        matches = session.exec(
            select(Match).where(Match.bracket_id.in_(bracket_ids))  # type: ignore[attr-defined]
        ).all()
        contested = [m for m in matches if not m.is_bye]
    return TournamentSummary(
        tournament_id=tournament_id,
        categories=categories,
        dojo_leaderboard=dojo_leaderboard(categories, dojo_of),
        completed_matches=sum(1 for m in contested if m.status == MatchStatus.COMPLETED),
        total_matches=len(contested),
    )
