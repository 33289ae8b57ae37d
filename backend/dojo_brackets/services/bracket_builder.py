"""
Bracket Builder: single-elimination match tree for one category.

Layout for N participants padded to M = next power of two:
- Round 1 has M/2 matches. The first N - M/2 matches are real-vs-real; the
  remaining M - N matches each hold exactly one participant (a bye). A round-1
  match is never empty.
- Round r has M / 2^r matches; matches i and i+1 (0-based, consecutive) of
  round r-1 feed slot A and slot B of match i//2 in round r.
- Byes complete at build time and their winner is placed into the downstream
  slot immediately.
- A single participant yields one completed bye match named "Final".

Planning is pure (index-linked PlannedMatch nodes); persistence turns a plan
into Bracket + Match rows inside one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from sqlmodel import Session, select

from dojo_brackets.models.bracket import Bracket, BracketStatus
from dojo_brackets.models.match import Match, MatchStatus
from dojo_brackets.services.category_classifier import CategoryKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fighter:
    registration_id: int
    name: str


@dataclass
class PlannedMatch:
    index: int
    round_number: int
    round_name: str
    match_number: int
    fighter_a: Optional[Fighter] = None
    fighter_b: Optional[Fighter] = None
    winner: Optional[Fighter] = None
    is_bye: bool = False
    status: MatchStatus = MatchStatus.PENDING
    source_a_index: Optional[int] = None
    source_b_index: Optional[int] = None
    next_index: Optional[int] = None


@dataclass
class BracketPlan:
    participant_count: int
    size: int
    total_rounds: int
    matches: List[PlannedMatch] = field(default_factory=list)

    @property
    def bye_count(self) -> int:
        return sum(1 for m in self.matches if m.is_bye)

    @property
    def final(self) -> PlannedMatch:
        return self.matches[-1]

    def round(self, round_number: int) -> List[PlannedMatch]:
        return [m for m in self.matches if m.round_number == round_number]

    @property
    def status(self) -> BracketStatus:
        if all(m.status == MatchStatus.COMPLETED for m in self.matches):
            return BracketStatus.COMPLETED
        return BracketStatus.DRAFT


def bracket_size(participant_count: int) -> int:
    """Smallest power of two >= participant_count (1 for a lone fighter)."""
    if participant_count <= 1:
        return 1
    return 1 << (participant_count - 1).bit_length()


def round_name(round_number: int, total_rounds: int) -> str:
    rounds_from_end = total_rounds - round_number
    if rounds_from_end == 0:
        return "Final"
    if rounds_from_end == 1:
        return "Semi-Finals"
    return f"Round {round_number}"


def plan_bracket(participants: Sequence[Fighter]) -> BracketPlan:
    """Build the match tree for an ordered participant list (>= 1)."""
    n = len(participants)
    if n == 0:
        raise ValueError("cannot build a bracket without participants")

    size = bracket_size(n)

    if n == 1:
        lone = participants[0]
        plan = BracketPlan(participant_count=1, size=1, total_rounds=1)
        plan.matches.append(
            PlannedMatch(
                index=0,
                round_number=1,
                round_name=round_name(1, 1),
                match_number=1,
                fighter_a=lone,
                winner=lone,
                is_bye=True,
                status=MatchStatus.COMPLETED,
            )
        )
        return plan

    total_rounds = size.bit_length() - 1
    plan = BracketPlan(participant_count=n, size=size, total_rounds=total_rounds)

    # Round 1: real pairs first, single-fighter byes in the trailing M - N slots
    first_round_slots = size // 2
    real_pairs = n - first_round_slots
    feed = iter(participants)
    previous: List[PlannedMatch] = []
    for slot in range(first_round_slots):
        fighter_a = next(feed)
        fighter_b = next(feed) if slot < real_pairs else None
        match = PlannedMatch(
            index=len(plan.matches),
            round_number=1,
            round_name=round_name(1, total_rounds),
            match_number=slot + 1,
            fighter_a=fighter_a,
            fighter_b=fighter_b,
        )
        if fighter_b is None:
            match.is_bye = True
            match.winner = fighter_a
            match.status = MatchStatus.COMPLETED
        plan.matches.append(match)
        previous.append(match)

    for round_number in range(2, total_rounds + 1):
        current: List[PlannedMatch] = []
        for i in range(0, len(previous), 2):
            feeder_a, feeder_b = previous[i], previous[i + 1]
            match = PlannedMatch(
                index=len(plan.matches),
                round_number=round_number,
                round_name=round_name(round_number, total_rounds),
                match_number=i // 2 + 1,
                source_a_index=feeder_a.index,
                source_b_index=feeder_b.index,
            )
            feeder_a.next_index = match.index
            feeder_b.next_index = match.index
            plan.matches.append(match)
            current.append(match)
        previous = current

    for match in plan.round(1):
        if match.is_bye:
            _advance_planned_winner(plan, match)

    return plan


def _advance_planned_winner(plan: BracketPlan, match: PlannedMatch) -> None:
    if match.next_index is None or match.winner is None:
        return
    downstream = plan.matches[match.next_index]
    if downstream.source_a_index == match.index:
        downstream.fighter_a = match.winner
    else:
        downstream.fighter_b = match.winner


# ============================================================================
# Persistence
# ============================================================================


def find_bracket(session: Session, tournament_id: int, key: CategoryKey) -> Optional[Bracket]:
    query = select(Bracket).where(Bracket.tournament_id == tournament_id)
    for column, value in (
        (Bracket.category_age, key.age),
        (Bracket.category_weight, key.weight),
        (Bracket.category_belt, key.belt),
    ):
        query = query.where(column.is_(None) if value is None else column == value)
    return session.exec(query).first()


def bracket_matches(session: Session, bracket_id: int) -> List[Match]:
    """Matches of a bracket in round, then match-number order."""
    return list(
        session.exec(
            select(Match)
            .where(Match.bracket_id == bracket_id)
            .order_by(Match.round_number, Match.match_number)
        ).all()
    )


def bracket_participant_ids(session: Session, bracket_id: int) -> Set[int]:
    """Registration ids seated in round 1 of a bracket."""
    ids: Set[int] = set()
    for match in session.exec(
        select(Match).where(Match.bracket_id == bracket_id, Match.round_number == 1)
    ).all():
        ids.update(fid for fid in (match.fighter_a_id, match.fighter_b_id) if fid is not None)
    return ids


def delete_bracket(session: Session, bracket: Bracket) -> None:
    """Delete a bracket and all its matches (no commit).

    Tree links are cleared and flushed first so no row is deleted while
    another still references it.
    """
    matches = bracket_matches(session, bracket.id)
    for match in matches:
        match.next_match_id = None
        match.source_match_a_id = None
        match.source_match_b_id = None
        session.add(match)
    session.flush()

    for match in matches:
        session.delete(match)
    session.flush()

    session.delete(bracket)
    session.flush()


def persist_plan(session: Session, tournament_id: int, key: CategoryKey, plan: BracketPlan) -> Bracket:
    """Write a plan as Bracket + Match rows (no commit)."""
    now = datetime.utcnow()
    status = plan.status
    bracket = Bracket(
        tournament_id=tournament_id,
        category_age=key.age,
        category_weight=key.weight,
        category_belt=key.belt,
        category_name=key.display_name,
        total_participants=plan.participant_count,
        status=status,
        completed_at=now if status == BracketStatus.COMPLETED else None,
    )
    session.add(bracket)
    session.flush()

    rows: Dict[int, Match] = {}
    for planned in plan.matches:
        row = Match(
            bracket_id=bracket.id,
            round_number=planned.round_number,
            round_name=planned.round_name,
            match_number=planned.match_number,
            fighter_a_id=planned.fighter_a.registration_id if planned.fighter_a else None,
            fighter_a_name=planned.fighter_a.name if planned.fighter_a else None,
            fighter_b_id=planned.fighter_b.registration_id if planned.fighter_b else None,
            fighter_b_name=planned.fighter_b.name if planned.fighter_b else None,
            winner_id=planned.winner.registration_id if planned.winner else None,
            is_bye=planned.is_bye,
            status=planned.status,
            completed_at=now if planned.status == MatchStatus.COMPLETED else None,
        )
        session.add(row)
        rows[planned.index] = row
    session.flush()

    for planned in plan.matches:
        row = rows[planned.index]
        if planned.next_index is not None:
            row.next_match_id = rows[planned.next_index].id
        if planned.source_a_index is not None:
            row.source_match_a_id = rows[planned.source_a_index].id
        if planned.source_b_index is not None:
            row.source_match_b_id = rows[planned.source_b_index].id
        session.add(row)
    session.flush()
    return bracket


def replace_category_bracket(
    session: Session,
    tournament_id: int,
    key: CategoryKey,
    participants: Sequence[Fighter],
) -> Bracket:
    """Delete the category's existing bracket and build its replacement.

    One transaction: either the new bracket is fully visible or the previous
    one is left untouched.
    """
    try:
        existing = find_bracket(session, tournament_id, key)
        if existing is not None:
            logger.info(
                "Replacing bracket %d for tournament %d category %s", existing.id, tournament_id, key
            )
            delete_bracket(session, existing)

        plan = plan_bracket(participants)
        bracket = persist_plan(session, tournament_id, key, plan)
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(bracket)
    logger.info(
        "Built bracket %d for %s: %d participants, %d matches, %d byes",
        bracket.id,
        key,
        plan.participant_count,
        len(plan.matches),
        plan.bye_count,
    )
    return bracket
