"""
Match Progression: match lifecycle + winner propagation through the bracket tree.

States: PENDING -> LIVE -> COMPLETED. Byes are built COMPLETED and never change.
When a match completes, its winner is placed into the slot of the downstream
match that this match feeds (source_match_a_id -> slot A, source_match_b_id ->
slot B). A downstream match with both slots populated stays PENDING until it
is started or a result is recorded for it.

Correcting a recorded winner goes through override_result, which first voids
every downstream match that consumed the old winner (recursively), then places
the new winner.

All mutations run under the category lock of the match's bracket so they
cannot interleave with a regeneration of that category or with each other.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional

from sqlmodel import Session, select

from dojo_brackets.models.bracket import Bracket, BracketStatus
from dojo_brackets.models.match import Match, MatchStatus
from dojo_brackets.models.tournament import Tournament, TournamentStatus
from dojo_brackets.services.bracket_builder import bracket_matches
from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.errors import (
    BracketIntegrityError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from dojo_brackets.services.locks import category_lock

logger = logging.getLogger(__name__)


@dataclass
class ProgressionResult:
    match: Match
    changed: List[Match] = field(default_factory=list)

    def mark(self, match: Match) -> None:
        if all(m is not match for m in self.changed):
            self.changed.append(match)


def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError("Match not found", entity_id=match_id)
    return match


def _get_bracket(session: Session, match: Match) -> Bracket:
    bracket = session.get(Bracket, match.bracket_id)
    if not bracket:
        raise BracketIntegrityError("Match references a missing bracket", entity_id=match.id)
    return bracket


def _require_unlocked(bracket: Bracket) -> None:
    if bracket.status == BracketStatus.LOCKED:
        raise StateConflictError(
            f"Bracket '{bracket.category_name}' is locked", entity_id=bracket.id, kind="BRACKET_LOCKED"
        )


def _require_contestable(match: Match) -> None:
    if match.is_bye:
        raise ValidationError("Bye matches cannot be changed", entity_id=match.id, kind="BYE_IMMUTABLE")
    if not match.is_ready:
        raise ValidationError(
            "Match is waiting for a previous match's winner", entity_id=match.id, kind="MATCH_NOT_READY"
        )


def _require_fighter(match: Match, winner_id: int) -> None:
    if winner_id not in (match.fighter_a_id, match.fighter_b_id):
        raise ValidationError(
            f"Registration {winner_id} is not a fighter in this match",
            entity_id=match.id,
            kind="INVALID_WINNER",
        )


def _apply_scores(match: Match, score_a: Optional[float], score_b: Optional[float]) -> None:
    if score_a is not None:
        match.fighter_a_score = score_a
    if score_b is not None:
        match.fighter_b_score = score_b


def _downstream_slot(downstream: Match, upstream: Match) -> str:
    if downstream.source_match_a_id == upstream.id:
        return "a"
    if downstream.source_match_b_id == upstream.id:
        return "b"
    raise BracketIntegrityError(
        f"Match {downstream.id} is not fed by match {upstream.id}", entity_id=downstream.id
    )


def _get_downstream(session: Session, match: Match) -> Optional[Match]:
    if match.next_match_id is None:
        return None
    downstream = session.get(Match, match.next_match_id)
    if downstream is None:
        raise BracketIntegrityError("Downstream match is missing", entity_id=match.next_match_id)
    if downstream.is_bye:
        logger.error("Match %d feeds bye match %d; bracket data is corrupt", match.id, downstream.id)
        raise BracketIntegrityError("A bye match is fed by another match", entity_id=downstream.id)
    return downstream


def propagate_winner(session: Session, match: Match, result: ProgressionResult) -> None:
    """Place match's winner into its downstream slot. Idempotent."""
    downstream = _get_downstream(session, match)
    if downstream is None or match.winner_id is None:
        return

    slot = _downstream_slot(downstream, match)
    current = getattr(downstream, f"fighter_{slot}_id")
    if current == match.winner_id:
        return
    if current is not None:
        raise BracketIntegrityError(
            f"Slot {slot.upper()} of match {downstream.id} already holds another fighter",
            entity_id=downstream.id,
        )

    setattr(downstream, f"fighter_{slot}_id", match.winner_id)
    setattr(downstream, f"fighter_{slot}_name", match.fighter_name(match.winner_id))
    session.add(downstream)
    result.mark(downstream)
    logger.debug("Advanced registration %d from match %d to match %d", match.winner_id, match.id, downstream.id)


def void_downstream(session: Session, match: Match, result: ProgressionResult) -> None:
    """Clear everything downstream that consumed match's winner, recursively.

    Only the slot fed by this branch is cleared; the sibling branch's fighter
    stays seated. Voided matches return to PENDING with no scores or winner.
    """
    downstream = _get_downstream(session, match)
    if downstream is None:
        return

    slot = _downstream_slot(downstream, match)
    setattr(downstream, f"fighter_{slot}_id", None)
    setattr(downstream, f"fighter_{slot}_name", None)

    if downstream.status == MatchStatus.COMPLETED:
        void_downstream(session, downstream, result)
        downstream.winner_id = None
        downstream.completed_at = None

    if downstream.status != MatchStatus.PENDING:
        downstream.status = MatchStatus.PENDING
        downstream.fighter_a_score = None
        downstream.fighter_b_score = None
        downstream.started_at = None

    session.add(downstream)
    result.mark(downstream)
    logger.info("Voided match %d (slot %s) after override of match %d", downstream.id, slot.upper(), match.id)


def refresh_bracket_status(session: Session, bracket: Bracket) -> None:
    """Derive bracket (and tournament) completion from the match states."""
    if bracket.status == BracketStatus.LOCKED:
        return

    matches = bracket_matches(session, bracket.id)
    if all(m.status == MatchStatus.COMPLETED for m in matches):
        if bracket.status != BracketStatus.COMPLETED:
            bracket.status = BracketStatus.COMPLETED
            bracket.completed_at = datetime.utcnow()
            logger.info("Bracket %d (%s) completed", bracket.id, bracket.category_name)
    elif any(m.status != MatchStatus.PENDING and not m.is_bye for m in matches):
        bracket.status = BracketStatus.IN_PROGRESS
        bracket.completed_at = None
    else:
        bracket.status = BracketStatus.DRAFT
        bracket.completed_at = None
    session.add(bracket)
    session.flush()

    refresh_tournament_status(session, bracket.tournament_id)


def refresh_tournament_status(session: Session, tournament_id: int) -> None:
    """A tournament is COMPLETED once every one of its brackets is (no commit)."""
    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        return
    brackets = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).all()
    complete = bool(brackets) and all(b.status == BracketStatus.COMPLETED for b in brackets)
    status = TournamentStatus.COMPLETED if complete else TournamentStatus.UPCOMING
    if tournament.status != status:
        tournament.status = status
        session.add(tournament)
        logger.info("Tournament %d marked %s", tournament_id, status.value)


@contextmanager
def _mutating(session: Session, bracket: Bracket) -> Iterator[None]:
    """Hold the bracket's category lock; any failure rolls the session back."""
    with category_lock(bracket.tournament_id, CategoryKey.of(bracket)):
        try:
            yield
        except Exception:
            session.rollback()
            raise


def _finish(session: Session, result: ProgressionResult) -> ProgressionResult:
    session.commit()
    for m in result.changed:
        session.refresh(m)
    return result


# ============================================================================
# Operations
# ============================================================================


def start_match(session: Session, match_id: int) -> ProgressionResult:
    """PENDING -> LIVE. Starting a LIVE match again is a no-op."""
    match = get_match(session, match_id)
    bracket = _get_bracket(session, match)
    with _mutating(session, bracket):
        session.refresh(match)
        session.refresh(bracket)
        _require_unlocked(bracket)
        _require_contestable(match)
        if match.status == MatchStatus.COMPLETED:
            raise ValidationError("Match is already completed", entity_id=match.id, kind="MATCH_COMPLETED")

        result = ProgressionResult(match=match)
        if match.status == MatchStatus.LIVE:
            return result

        match.status = MatchStatus.LIVE
        match.started_at = datetime.utcnow()
        session.add(match)
        result.mark(match)
        refresh_bracket_status(session, bracket)
        logger.info("Match %d started", match.id)
        return _finish(session, result)


def update_live_score(
    session: Session, match_id: int, score_a: Optional[float], score_b: Optional[float]
) -> ProgressionResult:
    """Set running scores on a LIVE match without declaring a winner."""
    match = get_match(session, match_id)
    bracket = _get_bracket(session, match)
    with _mutating(session, bracket):
        session.refresh(match)
        session.refresh(bracket)
        _require_unlocked(bracket)
        if match.status != MatchStatus.LIVE:
            raise ValidationError("Scores can only be updated on a live match", entity_id=match.id, kind="MATCH_NOT_LIVE")

        _apply_scores(match, score_a, score_b)
        session.add(match)
        result = ProgressionResult(match=match)
        result.mark(match)
        return _finish(session, result)


def record_result(
    session: Session,
    match_id: int,
    winner_id: int,
    score_a: Optional[float] = None,
    score_b: Optional[float] = None,
) -> ProgressionResult:
    """Declare a winner and advance them downstream.

    Re-recording the same winner on a completed match is a no-op; a different
    winner must go through override_result.
    """
    match = get_match(session, match_id)
    bracket = _get_bracket(session, match)
    with _mutating(session, bracket):
        session.refresh(match)
        session.refresh(bracket)
        _require_contestable(match)
        _require_fighter(match, winner_id)
        _require_unlocked(bracket)

        result = ProgressionResult(match=match)
        if match.status == MatchStatus.COMPLETED:
            if match.winner_id == winner_id:
                return result
            raise ValidationError(
                "A different winner is already recorded; use the override operation",
                entity_id=match.id,
                kind="WINNER_ALREADY_RECORDED",
            )

        now = datetime.utcnow()
        _apply_scores(match, score_a, score_b)
        match.winner_id = winner_id
        match.status = MatchStatus.COMPLETED
        match.started_at = match.started_at or now
        match.completed_at = now
        session.add(match)
        result.mark(match)

        propagate_winner(session, match, result)
        refresh_bracket_status(session, bracket)
        logger.info("Match %d won by registration %d", match.id, winner_id)
        return _finish(session, result)


def override_result(
    session: Session,
    match_id: int,
    winner_id: int,
    score_a: Optional[float] = None,
    score_b: Optional[float] = None,
) -> ProgressionResult:
    """Correct the winner of a completed match, voiding stale downstream results."""
    match = get_match(session, match_id)
    bracket = _get_bracket(session, match)
    with _mutating(session, bracket):
        session.refresh(match)
        session.refresh(bracket)
        _require_contestable(match)
        _require_fighter(match, winner_id)
        _require_unlocked(bracket)
        if match.status != MatchStatus.COMPLETED:
            raise ValidationError(
                "Only completed matches can be overridden; record a result instead",
                entity_id=match.id,
                kind="MATCH_NOT_COMPLETED",
            )

        result = ProgressionResult(match=match)
        _apply_scores(match, score_a, score_b)
        result.mark(match)

        if match.winner_id != winner_id:
            previous = match.winner_id
            void_downstream(session, match, result)
            match.winner_id = winner_id
            match.completed_at = datetime.utcnow()
            propagate_winner(session, match, result)
            logger.info(
                "Match %d winner overridden: %s -> %d (%d matches changed)",
                match.id,
                previous,
                winner_id,
                len(result.changed),
            )

        session.add(match)
        refresh_bracket_status(session, bracket)
        return _finish(session, result)


def set_bracket_locked(session: Session, bracket_id: int, locked: bool) -> Bracket:
    """Freeze or unfreeze a bracket. Unlocking restores the status derived from its matches."""
    bracket = session.get(Bracket, bracket_id)
    if not bracket:
        raise NotFoundError("Bracket not found", entity_id=bracket_id)

    with _mutating(session, bracket):
        session.refresh(bracket)
        if locked:
            if bracket.status != BracketStatus.LOCKED:
                bracket.status = BracketStatus.LOCKED
                bracket.locked_at = datetime.utcnow()
                session.add(bracket)
        elif bracket.status == BracketStatus.LOCKED:
            bracket.status = BracketStatus.DRAFT
            bracket.locked_at = None
            refresh_bracket_status(session, bracket)
        session.commit()
        session.refresh(bracket)
        logger.info("Bracket %d %s", bracket.id, "locked" if locked else "unlocked")
        return bracket
