"""
Match runtime: start, live scoring, result recording and result override.

Every mutation returns the updated match plus every match whose state changed
(downstream slot fills, and cascade voids on override).
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from dojo_brackets.database import get_session
from dojo_brackets.models.match import Match
from dojo_brackets.services import progression
from dojo_brackets.services.progression import ProgressionResult

router = APIRouter()


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bracket_id: int
    round_number: int
    round_name: str
    match_number: int
    fighter_a_id: Optional[int] = None
    fighter_a_name: Optional[str] = None
    fighter_b_id: Optional[int] = None
    fighter_b_name: Optional[str] = None
    fighter_a_score: Optional[float] = None
    fighter_b_score: Optional[float] = None
    winner_id: Optional[int] = None
    is_bye: bool
    status: str
    next_match_id: Optional[int] = None
    source_match_a_id: Optional[int] = None
    source_match_b_id: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ScoreUpdate(BaseModel):
    fighter_a_score: Optional[float] = None
    fighter_b_score: Optional[float] = None


class MatchResultRequest(BaseModel):
    winner_id: int
    fighter_a_score: Optional[float] = None
    fighter_b_score: Optional[float] = None


class MatchMutationResponse(BaseModel):
    match: MatchResponse
    changed: List[MatchResponse]


def match_to_response(m: Match) -> MatchResponse:
    return MatchResponse.model_validate(m)


def _to_mutation_response(result: ProgressionResult) -> MatchMutationResponse:
    return MatchMutationResponse(
        match=match_to_response(result.match),
        changed=[match_to_response(m) for m in result.changed],
    )


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: int, session: Session = Depends(get_session)):
    return match_to_response(progression.get_match(session, match_id))


@router.post("/matches/{match_id}/start", response_model=MatchMutationResponse)
def start_match(match_id: int, session: Session = Depends(get_session)):
    """PENDING -> LIVE; both fighters must be seated."""
    return _to_mutation_response(progression.start_match(session, match_id))


@router.patch("/matches/{match_id}/score", response_model=MatchMutationResponse)
def update_score(match_id: int, payload: ScoreUpdate, session: Session = Depends(get_session)):
    """Running score of a LIVE match (no winner)."""
    return _to_mutation_response(
        progression.update_live_score(session, match_id, payload.fighter_a_score, payload.fighter_b_score)
    )


@router.post("/matches/{match_id}/result", response_model=MatchMutationResponse)
def record_result(match_id: int, payload: MatchResultRequest, session: Session = Depends(get_session)):
    """Record the winner and advance them. Re-sending the same winner is a no-op."""
    return _to_mutation_response(
        progression.record_result(
            session, match_id, payload.winner_id, payload.fighter_a_score, payload.fighter_b_score
        )
    )


@router.post("/matches/{match_id}/override", response_model=MatchMutationResponse)
def override_result(match_id: int, payload: MatchResultRequest, session: Session = Depends(get_session)):
    """Correct a recorded winner; downstream matches that consumed the old winner are voided."""
    return _to_mutation_response(
        progression.override_result(
            session, match_id, payload.winner_id, payload.fighter_a_score, payload.fighter_b_score
        )
    )
