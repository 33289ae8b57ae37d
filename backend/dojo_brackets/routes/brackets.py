"""
Bracket generation (request/response and streamed) and bracket reads.

Generation is destructive: every category's existing bracket and matches are
deleted and rebuilt, and brackets of categories with no approved members left
are removed.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from dojo_brackets.database import SessionFactory, get_session, get_session_factory
from dojo_brackets.models.bracket import Bracket
from dojo_brackets.models.tournament import Tournament
from dojo_brackets.routes.matches import MatchResponse, match_to_response
from dojo_brackets.services.bracket_builder import bracket_matches
from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.generation import GenerationRun, format_sse, generate_brackets
from dojo_brackets.services.progression import set_bracket_locked

logger = logging.getLogger(__name__)

router = APIRouter()


class BracketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    category_age: Optional[str]
    category_weight: Optional[str]
    category_belt: Optional[str]
    category_name: str
    total_participants: int
    status: str
    locked_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    matches: List[MatchResponse] = []


class GenerateResponse(BaseModel):
    results_count: int
    failed_categories: List[str]
    events: List[dict]
    brackets: List[BracketResponse]


class BracketStatusUpdate(BaseModel):
    locked: bool


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def _bracket_to_response(session: Session, bracket: Bracket) -> BracketResponse:
    response = BracketResponse.model_validate(bracket)
    response.matches = [match_to_response(m) for m in bracket_matches(session, bracket.id)]
    return response


def _tournament_brackets(session: Session, tournament_id: int) -> List[BracketResponse]:
    brackets = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).all()
    ordered = sorted(brackets, key=lambda b: CategoryKey.of(b).sort_key())
    return [_bracket_to_response(session, b) for b in ordered]


@router.post("/tournaments/{tournament_id}/brackets/generate", response_model=GenerateResponse)
def generate(
    tournament_id: int,
    session: Session = Depends(get_session),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """Regenerate every category bracket of a tournament and return the result.

    Partial success (some categories failed) is still 200 with the failed
    category names listed.
    """
    _get_tournament_or_404(session, tournament_id)
    report = generate_brackets(session_factory, tournament_id)
    outcome = report.outcome
    if not report.succeeded:
        raise outcome.to_exception()

    session.expire_all()
    return GenerateResponse(
        results_count=outcome.results_count,
        failed_categories=outcome.failed_categories,
        events=[e.to_dict() for e in report.events],
        brackets=_tournament_brackets(session, tournament_id),
    )


@router.get("/tournaments/{tournament_id}/brackets/generate/stream")
def generate_stream(
    tournament_id: int,
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """Server-Sent Events stream of a generation run: progress*, then complete or error.

    The run continues server-side if the client disconnects.
    """
    # No request-scoped session: nothing may hold a connection while the run writes
    with session_factory() as session:
        _get_tournament_or_404(session, tournament_id)
    run = GenerationRun(session_factory, tournament_id)
    run.start()
    logger.info("Streaming bracket generation for tournament %d", tournament_id)

    def stream():
        for event in run.events():
            yield format_sse(event)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/tournaments/{tournament_id}/brackets", response_model=List[BracketResponse])
def list_brackets(tournament_id: int, session: Session = Depends(get_session)):
    """All brackets of a tournament with their matches, in category order."""
    _get_tournament_or_404(session, tournament_id)
    return _tournament_brackets(session, tournament_id)


@router.get("/brackets/{bracket_id}", response_model=BracketResponse)
def get_bracket(bracket_id: int, session: Session = Depends(get_session)):
    bracket = session.get(Bracket, bracket_id)
    if not bracket:
        raise HTTPException(status_code=404, detail="Bracket not found")
    return _bracket_to_response(session, bracket)


@router.patch("/brackets/{bracket_id}/status", response_model=BracketResponse)
def update_bracket_status(
    bracket_id: int, payload: BracketStatusUpdate, session: Session = Depends(get_session)
):
    """Lock (freeze) or unlock a bracket."""
    bracket = set_bracket_locked(session, bracket_id, payload.locked)
    return _bracket_to_response(session, bracket)
