"""
Final standings (ranks and medals) for certificates and exports.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from dojo_brackets.database import get_session
from dojo_brackets.models.tournament import Tournament
from dojo_brackets.services.standings import (
    CategoryStandings,
    bracket_standings,
    tournament_standings,
    tournament_summary,
)

router = APIRouter()


class StandingResponse(BaseModel):
    registration_id: int
    name: Optional[str]
    rank: Optional[int]
    medal: Optional[str]
    matches_won: int
    matches_lost: int
    eliminated_in_round: Optional[str]


class CategoryStandingsResponse(BaseModel):
    bracket_id: int
    category_name: str
    final: bool
    reason: Optional[str] = None
    standings: List[StandingResponse]


class DojoMedalsResponse(BaseModel):
    dojo_name: str
    gold: int
    silver: int
    bronze: int
    total: int


class TournamentSummaryResponse(BaseModel):
    tournament_id: int
    completed_matches: int
    total_matches: int
    dojo_leaderboard: List[DojoMedalsResponse]
    categories: List[CategoryStandingsResponse]


def _to_response(result: CategoryStandings) -> CategoryStandingsResponse:
    return CategoryStandingsResponse(
        bracket_id=result.bracket_id,
        category_name=result.category_name,
        final=result.final,
        reason=result.reason,
        standings=[
            StandingResponse(
                registration_id=s.registration_id,
                name=s.name,
                rank=s.rank,
                medal=s.medal.value if s.medal else None,
                matches_won=s.matches_won,
                matches_lost=s.matches_lost,
                eliminated_in_round=s.eliminated_in_round,
            )
            for s in result.standings
        ],
    )


@router.get("/brackets/{bracket_id}/standings", response_model=CategoryStandingsResponse)
def get_bracket_standings(bracket_id: int, session: Session = Depends(get_session)):
    """Final ranking of one bracket; 409 STANDINGS_NOT_FINAL while any match is open."""
    return _to_response(bracket_standings(session, bracket_id))


@router.get("/tournaments/{tournament_id}/standings", response_model=List[CategoryStandingsResponse])
def get_tournament_standings(tournament_id: int, session: Session = Depends(get_session)):
    """Per-category standings; open categories are listed with final=false and no ranking."""
    if not session.get(Tournament, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    return [_to_response(r) for r in tournament_standings(session, tournament_id)]


@router.get("/tournaments/{tournament_id}/summary", response_model=TournamentSummaryResponse)
def get_tournament_summary(tournament_id: int, session: Session = Depends(get_session)):
    """Results page data: dojo medal table, match progress and per-category standings."""
    if not session.get(Tournament, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    summary = tournament_summary(session, tournament_id)
    return TournamentSummaryResponse(
        tournament_id=summary.tournament_id,
        completed_matches=summary.completed_matches,
        total_matches=summary.total_matches,
        dojo_leaderboard=[
            DojoMedalsResponse(dojo_name=d.dojo_name, gold=d.gold, silver=d.silver, bronze=d.bronze, total=d.total)
            for d in summary.dojo_leaderboard
        ],
        categories=[_to_response(c) for c in summary.categories],
    )
