"""
Category overview and participant moves.

Moving a participant never touches brackets; the response says which
categories now need their bracket regenerated.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from dojo_brackets.database import get_session
from dojo_brackets.models.tournament import Tournament
from dojo_brackets.routes.tournaments import RegistrationResponse
from dojo_brackets.services.category_classifier import CategoryKey, summarize_categories
from dojo_brackets.services.category_reassigner import (
    ReassignmentResult,
    bulk_move_participants,
    move_participant,
)

router = APIRouter()


class CategoryLabels(BaseModel):
    category_age: Optional[str] = None
    category_weight: Optional[str] = None
    category_belt: Optional[str] = None
    category_name: Optional[str] = None

    @classmethod
    def from_key(cls, key: CategoryKey) -> "CategoryLabels":
        return cls(**key.as_dict(), category_name=key.display_name)


class CategorySummaryResponse(CategoryLabels):
    participant_count: int
    registration_ids: List[int]
    bracket_id: Optional[int] = None
    bracket_status: Optional[str] = None
    requires_regeneration: bool


class MoveRequest(BaseModel):
    category_age: Optional[str] = None
    category_weight: Optional[str] = None
    category_belt: Optional[str] = None


class BulkMoveRequest(MoveRequest):
    registration_ids: List[int]


class MoveResponse(BaseModel):
    registration: RegistrationResponse
    source: CategoryLabels
    target: CategoryLabels
    source_requires_regeneration: bool
    target_requires_regeneration: bool


class BulkMoveResponse(BaseModel):
    moved: List[MoveResponse]
    categories_requiring_regeneration: List[CategoryLabels]


def _move_to_response(result: ReassignmentResult) -> MoveResponse:
    return MoveResponse(
        registration=RegistrationResponse.model_validate(result.registration),
        source=CategoryLabels.from_key(result.source),
        target=CategoryLabels.from_key(result.target),
        source_requires_regeneration=result.source_requires_regeneration,
        target_requires_regeneration=result.target_requires_regeneration,
    )


@router.get("/tournaments/{tournament_id}/categories", response_model=List[CategorySummaryResponse])
def list_categories(tournament_id: int, session: Session = Depends(get_session)):
    """Categories with approved counts, their bracket, and whether that bracket is stale."""
    if not session.get(Tournament, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    return [
        CategorySummaryResponse(
            **CategoryLabels.from_key(s.key).model_dump(),
            participant_count=s.participant_count,
            registration_ids=s.registration_ids,
            bracket_id=s.bracket_id,
            bracket_status=s.bracket_status,
            requires_regeneration=s.requires_regeneration,
        )
        for s in summarize_categories(session, tournament_id)
    ]


@router.patch("/registrations/{registration_id}/category", response_model=MoveResponse)
def move_participant_category(
    registration_id: int, payload: MoveRequest, session: Session = Depends(get_session)
):
    result = move_participant(
        session,
        registration_id,
        payload.category_age,
        payload.category_weight,
        payload.category_belt,
    )
    return _move_to_response(result)


@router.post("/tournaments/{tournament_id}/categories/bulk-move", response_model=BulkMoveResponse)
def bulk_move(tournament_id: int, payload: BulkMoveRequest, session: Session = Depends(get_session)):
    if not session.get(Tournament, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    bulk = bulk_move_participants(
        session,
        tournament_id,
        payload.registration_ids,
        payload.category_age,
        payload.category_weight,
        payload.category_belt,
    )
    return BulkMoveResponse(
        moved=[_move_to_response(r) for r in bulk.results],
        categories_requiring_regeneration=[
            CategoryLabels.from_key(k) for k in bulk.categories_requiring_regeneration
        ],
    )
