"""
Tournament + registration records.

These are the external inputs of bracket generation; only the minimum needed
to create a tournament, register competitors and approve or reject them.
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from dojo_brackets.database import get_session
from dojo_brackets.models.registration import ApprovalStatus, Registration
from dojo_brackets.models.tournament import Tournament
from dojo_brackets.services.category_classifier import normalize_label

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TournamentCreate(BaseModel):
    name: str
    location: Optional[str] = None
    start_date: date


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    location: Optional[str]
    start_date: date
    status: str
    created_at: datetime


class RegistrationCreate(BaseModel):
    competitor_id: int
    competitor_name: str
    dojo_name: Optional[str] = None
    category_age: Optional[str] = None
    category_weight: Optional[str] = None
    category_belt: Optional[str] = None


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    competitor_id: int
    competitor_name: str
    dojo_name: Optional[str]
    category_age: Optional[str]
    category_weight: Optional[str]
    category_belt: Optional[str]
    approval_status: str
    approved_at: Optional[datetime]


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


# ============================================================================
# Tournaments
# ============================================================================


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.start_date)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    tournament = Tournament(**payload.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return _get_tournament_or_404(session, tournament_id)


# ============================================================================
# Registrations
# ============================================================================


@router.get("/tournaments/{tournament_id}/registrations", response_model=List[RegistrationResponse])
def list_registrations(
    tournament_id: int,
    status: Optional[ApprovalStatus] = None,
    session: Session = Depends(get_session),
):
    """List registrations in registration order, optionally filtered by approval status"""
    _get_tournament_or_404(session, tournament_id)
    query = select(Registration).where(Registration.tournament_id == tournament_id)
    if status is not None:
        query = query.where(Registration.approval_status == status.value)
    return session.exec(query.order_by(Registration.id)).all()


@router.post(
    "/tournaments/{tournament_id}/registrations",
    response_model=RegistrationResponse,
    status_code=201,
)
def create_registration(
    tournament_id: int,
    payload: RegistrationCreate,
    session: Session = Depends(get_session),
):
    _get_tournament_or_404(session, tournament_id)
    data = payload.model_dump()
    for label in ("category_age", "category_weight", "category_belt"):
        data[label] = normalize_label(data[label])
    registration = Registration(tournament_id=tournament_id, **data)
    session.add(registration)
    session.commit()
    session.refresh(registration)
    return registration


def _set_approval(session: Session, registration_id: int, status: ApprovalStatus) -> Registration:
    registration = session.get(Registration, registration_id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    registration.approval_status = status
    registration.approved_at = datetime.utcnow() if status == ApprovalStatus.APPROVED else None
    session.add(registration)
    session.commit()
    session.refresh(registration)
    return registration


@router.post("/registrations/{registration_id}/approve", response_model=RegistrationResponse)
def approve_registration(registration_id: int, session: Session = Depends(get_session)):
    return _set_approval(session, registration_id, ApprovalStatus.APPROVED)


@router.post("/registrations/{registration_id}/reject", response_model=RegistrationResponse)
def reject_registration(registration_id: int, session: Session = Depends(get_session)):
    return _set_approval(session, registration_id, ApprovalStatus.REJECTED)
