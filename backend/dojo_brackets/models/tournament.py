from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_brackets.models.bracket import Bracket
    from dojo_brackets.models.registration import Registration


class TournamentStatus(str, Enum):
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    location: Optional[str] = None
    start_date: date
    status: TournamentStatus = Field(default=TournamentStatus.UPCOMING, sa_column=Column(String, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    registrations: List["Registration"] = Relationship(back_populates="tournament")
    brackets: List["Bracket"] = Relationship(back_populates="tournament")
