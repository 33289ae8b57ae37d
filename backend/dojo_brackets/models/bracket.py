from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_brackets.models.match import Match
    from dojo_brackets.models.tournament import Tournament


class BracketStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    LOCKED = "LOCKED"


class Bracket(SQLModel, table=True):
    """One single-elimination tree for one category of a tournament."""

    # Ids of replaced brackets are never reused
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)

    # Category identity: labels as classified (None = unset) plus display name
    category_age: Optional[str] = Field(default=None)
    category_weight: Optional[str] = Field(default=None)
    category_belt: Optional[str] = Field(default=None)
    category_name: str

    total_participants: int
    status: BracketStatus = Field(default=BracketStatus.DRAFT, sa_column=Column(String, nullable=False))
    locked_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="brackets")
    matches: List["Match"] = Relationship(back_populates="bracket")
