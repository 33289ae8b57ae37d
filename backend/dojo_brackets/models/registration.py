from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_brackets.models.tournament import Tournament


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Registration(SQLModel, table=True):
    """A competitor's entry in a tournament.

    The three category labels are optional; an unset label is its own grouping
    value and never merges with a labelled one.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    competitor_id: int  # External user reference
    competitor_name: str
    dojo_name: Optional[str] = None

    category_age: Optional[str] = Field(default=None)
    category_weight: Optional[str] = Field(default=None)
    category_belt: Optional[str] = Field(default=None)

    approval_status: ApprovalStatus = Field(
        default=ApprovalStatus.PENDING, sa_column=Column(String, nullable=False)
    )
    approved_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="registrations")
