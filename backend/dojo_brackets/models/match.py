from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from dojo_brackets.models.bracket import Bracket


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("bracket_id", "round_number", "match_number", name="uq_bracket_round_match"),
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    round_number: int  # 1 = first round; highest = final
    round_name: str
    match_number: int  # 1-based position within the round

    # Fighter slots (registration id + display name); null = awaiting an upstream winner
    fighter_a_id: Optional[int] = Field(default=None)
    fighter_a_name: Optional[str] = Field(default=None)
    fighter_b_id: Optional[int] = Field(default=None)
    fighter_b_name: Optional[str] = Field(default=None)

    fighter_a_score: Optional[float] = Field(default=None)
    fighter_b_score: Optional[float] = Field(default=None)
    winner_id: Optional[int] = Field(default=None)

    is_bye: bool = Field(default=False)
    status: MatchStatus = Field(default=MatchStatus.PENDING, sa_column=Column(String, nullable=False))

    # Tree links: upstream feeders per slot, single downstream consumer (null for the final)
    source_match_a_id: Optional[int] = Field(default=None, foreign_key="match.id")
    source_match_b_id: Optional[int] = Field(default=None, foreign_key="match.id")
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id")

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="matches")

    @property
    def is_ready(self) -> bool:
        """Both fighter slots are populated."""
        return self.fighter_a_id is not None and self.fighter_b_id is not None

    def fighter_name(self, registration_id: int) -> Optional[str]:
        if registration_id == self.fighter_a_id:
            return self.fighter_a_name
        if registration_id == self.fighter_b_id:
            return self.fighter_b_name
        return None

    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        if self.winner_id == self.fighter_a_id:
            return self.fighter_b_id
        return self.fighter_a_id
