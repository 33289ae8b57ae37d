"""
Category Classifier: approved registrations into disjoint competition categories.

A category is the exact (age, weight, belt) label triple of a registration.
An unset label is a value of its own: it never merges with a labelled one, so
fighters without a weight band do not silently join a weighed category.

Visitation order is derived from the labels only (unset first, then
lexicographic), so the same registration snapshot always yields the same
category order regardless of the order rows were loaded in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlmodel import Session, select

from dojo_brackets.models.bracket import Bracket
from dojo_brackets.models.registration import ApprovalStatus, Registration

OPEN_LABEL = "Open"


def normalize_label(value: Optional[str]) -> Optional[str]:
    """Blank or whitespace-only labels count as unset."""
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class CategoryKey:
    age: Optional[str]
    weight: Optional[str]
    belt: Optional[str]

    @classmethod
    def of(cls, record: Any) -> "CategoryKey":
        """Key of anything carrying category_age/category_weight/category_belt."""
        return cls(
            normalize_label(record.category_age),
            normalize_label(record.category_weight),
            normalize_label(record.category_belt),
        )

    @property
    def labels(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return (self.age, self.weight, self.belt)

    @property
    def display_name(self) -> str:
        return ", ".join(label or OPEN_LABEL for label in self.labels)

    def sort_key(self) -> Tuple[Tuple[int, str], ...]:
        return tuple((0, "") if label is None else (1, label) for label in self.labels)

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {"category_age": self.age, "category_weight": self.weight, "category_belt": self.belt}

    def __str__(self) -> str:
        return self.display_name


def classify(registrations: Iterable[Any]) -> Dict[CategoryKey, List[Any]]:
    """Group APPROVED registrations by category key.

    Members keep their input order (registration order); categories are
    returned in deterministic label order. Empty categories never appear.
    """
    groups: Dict[CategoryKey, List[Any]] = {}
    for reg in registrations:
        if reg.approval_status != ApprovalStatus.APPROVED:
            continue
        groups.setdefault(CategoryKey.of(reg), []).append(reg)

    return {key: groups[key] for key in sorted(groups, key=CategoryKey.sort_key)}


def load_registrations(session: Session, tournament_id: int) -> List[Registration]:
    """All registrations of a tournament in registration order."""
    return list(
        session.exec(
            select(Registration)
            .where(Registration.tournament_id == tournament_id)
            .order_by(Registration.id)
        ).all()
    )


def classify_tournament(session: Session, tournament_id: int) -> Dict[CategoryKey, List[Registration]]:
    return classify(load_registrations(session, tournament_id))


# ============================================================================
# Category summary (admin overview)
# ============================================================================


@dataclass
class CategorySummary:
    key: CategoryKey
    participant_count: int
    registration_ids: List[int]
    bracket_id: Optional[int] = None
    bracket_status: Optional[str] = None
    requires_regeneration: bool = False

    @property
    def category_name(self) -> str:
        return self.key.display_name


def summarize_categories(session: Session, tournament_id: int) -> List[CategorySummary]:
    """Every category of a tournament, with its bracket and staleness.

    A bracket is stale when its first-round participants differ from the
    category's current approved members. Brackets whose category has no
    approved members left are listed too (count 0, stale).
    """
    from dojo_brackets.services.bracket_builder import bracket_participant_ids

    categories = classify_tournament(session, tournament_id)
    brackets = session.exec(
        select(Bracket).where(Bracket.tournament_id == tournament_id).order_by(Bracket.id)
    ).all()
    by_key = {CategoryKey.of(b): b for b in brackets}

    summaries: List[CategorySummary] = []
    for key, members in categories.items():
        member_ids = [r.id for r in members]
        summary = CategorySummary(key=key, participant_count=len(members), registration_ids=member_ids)
        bracket = by_key.pop(key, None)
        if bracket is not None:
            summary.bracket_id = bracket.id
            summary.bracket_status = bracket.status
            summary.requires_regeneration = bracket_participant_ids(session, bracket.id) != set(member_ids)
        summaries.append(summary)

    for key in sorted(by_key, key=CategoryKey.sort_key):
        bracket = by_key[key]
        summaries.append(
            CategorySummary(
                key=key,
                participant_count=0,
                registration_ids=[],
                bracket_id=bracket.id,
                bracket_status=bracket.status,
                requires_regeneration=True,
            )
        )
    return summaries
