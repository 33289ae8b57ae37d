"""
Category reassignment: move a registration to another (age, weight, belt) category.

Only the registration's labels change. Brackets and matches are never touched;
instead the result reports which of the source / destination categories
already have a bracket that is now stale and must be regenerated by an
operator.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlmodel import Session

from dojo_brackets.models.registration import ApprovalStatus, Registration
from dojo_brackets.services.bracket_builder import find_bracket
from dojo_brackets.services.category_classifier import CategoryKey, normalize_label
from dojo_brackets.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ReassignmentResult:
    registration: Registration
    source: CategoryKey
    target: CategoryKey
    source_requires_regeneration: bool = False
    target_requires_regeneration: bool = False

    @property
    def changed(self) -> bool:
        return self.source != self.target


@dataclass
class BulkReassignmentResult:
    target: CategoryKey
    results: List[ReassignmentResult] = field(default_factory=list)

    @property
    def categories_requiring_regeneration(self) -> List[CategoryKey]:
        stale = set()
        for r in self.results:
            if r.source_requires_regeneration:
                stale.add(r.source)
            if r.target_requires_regeneration:
                stale.add(r.target)
        return sorted(stale, key=CategoryKey.sort_key)


def _target_key(age: Optional[str], weight: Optional[str], belt: Optional[str]) -> CategoryKey:
    return CategoryKey(normalize_label(age), normalize_label(weight), normalize_label(belt))


def _relabel(session: Session, registration: Registration, target: CategoryKey) -> ReassignmentResult:
    source = CategoryKey.of(registration)
    result = ReassignmentResult(registration=registration, source=source, target=target)
    if not result.changed:
        return result

    registration.category_age = target.age
    registration.category_weight = target.weight
    registration.category_belt = target.belt
    session.add(registration)

    # Unapproved entries are not seated in any bracket, so nothing goes stale.
    if registration.approval_status == ApprovalStatus.APPROVED:
        tid = registration.tournament_id
        result.source_requires_regeneration = find_bracket(session, tid, source) is not None
        result.target_requires_regeneration = find_bracket(session, tid, target) is not None

    logger.info(
        "Registration %d moved from %s to %s (regenerate source=%s, target=%s)",
        registration.id,
        source,
        target,
        result.source_requires_regeneration,
        result.target_requires_regeneration,
    )
    return result


def move_participant(
    session: Session,
    registration_id: int,
    age: Optional[str],
    weight: Optional[str],
    belt: Optional[str],
) -> ReassignmentResult:
    registration = session.get(Registration, registration_id)
    if not registration:
        raise NotFoundError("Registration not found", entity_id=registration_id)

    result = _relabel(session, registration, _target_key(age, weight, belt))
    session.commit()
    session.refresh(registration)
    return result


def bulk_move_participants(
    session: Session,
    tournament_id: int,
    registration_ids: Sequence[int],
    age: Optional[str],
    weight: Optional[str],
    belt: Optional[str],
) -> BulkReassignmentResult:
    """Move several registrations of one tournament to the same category (all or nothing)."""
    if not registration_ids:
        raise ValidationError("No registrations given", entity_id=tournament_id)

    registrations = []
    for rid in dict.fromkeys(registration_ids):
        registration = session.get(Registration, rid)
        if not registration or registration.tournament_id != tournament_id:
            raise NotFoundError(f"Registration {rid} not found in tournament", entity_id=rid)
        registrations.append(registration)

    target = _target_key(age, weight, belt)
    bulk = BulkReassignmentResult(target=target)
    for registration in registrations:
        bulk.results.append(_relabel(session, registration, target))
    session.commit()
    for registration in registrations:
        session.refresh(registration)
    return bulk
