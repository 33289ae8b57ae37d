"""Moving registrations between categories: labels only, staleness reported."""
from datetime import date

import pytest
from sqlalchemy import func
from sqlmodel import Session, select

from dojo_brackets.models.bracket import Bracket
from dojo_brackets.models.match import Match
from dojo_brackets.models.registration import ApprovalStatus, Registration
from dojo_brackets.models.tournament import Tournament
from dojo_brackets.services.bracket_builder import Fighter, bracket_participant_ids, replace_category_bracket
from dojo_brackets.services.category_classifier import CategoryKey
from dojo_brackets.services.category_reassigner import bulk_move_participants, move_participant
from dojo_brackets.services.errors import NotFoundError, ValidationError

BLACK = CategoryKey("Adult", "-70kg", "Black")
BROWN = CategoryKey("Adult", "-70kg", "Brown")


def _seat(session: Session, tournament_id: int, key: CategoryKey, registrations) -> Bracket:
    fighters = [Fighter(r.id, r.competitor_name) for r in registrations]
    return replace_category_bracket(session, tournament_id, key, fighters)


def _row_counts(session: Session):
    return (
        session.exec(select(func.count()).select_from(Bracket)).one(),
        session.exec(select(func.count()).select_from(Match)).one(),
    )


def test_move_changes_labels_and_never_touches_brackets(session: Session, tournament, register):
    a, b, c = register("Aoi"), register("Bram"), register("Cyd")
    bracket = _seat(session, tournament.id, BLACK, [a, b, c])
    before_counts = _row_counts(session)
    before_seats = bracket_participant_ids(session, bracket.id)

    result = move_participant(session, c.id, "Adult", "-70kg", "Brown")

    assert result.changed
    assert result.source == BLACK
    assert result.target == BROWN
    assert result.source_requires_regeneration is True
    assert result.target_requires_regeneration is False
    assert result.registration.category_belt == "Brown"
    assert _row_counts(session) == before_counts
    assert bracket_participant_ids(session, bracket.id) == before_seats


def test_target_with_bracket_is_flagged(session: Session, tournament, register):
    a, b = register("Aoi"), register("Bram", belt="Brown")
    _seat(session, tournament.id, BROWN, [b])

    result = move_participant(session, a.id, "Adult", "-70kg", "Brown")
    assert result.source_requires_regeneration is False
    assert result.target_requires_regeneration is True


def test_same_category_is_a_no_op(session: Session, tournament, register):
    a = register("Aoi")
    _seat(session, tournament.id, BLACK, [a])
    result = move_participant(session, a.id, " Adult ", "-70kg", "Black")
    assert not result.changed
    assert not result.source_requires_regeneration
    assert not result.target_requires_regeneration


def test_unapproved_registration_never_flags(session: Session, tournament, register):
    a = register("Aoi")
    pending = register("Pending", status=ApprovalStatus.PENDING)
    _seat(session, tournament.id, BLACK, [a])
    _seat(session, tournament.id, BROWN, [a])

    result = move_participant(session, pending.id, "Adult", "-70kg", "Brown")
    assert result.changed
    assert not result.source_requires_regeneration
    assert not result.target_requires_regeneration


def test_blank_labels_are_stored_as_unset(session: Session, tournament, register):
    a = register("Aoi")
    result = move_participant(session, a.id, "Adult", "  ", None)
    assert result.target == CategoryKey("Adult", None, None)
    assert result.registration.category_weight is None


def test_unknown_registration(session: Session):
    with pytest.raises(NotFoundError):
        move_participant(session, 999, "Adult", None, None)


class TestBulkMove:
    def test_moves_all_and_lists_stale_categories_once(self, session: Session, tournament, register):
        a, b, c = register("Aoi"), register("Bram"), register("Cyd", belt="Brown")
        _seat(session, tournament.id, BLACK, [a, b])
        _seat(session, tournament.id, BROWN, [c])

        bulk = bulk_move_participants(session, tournament.id, [a.id, b.id, a.id], "Adult", "-70kg", "Brown")

        assert [r.registration.id for r in bulk.results] == [a.id, b.id]
        assert bulk.categories_requiring_regeneration == [BLACK, BROWN]
        session.expire_all()
        assert session.get(Registration, b.id).category_belt == "Brown"

    def test_foreign_registration_aborts_the_whole_move(self, session: Session, tournament, register):
        a = register("Aoi")
        other = Tournament(name="Other Cup", start_date=date(2026, 5, 2))
        session.add(other)
        session.commit()
        stranger = Registration(
            tournament_id=other.id,
            competitor_id=77,
            competitor_name="Stranger",
            category_age="Adult",
            approval_status=ApprovalStatus.APPROVED,
        )
        session.add(stranger)
        session.commit()

        with pytest.raises(NotFoundError) as exc:
            bulk_move_participants(session, tournament.id, [a.id, stranger.id], "Senior", None, None)
        assert exc.value.entity_id == stranger.id
        session.expire_all()
        assert session.get(Registration, a.id).category_age == "Adult"

    def test_empty_selection_is_rejected(self, session: Session, tournament):
        with pytest.raises(ValidationError):
            bulk_move_participants(session, tournament.id, [], "Adult", None, None)
