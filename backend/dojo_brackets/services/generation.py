"""
Generation Coordinator: classify a tournament and (re)build every category bracket.

The run is one logical unit of work reported as an ordered event sequence:

    progress* (complete | error)

Categories are built sequentially in classifier order, each in its own
transaction under its category lock. A category that fails is reported and
skipped; categories already built stay built. The run ends with ``error``
only when no category could be built at all.

GenerationRun executes the sequence on a worker thread feeding a queue, so
an observer that stops reading (a dropped streaming client) does not stop
the generation.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Union

from sqlmodel import Session, select

from dojo_brackets.database import SessionFactory
from dojo_brackets.models.bracket import Bracket
from dojo_brackets.models.tournament import Tournament
from dojo_brackets.services.bracket_builder import (
    Fighter,
    bracket_matches,
    delete_bracket,
    replace_category_bracket,
)
from dojo_brackets.services.category_classifier import CategoryKey, classify_tournament
from dojo_brackets.services.errors import BracketError, NotFoundError, StateConflictError
from dojo_brackets.services.locks import category_lock, claim_generation, generation_guard, release_generation
from dojo_brackets.services.progression import refresh_tournament_status

logger = logging.getLogger(__name__)

PROGRESS_TOTAL = 100
_BUILD_START = 5
_BUILD_END = 95

PHASE_LOADING = "loading"
PHASE_CLASSIFYING = "classifying"
PHASE_BUILDING = "building"
PHASE_BUILT = "built"
PHASE_CATEGORY_FAILED = "category_failed"
PHASE_FINALIZING = "finalizing"


@dataclass
class ProgressEvent:
    type: ClassVar[str] = "progress"
    terminal: ClassVar[bool] = False

    phase: str
    message: str
    current: int
    total: int = PROGRESS_TOTAL
    category_name: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "phase": self.phase,
            "message": self.message,
            "current": self.current,
            "total": self.total,
            "categoryName": self.category_name,
            "detail": self.detail,
        }


@dataclass
class CompleteEvent:
    type: ClassVar[str] = "complete"
    terminal: ClassVar[bool] = True

    results_count: int
    bracket_ids: List[int] = field(default_factory=list)
    failed_categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "resultsCount": self.results_count,
            "bracketIds": self.bracket_ids,
            "failedCategories": self.failed_categories,
        }


@dataclass
class ErrorEvent:
    type: ClassVar[str] = "error"
    terminal: ClassVar[bool] = True

    message: str
    kind: str = "GENERATION_FAILED"
    entity_id: Optional[int] = None
    failed_categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "kind": self.kind,
            "entityId": self.entity_id,
            "failedCategories": self.failed_categories,
        }

    def to_exception(self) -> BracketError:
        if self.kind == "NOT_FOUND":
            return NotFoundError(self.message, entity_id=self.entity_id)
        return BracketError(self.message, entity_id=self.entity_id, kind=self.kind)


GenerationEvent = Union[ProgressEvent, CompleteEvent, ErrorEvent]


def format_sse(event: GenerationEvent) -> str:
    """Server-Sent Events framing of one event."""
    return f"event: {event.type}\ndata: {json.dumps(event.to_dict())}\n\n"


def _build_progress(done: int, count: int) -> int:
    return _BUILD_START + (_BUILD_END - _BUILD_START) * done // count


def generate_events(session_factory: SessionFactory, tournament_id: int) -> Iterator[GenerationEvent]:
    """Run one generation and yield its events. Always ends with exactly one terminal event."""
    try:
        with session_factory() as session:
            yield from _generate(session, tournament_id)
    except Exception as exc:
        logger.exception("Bracket generation for tournament %d aborted: %s", tournament_id, exc)
        yield ErrorEvent(message=f"Bracket generation aborted: {exc}", entity_id=tournament_id)


def _generate(session: Session, tournament_id: int) -> Iterator[GenerationEvent]:
    if session.get(Tournament, tournament_id) is None:
        yield ErrorEvent(message="Tournament not found", kind="NOT_FOUND", entity_id=tournament_id)
        return

    yield ProgressEvent(phase=PHASE_LOADING, message="Loading approved registrations", current=0)
    categories = classify_tournament(session, tournament_id)
    if not categories:
        yield ErrorEvent(message="No approved participants found", kind="NO_PARTICIPANTS", entity_id=tournament_id)
        return

    participant_total = sum(len(members) for members in categories.values())
    yield ProgressEvent(
        phase=PHASE_CLASSIFYING,
        message=f"Found {len(categories)} categories",
        current=_BUILD_START,
        detail=f"{participant_total} approved participants",
    )
    logger.info(
        "Generating %d brackets for tournament %d (%d participants)",
        len(categories),
        tournament_id,
        participant_total,
    )

    built: List[int] = []
    failed: List[str] = []
    count = len(categories)
    for done, (key, members) in enumerate(categories.items()):
        name = key.display_name
        yield ProgressEvent(
            phase=PHASE_BUILDING,
            message=f"Generating bracket for {name}",
            current=_build_progress(done, count),
            category_name=name,
            detail=f"{len(members)} participants",
        )
        try:
            with category_lock(tournament_id, key, timeout=0):
                bracket = replace_category_bracket(
                    session,
                    tournament_id,
                    key,
                    [Fighter(registration_id=r.id, name=r.competitor_name) for r in members],
                )
        except Exception as exc:
            logger.exception("Bracket generation failed for %s: %s", name, exc)
            failed.append(name)
            yield ProgressEvent(
                phase=PHASE_CATEGORY_FAILED,
                message=f"Failed to generate bracket for {name}",
                current=_build_progress(done + 1, count),
                category_name=name,
                detail=str(exc),
            )
            continue

        built.append(bracket.id)
        matches = bracket_matches(session, bracket.id)
        yield ProgressEvent(
            phase=PHASE_BUILT,
            message=f"Bracket ready for {name}",
            current=_build_progress(done + 1, count),
            category_name=name,
            detail=f"{len(matches)} matches, {sum(1 for m in matches if m.is_bye)} byes",
        )

    yield ProgressEvent(phase=PHASE_FINALIZING, message="Removing brackets of empty categories", current=_BUILD_END)
    removed = prune_brackets(session, tournament_id, keep=set(categories))
    if removed:
        logger.info("Removed %d brackets of empty categories for tournament %d", removed, tournament_id)
    refresh_tournament_status(session, tournament_id)
    session.commit()

    if not built:
        yield ErrorEvent(
            message=f"Bracket generation failed for all {len(failed)} categories",
            entity_id=tournament_id,
            failed_categories=failed,
        )
        return
    yield CompleteEvent(results_count=len(built), bracket_ids=built, failed_categories=failed)


def prune_brackets(session: Session, tournament_id: int, keep: set) -> int:
    """Delete brackets whose category is not in ``keep``. Busy categories are skipped."""
    removed = 0
    brackets = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).all()
    for bracket in brackets:
        key = CategoryKey.of(bracket)
        if key in keep:
            continue
        try:
            with category_lock(tournament_id, key, timeout=0):
                delete_bracket(session, bracket)
                session.commit()
        except StateConflictError:
            logger.warning("Skipped removing bracket %d: category %s is busy", bracket.id, key)
            continue
        except Exception:
            session.rollback()
            raise
        removed += 1
    return removed


# ============================================================================
# Runners
# ============================================================================


@dataclass
class GenerationReport:
    events: List[GenerationEvent]

    @property
    def outcome(self) -> GenerationEvent:
        return self.events[-1]

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, CompleteEvent)


def generate_brackets(session_factory: SessionFactory, tournament_id: int) -> GenerationReport:
    """Request/response variant: run to completion and return every event."""
    with generation_guard(tournament_id):
        return GenerationReport(events=list(generate_events(session_factory, tournament_id)))


class GenerationRun(threading.Thread):
    """Background generation whose events are drained through ``events()``."""

    def __init__(self, session_factory: SessionFactory, tournament_id: int):
        super().__init__(name=f"bracket-generation-{tournament_id}", daemon=True)
        self.session_factory = session_factory
        self.tournament_id = tournament_id
        self.events_queue: "queue.Queue[GenerationEvent]" = queue.Queue()

    def start(self) -> None:
        # Raises StateConflictError before any thread exists if a run is active.
        claim_generation(self.tournament_id)
        try:
            super().start()
        except Exception:
            release_generation(self.tournament_id)
            raise

    def run(self) -> None:
        try:
            for event in generate_events(self.session_factory, self.tournament_id):
                self.events_queue.put(event)
        finally:
            release_generation(self.tournament_id)

    def events(self) -> Iterator[GenerationEvent]:
        while True:
            event = self.events_queue.get()
            yield event
            if event.terminal:
                return
