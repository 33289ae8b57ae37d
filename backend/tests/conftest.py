import os

# Keep the application engine off the filesystem during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from dojo_brackets.database import get_session, get_session_factory  # noqa: E402
from dojo_brackets.main import app  # noqa: E402
from dojo_brackets.models.registration import ApprovalStatus, Registration  # noqa: E402
from dojo_brackets.models.tournament import Tournament  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# CRITICAL: Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB,
#    including the sessions opened by background generation threads
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. Both session dependencies overridden to use test_engine (see client_fixture)
# 5. Tables dropped and recreated per test
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


def _session_factory() -> Session:
    return Session(test_engine)


def override_get_session_factory():
    return _session_factory


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from dojo_brackets.models.bracket import Bracket  # noqa: F401
    from dojo_brackets.models.match import Match  # noqa: F401

    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session_factory")
def session_factory_fixture(session: Session):
    """Session factory for services that open their own sessions (generation)."""
    return _session_factory


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database sessions

    CRITICAL: Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Shared data helpers
# ============================================================================


@pytest.fixture
def tournament(session: Session) -> Tournament:
    tournament = Tournament(name="Spring Open", location="Central Dojo", start_date=date(2026, 4, 11))
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@pytest.fixture
def register(session: Session, tournament: Tournament):
    """Factory: register one competitor in ``tournament`` (approved by default)."""
    counter = {"next": 1}

    def _register(
        name: str,
        age="Adult",
        weight="-70kg",
        belt="Black",
        status: ApprovalStatus = ApprovalStatus.APPROVED,
        dojo: Optional[str] = "Test Dojo",
    ) -> Registration:
        registration = Registration(
            tournament_id=tournament.id,
            competitor_id=counter["next"],
            competitor_name=name,
            dojo_name=dojo,
            category_age=age,
            category_weight=weight,
            category_belt=belt,
            approval_status=status,
        )
        counter["next"] += 1
        session.add(registration)
        session.commit()
        session.refresh(registration)
        return registration

    return _register


@pytest.fixture
def register_many(register):
    """Factory: register ``count`` approved fighters into one category."""

    def _register_many(count: int, prefix: str = "Fighter", **labels) -> list:
        return [register(f"{prefix} {i + 1}", **labels) for i in range(count)]

    return _register_many
