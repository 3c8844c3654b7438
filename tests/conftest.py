"""
Pytest fixtures for the claims kernel test suite.

Provides:
- A fresh SQLite database file per test (under ``tmp_path``)
- Sessions, a session factory, and a deterministic clock
- A local document store rooted in ``tmp_path``
- Actors for every role and factories for lecturers and claims
- Captured structured log records
"""

import json
import logging
from collections.abc import Generator
from datetime import UTC, datetime
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from claims_config import get_active_config
from claims_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from claims_kernel.db.immutability import register_immutability_listeners
from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.clock import DeterministicClock
from claims_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from claims_kernel.services.claim_service import ClaimService
from claims_kernel.services.document_store import LocalDocumentStore
from claims_kernel.services.lecturer_service import LecturerService

LECTURER_USER_ID = "lecturer-1"
COORDINATOR_USER_ID = "coordinator-1"
MANAGER_USER_ID = "manager-1"
HR_USER_ID = "hr-1"

CLOCK_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture claims_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, submit_claim):
            submit_claim()
            assert any(r["message"] == "claim_submitted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("claims_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'claims.db'}"


@pytest.fixture
def engine(database_url):
    """A fresh database with all tables and the ORM guards installed."""
    eng = init_engine_from_url(database_url)
    create_tables()
    register_immutability_listeners()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    """A session on the per-test database.  Uncommitted work is rolled back."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(engine):
    """Factory for independent sessions (bulk review, concurrency tests)."""
    return get_session_factory()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(CLOCK_START)


@pytest.fixture
def document_store(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(tmp_path / "uploads")


@pytest.fixture
def settings():
    """The packaged default settings."""
    return get_active_config()


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def lecturer_actor() -> Actor:
    return Actor(LECTURER_USER_ID, Role.LECTURER)


@pytest.fixture
def other_lecturer_actor() -> Actor:
    return Actor("lecturer-2", Role.LECTURER)


@pytest.fixture
def coordinator_actor() -> Actor:
    return Actor(COORDINATOR_USER_ID, Role.COORDINATOR)


@pytest.fixture
def manager_actor() -> Actor:
    return Actor(MANAGER_USER_ID, Role.MANAGER)


@pytest.fixture
def hr_actor() -> Actor:
    return Actor(HR_USER_ID, Role.HR)


@pytest.fixture
def staff_accounts(session, deterministic_clock):
    """Directory accounts for the reviewing roles."""
    directory = LecturerService(session, deterministic_clock)
    return [
        directory.register_user(COORDINATOR_USER_ID, "Cara Coordinator", Role.COORDINATOR),
        directory.register_user(MANAGER_USER_ID, "Musa Manager", Role.MANAGER),
        directory.register_user(HR_USER_ID, "Hana HR", Role.HR),
    ]


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_lecturer(session, deterministic_clock):
    """Register a lecturer and return its LecturerInfo."""

    def _create(
        user_id: str = LECTURER_USER_ID,
        name: str = "Lerato Lecturer",
        department: str = "Computing",
        hourly_rate: str = "50.00",
    ):
        return LecturerService(session, deterministic_clock).register_lecturer(
            user_id=user_id,
            name=name,
            department=department,
            hourly_rate=hourly_rate,
        )

    return _create


@pytest.fixture
def lecturer(create_lecturer):
    """The default lecturer (rate 50.00, Computing)."""
    return create_lecturer()


@pytest.fixture
def claim_service(session, deterministic_clock, document_store) -> ClaimService:
    return ClaimService(session, deterministic_clock, document_store=document_store)


@pytest.fixture
def submit_claim(claim_service, lecturer, lecturer_actor):
    """Submit a claim as the default lecturer (or ``actor``)."""

    def _submit(hours_worked="10", actor=None, **kwargs):
        return claim_service.submit(actor or lecturer_actor, hours_worked, **kwargs)

    return _submit


@pytest.fixture
def approved_claim(submit_claim, claim_service, coordinator_actor, manager_actor):
    """A claim taken through coordinator and manager approval."""

    def _approved(hours_worked="10", actor=None):
        claim = submit_claim(hours_worked, actor=actor)
        claim_service.forward_to_manager(claim.id, coordinator_actor)
        return claim_service.approve(claim.id, manager_actor)

    return _approved
