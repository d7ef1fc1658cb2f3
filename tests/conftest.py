"""
Pytest fixtures for the approval workflow test suite.

Provides:
- A fresh in-memory SQLite database per test (tables created, engine reset
  afterwards)
- Session, clock, store, recorder, selector and service fixtures
- Workflow and actor factories
- Structured log capture

Environment Variables:
- APPROVALS_TEST_DATABASE_URL: database URL for the test run.  Defaults to
  in-memory SQLite.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.approval import Actor, SubjectType, WorkflowDefinition
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.selectors.inbox_selector import PendingApprovalSelector
from approval_kernel.services.approval_recorder import ApprovalRecorder
from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.workflow_store import WorkflowStore
from tests.factories import PROJECT, make_workflow

DEFAULT_TEST_DATABASE_URL = "sqlite://"


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
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, approval_service):
            approval_service.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_action_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
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


def get_database_url() -> str:
    return os.environ.get("APPROVALS_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


@pytest.fixture
def db_engine():
    """Fresh engine with all tables for one test."""
    engine = init_engine_from_url(get_database_url())
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session for one test; uncommitted work is rolled back at teardown."""
    sess = get_session()
    yield sess
    try:
        sess.rollback()
    finally:
        sess.close()


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# Service / selector fixtures


@pytest.fixture
def workflow_store(session, deterministic_clock) -> WorkflowStore:
    return WorkflowStore(session, deterministic_clock)


@pytest.fixture
def recorder(session, workflow_store, deterministic_clock) -> ApprovalRecorder:
    return ApprovalRecorder(session, workflow_store, deterministic_clock)


@pytest.fixture
def inbox(session) -> PendingApprovalSelector:
    return PendingApprovalSelector(session)


@pytest.fixture
def approval_service(session, deterministic_clock) -> ApprovalService:
    return ApprovalService(session, deterministic_clock)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def actors() -> dict[str, Actor]:
    """Named actors used across service tests.

    ``requester`` raises trips and reports; ``manager``/``finance`` approve
    trips; ``qaqc``/``client_rep`` approve reports; ``outsider`` is never an
    approver.
    """
    return {
        "requester": Actor(actor_id="1", name="Budi Santoso", role_label="Lead Inspector"),
        "manager": Actor(actor_id="2", name="Project Manager", role_label="Project Manager"),
        "finance": Actor(actor_id="3", name="Finance Officer", role_label="Finance"),
        "qaqc": Actor(actor_id="5", name="QAQC Client", role_label="Client QAQC"),
        "client_rep": Actor(actor_id="6", name="Rep Client", role_label="Client Representative"),
        "outsider": Actor(actor_id="99", name="Someone Else", role_label="Inspector"),
    }


@pytest.fixture
def save_workflow(workflow_store):
    """Persist a workflow and return the stored DTO."""

    def _save(
        subject_type: SubjectType = SubjectType.REPORT,
        approvers: tuple[str | None, ...] = ("5", "6"),
        owner_key: str = PROJECT,
    ) -> WorkflowDefinition:
        return workflow_store.save(
            make_workflow(subject_type, approvers, owner_key), actor_id="admin",
        )

    return _save
