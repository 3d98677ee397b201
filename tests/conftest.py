"""
Pytest fixtures for the billtrack test suite.

Provides:
- A SQLite database file per test (tables created through the ORM registry)
- Deterministic clock, configuration and capability resolver
- A company roster with one member per role
- Orchestrator and transaction factories

Roster (all in ``company_id``):
- owner: ``is_owner`` -- holds every capability
- clerk: creates and updates expenses/incomes, needs approval
- direct_clerk: ``expenses:*`` / ``incomes:*`` -- submits without approval
- approver, second_approver: approve expenses/incomes
- finance: ``settlements:manage`` plus ``expenses:update``
- outsider: member with no permissions
"""

import json
import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from typing import Any
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from billtrack_config import EngineConfig, get_active_config
from billtrack_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from billtrack_kernel.domain.clock import DeterministicClock
from billtrack_kernel.domain.dtos import TransactionRecord
from billtrack_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billtrack_kernel.models.member import CompanyMemberModel
from billtrack_services.capability_resolver import MemberCapabilityResolver
from billtrack_services.workflow_orchestrator import WorkflowOrchestrator

CLERK_PERMISSIONS = ["expenses:create", "expenses:update", "incomes:create", "incomes:update"]
APPROVER_PERMISSIONS = ["expenses:approve", "incomes:approve", "expenses:update", "incomes:update"]
FINANCE_PERMISSIONS = ["settlements:manage", "expenses:update"]


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
    Capture billtrack logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.submit_transaction(...)
            logs = captured_logs()
            assert any(r["message"] == "transaction_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billtrack")
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
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh SQLite database file with every table created."""
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'billtrack_test.db'}")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    s = get_session()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Clock, config, capabilities
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def engine_config() -> EngineConfig:
    return get_active_config()


@pytest.fixture
def capabilities(session) -> MemberCapabilityResolver:
    return MemberCapabilityResolver(session)


# =============================================================================
# Roster
# =============================================================================


@pytest.fixture
def company_id() -> UUID:
    return uuid4()


@pytest.fixture
def add_member(session, company_id) -> Callable[..., UUID]:
    """Factory: add a roster member and return its user id."""

    def _add(
        name: str,
        permissions: list[str] | None = None,
        is_owner: bool = False,
        is_active: bool = True,
        company: UUID | None = None,
    ) -> UUID:
        user_id = uuid4()
        session.add(CompanyMemberModel(
            company_id=company or company_id,
            user_id=user_id,
            display_name=name,
            permissions=permissions or [],
            is_owner=is_owner,
            is_active=is_active,
            created_by_id=user_id,
        ))
        session.commit()
        return user_id

    return _add


@dataclass(frozen=True)
class Roster:
    owner: UUID
    clerk: UUID
    direct_clerk: UUID
    approver: UUID
    second_approver: UUID
    finance: UUID
    outsider: UUID


@pytest.fixture
def roster(add_member) -> Roster:
    return Roster(
        owner=add_member("Olivia Owner", is_owner=True),
        clerk=add_member("Carl Clerk", CLERK_PERMISSIONS),
        direct_clerk=add_member("Dana Direct", ["expenses:*", "incomes:*"]),
        approver=add_member("Alex Approver", APPROVER_PERMISSIONS),
        second_approver=add_member("Bea Approver", APPROVER_PERMISSIONS),
        finance=add_member("Fran Finance", FINANCE_PERMISSIONS),
        outsider=add_member("Otto Outsider"),
    )


# =============================================================================
# Orchestrator and factories
# =============================================================================


@pytest.fixture
def orchestrator(session, capabilities, engine_config, deterministic_clock) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(session, capabilities, engine_config, deterministic_clock)


@pytest.fixture
def create_expense(orchestrator, roster, company_id) -> Callable[..., TransactionRecord]:
    """Factory: create a DRAFT expense (clerk by default)."""

    def _create(**overrides: Any) -> TransactionRecord:
        payload: dict[str, Any] = {
            "transaction_type": "EXPENSE",
            "company_id": company_id,
            "actor_id": roster.clerk,
            "base_amount": Decimal("1000"),
            "vat_rate_percent": Decimal("7"),
        }
        payload.update(overrides)
        return orchestrator.create_transaction(payload).transaction

    return _create


@pytest.fixture
def create_income(orchestrator, roster, company_id) -> Callable[..., TransactionRecord]:
    """Factory: create a DRAFT income (clerk by default)."""

    def _create(**overrides: Any) -> TransactionRecord:
        payload: dict[str, Any] = {
            "transaction_type": "INCOME",
            "company_id": company_id,
            "actor_id": roster.clerk,
            "base_amount": Decimal("2000"),
            "vat_rate_percent": Decimal("7"),
        }
        payload.update(overrides)
        return orchestrator.create_transaction(payload).transaction

    return _create


@pytest.fixture
def approved_expense(orchestrator, roster, create_expense) -> Callable[..., TransactionRecord]:
    """Factory: expense submitted by the clerk and approved by the approver."""

    def _create(**overrides: Any) -> TransactionRecord:
        tx = create_expense(**overrides)
        orchestrator.submit_transaction(tx.id, roster.clerk)
        return orchestrator.decide_approval(tx.id, roster.approver, "APPROVE").transaction

    return _create


@pytest.fixture
def pending_expense(orchestrator, roster, create_expense) -> Callable[..., TransactionRecord]:
    """Factory: expense submitted by the clerk and awaiting approval."""

    def _create(**overrides: Any) -> TransactionRecord:
        tx = create_expense(**overrides)
        return orchestrator.submit_transaction(tx.id, roster.clerk).transaction

    return _create
