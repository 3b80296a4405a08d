"""
Pytest fixtures for the commodity kernel test suite.

Provides:
- A fresh SQLite database file per test (under tmp_path)
- A CommodityLedger facade bound to that database
- A raw Session for service-level tests
- Deterministic clock, logging fixtures and small data builders

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped after every test.

Note on SQLite: every transaction begins with BEGIN IMMEDIATE, so a test
must not hold an open `session` transaction while calling the `ledger`
(the ledger would wait for the write lock).  Service tests use `session`;
end-to-end tests use `ledger`.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from commodity_kernel.config import LedgerConfig
from commodity_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from commodity_kernel.db.immutability import register_immutability_listeners
from commodity_kernel.domain.clock import DeterministicClock
from commodity_kernel.domain.dtos import ContractItemSpec, GoodsReceipt
from commodity_kernel.domain.lifecycles import ContractStatus
from commodity_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from commodity_kernel.services.allocation_engine import AllocationEngine
from commodity_kernel.services.contract_ledger import ContractLedger
from commodity_kernel.services.ledger import CommodityLedger

TEST_ACTOR_ID = uuid4()


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
    Capture commodity_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.create_contract(...)
            assert any(r["message"] == "contract_created" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("commodity_kernel")
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
def database_url(tmp_path) -> str:
    return os.environ.get("DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")


@pytest.fixture
def engine(database_url):
    engine = init_engine_from_url(database_url, sqlite_busy_timeout=30.0)
    create_tables()
    register_immutability_listeners()
    yield engine
    if "DATABASE_URL" in os.environ:
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A session whose transaction is rolled back after the test."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Clock / actor
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


# =============================================================================
# Facade and services
# =============================================================================


@pytest.fixture
def ledger_config(database_url) -> LedgerConfig:
    return LedgerConfig(database_url=database_url, max_conflict_retries=3)


@pytest.fixture
def ledger(session_factory, ledger_config, deterministic_clock, test_actor_id) -> CommodityLedger:
    return CommodityLedger(
        session_factory,
        config=ledger_config,
        clock=deterministic_clock,
        actor_id=test_actor_id,
    )


@pytest.fixture
def contract_ledger(session, deterministic_clock, test_actor_id) -> ContractLedger:
    return ContractLedger(session, deterministic_clock, actor_id=test_actor_id)


@pytest.fixture
def allocation(session, deterministic_clock, test_actor_id) -> AllocationEngine:
    return AllocationEngine(session, deterministic_clock, actor_id=test_actor_id)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def active_contract(ledger):
    """Factory: an ACTIVE contract with one MAIZE line, via the ledger."""

    def _make(quantity="1000", unit_price="500", supplier_ref="SUP-001", commodity_code="MAIZE"):
        contract = ledger.create_contract(
            supplier_ref,
            [ContractItemSpec(commodity_code, Decimal(quantity), Decimal(unit_price))],
            currency="USD",
        )
        ledger.transition_contract_status(contract.id, ContractStatus.SUBMITTED)
        return ledger.transition_contract_status(contract.id, ContractStatus.ACTIVE)

    return _make


@pytest.fixture
def approved_batch(ledger):
    """Factory: an APPROVED batch with no contract link, via the ledger."""

    def _make(weight="100", location="WH-A", commodity_code="MAIZE", cost_per_unit="250"):
        batch = ledger.receive_goods(
            GoodsReceipt(
                commodity_code=commodity_code,
                supplier_ref="SUP-001",
                location=location,
                weight=Decimal(weight),
                cost_per_unit=Decimal(cost_per_unit),
                currency="USD",
            )
        )
        return ledger.approve_batch(batch.id)

    return _make


@pytest.fixture
def session_contract(contract_ledger):
    """Factory: an ACTIVE contract created inside the test `session`."""

    def _make(quantity="1000", unit_price="500", supplier_ref="SUP-001", commodity_code="MAIZE"):
        contract = contract_ledger.create_contract(
            supplier_ref,
            [ContractItemSpec(commodity_code, Decimal(quantity), Decimal(unit_price))],
            "USD",
        )
        contract_ledger.transition_status(contract.id, ContractStatus.SUBMITTED)
        return contract_ledger.transition_status(contract.id, ContractStatus.ACTIVE)

    return _make


@pytest.fixture
def session_batch(allocation):
    """Factory: an APPROVED batch created inside the test `session`."""

    def _make(weight="100", location="WH-A", commodity_code="MAIZE", cost_per_unit="250"):
        receipt = GoodsReceipt(
            commodity_code=commodity_code,
            supplier_ref="SUP-001",
            location=location,
            weight=Decimal(weight),
        )
        batch = allocation.register_receipt(
            receipt, cost_per_unit=Decimal(cost_per_unit), currency="USD"
        )
        return allocation.approve(batch.id)

    return _make
