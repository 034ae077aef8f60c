"""
Pytest fixtures for the consolidation engine test suite.

Provides:
- In-memory SQLite sessions with all module tables created
- Structured log capture
- Deterministic clock, default configuration and fixed collaborator tables
- The two-company reference group (parent owns 80% of SUB) and its
  member trial balances for December 2024
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from consolidation_config import ConsolidationConfig
from consolidation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from consolidation_kernel.domain.accounts import AccountCategory
from consolidation_kernel.domain.clock import DeterministicClock
from consolidation_kernel.domain.dtos import (
    ConsolidationGroup,
    ConsolidationMethod,
    FiscalPeriod,
    MemberBalance,
    MemberCompany,
    MemberTrialBalance,
)
from consolidation_kernel.domain.ports import (
    InMemoryFiscalCalendar,
    InMemoryLedger,
    InMemoryRateTable,
)
from consolidation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from consolidation_modules.consolidation.service import ConsolidationRunService
from consolidation_modules.intercompany.service import IntercompanyService

PERIOD_REF = "2024-12"
AS_OF = date(2024, 12, 31)
DEC_2024 = FiscalPeriod(PERIOD_REF, date(2024, 12, 1), date(2024, 12, 31))
NOV_2024 = FiscalPeriod("2024-11", date(2024, 11, 1), date(2024, 11, 30))


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
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture consolidation logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, run_service):
            run_service.start_run(...)
            logs = captured_logs()
            assert any(r["message"] == "run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("consolidation")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session():
    """Fresh in-memory database per test."""
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    db = get_session()
    yield db
    db.close()
    drop_tables()
    reset_engine()


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(
        datetime(2025, 1, 5, 9, 0, 0, tzinfo=timezone.utc), auto_advance_ms=5,
    )


@pytest.fixture(scope="session")
def config():
    return ConsolidationConfig.with_defaults()


@pytest.fixture
def make_tb():
    """
    Build a ``MemberTrialBalance`` from (number, name, category, balance) rows.

    Usage::

        tb = make_tb("SUB", "USD", ("1000", "Cash", AccountCategory.CURRENT_ASSET, "500"))
    """

    def _make(company_id, currency, *rows, period_ref=PERIOD_REF):
        lines = []
        for row in rows:
            number, name, category, balance = row[:4]
            tags = tuple(row[4]) if len(row) > 4 else ()
            lines.append(MemberBalance(number, name, category, Decimal(balance), tags))
        return MemberTrialBalance(company_id, period_ref, currency, tuple(lines))

    return _make


@pytest.fixture
def group():
    """PARENT (100%) and SUB (80%), both USD, reporting in USD."""
    return ConsolidationGroup(
        group_id="GRP",
        name="Acme Group",
        parent_company_id="PARENT",
        reporting_currency="USD",
        members=(
            MemberCompany("PARENT", "Acme Holdings", Decimal("100"), "USD"),
            MemberCompany(
                "SUB", "Acme Services", Decimal("80"), "USD",
                ConsolidationMethod.FULL_CONSOLIDATION,
            ),
        ),
    )


@pytest.fixture
def parent_tb(make_tb):
    """
    Parent books a $1,000 management fee expense payable to SUB.

    Net income 4,000 (5,000 once the fee is eliminated).
    """
    return make_tb(
        "PARENT", "USD",
        ("1000", "Cash", AccountCategory.CURRENT_ASSET, "29000"),
        ("2000", "Accounts Payable", AccountCategory.CURRENT_LIABILITY, "3000"),
        ("2300", "Intercompany Payable", AccountCategory.CURRENT_LIABILITY, "1000"),
        ("3100", "Contributed Capital", AccountCategory.CONTRIBUTED_CAPITAL, "15000"),
        ("3200", "Retained Earnings", AccountCategory.RETAINED_EARNINGS, "6000"),
        ("4000", "Revenue", AccountCategory.OPERATING_REVENUE, "10000"),
        ("6000", "Operating Expenses", AccountCategory.OPERATING_EXPENSE, "5000"),
        ("6600", "Intercompany Management Fee Expense", AccountCategory.OPERATING_EXPENSE, "1000"),
    )


@pytest.fixture
def sub_tb(make_tb):
    """
    SUB earns a $1,000 management fee from the parent.

    Net income 1,500; 500 once the intercompany fee is eliminated.
    """
    return make_tb(
        "SUB", "USD",
        ("1000", "Cash", AccountCategory.CURRENT_ASSET, "6000"),
        ("1300", "Intercompany Receivable", AccountCategory.CURRENT_ASSET, "1000"),
        ("2000", "Accounts Payable", AccountCategory.CURRENT_LIABILITY, "1500"),
        ("3100", "Contributed Capital", AccountCategory.CONTRIBUTED_CAPITAL, "3000"),
        ("3200", "Retained Earnings", AccountCategory.RETAINED_EARNINGS, "1000"),
        ("4000", "Revenue", AccountCategory.OPERATING_REVENUE, "4000"),
        ("4600", "Intercompany Management Fee Income", AccountCategory.OPERATING_REVENUE, "1000"),
        ("6000", "Operating Expenses", AccountCategory.OPERATING_EXPENSE, "3500"),
    )


@pytest.fixture
def ledger(parent_tb, sub_tb):
    return InMemoryLedger({
        ("PARENT", PERIOD_REF): parent_tb,
        ("SUB", PERIOD_REF): sub_tb,
    })


@pytest.fixture
def rates():
    table = InMemoryRateTable()
    table.set_rate("EUR", "USD", AS_OF, Decimal("1.10"))
    table.set_average_rate("EUR", "USD", PERIOD_REF, Decimal("1.08"))
    return table


@pytest.fixture
def calendar():
    return InMemoryFiscalCalendar([NOV_2024, DEC_2024])


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def ic_service(session, config, clock):
    return IntercompanyService(session, config, clock)


@pytest.fixture
def run_service(session, ledger, rates, calendar, config, clock):
    return ConsolidationRunService(session, ledger, rates, calendar, config, clock)


@pytest.fixture
def registered_group(run_service, group):
    return run_service.register_group(group)
