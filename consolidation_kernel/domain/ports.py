"""
Collaborator interfaces consumed by the consolidation core.

The ledger, exchange-rate and fiscal-calendar services are injected into
the translator and the orchestrator as explicit dependencies.  In-memory
implementations are provided for deterministic use with fixed tables.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol

from consolidation_kernel.domain.dtos import FiscalPeriod, MemberTrialBalance


class LedgerBalanceSource(Protocol):
    def get_trial_balance(
        self, company_id: str, period_ref: str, as_of_date: date,
    ) -> MemberTrialBalance | None:
        """Posted natural balances per account; None when the ledger has none."""
        ...


class ExchangeRateProvider(Protocol):
    def rate(self, from_currency: str, to_currency: str, as_of: date) -> Decimal | None:
        """Closing spot rate (from_amount * rate = to_amount)."""
        ...

    def average_rate(
        self, from_currency: str, to_currency: str, period_ref: str,
    ) -> Decimal | None:
        """Period-average rate."""
        ...


class FiscalPeriodResolver(Protocol):
    def resolve(self, period_ref: str) -> FiscalPeriod | None:
        ...


class InMemoryLedger:
    """Ledger source backed by a dict keyed by (company_id, period_ref)."""

    def __init__(self, balances: dict[tuple[str, str], MemberTrialBalance] | None = None):
        self._balances = dict(balances or {})

    def add(self, tb: MemberTrialBalance) -> None:
        self._balances[(tb.company_id, tb.period_ref)] = tb

    def get_trial_balance(
        self, company_id: str, period_ref: str, as_of_date: date,
    ) -> MemberTrialBalance | None:
        return self._balances.get((company_id, period_ref))


class InMemoryRateTable:
    """Fixed closing and average rate tables."""

    def __init__(self) -> None:
        self._closing: dict[tuple[str, str, date], Decimal] = {}
        self._average: dict[tuple[str, str, str], Decimal] = {}

    def set_rate(self, from_currency: str, to_currency: str, as_of: date, rate: Decimal) -> None:
        self._closing[(from_currency, to_currency, as_of)] = Decimal(rate)

    def set_average_rate(
        self, from_currency: str, to_currency: str, period_ref: str, rate: Decimal,
    ) -> None:
        self._average[(from_currency, to_currency, period_ref)] = Decimal(rate)

    def rate(self, from_currency: str, to_currency: str, as_of: date) -> Decimal | None:
        return self._closing.get((from_currency, to_currency, as_of))

    def average_rate(
        self, from_currency: str, to_currency: str, period_ref: str,
    ) -> Decimal | None:
        return self._average.get((from_currency, to_currency, period_ref))


class InMemoryFiscalCalendar:
    def __init__(self, periods: list[FiscalPeriod] | None = None):
        self._periods = {p.period_ref: p for p in periods or []}

    def add(self, period: FiscalPeriod) -> None:
        self._periods[period.period_ref] = period

    def remove(self, period_ref: str) -> None:
        self._periods.pop(period_ref, None)

    def resolve(self, period_ref: str) -> FiscalPeriod | None:
        return self._periods.get(period_ref)
