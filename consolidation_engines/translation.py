"""
Module: consolidation_engines.translation
Responsibility:
    Translate a member company's trial balance from its functional
    currency into the group reporting currency, booking the translation
    difference to a cumulative translation adjustment (CTA) in OCI.

Architecture position:
    Engines -- pure calculation layer.  Rate lookups are injected through
    ``RateConverter`` (wrapping an ``ExchangeRateProvider``); the engine
    never reaches for global rate state.

Invariants enforced:
    - Balance-sheet categories translate at the closing rate for the
      as-of date; income-statement categories at the period-average rate.
    - Translated amounts are rounded half-up to 2 places via round_money.
    - The CTA carries only the difference created by applying different
      rates.  A member that is out of balance in its own currency stays
      out of balance by that amount at the closing rate, so the run's
      trial balance check still catches it.
    - Same-currency translation uses rate 1, never consults the
      provider and never gets a CTA line.

Failure modes:
    - MissingExchangeRateError when a required closing or average rate is
      absent.  Fatal to the run; there is no default rate.

Usage:
    converter = RateConverter(rates, "USD", as_of_date=date(2024, 12, 31),
                              period_ref="2024-12")
    translator = CurrencyTranslator(converter, cta_account)
    translated = translator.translate(trial_balance=member_tb)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.accounts import (
    AccountCategory,
    NormalSide,
    is_balance_sheet,
    is_revenue,
    normal_side,
    statement_section,
)
from consolidation_kernel.domain.dtos import AccountRef, MemberTrialBalance
from consolidation_kernel.domain.ports import ExchangeRateProvider
from consolidation_kernel.domain.values import ZERO, round_money
from consolidation_kernel.exceptions import MissingExchangeRateError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.translation")

ONE = Decimal("1")


class RateType(str, Enum):
    CLOSING = "closing"
    AVERAGE = "average"
    NONE = "none"


class RateConverter:
    """
    Run-scoped rate lookup and conversion into the reporting currency.

    Rates are fetched once per currency and cached; the cache is guarded
    by a lock because translation fans out across worker threads.
    """

    def __init__(
        self,
        rates: ExchangeRateProvider,
        target_currency: str,
        as_of_date: date,
        period_ref: str,
    ):
        self._rates = rates
        self.target_currency = target_currency
        self.as_of_date = as_of_date
        self.period_ref = period_ref
        self._cache: dict[tuple[str, RateType], Decimal] = {}
        self._lock = threading.Lock()

    def closing_rate(self, currency: str) -> Decimal:
        return self._lookup(currency, RateType.CLOSING)

    def average_rate(self, currency: str) -> Decimal:
        return self._lookup(currency, RateType.AVERAGE)

    def rate_for(self, currency: str, category: AccountCategory) -> tuple[Decimal, RateType]:
        if currency == self.target_currency:
            return ONE, RateType.NONE
        if is_balance_sheet(category):
            return self.closing_rate(currency), RateType.CLOSING
        return self.average_rate(currency), RateType.AVERAGE

    def convert(self, amount: Decimal, currency: str, category: AccountCategory) -> Decimal:
        rate, _ = self.rate_for(currency, category)
        return round_money(amount * rate)

    def _lookup(self, currency: str, rate_type: RateType) -> Decimal:
        if currency == self.target_currency:
            return ONE
        key = (currency, rate_type)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        if rate_type == RateType.CLOSING:
            rate = self._rates.rate(currency, self.target_currency, self.as_of_date)
            as_of = self.as_of_date.isoformat()
        else:
            rate = self._rates.average_rate(currency, self.target_currency, self.period_ref)
            as_of = self.period_ref

        if rate is None:
            logger.error("exchange_rate_missing", extra={
                "from_currency": currency,
                "to_currency": self.target_currency,
                "rate_type": rate_type.value,
                "as_of": as_of,
            })
            raise MissingExchangeRateError(
                currency, self.target_currency, as_of, rate_type.value,
            )

        rate = Decimal(rate)
        with self._lock:
            self._cache[key] = rate
        return rate


@dataclass(frozen=True)
class TranslatedBalance:
    account: AccountRef
    company_id: str
    original_balance: Decimal
    rate: Decimal
    rate_type: RateType
    translated_balance: Decimal
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class TranslatedTrialBalance:
    company_id: str
    source_currency: str
    target_currency: str
    lines: tuple[TranslatedBalance, ...]
    cta_amount: Decimal
    closing_rate: Decimal | None = None
    average_rate: Decimal | None = None

    @property
    def net_income(self) -> Decimal:
        """Revenue minus expense in reporting currency."""
        total = ZERO
        for line in self.lines:
            category = line.account.category
            if is_balance_sheet(category):
                continue
            if is_revenue(category):
                total += line.translated_balance
            else:
                total -= line.translated_balance
        return total

    def debit_total(self) -> Decimal:
        return sum(
            (
                line.translated_balance for line in self.lines
                if normal_side(line.account.category) == NormalSide.DEBIT
            ),
            ZERO,
        )

    def credit_total(self) -> Decimal:
        return sum(
            (
                line.translated_balance for line in self.lines
                if normal_side(line.account.category) == NormalSide.CREDIT
            ),
            ZERO,
        )


class CurrencyTranslator:
    """
    Translate member trial balances into the reporting currency.

    Contract:
        ``translate`` returns a ``TranslatedTrialBalance`` whose lines
        include a CTA line when the rate difference is non-zero, so a
        member balanced in its own currency stays balanced once
        translated.

    Non-goals:
        Historical rates for equity accounts; equity translates at the
        closing rate with the difference absorbed by the CTA.
    """

    def __init__(self, converter: RateConverter, cta_account: AccountRef):
        self._converter = converter
        self._cta_account = cta_account

    @traced_engine("currency_translation", "1.0", fingerprint_fields=("trial_balance",))
    def translate(self, *, trial_balance: MemberTrialBalance) -> TranslatedTrialBalance:
        source = trial_balance.currency
        target = self._converter.target_currency

        lines: list[TranslatedBalance] = []
        for member_line in trial_balance.lines:
            # Exhaustive mapping; raises on an unmapped category.
            statement_section(member_line.category)
            rate, rate_type = self._converter.rate_for(source, member_line.category)
            lines.append(
                TranslatedBalance(
                    account=member_line.account,
                    company_id=trial_balance.company_id,
                    original_balance=member_line.balance,
                    rate=rate,
                    rate_type=rate_type,
                    translated_balance=round_money(member_line.balance * rate),
                    tags=member_line.tags,
                )
            )

        partial = TranslatedTrialBalance(
            company_id=trial_balance.company_id,
            source_currency=source,
            target_currency=target,
            lines=tuple(lines),
            cta_amount=ZERO,
        )
        cta = ZERO
        if source != target:
            # CTA is credit-normal OCI: positive when translated debits exceed
            # credits beyond the member's own imbalance at the closing rate.
            source_imbalance = _source_imbalance(trial_balance)
            carried = ZERO
            if source_imbalance != ZERO:
                carried = round_money(
                    source_imbalance * self._converter.closing_rate(source)
                )
            cta = partial.debit_total() - partial.credit_total() - carried
        if cta != ZERO:
            lines.append(
                TranslatedBalance(
                    account=self._cta_account,
                    company_id=trial_balance.company_id,
                    original_balance=ZERO,
                    rate=ONE,
                    rate_type=RateType.NONE,
                    translated_balance=cta,
                )
            )

        needs_rates = source != target
        result = TranslatedTrialBalance(
            company_id=trial_balance.company_id,
            source_currency=source,
            target_currency=target,
            lines=tuple(lines),
            cta_amount=cta,
            closing_rate=self._rate_used(lines, RateType.CLOSING) if needs_rates else ONE,
            average_rate=self._rate_used(lines, RateType.AVERAGE) if needs_rates else ONE,
        )

        logger.info("translation_completed", extra={
            "company_id": trial_balance.company_id,
            "source_currency": source,
            "target_currency": target,
            "line_count": len(lines),
            "cta_amount": str(cta),
        })
        return result

    @staticmethod
    def _rate_used(lines: list[TranslatedBalance], rate_type: RateType) -> Decimal | None:
        for line in lines:
            if line.rate_type == rate_type:
                return line.rate
        return None


def _source_imbalance(trial_balance: MemberTrialBalance) -> Decimal:
    """Debit-normal minus credit-normal balances in the member's currency."""
    imbalance = ZERO
    for line in trial_balance.lines:
        if normal_side(line.category) == NormalSide.DEBIT:
            imbalance += line.balance
        else:
            imbalance -= line.balance
    return imbalance
