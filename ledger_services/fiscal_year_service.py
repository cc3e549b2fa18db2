"""
ledger_services.fiscal_year_service -- year-end close.

Responsibility:
    Computes a fiscal year's profit and loss from its journals and closes
    the year: one closing journal zeroes every income and expense account
    into retained earnings, every period of the year is hard-closed, and a
    closing run records the totals.

Architecture position:
    Services -- stateful orchestration over the kernel.  The close runs as
    one TransactionCoordinator unit of work, so it is idempotent per caller
    key and either fully happens or leaves no trace.  Period transitions go
    through PeriodService, so the close order rule still applies.

Invariants enforced:
    - At most one closing run per (organization, fiscal year); a unique
      constraint backs the up-front check.
    - Income balance is credits - debits, expense balance is debits -
      credits; balances under the configured epsilon are not closed.
    - The closing journal itself is excluded when the year's P&L is read,
      so the summary of a closed year still reports its result.

Failure modes:
    - PeriodNotFoundError: The fiscal year has no periods.
    - ValidationError: Closing date outside the fiscal year.
    - FiscalYearAlreadyClosedError: A closing run already exists.
    - PeriodCloseOrderError: Periods of an earlier year are still open.
    - AccountRoleNotConfiguredError: No retained earnings account.

Audit relevance:
    ``year_end_close_completed`` carries the totals and the closing journal
    id; the YearEndClosingRun row is append-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AuditData,
    JournalLineSpec,
    PeriodInfo,
    TransactionResult,
    UnitOfWorkResult,
)
from ledger_kernel.domain.settings import KernelSettings
from ledger_kernel.exceptions import (
    FiscalYearAlreadyClosedError,
    PeriodNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.accounting_period import PeriodStatus, YearEndClosingRun
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.transaction_coordinator import TransactionCoordinator

logger = get_logger("services.fiscal_year")

ZERO = Decimal("0")

CLOSING_SOURCE_TYPE = "year_end_close"


@dataclass(frozen=True)
class AccountResult:
    account_id: UUID
    account_code: str
    account_name: str
    balance: Decimal


@dataclass(frozen=True)
class ProfitAndLoss:
    """Income and expense balances of one fiscal year."""

    fiscal_year: int
    start_date: date
    end_date: date
    income: tuple[AccountResult, ...]
    expenses: tuple[AccountResult, ...]

    @property
    def total_income(self) -> Decimal:
        return sum((a.balance for a in self.income), ZERO)

    @property
    def total_expenses(self) -> Decimal:
        return sum((a.balance for a in self.expenses), ZERO)

    @property
    def net_income(self) -> Decimal:
        return self.total_income - self.total_expenses

    @property
    def has_activity(self) -> bool:
        return bool(self.income or self.expenses)


@dataclass(frozen=True)
class FiscalYearSummary:
    fiscal_year: int
    period_count: int
    periods_by_status: dict[str, int]
    profit_and_loss: ProfitAndLoss
    closing_run_id: UUID | None = None
    closing_journal_id: UUID | None = None
    closed_on: date | None = None

    @property
    def is_closed(self) -> bool:
        return self.closing_run_id is not None

    @property
    def can_close(self) -> bool:
        return not self.is_closed and self.period_count > 0

    def to_dict(self) -> dict[str, Any]:
        pnl = self.profit_and_loss
        return {
            "fiscal_year": self.fiscal_year,
            "periods": {"total": self.period_count, "by_status": self.periods_by_status},
            "profit_and_loss": {
                "total_income": pnl.total_income,
                "total_expenses": pnl.total_expenses,
                "net_income": pnl.net_income,
            },
            "closing_run_id": str(self.closing_run_id) if self.closing_run_id else None,
            "is_closed": self.is_closed,
            "can_close": self.can_close,
        }


class FiscalYearService:
    """
    Year-end close for one organization's fiscal years.

    Contract:
        ``perform_year_end_close`` takes the caller's idempotency key and
        returns the coordinator's TransactionResult.  The read methods open
        and close their own session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings: KernelSettings = config.kernel if config else KernelSettings()
        self._clock = clock or SystemClock()
        self._coordinator = TransactionCoordinator(
            session_factory, self._settings, self._clock
        )

    # ------------------------------------------------------------------
    # Profit and loss
    # ------------------------------------------------------------------

    @staticmethod
    def _year_periods(
        session: Session, organization_id: UUID, fiscal_year: int
    ) -> list[PeriodInfo]:
        periods = PeriodService(session).list_periods(organization_id, fiscal_year)
        if not periods:
            raise PeriodNotFoundError(f"FY{fiscal_year}")
        return periods

    def _profit_and_loss(
        self,
        session: Session,
        organization_id: UUID,
        fiscal_year: int,
        periods: list[PeriodInfo],
    ) -> ProfitAndLoss:
        start_date, end_date = periods[0].start_date, periods[-1].end_date
        activity = LedgerSelector(session).activity_by_account(
            organization_id,
            start_date,
            end_date,
            (AccountType.REVENUE, AccountType.EXPENSE),
            exclude_source_types=(CLOSING_SOURCE_TYPE,),
        )
        epsilon = self._settings.balance_epsilon
        income, expenses = [], []
        for row in activity:
            if row.account_type == AccountType.REVENUE.value:
                balance = row.total_credits - row.total_debits
                bucket = income
            else:
                balance = row.total_debits - row.total_credits
                bucket = expenses
            if abs(balance) < epsilon:
                continue
            bucket.append(
                AccountResult(row.account_id, row.account_code, row.account_name, balance)
            )
        return ProfitAndLoss(
            fiscal_year=fiscal_year,
            start_date=start_date,
            end_date=end_date,
            income=tuple(income),
            expenses=tuple(expenses),
        )

    def calculate_profit_and_loss(
        self, organization_id: UUID, fiscal_year: int
    ) -> ProfitAndLoss:
        with self._session_factory() as session:
            periods = self._year_periods(session, organization_id, fiscal_year)
            return self._profit_and_loss(session, organization_id, fiscal_year, periods)

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    @staticmethod
    def _closing_run(
        session: Session, organization_id: UUID, fiscal_year: int
    ) -> YearEndClosingRun | None:
        return session.execute(
            select(YearEndClosingRun).where(
                YearEndClosingRun.organization_id == organization_id,
                YearEndClosingRun.fiscal_year == fiscal_year,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _closing_lines(
        pnl: ProfitAndLoss, retained_earnings_id: UUID
    ) -> list[JournalLineSpec]:
        lines = []
        for account in pnl.income:
            if account.balance > ZERO:
                lines.append(JournalLineSpec.dr(account.account_id, account.balance))
            else:
                lines.append(JournalLineSpec.cr(account.account_id, -account.balance))
        for account in pnl.expenses:
            if account.balance > ZERO:
                lines.append(JournalLineSpec.cr(account.account_id, account.balance))
            else:
                lines.append(JournalLineSpec.dr(account.account_id, -account.balance))

        net_income = pnl.net_income
        description = f"Net income FY{pnl.fiscal_year}"
        if net_income > ZERO:
            lines.append(JournalLineSpec.cr(retained_earnings_id, net_income, description))
        elif net_income < ZERO:
            lines.append(JournalLineSpec.dr(retained_earnings_id, -net_income, description))
        return lines

    def perform_year_end_close(
        self,
        organization_id: UUID,
        fiscal_year: int,
        closing_date: date,
        idempotency_key: str,
        actor_id: UUID,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """
        Close the fiscal year.

        Posts the ``CLOSE-<year>`` journal on ``closing_date`` (none when the
        year had no income or expense), hard-closes every period of the year
        in date order and records the closing run.
        """

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            periods = self._year_periods(session, organization_id, fiscal_year)
            if self._closing_run(session, organization_id, fiscal_year) is not None:
                raise FiscalYearAlreadyClosedError(fiscal_year)
            if not periods[0].start_date <= closing_date <= periods[-1].end_date:
                raise ValidationError(
                    f"closing date {closing_date} is outside fiscal year {fiscal_year}"
                )

            pnl = self._profit_and_loss(session, organization_id, fiscal_year, periods)
            retained_earnings_id = AccountSelector(session).resolve_role(
                organization_id, "retained_earnings", self._settings.account_codes
            )

            journal = None
            if pnl.has_activity:
                journal = JournalService(session, self._settings, self._clock).create_journal(
                    organization_id=organization_id,
                    journal_date=closing_date,
                    lines=self._closing_lines(pnl, retained_earnings_id),
                    actor_id=actor_id,
                    description=f"Year-end closing entry FY{fiscal_year}",
                    source_type=CLOSING_SOURCE_TYPE,
                    journal_number=f"CLOSE-{fiscal_year}",
                )

            period_service = PeriodService(session, self._clock)
            closed = 0
            for period in periods:
                if period.status == PeriodStatus.CLOSED.value:
                    continue
                period_service.close_period(organization_id, period.id, actor_id)
                closed += 1

            run = YearEndClosingRun(
                organization_id=organization_id,
                fiscal_year=fiscal_year,
                closing_date=closing_date,
                retained_earnings_account_id=retained_earnings_id,
                closing_journal_id=journal.id if journal else None,
                total_income=pnl.total_income,
                total_expenses=pnl.total_expenses,
                net_income=pnl.net_income,
                completed_at=self._clock.now(),
                created_by_id=actor_id,
            )
            session.add(run)
            session.flush()

            logger.info(
                "year_end_close_completed",
                extra={
                    "fiscal_year": fiscal_year,
                    "closing_journal_id": str(journal.id) if journal else None,
                    "total_income": str(pnl.total_income),
                    "total_expenses": str(pnl.total_expenses),
                    "net_income": str(pnl.net_income),
                    "periods_closed": closed,
                },
            )
            return UnitOfWorkResult(
                journal_ids=(journal.id,) if journal else (),
                result={
                    "closing_run_id": run.id,
                    "fiscal_year": fiscal_year,
                    "closing_journal_id": journal.id if journal else None,
                    "total_income": pnl.total_income,
                    "total_expenses": pnl.total_expenses,
                    "net_income": pnl.net_income,
                    "periods_closed": closed,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="fiscal_year.close",
            posting_date=closing_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={"fiscal_year": fiscal_year, "closing_date": closing_date},
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def get_fiscal_year_summary(
        self, organization_id: UUID, fiscal_year: int
    ) -> FiscalYearSummary:
        with self._session_factory() as session:
            periods = self._year_periods(session, organization_id, fiscal_year)
            by_status: dict[str, int] = {status.value: 0 for status in PeriodStatus}
            for period in periods:
                by_status[period.status] += 1
            run = self._closing_run(session, organization_id, fiscal_year)
            return FiscalYearSummary(
                fiscal_year=fiscal_year,
                period_count=len(periods),
                periods_by_status=by_status,
                profit_and_loss=self._profit_and_loss(
                    session, organization_id, fiscal_year, periods
                ),
                closing_run_id=run.id if run else None,
                closing_journal_id=run.closing_journal_id if run else None,
                closed_on=run.closing_date if run else None,
            )

