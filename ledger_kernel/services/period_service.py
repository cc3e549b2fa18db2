"""
PeriodService -- posting period guard and period lifecycle.

Responsibility:
    Resolves the accounting period covering a posting date and decides
    whether a posting may land there.  Also manages the period lifecycle
    (OPEN -> SOFT_CLOSED -> CLOSED, explicit reopen) and generates the
    monthly periods of a fiscal year ahead of time.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the TransactionCoordinator before every unit of work, and by
    InventoryService for opening balances and FIFO consumption.

Invariants enforced:
    - Non-reversal postings into CLOSED periods always fail.
    - SOFT_CLOSED periods accept reversals only.
    - CLOSED periods accept reversals only when the caller explicitly sets
      ``allow_reversal_in_closed_period``.
    - Periods of one organization never overlap.
    - A hard close requires every earlier period to be closed.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - NoPeriodError: No period covers the posting date.
    - ClosedPeriodError / SoftClosedError: status forbids the posting.
    - PeriodOverlapError: New period date range overlaps an existing one.
    - PeriodCloseOrderError: Hard close with earlier periods still open.
    - PeriodStatusError: Lifecycle transition not allowed.

Audit relevance:
    Period creation, close and reopen are logged with period name, actor and
    timestamps.  Rejected postings are logged at WARNING level.
"""

import calendar
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PeriodInfo
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    NoPeriodError,
    PeriodCloseOrderError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PeriodStatusError,
    SoftClosedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.accounting_period import AccountingPeriod, PeriodStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[AccountingPeriod]):
    """
    Posting period guard and lifecycle manager.

    Contract:
        ``validate_posting_date`` returns the covering period as a frozen
        ``PeriodInfo`` or raises a typed ``PeriodError``.  Lifecycle
        methods flush within the caller's transaction.

    Guarantees:
        - Concurrent lifecycle changes are serialized with
          ``SELECT ... FOR UPDATE`` on the period row.
        - All public methods return immutable DTOs.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT run period-end reconciliation (ReconciliationService).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    @staticmethod
    def _to_dto(period: AccountingPeriod) -> PeriodInfo:
        return PeriodInfo(
            id=period.id,
            organization_id=period.organization_id,
            fiscal_year=period.fiscal_year,
            period_number=period.period_number,
            name=period.name,
            start_date=period.start_date,
            end_date=period.end_date,
            status=PeriodStatus(period.status).value,
        )

    # ------------------------------------------------------------------
    # Posting guard
    # ------------------------------------------------------------------

    def validate_posting_date(
        self,
        organization_id: UUID,
        posting_date: date,
        allow_reversal_in_closed_period: bool = False,
    ) -> PeriodInfo:
        """
        Validate that a posting may be made on ``posting_date``.

        ``allow_reversal_in_closed_period`` marks the posting as a reversal:
        reversals may land in SOFT_CLOSED periods, and in CLOSED periods
        only with this flag set.

        Raises:
            NoPeriodError: If no period covers the date.
            ClosedPeriodError: If the period is closed and the posting is
                not a flagged reversal.
            SoftClosedError: If the period is soft-closed and the posting
                is not a reversal.
        """
        period = self._period_for_date(organization_id, posting_date)

        if period is None:
            logger.warning(
                "posting_date_without_period",
                extra={"posting_date": str(posting_date)},
            )
            raise NoPeriodError(str(posting_date))

        status = PeriodStatus(period.status)
        is_reversal = allow_reversal_in_closed_period

        if status == PeriodStatus.CLOSED and not is_reversal:
            logger.warning(
                "posting_to_closed_period_rejected",
                extra={"period": period.name, "posting_date": str(posting_date)},
            )
            raise ClosedPeriodError(period.name, str(posting_date))

        if status == PeriodStatus.SOFT_CLOSED and not is_reversal:
            logger.warning(
                "posting_to_soft_closed_period_rejected",
                extra={"period": period.name, "posting_date": str(posting_date)},
            )
            raise SoftClosedError(period.name, str(posting_date))

        logger.debug(
            "posting_date_validated",
            extra={
                "period": period.name,
                "status": status.value,
                "posting_date": str(posting_date),
                "is_reversal": is_reversal,
            },
        )
        return self._to_dto(period)

    def is_date_postable(self, organization_id: UUID, posting_date: date) -> bool:
        """True iff a regular (non-reversal) posting would be accepted."""
        period = self._period_for_date(organization_id, posting_date)
        return period is not None and period.status == PeriodStatus.OPEN

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _period_for_date(
        self, organization_id: UUID, posting_date: date
    ) -> AccountingPeriod | None:
        return self.session.execute(
            select(AccountingPeriod).where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.start_date <= posting_date,
                AccountingPeriod.end_date >= posting_date,
            )
        ).scalar_one_or_none()

    def _period_for_update(
        self, organization_id: UUID, period_id: UUID
    ) -> AccountingPeriod:
        period = self.session.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.id == period_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def get_period_for_date(
        self, organization_id: UUID, posting_date: date
    ) -> PeriodInfo | None:
        period = self._period_for_date(organization_id, posting_date)
        return self._to_dto(period) if period else None

    def list_periods(
        self, organization_id: UUID, fiscal_year: int | None = None
    ) -> list[PeriodInfo]:
        """Periods of the organization in date order."""
        stmt = select(AccountingPeriod).where(
            AccountingPeriod.organization_id == organization_id
        )
        if fiscal_year is not None:
            stmt = stmt.where(AccountingPeriod.fiscal_year == fiscal_year)
        periods = self.session.execute(
            stmt.order_by(AccountingPeriod.start_date)
        ).scalars()
        return [self._to_dto(p) for p in periods]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_period(
        self,
        organization_id: UUID,
        fiscal_year: int,
        period_number: int,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        name: str | None = None,
    ) -> PeriodInfo:
        """
        Create a new open period.

        Raises:
            ValueError: If start_date > end_date.
            PeriodOverlapError: If the range overlaps an existing period.
        """
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        name = name or f"FY{fiscal_year}-P{period_number:02d}"

        overlapping = self.session.execute(
            select(AccountingPeriod)
            .where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.start_date <= end_date,
                AccountingPeriod.end_date >= start_date,
            )
            .limit(1)
        ).scalar_one_or_none()
        if overlapping is not None:
            raise PeriodOverlapError(name, overlapping.name)

        period = AccountingPeriod(
            organization_id=organization_id,
            fiscal_year=fiscal_year,
            period_number=period_number,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return self._to_dto(period)

    def generate_fiscal_year(
        self,
        organization_id: UUID,
        fiscal_year: int,
        start_date: date,
        actor_id: UUID,
    ) -> list[PeriodInfo]:
        """
        Create twelve consecutive monthly periods starting at ``start_date``.

        Periods follow calendar months: a start on the 1st yields whole
        months; any other start day is carried into each following month.
        """
        periods = []
        period_start = start_date
        for number in range(1, 13):
            next_start = _add_month(period_start, start_date.day)
            period_end = next_start - timedelta(days=1)
            periods.append(
                self.create_period(
                    organization_id=organization_id,
                    fiscal_year=fiscal_year,
                    period_number=number,
                    start_date=period_start,
                    end_date=period_end,
                    actor_id=actor_id,
                )
            )
            period_start = next_start

        logger.info(
            "fiscal_year_generated",
            extra={"fiscal_year": fiscal_year, "period_count": len(periods)},
        )
        return periods

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def soft_close_period(
        self, organization_id: UUID, period_id: UUID, actor_id: UUID
    ) -> PeriodInfo:
        """OPEN -> SOFT_CLOSED.  New postings stop; reversals still land."""
        period = self._period_for_update(organization_id, period_id)
        if period.status != PeriodStatus.OPEN:
            raise PeriodStatusError(period.name, PeriodStatus(period.status).value, "soft-close")

        period.status = PeriodStatus.SOFT_CLOSED
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info("period_soft_closed", extra={"period": period.name})
        return self._to_dto(period)

    def close_period(
        self, organization_id: UUID, period_id: UUID, actor_id: UUID
    ) -> PeriodInfo:
        """
        OPEN | SOFT_CLOSED -> CLOSED.

        Raises:
            PeriodStatusError: If the period is already closed.
            PeriodCloseOrderError: If an earlier period is not closed.
        """
        period = self._period_for_update(organization_id, period_id)
        if period.status == PeriodStatus.CLOSED:
            raise PeriodStatusError(period.name, PeriodStatus.CLOSED.value, "close")

        open_prior = self.session.execute(
            select(AccountingPeriod.name)
            .where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.end_date < period.start_date,
                AccountingPeriod.status != PeriodStatus.CLOSED,
            )
            .order_by(AccountingPeriod.start_date)
        ).scalars().all()
        if open_prior:
            raise PeriodCloseOrderError(period.name, list(open_prior))

        period.status = PeriodStatus.CLOSED
        period.closed_at = self._clock.now()
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"period": period.name, "closed_by": str(actor_id)},
        )
        return self._to_dto(period)

    def reopen_period(
        self, organization_id: UUID, period_id: UUID, actor_id: UUID
    ) -> PeriodInfo:
        """
        SOFT_CLOSED | CLOSED -> OPEN.

        Reopening while later periods are closed is allowed but logged as a
        warning: their balances no longer reflect a frozen history.
        """
        period = self._period_for_update(organization_id, period_id)
        if period.status == PeriodStatus.OPEN:
            raise PeriodStatusError(period.name, PeriodStatus.OPEN.value, "reopen")

        later_closed = self.session.execute(
            select(AccountingPeriod.name).where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.start_date > period.end_date,
                AccountingPeriod.status == PeriodStatus.CLOSED,
            )
        ).scalars().all()
        if later_closed:
            logger.warning(
                "period_reopened_with_later_closed_periods",
                extra={"period": period.name, "later_closed": list(later_closed)},
            )

        period.status = PeriodStatus.OPEN
        period.closed_at = None
        period.closed_by_id = None
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_reopened",
            extra={"period": period.name, "reopened_by": str(actor_id)},
        )
        return self._to_dto(period)


def _add_month(current: date, anchor_day: int) -> date:
    """Same anchor day one month later, clamped to the month's last day."""
    year = current.year + (1 if current.month == 12 else 0)
    month = 1 if current.month == 12 else current.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor_day, last_day))
