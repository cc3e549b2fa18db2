"""
Module: ledger_kernel.models.accounting_period
Responsibility: ORM persistence for accounting periods, the date ranges whose
    status gates every posting.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one period covers a calendar date per organization (overlap
      rejected by PeriodService at creation time).
    - A closed period is immutable; only an explicit reopen may change its
      status (ORM listener in db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on edits to a closed period other than reopen.
    - IntegrityError on a second closing run for the same fiscal year.

Audit relevance:
    closed_at / closed_by_id record who froze the period.  A closing run
    records the year-end P&L totals and the journal that zeroed them.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantMixin, TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """Mutability status of a posting period.

    OPEN        -- all postings allowed.
    SOFT_CLOSED -- only reversals allowed.
    CLOSED      -- only flagged reversals allowed.
    """

    OPEN = "open"
    SOFT_CLOSED = "soft_closed"
    CLOSED = "closed"


class AccountingPeriod(TenantMixin, TrackedBase):
    """
    Accounting period for one organization.

    Contract:
        [start_date, end_date] is inclusive on both ends.

    Guarantees:
        - (organization_id, fiscal_year, period_number) is unique.
    """

    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "fiscal_year",
            "period_number",
            name="uq_period_org_year_number",
        ),
        Index("idx_period_org_dates", "organization_id", "start_date", "end_date"),
    )

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    period_number: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN,
        nullable=False,
        active_history=True,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<AccountingPeriod {self.name} ({self.start_date} - {self.end_date})>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        """Check if a date falls within this period (inclusive)."""
        return self.start_date <= check_date <= self.end_date


class YearEndClosingRun(TenantMixin, TrackedBase):
    """
    Record of one fiscal year's close.

    Guarantees:
        - At most one run per (organization_id, fiscal_year).
        - Append-only; a closed year is not re-closed.
    """

    __tablename__ = "year_end_closing_runs"

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "fiscal_year",
            name="uq_closing_run_org_year",
        ),
    )

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    closing_date: Mapped[date] = mapped_column(Date, nullable=False)

    retained_earnings_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # NULL when the year had no income or expense activity
    closing_journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=True,
    )

    total_income: Mapped[Decimal] = mapped_column(nullable=False)

    total_expenses: Mapped[Decimal] = mapped_column(nullable=False)

    net_income: Mapped[Decimal] = mapped_column(nullable=False)

    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<YearEndClosingRun FY{self.fiscal_year} net={self.net_income}>"
