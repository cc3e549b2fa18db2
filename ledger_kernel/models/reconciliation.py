"""
Module: ledger_kernel.models.reconciliation
Responsibility: ORM persistence for reconciliation runs and the variances
    they detect.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A variance belongs to exactly one run of the same organization.
    - Variances are advisory: they are recorded and resolved by a human with
      a note, never auto-corrected.

Audit relevance:
    resolved_by_id / resolved_at / resolution_notes document who accepted or
    explained each detected drift.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantMixin, TrackedBase, UUIDString


class ReconciliationTrigger(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"


class CheckStatus(str, Enum):
    """Outcome of a single check."""

    BALANCED = "balanced"
    UNBALANCED = "unbalanced"
    MATCHED = "matched"
    VARIANCE = "variance"
    ERROR = "error"


class VarianceType(str, Enum):
    TRIAL_BALANCE = "trial_balance"
    INVENTORY = "inventory"
    AR = "ar"
    AP = "ap"


class VarianceSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Sort rank, most severe first
SEVERITY_RANK = {
    VarianceSeverity.CRITICAL: 0,
    VarianceSeverity.HIGH: 1,
    VarianceSeverity.MEDIUM: 2,
    VarianceSeverity.LOW: 3,
}


class ReconciliationRun(TenantMixin, TrackedBase):
    __tablename__ = "reconciliation_runs"

    __table_args__ = (
        Index("idx_recon_run_org_started", "organization_id", "started_at"),
    )

    trigger: Mapped[ReconciliationTrigger] = mapped_column(String(20), nullable=False)

    status: Mapped[RunStatus] = mapped_column(String(20), nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    trial_balance_status: Mapped[CheckStatus] = mapped_column(String(20), nullable=False)

    inventory_status: Mapped[CheckStatus] = mapped_column(String(20), nullable=False)

    ar_status: Mapped[CheckStatus] = mapped_column(String(20), nullable=False)

    ap_status: Mapped[CheckStatus] = mapped_column(String(20), nullable=False)

    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    variances: Mapped[list["Variance"]] = relationship(
        back_populates="run",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ReconciliationRun {self.trigger} {self.status}>"


class Variance(TenantMixin, TrackedBase):
    __tablename__ = "reconciliation_variances"

    __table_args__ = (
        Index("idx_variance_org_resolved", "organization_id", "resolved", "severity"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("reconciliation_runs.id", ondelete="CASCADE"),
        nullable=False,
    )

    variance_type: Mapped[VarianceType] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    expected_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    actual_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    severity: Mapped[VarianceSeverity] = mapped_column(String(10), nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    # Specific offending record (e.g. an unbalanced journal id)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    resolution_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    run: Mapped["ReconciliationRun"] = relationship(back_populates="variances")

    def __repr__(self) -> str:
        return f"<Variance {self.variance_type} {self.amount} {self.severity}>"
