"""
Module: ledger_kernel.models.idempotency
Responsibility: ORM persistence for idempotency records -- the at-most-once
    guard around every accounting unit of work.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (organization_id, operation, idempotency_key) is UNIQUE at the storage
      layer.  Concurrent requests race on the INSERT, not on an
      application-level read.
    - status == completed implies result holds the serialized result of the
      committed unit of work (set in the same transaction as the work).

Failure modes:
    - IntegrityError on the losing INSERT of a concurrent duplicate.

Audit relevance:
    request_hash pins the payload a key was first used with; a retry with a
    different payload is rejected instead of silently returning stale data.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TenantMixin


class IdempotencyStatus(str, Enum):
    """PENDING -> COMPLETED on commit; PENDING -> FAILED on rollback (retryable)."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class IdempotencyRecord(TenantMixin, Base):
    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "operation",
            "idempotency_key",
            name="uq_idempotency_org_operation_key",
        ),
        Index("idx_idempotency_expires", "expires_at"),
    )

    operation: Mapped[str] = mapped_column(String(100), nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[IdempotencyStatus] = mapped_column(
        String(10),
        default=IdempotencyStatus.PENDING,
        nullable=False,
    )

    request_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyRecord {self.operation}:{self.idempotency_key} {self.status}>"
