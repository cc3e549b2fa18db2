"""
Module: ledger_kernel.models.audit_log
Responsibility: ORM persistence for the audit log written by every committed
    accounting unit of work.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener in db/immutability.py).
    - Written in the same transaction as the work it describes, so an entry
      exists iff the work committed.

Audit relevance:
    AuditLogEntry IS the audit trail of who did what, from where.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TenantMixin, UUIDString


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REVERSE = "reverse"
    VOID = "void"


class AuditLogEntry(TenantMixin, Base):
    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_org_resource", "organization_id", "resource_type", "resource_id"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action: Mapped[AuditAction] = mapped_column(String(20), nullable=False)

    # Operation name of the unit of work (e.g. "invoice.post")
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)

    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action} {self.resource_type}:{self.resource_id}>"
