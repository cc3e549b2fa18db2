"""
AuditService -- audit log writer for committed units of work.

Responsibility:
    Appends one AuditLogEntry per accounting unit of work, in the same
    transaction as the work, so an entry exists iff the work committed.

Architecture position:
    Kernel > Services.  Called by the TransactionCoordinator.

Invariants enforced:
    - Append-only (db/immutability.py rejects UPDATE and DELETE).
    - Flush-only: never commits.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AuditData
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditLogEntry
from ledger_kernel.utils.hashing import to_json_safe

logger = get_logger("services.audit")


class AuditService:
    """Writes and reads the audit log of one session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        organization_id: UUID,
        resource_type: str,
        audit_data: AuditData | None,
        actor_id: UUID | None = None,
        resource_id: str | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """
        Append an entry.

        Values supplied in ``audit_data`` win over the positional fallbacks.
        """
        data = audit_data or AuditData()
        entry = AuditLogEntry(
            organization_id=organization_id,
            user_id=data.user_id or actor_id,
            action=AuditAction(data.action).value,
            resource_type=resource_type,
            resource_id=data.resource_id or resource_id,
            new_values=to_json_safe(
                data.new_values if data.new_values is not None else new_values
            ),
            request_id=data.request_id,
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            occurred_at=self._clock.now(),
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "resource_type": resource_type,
                "resource_id": entry.resource_id,
                "action": entry.action,
            },
        )
        return entry

    def entries_for(
        self,
        organization_id: UUID,
        resource_type: str | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(
            AuditLogEntry.organization_id == organization_id
        )
        if resource_type is not None:
            stmt = stmt.where(AuditLogEntry.resource_type == resource_type)
        stmt = stmt.order_by(AuditLogEntry.occurred_at.desc()).limit(limit)
        return list(self._session.execute(stmt).scalars())
