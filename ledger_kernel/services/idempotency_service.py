"""
IdempotencyService -- at-most-once claims on (organization, operation, key).

Responsibility:
    Claims an idempotency key before a unit of work runs, records the
    result when the work commits, and marks the claim failed when it
    rolls back so the same key can be retried.

Architecture position:
    Kernel > Services.  Used only by the TransactionCoordinator, which
    runs ``claim`` and ``mark_failed`` in their own short transactions
    and ``complete`` inside the unit of work's transaction.

Invariants enforced:
    - The claim is an INSERT against the unique constraint on
      (organization_id, operation, idempotency_key); the losing side of a
      race gets an IntegrityError, never a second execution.
    - A key reused with a different request hash is rejected.
    - FAILED and expired records are reclaimed with a conditional UPDATE
      on the status they were read with, so only one retry wins.

Failure modes:
    - DuplicateIdempotencyKeyError: Completed record exists (carries the
      cached result; the coordinator turns it into a replay).
    - IdempotencyInProgressError: Another execution holds the key.
    - IdempotencyKeyReuseError: Same key, different payload.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    DuplicateIdempotencyKeyError,
    IdempotencyInProgressError,
    IdempotencyKeyReuseError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.idempotency import IdempotencyRecord, IdempotencyStatus

logger = get_logger("services.idempotency")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class IdempotencyService:
    """
    Claim, complete and fail idempotency records.

    Non-goals:
        - Does NOT call ``session.commit()``; the coordinator owns the
          transactions these calls run in.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ttl_hours: int = 24,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ttl = timedelta(hours=ttl_hours)

    def get_record(
        self, organization_id: UUID, operation: str, idempotency_key: str
    ) -> IdempotencyRecord | None:
        return self._session.execute(
            select(IdempotencyRecord)
            .where(
                IdempotencyRecord.organization_id == organization_id,
                IdempotencyRecord.operation == operation,
                IdempotencyRecord.idempotency_key == idempotency_key,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def claim(
        self,
        organization_id: UUID,
        operation: str,
        idempotency_key: str,
        request_hash: str | None = None,
    ) -> UUID:
        """
        Insert a PENDING record for the key, or take over a reclaimable one.

        Returns:
            The id of the PENDING record now owned by the caller.

        Raises:
            DuplicateIdempotencyKeyError, IdempotencyInProgressError,
            IdempotencyKeyReuseError.
        """
        now = self._clock.now()
        record = IdempotencyRecord(
            organization_id=organization_id,
            operation=operation,
            idempotency_key=idempotency_key,
            status=IdempotencyStatus.PENDING.value,
            request_hash=request_hash,
            created_at=now,
            expires_at=now + self._ttl,
        )

        savepoint = self._session.begin_nested()
        try:
            self._session.add(record)
            self._session.flush()
            savepoint.commit()
            logger.debug("idempotency_claimed", extra={"record_id": str(record.id)})
            return record.id
        except IntegrityError:
            savepoint.rollback()

        existing = self.get_record(organization_id, operation, idempotency_key)
        if existing is None:
            # Winner rolled back between our INSERT and SELECT
            raise IdempotencyInProgressError(idempotency_key, operation)

        if (
            request_hash is not None
            and existing.request_hash is not None
            and existing.request_hash != request_hash
        ):
            logger.warning(
                "idempotency_key_reused",
                extra={"operation": operation},
            )
            raise IdempotencyKeyReuseError(
                idempotency_key, existing.request_hash, request_hash
            )

        status = IdempotencyStatus(existing.status)
        expired = _as_utc(existing.expires_at) <= now

        if expired:
            self._reclaim(existing, status, request_hash, now)
            logger.info(
                "idempotency_record_expired_reclaimed",
                extra={"record_id": str(existing.id), "previous_status": status.value},
            )
            return existing.id

        if status == IdempotencyStatus.COMPLETED:
            raise DuplicateIdempotencyKeyError(
                idempotency_key, operation, existing.result or {}
            )

        if status == IdempotencyStatus.PENDING:
            raise IdempotencyInProgressError(idempotency_key, operation)

        self._reclaim(existing, status, request_hash, now)
        logger.info(
            "idempotency_failed_record_reclaimed",
            extra={"record_id": str(existing.id)},
        )
        return existing.id

    def _reclaim(
        self,
        record: IdempotencyRecord,
        seen_status: IdempotencyStatus,
        request_hash: str | None,
        now: datetime,
    ) -> None:
        outcome = self._session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.id == record.id,
                IdempotencyRecord.status == seen_status.value,
            )
            .values(
                status=IdempotencyStatus.PENDING.value,
                request_hash=request_hash,
                result=None,
                error_code=None,
                created_at=now,
                completed_at=None,
                expires_at=now + self._ttl,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            raise IdempotencyInProgressError(record.idempotency_key, record.operation)

    def complete(self, record_id: UUID, result: dict) -> None:
        """PENDING -> COMPLETED with the serialized result."""
        record = self._session.get(IdempotencyRecord, record_id, populate_existing=True)
        record.status = IdempotencyStatus.COMPLETED.value
        record.result = result
        record.error_code = None
        record.completed_at = self._clock.now()
        self._session.flush()

    def mark_failed(self, record_id: UUID, error_code: str) -> None:
        """PENDING -> FAILED so the key can be retried."""
        self._session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.id == record_id,
                IdempotencyRecord.status == IdempotencyStatus.PENDING.value,
            )
            .values(status=IdempotencyStatus.FAILED.value, error_code=error_code)
            .execution_options(synchronize_session=False)
        )
