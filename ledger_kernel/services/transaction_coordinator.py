"""
TransactionCoordinator -- idempotent, atomic accounting units of work.

Responsibility:
    Wraps a caller-supplied unit of work in idempotency tracking, one
    atomic storage transaction, pre-commit validation (posting period,
    journal balance, non-negative inventory), a deadline, and audit
    logging.  Every state-changing accounting operation goes through
    ``run``.

Architecture position:
    Kernel > Services -- owns transaction boundaries.
    Takes a session factory, never a shared session: the idempotency claim,
    the unit of work and the failure marker each run in their own
    transaction.

Invariants enforced:
    - At-most-once: a key with a COMPLETED record returns the stored result
      without executing the unit of work again.
    - All-or-nothing: any failure inside the unit of work rolls back every
      journal, layer decrement and movement it produced.
    - A failed run never leaves the key COMPLETED; the record is marked
      FAILED and a retry with the same key executes again.
    - Every journal the unit of work reports is re-checked for balance
      before commit.
    - Every (item, warehouse) it reports is checked for negative quantity
      unless the warehouse allows negative inventory.

Failure modes:
    - Domain errors raised by the unit of work propagate unchanged.
    - PeriodError subclasses: posting date not postable.
    - UnbalancedJournalError / NegativeInventoryError: pre-commit checks.
    - TransactionTimeoutError: deadline exceeded (retryable).
    - IdempotencyInProgressError (retryable) / IdempotencyKeyReuseError.

Audit relevance:
    One AuditLogEntry per committed unit of work, written in the same
    transaction.  ``accounting_transaction_started`` / ``_completed`` /
    ``_failed`` and ``idempotency_replay`` are logged with the operation,
    key and organization bound into the log context.
"""

import time
from collections.abc import Callable
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select, text
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import is_postgres
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AuditData,
    InventoryChange,
    TransactionResult,
    UnitOfWorkResult,
)
from ledger_kernel.domain.settings import KernelSettings
from ledger_kernel.exceptions import (
    DuplicateIdempotencyKeyError,
    NegativeInventoryError,
    TransactionTimeoutError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.master_data import Warehouse
from ledger_kernel.selectors.inventory_selector import InventorySelector
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.idempotency_service import IdempotencyService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.utils.hashing import hash_payload, to_json_safe

logger = get_logger("services.transaction_coordinator")

TransactionFn = Callable[[Session], UnitOfWorkResult]


class TransactionCoordinator:
    """
    Runs accounting units of work exactly once per idempotency key.

    Contract:
        ``run`` returns a TransactionResult.  ``replayed`` is True when the
        result came from a completed record instead of a fresh execution;
        all other fields are identical between the two.

    Non-goals:
        - Does NOT retry on retryable errors; the caller backs off.
        - Does NOT interpret the domain result.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or KernelSettings()
        self._clock = clock or SystemClock()

    def run(
        self,
        organization_id: UUID,
        idempotency_key: str,
        operation: str,
        posting_date: date,
        transaction_fn: TransactionFn,
        actor_id: UUID | None = None,
        audit_data: AuditData | None = None,
        is_reversal: bool = False,
        request_payload: dict | None = None,
    ) -> TransactionResult:
        """
        Execute ``transaction_fn`` at most once for the key.

        Args:
            organization_id: Tenant scope of the work.
            idempotency_key: Caller token; unique per organization+operation.
            operation: Domain operation name (e.g. ``"invoice.post"``).
            posting_date: Date checked by the posting period guard.
            transaction_fn: Callable taking the transaction's Session and
                returning a UnitOfWorkResult.
            actor_id: User performing the work.
            audit_data: Request metadata for the audit log.
            is_reversal: Lets the posting land in soft-closed periods, and
                in closed periods.
            request_payload: Inputs hashed to detect key reuse.
        """
        request_hash = hash_payload(request_payload) if request_payload is not None else None

        with LogContext.bind(
            correlation_id=str(uuid4()),
            organization_id=organization_id,
            actor_id=actor_id,
            operation=operation,
            idempotency_key=idempotency_key,
            request_id=audit_data.request_id if audit_data else None,
        ):
            try:
                record_id = self._claim(
                    organization_id, operation, idempotency_key, request_hash
                )
            except DuplicateIdempotencyKeyError as duplicate:
                logger.info("idempotency_replay")
                return TransactionResult.from_dict(duplicate.cached_result, replayed=True)

            logger.info(
                "accounting_transaction_started",
                extra={"posting_date": str(posting_date), "is_reversal": is_reversal},
            )
            t0 = time.monotonic()
            try:
                result = self._execute(
                    record_id=record_id,
                    organization_id=organization_id,
                    idempotency_key=idempotency_key,
                    operation=operation,
                    posting_date=posting_date,
                    transaction_fn=transaction_fn,
                    actor_id=actor_id,
                    audit_data=audit_data,
                    is_reversal=is_reversal,
                )
            except Exception as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._mark_failed(record_id, exc)
                logger.error(
                    "accounting_transaction_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "accounting_transaction_completed",
                extra={
                    "duration_ms": duration_ms,
                    "journal_count": len(result.journal_ids),
                    "movement_count": len(result.movement_ids),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _claim(
        self,
        organization_id: UUID,
        operation: str,
        idempotency_key: str,
        request_hash: str | None,
    ) -> UUID:
        session = self._session_factory()
        try:
            record_id = IdempotencyService(
                session, self._clock, self._settings.idempotency_ttl_hours
            ).claim(organization_id, operation, idempotency_key, request_hash)
            session.commit()
            return record_id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _execute(
        self,
        record_id: UUID,
        organization_id: UUID,
        idempotency_key: str,
        operation: str,
        posting_date: date,
        transaction_fn: TransactionFn,
        actor_id: UUID | None,
        audit_data: AuditData | None,
        is_reversal: bool,
    ) -> TransactionResult:
        timeout = self._settings.transaction_timeout_seconds
        started_at = self._clock.now()
        session = self._session_factory()
        try:
            if is_postgres(session):
                session.execute(
                    text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}")
                )

            PeriodService(session, self._clock).validate_posting_date(
                organization_id,
                posting_date,
                allow_reversal_in_closed_period=is_reversal,
            )

            work = transaction_fn(session)
            if not isinstance(work, UnitOfWorkResult):
                raise TypeError(
                    f"transaction_fn must return UnitOfWorkResult, got {type(work).__name__}"
                )
            session.flush()

            self._validate_journals(session, organization_id, work.journal_ids)
            self._validate_inventory(session, organization_id, work.inventory_changes)

            elapsed = (self._clock.now() - started_at).total_seconds()
            if elapsed > timeout:
                raise TransactionTimeoutError(operation, timeout, elapsed)

            result = TransactionResult(
                operation=operation,
                idempotency_key=idempotency_key,
                result=to_json_safe(work.result),
                journal_ids=tuple(str(j) for j in work.journal_ids),
                movement_ids=tuple(str(m) for m in work.movement_ids),
                inventory_changes=tuple(c.to_dict() for c in work.inventory_changes),
            )

            IdempotencyService(session, self._clock).complete(record_id, result.to_dict())
            AuditService(session, self._clock).record(
                organization_id=organization_id,
                resource_type=operation,
                audit_data=audit_data,
                actor_id=actor_id,
                resource_id=result.journal_ids[0] if result.journal_ids else None,
                new_values=result.result,
            )

            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _validate_journals(
        self,
        session: Session,
        organization_id: UUID,
        journal_ids: tuple[UUID, ...],
    ) -> None:
        journals = JournalService(session, self._settings, self._clock)
        for journal_id in journal_ids:
            journals.validate_balance(journals.get_journal(organization_id, journal_id))

    def _validate_inventory(
        self,
        session: Session,
        organization_id: UUID,
        changes: tuple[InventoryChange, ...],
    ) -> None:
        selector = InventorySelector(session)
        for change in set(changes):
            allows_negative = session.execute(
                select(Warehouse.allow_negative_inventory).where(
                    Warehouse.organization_id == organization_id,
                    Warehouse.id == change.warehouse_id,
                )
            ).scalar_one_or_none()
            if allows_negative:
                continue
            on_hand = selector.quantity_on_hand(
                organization_id, change.item_id, change.warehouse_id
            )
            if on_hand < 0:
                raise NegativeInventoryError(
                    str(change.item_id), str(change.warehouse_id), on_hand
                )

    def _mark_failed(self, record_id: UUID, exc: Exception) -> None:
        error_code = getattr(exc, "code", None) or type(exc).__name__
        session = self._session_factory()
        try:
            IdempotencyService(session, self._clock).mark_failed(record_id, error_code)
            session.commit()
        except Exception:
            session.rollback()
            logger.error(
                "idempotency_mark_failed_error",
                extra={"record_id": str(record_id)},
                exc_info=True,
            )
        finally:
            session.close()
