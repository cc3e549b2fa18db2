"""
JournalService -- balanced journal creation, validation and reversal.

Responsibility:
    Turns a list of debit/credit line specs into a persisted Journal with
    its JournalEntry rows, after applying the per-line rules and the
    balance check.  Reverses a journal by posting its mirror image and
    tagging the original.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by InventoryService (opening balance and COGS journals),
    DocumentService (document postings and voids) and the
    TransactionCoordinator (pre-commit balance validation).
    Delegates numbering to SequenceService and date checks to
    PeriodService.

Invariants enforced:
    - |sum(debits) - sum(credits)| < epsilon for every journal written.
    - Every line references an existing account of the same organization.
    - Journal numbers come from the locked counter row (JE-000001, ...).
    - Amounts are never edited: reversal is a new journal whose lines swap
      debit and credit; the original only changes status.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidJournalLineError: A line breaks the posting rules.
    - AccountNotFoundError: A line references an unknown account.
    - UnbalancedJournalError: Totals differ by epsilon or more.
    - JournalNotFoundError / JournalNotActiveError: Reversal target invalid.
    - PeriodError subclasses: Reversal date not postable.

Audit relevance:
    ``journal_created`` and ``journal_reversed`` are logged with number,
    totals and source document.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import (
    ensure_balanced,
    mirror_lines,
    sum_sides,
    validate_lines,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import JournalLineSpec, TrialBalance
from ledger_kernel.domain.settings import KernelSettings
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    JournalNotActiveError,
    JournalNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import Journal, JournalEntry, JournalStatus
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")


class JournalService(BaseService[Journal]):
    """
    The journal ledger.

    Contract:
        ``create_journal`` returns the flushed Journal with its entries.
        ``reverse_journal`` returns the flushed reversal journal.

    Non-goals:
        - Does NOT resolve account roles (callers pass account ids).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._settings = settings or KernelSettings()
        self._clock = clock or SystemClock()
        self._accounts = AccountSelector(session)
        self._sequences = SequenceService(session)

    def _next_number(self, organization_id: UUID) -> str:
        value = self._sequences.next_value(
            SequenceService.scoped(SequenceService.JOURNAL, organization_id)
        )
        return f"JE-{value:06d}"

    def create_journal(
        self,
        organization_id: UUID,
        journal_date: date,
        lines: list[JournalLineSpec],
        actor_id: UUID,
        posting_date: date | None = None,
        description: str | None = None,
        source_type: str | None = None,
        source_id: UUID | None = None,
        journal_number: str | None = None,
        reversal_of_id: UUID | None = None,
        reversal_reason: str | None = None,
    ) -> Journal:
        """
        Validate and persist a journal.

        Preconditions:
            ``lines`` holds at least two line specs.

        Postconditions:
            The journal and all its entries are flushed with status ACTIVE.

        Raises:
            InvalidJournalLineError, AccountNotFoundError,
            UnbalancedJournalError.
        """
        lines = list(lines)
        validate_lines(lines)

        referenced = {line.account_id for line in lines}
        missing = referenced - self._accounts.existing_ids(organization_id, referenced)
        if missing:
            raise AccountNotFoundError(str(sorted(str(m) for m in missing)[0]))

        total_debit, total_credit = sum_sides(lines)
        ensure_balanced(total_debit, total_credit, self._settings.balance_epsilon)

        journal = Journal(
            organization_id=organization_id,
            journal_number=journal_number or self._next_number(organization_id),
            journal_date=journal_date,
            posting_date=posting_date or journal_date,
            description=description,
            source_type=source_type,
            source_id=source_id,
            total_debit=total_debit,
            total_credit=total_credit,
            status=JournalStatus.ACTIVE,
            reversal_of_id=reversal_of_id,
            reversal_reason=reversal_reason,
            created_by_id=actor_id,
        )
        journal.entries = [
            JournalEntry(
                organization_id=organization_id,
                line_number=number,
                account_id=line.account_id,
                debit_amount=line.debit,
                credit_amount=line.credit,
                description=line.description,
                created_by_id=actor_id,
            )
            for number, line in enumerate(lines, start=1)
        ]
        self.session.add(journal)
        self.session.flush()

        logger.info(
            "journal_created",
            extra={
                "journal_id": str(journal.id),
                "journal_number": journal.journal_number,
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
                "line_count": len(lines),
                "source_type": source_type,
                "source_id": str(source_id) if source_id else None,
            },
        )
        return journal

    def validate_balance(self, journal: Journal) -> None:
        """
        Re-check a persisted journal from its lines.

        Raises:
            UnbalancedJournalError: If the lines do not balance.
        """
        debits, credits = sum_sides(journal.entries)
        ensure_balanced(
            debits,
            credits,
            self._settings.balance_epsilon,
            journal_id=str(journal.id),
        )

    def get_journal(self, organization_id: UUID, journal_id: UUID) -> Journal:
        journal = self.session.execute(
            select(Journal).where(
                Journal.organization_id == organization_id,
                Journal.id == journal_id,
            )
        ).scalar_one_or_none()
        if journal is None:
            raise JournalNotFoundError(str(journal_id))
        return journal

    def get_trial_balance(
        self, organization_id: UUID, as_of_date: date | None = None
    ) -> TrialBalance:
        return LedgerSelector(self.session).trial_balance(
            organization_id, as_of_date, self._settings.balance_epsilon
        )

    def journals_for_source(
        self,
        organization_id: UUID,
        source_type: str,
        source_id: UUID,
        active_only: bool = True,
    ) -> list[Journal]:
        """Journals produced by one business document, oldest first."""
        stmt = select(Journal).where(
            Journal.organization_id == organization_id,
            Journal.source_type == source_type,
            Journal.source_id == source_id,
            Journal.reversal_of_id.is_(None),
        )
        if active_only:
            stmt = stmt.where(Journal.status == JournalStatus.ACTIVE.value)
        return list(self.session.execute(stmt.order_by(Journal.created_at)).scalars())

    def reverse_journal(
        self,
        organization_id: UUID,
        journal_id: UUID,
        reason: str,
        reversal_date: date,
        actor_id: UUID,
        status: JournalStatus = JournalStatus.REVERSED,
    ) -> Journal:
        """
        Post the mirror image of a journal and tag the original.

        The reversal date is checked as a reversal: it may land in a
        soft-closed or closed period.  ``status`` is the tag given to the
        original (REVERSED, or VOIDED when a document is voided).

        Raises:
            JournalNotFoundError: Unknown journal.
            JournalNotActiveError: Journal already reversed or voided.
            NoPeriodError: No period covers ``reversal_date``.
        """
        original = self.session.execute(
            select(Journal)
            .where(
                Journal.organization_id == organization_id,
                Journal.id == journal_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if original is None:
            raise JournalNotFoundError(str(journal_id))
        if original.status != JournalStatus.ACTIVE:
            raise JournalNotActiveError(str(journal_id), JournalStatus(original.status).value)

        PeriodService(self.session, self._clock).validate_posting_date(
            organization_id,
            reversal_date,
            allow_reversal_in_closed_period=True,
        )

        reversal = self.create_journal(
            organization_id=organization_id,
            journal_date=reversal_date,
            lines=mirror_lines(original.entries),
            actor_id=actor_id,
            description=f"Reversal of {original.journal_number}: {reason}",
            source_type=original.source_type,
            source_id=original.source_id,
            journal_number=f"REV-{original.journal_number}",
            reversal_of_id=original.id,
            reversal_reason=reason,
        )

        original.status = status
        original.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_reversed",
            extra={
                "journal_id": str(original.id),
                "journal_number": original.journal_number,
                "reversal_id": str(reversal.id),
                "new_status": JournalStatus(status).value,
                "reason": reason,
            },
        )
        return reversal
