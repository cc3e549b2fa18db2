"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journals (headers) and journal entries
    (debit/credit lines) -- the authoritative financial record.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - total_debit == total_credit (within epsilon) for every active journal;
      checked by JournalService before flush and re-checked by the
      TransactionCoordinator before commit.
    - Append-only: lines are never updated or deleted; a journal's amounts
      never change and its status only moves active -> reversed or
      active -> voided (ORM listeners in db/immutability.py).
    - journal_number is unique per organization.
    - Lines reference accounts with ON DELETE RESTRICT.

Failure modes:
    - IntegrityError on duplicate journal_number.
    - ImmutabilityViolationError on UPDATE/DELETE of financial fields.

Audit relevance:
    A reversal is a new journal whose reversal_of_id points at the original;
    the original keeps its lines and is tagged reversed.  Nothing is erased.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantMixin, TrackedBase, UUIDString


class JournalStatus(str, Enum):
    """Lifecycle status of a journal.

    Contract: Valid transitions are ACTIVE -> REVERSED and ACTIVE -> VOIDED.
    Both are recorded by creating a new mirror journal, never by editing
    amounts.
    """

    ACTIVE = "active"
    REVERSED = "reversed"
    VOIDED = "voided"


class Journal(TenantMixin, TrackedBase):
    """
    A balanced set of debit/credit lines representing one financial event.

    Contract:
        Created with all lines in one flush.  After that only ``status``
        (and audit metadata) may change.

    Guarantees:
        - total_debit / total_credit equal the sums of the lines.
        - reversal_of_id is set only on reversal journals.
    """

    __tablename__ = "journals"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "journal_number", name="uq_journal_org_number"
        ),
        Index("idx_journal_org_posting_date", "organization_id", "posting_date"),
        Index("idx_journal_org_source", "organization_id", "source_type", "source_id"),
        Index("idx_journal_status", "status"),
    )

    journal_number: Mapped[str] = mapped_column(String(50), nullable=False)

    journal_date: Mapped[date] = mapped_column(Date, nullable=False)

    posting_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Business document that produced the journal (invoice, bill, ...)
    source_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    total_debit: Mapped[Decimal] = mapped_column(nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[JournalStatus] = mapped_column(
        String(10),
        default=JournalStatus.ACTIVE,
        nullable=False,
        active_history=True,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=True,
    )

    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entries: Mapped[list["JournalEntry"]] = relationship(
        back_populates="journal",
        lazy="selectin",
        order_by="JournalEntry.line_number",
    )

    reversal_of: Mapped["Journal | None"] = relationship(
        remote_side="Journal.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<Journal {self.journal_number} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status == JournalStatus.ACTIVE

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class JournalEntry(TenantMixin, TrackedBase):
    """
    A single debit or credit line of a journal.

    Contract:
        Both amounts are non-negative and at most one is non-zero.
        Rows are never updated or deleted.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        Index("idx_entry_journal", "journal_id"),
        Index("idx_entry_org_account", "organization_id", "account_id"),
    )

    journal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    debit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    credit_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    journal: Mapped["Journal"] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return (
            f"<JournalEntry {self.line_number} Dr {self.debit_amount} "
            f"Cr {self.credit_amount}>"
        )
