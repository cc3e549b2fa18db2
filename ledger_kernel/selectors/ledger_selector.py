"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: trial balance, grand totals,
    per-account activity over a date range,
    balances of control accounts, and the scan for unbalanced journals.
    The ledger is a derived view over journal lines -- there are no stored
    balances anywhere in the system.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every balance is computed from JournalEntry rows at query time.
    - Journals of every status are included: a reversed journal and its
      reversal net to zero, so the trial balance is unchanged by a
      reversal pair.

Failure modes:
    - Returns zero totals when the organization has no postings.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import TrialBalance, TrialBalanceRow
from ledger_kernel.domain.settings import BALANCE_EPSILON
from ledger_kernel.models.account import Account, AccountSubtype, AccountType
from ledger_kernel.models.journal import Journal, JournalEntry
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class JournalTotals:
    """Line totals of one journal."""

    journal_id: UUID
    journal_number: str
    total_debits: Decimal
    total_credits: Decimal

    @property
    def difference(self) -> Decimal:
        return abs(self.total_debits - self.total_credits)


@dataclass(frozen=True)
class AccountActivity:
    """Debit/credit totals of one account over a date range."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    total_debits: Decimal
    total_credits: Decimal


class LedgerSelector(BaseSelector[JournalEntry]):
    """
    Selector for ledger queries.

    Guarantees:
        - All amounts are Decimal (never float).
        - Results are ordered by account code.
    """

    def trial_balance(
        self,
        organization_id: UUID,
        as_of_date: date | None = None,
        epsilon: Decimal = BALANCE_EPSILON,
    ) -> TrialBalance:
        """
        Per-account debit and credit totals plus grand totals.

        Postconditions: one row per account with postings, ordered by code;
            ``is_balanced`` iff the grand totals agree within ``epsilon``.
        """
        debit_sum = func.sum(JournalEntry.debit_amount).label("debit_total")
        credit_sum = func.sum(JournalEntry.credit_amount).label("credit_total")

        stmt = (
            select(
                JournalEntry.account_id,
                Account.code.label("account_code"),
                Account.name.label("account_name"),
                debit_sum,
                credit_sum,
            )
            .join(Journal, JournalEntry.journal_id == Journal.id)
            .join(Account, JournalEntry.account_id == Account.id)
            .where(JournalEntry.organization_id == organization_id)
            .group_by(JournalEntry.account_id, Account.code, Account.name)
            .order_by(Account.code)
        )
        if as_of_date is not None:
            stmt = stmt.where(Journal.posting_date <= as_of_date)

        rows = tuple(
            TrialBalanceRow(
                account_id=row.account_id,
                account_code=row.account_code,
                account_name=row.account_name,
                debit_total=row.debit_total or ZERO,
                credit_total=row.credit_total or ZERO,
            )
            for row in self.session.execute(stmt).all()
        )
        total_debits = sum((r.debit_total for r in rows), ZERO)
        total_credits = sum((r.credit_total for r in rows), ZERO)

        return TrialBalance(
            as_of_date=as_of_date,
            rows=rows,
            total_debits=total_debits,
            total_credits=total_credits,
            is_balanced=abs(total_debits - total_credits) < epsilon,
        )

    def total_debits_credits(
        self,
        organization_id: UUID,
        as_of_date: date | None = None,
    ) -> tuple[Decimal, Decimal]:
        """Grand totals of all debit and credit lines."""
        stmt = (
            select(
                func.sum(JournalEntry.debit_amount),
                func.sum(JournalEntry.credit_amount),
            )
            .join(Journal, JournalEntry.journal_id == Journal.id)
            .where(JournalEntry.organization_id == organization_id)
        )
        if as_of_date is not None:
            stmt = stmt.where(Journal.posting_date <= as_of_date)

        debits, credits = self.session.execute(stmt).one()
        return debits or ZERO, credits or ZERO

    def unbalanced_journals(
        self,
        organization_id: UUID,
        epsilon: Decimal = BALANCE_EPSILON,
    ) -> list[JournalTotals]:
        """Journals whose own lines do not balance within ``epsilon``."""
        stmt = (
            select(
                Journal.id,
                Journal.journal_number,
                func.sum(JournalEntry.debit_amount).label("debits"),
                func.sum(JournalEntry.credit_amount).label("credits"),
            )
            .join(JournalEntry, JournalEntry.journal_id == Journal.id)
            .where(Journal.organization_id == organization_id)
            .group_by(Journal.id, Journal.journal_number)
            .order_by(Journal.journal_number)
        )
        result = []
        for row in self.session.execute(stmt).all():
            totals = JournalTotals(
                journal_id=row.id,
                journal_number=row.journal_number,
                total_debits=row.debits or ZERO,
                total_credits=row.credits or ZERO,
            )
            if totals.difference >= epsilon:
                result.append(totals)
        return result

    def balance_for_subtype(
        self,
        organization_id: UUID,
        subtype: AccountSubtype,
        as_of_date: date | None = None,
    ) -> Decimal:
        """
        Net balance (debits - credits) of every account flagged ``subtype``.

        Credit-normal accounts (AP) come back negative; callers flip the sign.
        """
        stmt = (
            select(
                func.sum(JournalEntry.debit_amount),
                func.sum(JournalEntry.credit_amount),
            )
            .join(Journal, JournalEntry.journal_id == Journal.id)
            .join(Account, JournalEntry.account_id == Account.id)
            .where(
                JournalEntry.organization_id == organization_id,
                Account.account_subtype == subtype.value,
            )
        )
        if as_of_date is not None:
            stmt = stmt.where(Journal.posting_date <= as_of_date)

        debits, credits = self.session.execute(stmt).one()
        return (debits or ZERO) - (credits or ZERO)

    def account_balance(
        self,
        organization_id: UUID,
        account_id: UUID,
        as_of_date: date | None = None,
    ) -> Decimal:
        """Net balance (debits - credits) of one account."""
        stmt = (
            select(
                func.sum(JournalEntry.debit_amount),
                func.sum(JournalEntry.credit_amount),
            )
            .join(Journal, JournalEntry.journal_id == Journal.id)
            .where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.account_id == account_id,
            )
        )
        if as_of_date is not None:
            stmt = stmt.where(Journal.posting_date <= as_of_date)

        debits, credits = self.session.execute(stmt).one()
        return (debits or ZERO) - (credits or ZERO)

    def activity_by_account(
        self,
        organization_id: UUID,
        start_date: date,
        end_date: date,
        account_types: tuple[AccountType, ...],
        exclude_source_types: tuple[str, ...] = (),
    ) -> list[AccountActivity]:
        """Per-account totals of journals posted in [start_date, end_date]."""
        stmt = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                func.sum(JournalEntry.debit_amount).label("debits"),
                func.sum(JournalEntry.credit_amount).label("credits"),
            )
            .join(Journal, JournalEntry.journal_id == Journal.id)
            .join(Account, JournalEntry.account_id == Account.id)
            .where(
                JournalEntry.organization_id == organization_id,
                Journal.posting_date >= start_date,
                Journal.posting_date <= end_date,
                Account.account_type.in_([t.value for t in account_types]),
            )
            .group_by(Account.id, Account.code, Account.name, Account.account_type)
            .order_by(Account.code)
        )
        if exclude_source_types:
            stmt = stmt.where(
                (Journal.source_type.is_(None))
                | (Journal.source_type.not_in(exclude_source_types))
            )
        return [
            AccountActivity(
                account_id=row.id,
                account_code=row.code,
                account_name=row.name,
                account_type=row.account_type,
                total_debits=row.debits or ZERO,
                total_credits=row.credits or ZERO,
            )
            for row in self.session.execute(stmt).all()
        ]

    def journal_totals_for_sources(
        self,
        organization_id: UUID,
        source_types: tuple[str, ...],
    ) -> list[JournalTotals]:
        """Line totals of every journal whose source_type is in ``source_types``."""
        stmt = (
            select(
                Journal.id,
                Journal.journal_number,
                func.sum(JournalEntry.debit_amount).label("debits"),
                func.sum(JournalEntry.credit_amount).label("credits"),
            )
            .join(JournalEntry, JournalEntry.journal_id == Journal.id)
            .where(
                Journal.organization_id == organization_id,
                Journal.source_type.in_(source_types),
            )
            .group_by(Journal.id, Journal.journal_number)
            .order_by(Journal.journal_number)
        )
        return [
            JournalTotals(
                journal_id=row.id,
                journal_number=row.journal_number,
                total_debits=row.debits or ZERO,
                total_credits=row.credits or ZERO,
            )
            for row in self.session.execute(stmt).all()
        ]
