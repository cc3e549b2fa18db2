"""
Balance arithmetic and journal line rules.

Responsibility:
    Pure functions that decide whether a set of debit/credit lines may be
    posted.  Used by JournalService before flush and by the
    TransactionCoordinator before commit.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A journal balances iff |sum(debits) - sum(credits)| < epsilon.
    - A line has non-negative amounts, not both sides non-zero, and not
      both sides zero.
    - A journal has at least two lines.
"""

from collections.abc import Iterable
from decimal import Decimal

from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.domain.settings import BALANCE_EPSILON
from ledger_kernel.exceptions import InvalidJournalLineError, UnbalancedJournalError

ZERO = Decimal("0")


def sum_sides(lines: Iterable) -> tuple[Decimal, Decimal]:
    """Total debits and credits of objects exposing debit/credit amounts."""
    debits = ZERO
    credits = ZERO
    for line in lines:
        debits += _debit_of(line)
        credits += _credit_of(line)
    return debits, credits


def is_balanced(
    debits: Decimal,
    credits: Decimal,
    epsilon: Decimal = BALANCE_EPSILON,
) -> bool:
    return abs(debits - credits) < epsilon


def ensure_balanced(
    debits: Decimal,
    credits: Decimal,
    epsilon: Decimal = BALANCE_EPSILON,
    journal_id: str | None = None,
) -> None:
    """Raise UnbalancedJournalError unless the totals agree within epsilon."""
    if not is_balanced(debits, credits, epsilon):
        raise UnbalancedJournalError(debits, credits, journal_id=journal_id)


def validate_lines(lines: list[JournalLineSpec]) -> None:
    """
    Apply the per-line posting rules.

    Raises:
        InvalidJournalLineError: On the first offending line (1-based).
    """
    if len(lines) < 2:
        raise InvalidJournalLineError(None, "a journal needs at least two lines")

    for number, line in enumerate(lines, start=1):
        if line.account_id is None:
            raise InvalidJournalLineError(number, "account is required")
        if line.debit < ZERO or line.credit < ZERO:
            raise InvalidJournalLineError(number, "amounts cannot be negative")
        if line.debit > ZERO and line.credit > ZERO:
            raise InvalidJournalLineError(
                number, "a line cannot carry both a debit and a credit"
            )
        if line.debit == ZERO and line.credit == ZERO:
            raise InvalidJournalLineError(
                number, "a line must carry either a debit or a credit"
            )


def mirror_lines(lines: Iterable) -> list[JournalLineSpec]:
    """Swap debit and credit on every line (reversal)."""
    return [
        JournalLineSpec(
            account_id=line.account_id,
            debit=_credit_of(line),
            credit=_debit_of(line),
            description=line.description,
        )
        for line in lines
    ]


def _debit_of(line) -> Decimal:
    return line.debit if isinstance(line, JournalLineSpec) else line.debit_amount


def _credit_of(line) -> Decimal:
    return line.credit if isinstance(line, JournalLineSpec) else line.credit_amount
