"""
Kernel settings -- the configuration values the kernel consumes.

Responsibility:
    Frozen value objects handed to kernel services by their caller.  The
    kernel never reads configuration files itself; ``ledger_config`` parses
    YAML into these types.

Architecture position:
    Kernel > Domain -- pure values, zero I/O.
"""

from dataclasses import dataclass, field
from decimal import Decimal

# One tolerance for every balance comparison in the system
BALANCE_EPSILON = Decimal("0.01")


@dataclass(frozen=True)
class AccountCodes:
    """Chart-of-accounts codes for the accounting roles the kernel posts to."""

    cash: str = "1000"
    accounts_receivable: str = "1200"
    inventory: str = "1300"
    accounts_payable: str = "2000"
    retained_earnings: str = "3000"
    opening_balance_equity: str = "3900"
    revenue: str = "4000"
    cogs: str = "5000"

    def code_for(self, role: str) -> str:
        return getattr(self, role)


@dataclass(frozen=True)
class KernelSettings:
    """
    Tunables for the kernel services.

    Guarantees:
        - balance_epsilon is shared by journal validation, trial balance,
          inventory-GL and AR/AP comparisons.
    """

    balance_epsilon: Decimal = BALANCE_EPSILON
    transaction_timeout_seconds: float = 30.0
    idempotency_ttl_hours: int = 24
    account_codes: AccountCodes = field(default_factory=AccountCodes)
