"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the per-organization chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account code is unique within an organization (uq_account_org_code).
    - Journal lines reference accounts with ON DELETE RESTRICT, so an
      account with postings can never be removed.

Failure modes:
    - IntegrityError on duplicate (organization_id, code).
    - IntegrityError when deleting an account referenced by a journal line.

Audit relevance:
    account_subtype drives reconciliation: the Inventory-GL and AR/AP checks
    sum the balances of accounts flagged inventory / accounts_receivable /
    accounts_payable.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantMixin, TrackedBase


class AccountType(str, Enum):
    """Financial statement classification."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class AccountSubtype(str, Enum):
    """Role flag used to locate control accounts."""

    CASH = "cash"
    INVENTORY = "inventory"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    ACCOUNTS_PAYABLE = "accounts_payable"
    COGS = "cogs"
    OPENING_BALANCE_EQUITY = "opening_balance_equity"
    RETAINED_EARNINGS = "retained_earnings"
    REVENUE = "revenue"
    OTHER = "other"


class Account(TenantMixin, TrackedBase):
    """
    Chart of Accounts entry for one organization.

    Contract:
        (organization_id, code) is unique.  Accounts are master data owned by
        an outer layer; the kernel only reads them.

    Guarantees:
        - account_type is one of ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE.
        - account_subtype identifies control accounts for reconciliation.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_account_org_code"),
        Index("idx_account_org_subtype", "organization_id", "account_subtype"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    account_subtype: Mapped[AccountSubtype] = mapped_column(
        String(40),
        default=AccountSubtype.OTHER,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
