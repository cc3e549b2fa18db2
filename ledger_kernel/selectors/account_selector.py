"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Chart-of-accounts lookups: existence checks for journal
    lines and resolution of the control accounts the kernel posts to
    (inventory, COGS, AR, AP, cash, revenue, opening-balance equity).
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A role resolves first by its configured account code, then by the
      account subtype of the same name.  Nothing is created on the fly.

Failure modes:
    - AccountRoleNotConfiguredError when neither lookup finds an account.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.settings import AccountCodes
from ledger_kernel.exceptions import AccountRoleNotConfiguredError
from ledger_kernel.models.account import Account, AccountSubtype
from ledger_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector[Account]):
    """Account lookups scoped to one organization per call."""

    def get_by_code(self, organization_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.organization_id == organization_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def existing_ids(
        self, organization_id: UUID, account_ids: Iterable[UUID]
    ) -> set[UUID]:
        """Subset of ``account_ids`` that exist in the organization."""
        ids = set(account_ids)
        if not ids:
            return set()
        rows = self.session.execute(
            select(Account.id).where(
                Account.organization_id == organization_id,
                Account.id.in_(ids),
            )
        ).scalars()
        return set(rows)

    def ids_by_subtype(
        self, organization_id: UUID, subtype: AccountSubtype
    ) -> list[UUID]:
        return list(
            self.session.execute(
                select(Account.id).where(
                    Account.organization_id == organization_id,
                    Account.account_subtype == subtype.value,
                )
            ).scalars()
        )

    def resolve_role(
        self,
        organization_id: UUID,
        role: str,
        account_codes: AccountCodes,
    ) -> UUID:
        """
        Account id playing ``role`` (e.g. ``"inventory"``) for the organization.

        Raises:
            AccountRoleNotConfiguredError: If no account matches.
        """
        code = account_codes.code_for(role)
        account = self.get_by_code(organization_id, code)
        if account is not None:
            return account.id

        fallback = self.session.execute(
            select(Account.id)
            .where(
                Account.organization_id == organization_id,
                Account.account_subtype == AccountSubtype(role).value,
                Account.is_active.is_(True),
            )
            .order_by(Account.code)
            .limit(1)
        ).scalar_one_or_none()
        if fallback is None:
            raise AccountRoleNotConfiguredError(str(organization_id), role, code)
        return fallback
