"""
Journal ledger: creation, balance validation, reversal, immutability.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from ledger_kernel.domain.balance import mirror_lines, sum_sides
from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ImmutabilityViolationError,
    InvalidJournalLineError,
    JournalNotActiveError,
    JournalNotFoundError,
    NoPeriodError,
    UnbalancedJournalError,
)
from ledger_kernel.models.journal import Journal, JournalStatus
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService


@pytest.fixture
def journals(session, clock):
    return JournalService(session, clock=clock)


def _sale_lines(seeded, amount="250.00"):
    amount = Decimal(amount)
    return [
        JournalLineSpec.dr(seeded.account("1200"), amount),
        JournalLineSpec.cr(seeded.account("4000"), amount),
    ]


class TestCreateJournal:
    """create_journal persists balanced journals only."""

    def test_balanced_journal_persisted(self, journals, seeded, actor_id):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        assert journal.journal_number == "JE-000001"
        assert journal.status == JournalStatus.ACTIVE
        assert journal.total_debit == journal.total_credit == Decimal("250.00")
        assert journal.posting_date == date(2024, 6, 1)
        assert [e.line_number for e in journal.entries] == [1, 2]

    def test_numbers_are_sequential_per_organization(self, journals, seeded, other_org, actor_id):
        first = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        second = journals.create_journal(
            seeded.organization_id, date(2024, 6, 2), _sale_lines(seeded), actor_id
        )
        foreign = journals.create_journal(
            other_org.organization_id, date(2024, 6, 2), _sale_lines(other_org), actor_id
        )
        assert (first.journal_number, second.journal_number) == ("JE-000001", "JE-000002")
        assert foreign.journal_number == "JE-000001"

    def test_unbalanced_journal_rejected(self, journals, seeded, actor_id):
        lines = [
            JournalLineSpec.dr(seeded.account("1200"), Decimal("100.00")),
            JournalLineSpec.cr(seeded.account("4000"), Decimal("99.00")),
        ]
        with pytest.raises(UnbalancedJournalError) as exc_info:
            journals.create_journal(seeded.organization_id, date(2024, 6, 1), lines, actor_id)
        assert exc_info.value.difference == Decimal("1.00")

    def test_rounding_within_epsilon_accepted(self, journals, seeded, actor_id):
        lines = [
            JournalLineSpec.dr(seeded.account("1200"), Decimal("100.005")),
            JournalLineSpec.cr(seeded.account("4000"), Decimal("100.000")),
        ]
        journal = journals.create_journal(seeded.organization_id, date(2024, 6, 1), lines, actor_id)
        assert journal.status == JournalStatus.ACTIVE

    def test_difference_of_exactly_epsilon_rejected(self, journals, seeded, actor_id):
        lines = [
            JournalLineSpec.dr(seeded.account("1200"), Decimal("100.01")),
            JournalLineSpec.cr(seeded.account("4000"), Decimal("100.00")),
        ]
        with pytest.raises(UnbalancedJournalError):
            journals.create_journal(seeded.organization_id, date(2024, 6, 1), lines, actor_id)

    @pytest.mark.parametrize(
        "lines_factory, reason",
        [
            (lambda a, b: [JournalLineSpec.dr(a, Decimal("5"))], "at least two lines"),
            (
                lambda a, b: [
                    JournalLineSpec(account_id=a, debit=Decimal("5"), credit=Decimal("5")),
                    JournalLineSpec.cr(b, Decimal("0.01")),
                ],
                "both a debit and a credit",
            ),
            (
                lambda a, b: [JournalLineSpec(account_id=a), JournalLineSpec.cr(b, Decimal("5"))],
                "either a debit or a credit",
            ),
            (
                lambda a, b: [JournalLineSpec.dr(a, Decimal("-5")), JournalLineSpec.cr(b, Decimal("-5"))],
                "cannot be negative",
            ),
            (
                lambda a, b: [JournalLineSpec.dr(None, Decimal("5")), JournalLineSpec.cr(b, Decimal("5"))],
                "account is required",
            ),
        ],
    )
    def test_line_rules(self, journals, seeded, actor_id, lines_factory, reason):
        lines = lines_factory(seeded.account("1200"), seeded.account("4000"))
        with pytest.raises(InvalidJournalLineError) as exc_info:
            journals.create_journal(seeded.organization_id, date(2024, 6, 1), lines, actor_id)
        assert reason in exc_info.value.reason

    def test_foreign_account_rejected(self, journals, seeded, other_org, actor_id):
        lines = [
            JournalLineSpec.dr(seeded.account("1200"), Decimal("10")),
            JournalLineSpec.cr(other_org.account("4000"), Decimal("10")),
        ]
        with pytest.raises(AccountNotFoundError) as exc_info:
            journals.create_journal(seeded.organization_id, date(2024, 6, 1), lines, actor_id)
        assert exc_info.value.account_id == str(other_org.account("4000"))

    def test_validate_balance_on_persisted_journal(self, journals, seeded, actor_id):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        journals.validate_balance(journal)

    def test_get_journal_scoped_by_organization(self, journals, seeded, other_org, actor_id):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        assert journals.get_journal(seeded.organization_id, journal.id) is journal
        with pytest.raises(JournalNotFoundError):
            journals.get_journal(other_org.organization_id, journal.id)

    def test_creation_logged(self, journals, seeded, actor_id, captured_logs):
        journals.create_journal(seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id)
        created = [r for r in captured_logs() if r["message"] == "journal_created"]
        assert created[0]["journal_number"] == "JE-000001"
        assert created[0]["line_count"] == 2


class TestReverseJournal:
    """Reversal posts the mirror image and tags the original."""

    def test_reversal_mirrors_lines(self, journals, seeded, actor_id):
        original = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        reversal = journals.reverse_journal(
            seeded.organization_id, original.id, "entered twice", date(2024, 6, 2), actor_id
        )

        assert reversal.journal_number == "REV-JE-000001"
        assert reversal.reversal_of_id == original.id
        assert reversal.reversal_reason == "entered twice"
        assert original.status == JournalStatus.REVERSED
        assert reversal.status == JournalStatus.ACTIVE
        pairs = zip(
            sorted(original.entries, key=lambda e: e.line_number),
            sorted(reversal.entries, key=lambda e: e.line_number),
        )
        for before, after in pairs:
            assert after.account_id == before.account_id
            assert after.debit_amount == before.credit_amount
            assert after.credit_amount == before.debit_amount

    def test_trial_balance_unchanged_by_reversal_pair(self, journals, seeded, actor_id):
        opening = [
            JournalLineSpec.dr(seeded.account("1000"), Decimal("1000")),
            JournalLineSpec.cr(seeded.account("3900"), Decimal("1000")),
        ]
        journals.create_journal(seeded.organization_id, date(2024, 6, 1), opening, actor_id)
        before = {r.account_code: r.balance for r in journals.get_trial_balance(seeded.organization_id).rows}

        original = journals.create_journal(
            seeded.organization_id, date(2024, 6, 3), _sale_lines(seeded, "75.50"), actor_id
        )
        journals.reverse_journal(
            seeded.organization_id, original.id, "wrong customer", date(2024, 6, 4), actor_id
        )

        after = journals.get_trial_balance(seeded.organization_id)
        assert after.is_balanced
        balances = {r.account_code: r.balance for r in after.rows if r.balance != 0}
        assert balances == {code: bal for code, bal in before.items() if bal != 0}

    def test_reversal_allowed_in_closed_period(self, journals, seeded, actor_id, session, clock):
        original = journals.create_journal(
            seeded.organization_id, date(2024, 1, 20), _sale_lines(seeded), actor_id
        )
        PeriodService(session, clock).close_period(
            seeded.organization_id, seeded.periods[1], actor_id
        )
        reversal = journals.reverse_journal(
            seeded.organization_id, original.id, "late correction", date(2024, 1, 31), actor_id
        )
        assert reversal.journal_date == date(2024, 1, 31)

    def test_reversal_without_period_rejected(self, journals, seeded, actor_id):
        original = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        with pytest.raises(NoPeriodError):
            journals.reverse_journal(
                seeded.organization_id, original.id, "x", date(2031, 1, 1), actor_id
            )

    def test_second_reversal_rejected(self, journals, seeded, actor_id):
        original = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        journals.reverse_journal(seeded.organization_id, original.id, "x", date(2024, 6, 2), actor_id)
        with pytest.raises(JournalNotActiveError) as exc_info:
            journals.reverse_journal(
                seeded.organization_id, original.id, "again", date(2024, 6, 2), actor_id
            )
        assert exc_info.value.status == JournalStatus.REVERSED.value

    def test_void_status_tag(self, journals, seeded, actor_id):
        original = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        journals.reverse_journal(
            seeded.organization_id,
            original.id,
            "document voided",
            date(2024, 6, 2),
            actor_id,
            status=JournalStatus.VOIDED,
        )
        assert original.status == JournalStatus.VOIDED

    def test_journals_for_source_excludes_reversals(self, journals, seeded, actor_id):
        source_id = uuid4()
        original = journals.create_journal(
            seeded.organization_id,
            date(2024, 6, 1),
            _sale_lines(seeded),
            actor_id,
            source_type="invoice",
            source_id=source_id,
        )
        assert journals.journals_for_source(seeded.organization_id, "invoice", source_id) == [original]

        journals.reverse_journal(seeded.organization_id, original.id, "x", date(2024, 6, 2), actor_id)
        assert journals.journals_for_source(seeded.organization_id, "invoice", source_id) == []
        assert journals.journals_for_source(
            seeded.organization_id, "invoice", source_id, active_only=False
        ) == [original]


class TestJournalImmutability:
    """Posted journals and lines are append-only."""

    def test_entry_amount_cannot_change(self, journals, seeded, actor_id, session):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        entry = journal.entries[0]
        entry.debit_amount = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_journal_cannot_be_deleted(self, journals, seeded, actor_id, session):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        session.delete(journal)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_header_amount_cannot_change(self, journals, seeded, actor_id, session):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        journal.total_debit = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_reversed_cannot_return_to_active(self, journals, seeded, actor_id, session):
        journal = journals.create_journal(
            seeded.organization_id, date(2024, 6, 1), _sale_lines(seeded), actor_id
        )
        journals.reverse_journal(seeded.organization_id, journal.id, "x", date(2024, 6, 2), actor_id)
        reloaded = session.execute(select(Journal).where(Journal.id == journal.id)).scalar_one()
        reloaded.status = JournalStatus.ACTIVE.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2)


class TestMirrorProperty:
    """Property: a mirror swaps sides line by line and preserves balance."""

    @given(pairs=st.lists(st.tuples(amounts, st.booleans()), min_size=2, max_size=12))
    @settings(max_examples=100)
    def test_mirror_swaps_every_line(self, pairs):
        lines = [
            JournalLineSpec.dr(uuid4(), amount) if is_debit else JournalLineSpec.cr(uuid4(), amount)
            for amount, is_debit in pairs
        ]
        mirrored = mirror_lines(lines)

        assert len(mirrored) == len(lines)
        for original, flipped in zip(lines, mirrored):
            assert flipped.account_id == original.account_id
            assert (flipped.debit, flipped.credit) == (original.credit, original.debit)

        debits, credits = sum_sides(lines)
        m_debits, m_credits = sum_sides(mirrored)
        assert (m_debits, m_credits) == (credits, debits)
