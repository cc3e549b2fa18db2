"""
Document workflows end to end: invoices, bills, payments, opening
balances, transfers and voids, each through the TransactionCoordinator.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    DocumentAlreadyVoidedError,
    DocumentHasDependentsError,
    DocumentNotFoundError,
    IdempotencyKeyReuseError,
    InsufficientInventoryError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    ShortfallAlreadySettledError,
    UnsupportedDocumentTypeError,
    ValidationError,
)
from ledger_kernel.models.audit_log import AuditLogEntry
from ledger_kernel.models.documents import Bill, DocumentStatus, Invoice, Payment
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    InventoryShortfall,
    MovementDirection,
    MovementStatus,
)
from ledger_kernel.models.journal import Journal, JournalStatus
from ledger_kernel.models.reconciliation import CheckStatus
from ledger_kernel.selectors.inventory_selector import InventorySelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.period_service import PeriodService
from ledger_services import (
    BillLineInput,
    DocumentService,
    DocumentType,
    InvoiceLineInput,
    ReconciliationService,
)


@pytest.fixture
def documents(session_factory, clock):
    return DocumentService(session_factory, clock=clock)


def _balance(session_factory, seeded, code):
    with session_factory() as s:
        return LedgerSelector(s).account_balance(seeded.organization_id, seeded.account(code))


def _layer_remaining(session_factory, seeded):
    with session_factory() as s:
        return s.execute(
            select(InventoryLayer.quantity_remaining)
            .where(InventoryLayer.organization_id == seeded.organization_id)
            .order_by(InventoryLayer.layer_date, InventoryLayer.sequence)
        ).scalars().all()


def _stock_widgets(documents, seeded, actor_id, key="bill-1"):
    """Bill 30 @ 80 on June 1 and 40 @ 90 on June 2 into MAIN."""
    item, main = seeded.items["WIDGET"], seeded.warehouses["MAIN"]
    first = documents.post_bill(
        seeded.organization_id,
        seeded.vendor_id,
        date(2024, 6, 1),
        [BillLineInput(item, main, Decimal("30"), Decimal("80"))],
        idempotency_key=key,
        actor_id=actor_id,
    )
    second = documents.post_bill(
        seeded.organization_id,
        seeded.vendor_id,
        date(2024, 6, 2),
        [BillLineInput(item, main, Decimal("40"), Decimal("90"))],
        idempotency_key=f"{key}-b",
        actor_id=actor_id,
    )
    return first, second


def _sell_widgets(documents, seeded, actor_id, quantity="60", key="inv-1", invoice_date=date(2024, 6, 3)):
    return documents.post_invoice(
        seeded.organization_id,
        seeded.customer_id,
        invoice_date,
        [
            InvoiceLineInput(
                quantity=Decimal(quantity),
                unit_price=Decimal("150"),
                item_id=seeded.items["WIDGET"],
                warehouse_id=seeded.warehouses["MAIN"],
            ),
            InvoiceLineInput(
                quantity=Decimal("2"),
                unit_price=Decimal("500"),
                description="Setup",
                item_id=seeded.items["CONSULTING"],
                warehouse_id=seeded.warehouses["MAIN"],
            ),
        ],
        idempotency_key=key,
        actor_id=actor_id,
    )


def _service_invoice(documents, seeded, actor_id, invoice_date, key, amount="1000"):
    return documents.post_invoice(
        seeded.organization_id,
        seeded.customer_id,
        invoice_date,
        [InvoiceLineInput(quantity=Decimal("1"), unit_price=Decimal(amount), description="Advisory")],
        idempotency_key=key,
        actor_id=actor_id,
    )


class TestBill:
    """post_bill: layers plus Dr inventory / Cr AP."""

    def test_bill_creates_layers_and_journal(self, documents, seeded, actor_id, session_factory):
        first, _ = _stock_widgets(documents, seeded, actor_id)

        assert first.result["bill_number"] == "BILL-000001"
        assert first.result["total_amount"] == "2400"
        assert len(first.movement_ids) == 1
        assert _layer_remaining(session_factory, seeded) == [Decimal("30"), Decimal("40")]
        assert _balance(session_factory, seeded, "1300") == Decimal("6000")
        assert _balance(session_factory, seeded, "2000") == Decimal("-6000")

    def test_unknown_vendor_rolls_back(self, documents, seeded, actor_id, session_factory):
        with pytest.raises(ReferenceNotFoundError):
            documents.post_bill(
                seeded.organization_id,
                uuid4(),
                date(2024, 6, 1),
                [BillLineInput(seeded.items["WIDGET"], seeded.warehouses["MAIN"], Decimal("1"), Decimal("1"))],
                idempotency_key="bill-x",
                actor_id=actor_id,
            )
        with session_factory() as s:
            assert s.execute(select(func.count(Bill.id))).scalar_one() == 0

    def test_empty_bill_rejected(self, documents, seeded, actor_id):
        with pytest.raises(ValidationError):
            documents.post_bill(
                seeded.organization_id, seeded.vendor_id, date(2024, 6, 1), [], "bill-x", actor_id
            )


class TestInvoice:
    """post_invoice: revenue, FIFO issue and COGS."""

    def test_invoice_posts_revenue_and_cogs(self, documents, seeded, actor_id, session_factory):
        _stock_widgets(documents, seeded, actor_id)
        result = _sell_widgets(documents, seeded, actor_id)

        assert result.result["invoice_number"] == "INV-000001"
        assert result.result["total_amount"] == "10000"
        assert result.result["cost_of_goods_sold"] == "5100"
        # revenue journal plus one COGS journal for the stocked line
        assert len(result.journal_ids) == 2
        assert len(result.movement_ids) == 2

        assert _balance(session_factory, seeded, "1200") == Decimal("10000")
        assert _balance(session_factory, seeded, "4000") == Decimal("-10000")
        assert _balance(session_factory, seeded, "5000") == Decimal("5100")
        assert _balance(session_factory, seeded, "1300") == Decimal("900")
        assert _layer_remaining(session_factory, seeded) == [Decimal("0"), Decimal("10")]

    def test_replay_posts_once(self, documents, seeded, actor_id, session_factory):
        _stock_widgets(documents, seeded, actor_id)
        first = _sell_widgets(documents, seeded, actor_id, quantity="10")
        again = _sell_widgets(documents, seeded, actor_id, quantity="10")

        assert again.replayed is True
        assert again.result == first.result
        with session_factory() as s:
            assert s.execute(select(func.count(Invoice.id))).scalar_one() == 1
        assert _layer_remaining(session_factory, seeded) == [Decimal("20"), Decimal("40")]

    def test_same_key_different_invoice_rejected(self, documents, seeded, actor_id):
        _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1")
        with pytest.raises(IdempotencyKeyReuseError):
            _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1", amount="2000")

    def test_insufficient_stock_rolls_back_everything(self, documents, seeded, actor_id, session_factory):
        _stock_widgets(documents, seeded, actor_id)
        with pytest.raises(InsufficientInventoryError) as exc_info:
            _sell_widgets(documents, seeded, actor_id, quantity="100")
        assert exc_info.value.available == Decimal("70")

        with session_factory() as s:
            assert s.execute(select(func.count(Invoice.id))).scalar_one() == 0
        assert _balance(session_factory, seeded, "1200") == Decimal("0")
        assert _layer_remaining(session_factory, seeded) == [Decimal("30"), Decimal("40")]

    def test_invalid_line_rejected(self, documents, seeded, actor_id):
        with pytest.raises(InvalidQuantityError):
            documents.post_invoice(
                seeded.organization_id,
                seeded.customer_id,
                date(2024, 6, 3),
                [InvoiceLineInput(quantity=Decimal("0"), unit_price=Decimal("10"))],
                idempotency_key="inv-x",
                actor_id=actor_id,
            )

    def test_stocked_line_without_warehouse_rejected(self, documents, seeded, actor_id, session_factory):
        _stock_widgets(documents, seeded, actor_id)
        with pytest.raises(ValidationError, match="line 2"):
            documents.post_invoice(
                seeded.organization_id,
                seeded.customer_id,
                date(2024, 6, 3),
                [
                    InvoiceLineInput(quantity=Decimal("1"), unit_price=Decimal("500"), description="Setup"),
                    InvoiceLineInput(
                        quantity=Decimal("5"),
                        unit_price=Decimal("150"),
                        item_id=seeded.items["WIDGET"],
                    ),
                ],
                idempotency_key="inv-no-wh",
                actor_id=actor_id,
            )

        with session_factory() as s:
            assert s.execute(select(func.count(Invoice.id))).scalar_one() == 0
        assert _balance(session_factory, seeded, "1200") == Decimal("0")
        assert _layer_remaining(session_factory, seeded) == [Decimal("30"), Decimal("40")]

    def test_service_item_needs_no_warehouse(self, documents, seeded, actor_id, session_factory):
        result = documents.post_invoice(
            seeded.organization_id,
            seeded.customer_id,
            date(2024, 6, 3),
            [
                InvoiceLineInput(
                    quantity=Decimal("3"),
                    unit_price=Decimal("200"),
                    item_id=seeded.items["CONSULTING"],
                )
            ],
            idempotency_key="inv-consult",
            actor_id=actor_id,
        )
        assert result.result["total_amount"] == "600"
        assert result.movement_ids == ()

    def test_closed_period_rejected(self, documents, seeded, actor_id, clock, session_factory):
        with session_scope(session_factory) as s:
            PeriodService(s, clock).close_period(seeded.organization_id, seeded.periods[1], actor_id)
        with pytest.raises(ClosedPeriodError):
            _service_invoice(documents, seeded, actor_id, date(2024, 1, 20), "inv-jan")


class TestPayment:
    """record_payment against invoices and bills."""

    def test_payment_received(self, documents, seeded, actor_id, session_factory):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1", amount="10000")
        payment = documents.record_payment(
            seeded.organization_id,
            Decimal("4000"),
            date(2024, 6, 10),
            idempotency_key="pay-1",
            actor_id=actor_id,
            invoice_id=UUID(invoice.result["invoice_id"]),
        )
        assert payment.result["direction"] == "received"
        assert payment.result["open_balance"] == "6000"
        assert _balance(session_factory, seeded, "1000") == Decimal("4000")
        assert _balance(session_factory, seeded, "1200") == Decimal("6000")

    def test_payment_made(self, documents, seeded, actor_id, session_factory):
        first, _ = _stock_widgets(documents, seeded, actor_id)
        documents.record_payment(
            seeded.organization_id,
            Decimal("2400"),
            date(2024, 6, 10),
            idempotency_key="pay-1",
            actor_id=actor_id,
            bill_id=UUID(first.result["bill_id"]),
        )
        assert _balance(session_factory, seeded, "1000") == Decimal("-2400")
        assert _balance(session_factory, seeded, "2000") == Decimal("-3600")

    def test_overpayment_rejected(self, documents, seeded, actor_id):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1")
        documents.record_payment(
            seeded.organization_id, Decimal("600"), date(2024, 6, 10), "pay-1", actor_id,
            invoice_id=UUID(invoice.result["invoice_id"]),
        )
        with pytest.raises(InvalidQuantityError):
            documents.record_payment(
                seeded.organization_id, Decimal("500"), date(2024, 6, 11), "pay-2", actor_id,
                invoice_id=UUID(invoice.result["invoice_id"]),
            )

    @pytest.mark.parametrize("targets", ["none", "both"])
    def test_exactly_one_target(self, documents, seeded, actor_id, targets):
        ids = {"invoice_id": uuid4(), "bill_id": uuid4()} if targets == "both" else {}
        with pytest.raises(ValidationError):
            documents.record_payment(
                seeded.organization_id, Decimal("1"), date(2024, 6, 10), "pay-x", actor_id, **ids
            )

    def test_unknown_invoice(self, documents, seeded, actor_id):
        with pytest.raises(DocumentNotFoundError):
            documents.record_payment(
                seeded.organization_id, Decimal("1"), date(2024, 6, 10), "pay-x", actor_id,
                invoice_id=uuid4(),
            )


class TestInventoryDocuments:
    """Opening balances and warehouse transfers."""

    def test_opening_balance(self, documents, seeded, actor_id, session_factory):
        result = documents.create_opening_balance(
            seeded.organization_id,
            seeded.items["GADGET"],
            seeded.warehouses["EAST"],
            Decimal("100"),
            Decimal("12.50"),
            date(2024, 1, 1),
            idempotency_key="ob-1",
            actor_id=actor_id,
        )
        assert result.result["total_value"] == "1250"
        assert len(result.journal_ids) == 1
        assert _balance(session_factory, seeded, "1300") == Decimal("1250")
        assert _balance(session_factory, seeded, "3900") == Decimal("-1250")

    def test_transfer_carries_fifo_cost(self, documents, seeded, actor_id, session_factory):
        _stock_widgets(documents, seeded, actor_id)
        result = documents.transfer_inventory(
            seeded.organization_id,
            seeded.items["WIDGET"],
            seeded.warehouses["MAIN"],
            seeded.warehouses["EAST"],
            Decimal("50"),
            date(2024, 6, 5),
            idempotency_key="xfer-1",
            actor_id=actor_id,
        )
        # 30 @ 80 + 20 @ 90
        assert result.result["total_cost"] == "4200"
        assert result.journal_ids == ()
        # two transfer_out movements, two transfer_in layers
        assert len(result.movement_ids) == 4

        with session_factory() as s:
            by_warehouse = InventorySelector(s).value_by_warehouse(seeded.organization_id)
        assert by_warehouse["EAST"] == Decimal("4200")
        assert by_warehouse["MAIN"] == Decimal("1800")
        # inventory account untouched
        assert _balance(session_factory, seeded, "1300") == Decimal("6000")

    def test_transfer_to_same_warehouse_rejected(self, documents, seeded, actor_id):
        main = seeded.warehouses["MAIN"]
        with pytest.raises(ValidationError):
            documents.transfer_inventory(
                seeded.organization_id, seeded.items["WIDGET"], main, main,
                Decimal("1"), date(2024, 6, 5), "xfer-x", actor_id,
            )

    def test_transfer_beyond_stock_rejected(self, documents, seeded, actor_id):
        _stock_widgets(documents, seeded, actor_id)
        with pytest.raises(InsufficientInventoryError):
            documents.transfer_inventory(
                seeded.organization_id,
                seeded.items["WIDGET"],
                seeded.warehouses["MAIN"],
                seeded.warehouses["EAST"],
                Decimal("80"),
                date(2024, 6, 5),
                "xfer-x",
                actor_id,
            )

    def test_transfer_never_issues_on_credit(self, documents, seeded, actor_id, session_factory):
        # FLEX allows negative stock for sales, not for transfers
        _flex_opening(documents, seeded, actor_id)
        with pytest.raises(InsufficientInventoryError) as exc_info:
            documents.transfer_inventory(
                seeded.organization_id,
                seeded.items["WIDGET"],
                seeded.warehouses["FLEX"],
                seeded.warehouses["EAST"],
                Decimal("8"),
                date(2024, 6, 5),
                "xfer-flex",
                actor_id,
            )
        assert exc_info.value.available == Decimal("5")

        with session_factory() as s:
            assert s.execute(select(func.count(InventoryShortfall.id))).scalar_one() == 0
            assert s.execute(
                select(func.count(InventoryLayer.id)).where(
                    InventoryLayer.warehouse_id == seeded.warehouses["EAST"]
                )
            ).scalar_one() == 0
        assert _layer_remaining(session_factory, seeded) == [Decimal("5")]


def _flex_opening(documents, seeded, actor_id, quantity="5", unit_cost="10"):
    return documents.create_opening_balance(
        seeded.organization_id,
        seeded.items["WIDGET"],
        seeded.warehouses["FLEX"],
        Decimal(quantity),
        Decimal(unit_cost),
        date(2024, 1, 1),
        idempotency_key="ob-flex",
        actor_id=actor_id,
    )


def _flex_invoice(documents, seeded, actor_id, quantity, key, invoice_date=date(2024, 6, 3)):
    return documents.post_invoice(
        seeded.organization_id,
        seeded.customer_id,
        invoice_date,
        [
            InvoiceLineInput(
                quantity=Decimal(quantity),
                unit_price=Decimal("30"),
                item_id=seeded.items["WIDGET"],
                warehouse_id=seeded.warehouses["FLEX"],
            )
        ],
        idempotency_key=key,
        actor_id=actor_id,
    )


def _flex_bill(documents, seeded, actor_id, quantity, unit_cost, key, bill_date=date(2024, 6, 4)):
    return documents.post_bill(
        seeded.organization_id,
        seeded.vendor_id,
        bill_date,
        [BillLineInput(seeded.items["WIDGET"], seeded.warehouses["FLEX"], Decimal(quantity), Decimal(unit_cost))],
        idempotency_key=key,
        actor_id=actor_id,
    )


def _movement_trail(session_factory, seeded, warehouse):
    """Signed sum of every movement quantity for WIDGET in ``warehouse``."""
    with session_factory() as s:
        movements = s.execute(
            select(InventoryMovement.direction, InventoryMovement.quantity).where(
                InventoryMovement.organization_id == seeded.organization_id,
                InventoryMovement.item_id == seeded.items["WIDGET"],
                InventoryMovement.warehouse_id == seeded.warehouses[warehouse],
            )
        ).all()
    return sum(
        (quantity if direction == MovementDirection.IN.value else -quantity for direction, quantity in movements),
        Decimal("0"),
    )


def _flex_level(session_factory, seeded):
    """(quantity, value) of WIDGET in FLEX; no row at all reads as zero."""
    with session_factory() as s:
        levels = InventorySelector(s).levels(
            seeded.organization_id,
            item_id=seeded.items["WIDGET"],
            warehouse_id=seeded.warehouses["FLEX"],
        )
    zero = Decimal("0")
    return (
        sum((level.quantity for level in levels), zero),
        sum((level.total_value for level in levels), zero),
    )


def _inventory_check(session_factory, clock, seeded):
    with session_factory() as s:
        outcome = ReconciliationService(s, clock=clock).check_inventory(seeded.organization_id)
        s.rollback()
    return outcome


class TestStockIssuedOnCredit:
    """Sales beyond stock in a negative-inventory warehouse, then the receipt that covers them."""

    def test_levels_follow_movement_trail(self, documents, seeded, actor_id, session_factory):
        _flex_invoice(documents, seeded, actor_id, "10", "inv-flex")
        assert _flex_level(session_factory, seeded)[0] == Decimal("-10")

        _flex_bill(documents, seeded, actor_id, "10", "5", "bill-flex")
        quantity, _ = _flex_level(session_factory, seeded)
        assert quantity == Decimal("0")
        assert quantity == _movement_trail(session_factory, seeded, "FLEX")

        # the receipt went to the earlier sale, so nothing is left to issue
        second = _flex_invoice(documents, seeded, actor_id, "4", "inv-flex-2")
        assert second.result["cost_of_goods_sold"] == "0"
        assert _flex_level(session_factory, seeded)[0] == Decimal("-4")
        assert _flex_level(session_factory, seeded)[0] == _movement_trail(session_factory, seeded, "FLEX")

    def test_inventory_matches_ledger_while_short(self, documents, seeded, actor_id, session_factory, clock):
        _flex_opening(documents, seeded, actor_id)
        result = _flex_invoice(documents, seeded, actor_id, "10", "inv-flex")
        # 5 @ 10 from the layer, 5 @ 10 provisional
        assert result.result["cost_of_goods_sold"] == "100"

        outcome = _inventory_check(session_factory, clock, seeded)
        assert outcome.status == CheckStatus.MATCHED
        assert outcome.figures["layer_value"] == Decimal("-50")
        assert outcome.figures["gl_balance"] == Decimal("-50")

    def test_inventory_matches_ledger_after_settlement(self, documents, seeded, actor_id, session_factory, clock):
        _flex_opening(documents, seeded, actor_id)
        _flex_invoice(documents, seeded, actor_id, "10", "inv-flex")
        bill = _flex_bill(documents, seeded, actor_id, "10", "12", "bill-flex")

        # bill journal plus the 5 x (12 - 10) COGS true-up
        assert len(bill.journal_ids) == 2
        assert _balance(session_factory, seeded, "5000") == Decimal("110")
        assert _balance(session_factory, seeded, "1300") == Decimal("60")

        quantity, value = _flex_level(session_factory, seeded)
        assert quantity == Decimal("5")
        assert value == Decimal("60")
        assert quantity == _movement_trail(session_factory, seeded, "FLEX")

        outcome = _inventory_check(session_factory, clock, seeded)
        assert outcome.status == CheckStatus.MATCHED
        assert outcome.figures["difference"] == Decimal("0")

    def test_void_of_covered_sale_rejected(self, documents, seeded, actor_id):
        invoice = _flex_invoice(documents, seeded, actor_id, "10", "inv-flex")
        _flex_bill(documents, seeded, actor_id, "10", "5", "bill-flex")
        with pytest.raises(ShortfallAlreadySettledError):
            documents.void_document(
                seeded.organization_id,
                DocumentType.INVOICE,
                UUID(invoice.result["invoice_id"]),
                "returned",
                date(2024, 6, 10),
                "void-flex",
                actor_id,
            )


class TestAccountOpeningBalance:
    """GL opening balances against opening-balance equity."""

    def test_debit_balance(self, documents, seeded, actor_id, session_factory):
        result = documents.create_account_opening_balance(
            seeded.organization_id,
            seeded.account("1000"),
            Decimal("5000"),
            date(2024, 1, 1),
            idempotency_key="aob-cash",
            actor_id=actor_id,
        )
        assert result.result["amount"] == "5000"
        assert len(result.journal_ids) == 1
        assert _balance(session_factory, seeded, "1000") == Decimal("5000")
        assert _balance(session_factory, seeded, "3900") == Decimal("-5000")

    def test_credit_balance(self, documents, seeded, actor_id, session_factory):
        documents.create_account_opening_balance(
            seeded.organization_id,
            seeded.account("2000"),
            Decimal("-1200"),
            date(2024, 1, 1),
            idempotency_key="aob-ap",
            actor_id=actor_id,
        )
        assert _balance(session_factory, seeded, "2000") == Decimal("-1200")
        assert _balance(session_factory, seeded, "3900") == Decimal("1200")

    def test_replay_posts_once(self, documents, seeded, actor_id, session_factory):
        args = (seeded.organization_id, seeded.account("1000"), Decimal("5000"), date(2024, 1, 1))
        first = documents.create_account_opening_balance(*args, idempotency_key="aob-cash", actor_id=actor_id)
        again = documents.create_account_opening_balance(*args, idempotency_key="aob-cash", actor_id=actor_id)

        assert again.replayed is True
        assert again.journal_ids == first.journal_ids
        assert _balance(session_factory, seeded, "1000") == Decimal("5000")

    def test_equity_account_cannot_open_against_itself(self, documents, seeded, actor_id):
        with pytest.raises(ValidationError):
            documents.create_account_opening_balance(
                seeded.organization_id,
                seeded.account("3900"),
                Decimal("100"),
                date(2024, 1, 1),
                idempotency_key="aob-obe",
                actor_id=actor_id,
            )

    @pytest.mark.parametrize("amount", [Decimal("0"), None])
    def test_zero_amount_rejected(self, documents, seeded, actor_id, amount):
        with pytest.raises(InvalidQuantityError):
            documents.create_account_opening_balance(
                seeded.organization_id,
                seeded.account("1000"),
                amount,
                date(2024, 1, 1),
                idempotency_key="aob-zero",
                actor_id=actor_id,
            )

    def test_integrity_covers_account_and_stock_openings(self, documents, seeded, actor_id):
        documents.create_account_opening_balance(
            seeded.organization_id,
            seeded.account("1000"),
            Decimal("5000"),
            date(2024, 1, 1),
            idempotency_key="aob-cash",
            actor_id=actor_id,
        )
        _flex_opening(documents, seeded, actor_id)

        integrity = documents.validate_opening_balance_integrity(seeded.organization_id)
        assert integrity.is_balanced
        assert len(integrity.journals) == 2
        assert integrity.to_dict()["imbalanced_count"] == 0
        assert integrity.total_imbalance == Decimal("0")

    def test_integrity_with_no_openings(self, documents, seeded):
        integrity = documents.validate_opening_balance_integrity(seeded.organization_id)
        assert integrity.is_balanced
        assert integrity.journals == ()


class TestVoid:
    """void_document reverses everything a document produced."""

    def test_void_invoice_restores_books_and_stock(self, documents, seeded, actor_id, session_factory):
        _stock_widgets(documents, seeded, actor_id)
        invoice = _sell_widgets(documents, seeded, actor_id)
        invoice_id = UUID(invoice.result["invoice_id"])

        voided = documents.void_document(
            seeded.organization_id,
            DocumentType.INVOICE,
            invoice_id,
            reason="Customer cancelled",
            void_date=date(2024, 6, 20),
            idempotency_key="void-1",
            actor_id=actor_id,
        )
        assert voided.result["status"] == "voided"
        assert len(voided.result["reversal_journal_ids"]) == 2

        for code in ("1200", "4000", "5000"):
            assert _balance(session_factory, seeded, code) == Decimal("0")
        assert _balance(session_factory, seeded, "1300") == Decimal("6000")
        assert _layer_remaining(session_factory, seeded) == [Decimal("30"), Decimal("40")]

        with session_factory() as s:
            document = s.get(Invoice, UUID(invoice.result["invoice_id"]))
            assert document.status == DocumentStatus.VOIDED.value
            assert document.void_reason == "Customer cancelled"
            assert document.voided_at is not None
            originals = s.execute(
                select(Journal.status).where(Journal.id.in_(invoice.journal_ids))
            ).scalars().all()
            assert set(originals) == {JournalStatus.VOIDED.value}
            movement_statuses = s.execute(
                select(InventoryMovement.status).where(InventoryMovement.id.in_(invoice.movement_ids))
            ).scalars().all()
            assert set(movement_statuses) == {MovementStatus.REVERSED.value}

    def test_void_unconsumed_bill(self, documents, seeded, actor_id, session_factory):
        first, _ = _stock_widgets(documents, seeded, actor_id)
        documents.void_document(
            seeded.organization_id, "bill", UUID(first.result["bill_id"]), "Duplicate",
            date(2024, 6, 20), "void-1", actor_id,
        )
        assert _layer_remaining(session_factory, seeded) == [Decimal("0"), Decimal("40")]
        assert _balance(session_factory, seeded, "1300") == Decimal("3600")
        assert _balance(session_factory, seeded, "2000") == Decimal("-3600")

    def test_void_consumed_bill_rejected(self, documents, seeded, actor_id):
        first, _ = _stock_widgets(documents, seeded, actor_id)
        _sell_widgets(documents, seeded, actor_id, quantity="5")
        with pytest.raises(DocumentHasDependentsError) as exc_info:
            documents.void_document(
                seeded.organization_id, "bill", UUID(first.result["bill_id"]), "Duplicate",
                date(2024, 6, 20), "void-1", actor_id,
            )
        assert exc_info.value.dependent_type == "consumed_layer"

    def test_void_paid_invoice_rejected_until_payment_voided(
        self, documents, seeded, actor_id, session_factory
    ):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1")
        invoice_id = UUID(invoice.result["invoice_id"])
        payment = documents.record_payment(
            seeded.organization_id, Decimal("300"), date(2024, 6, 10), "pay-1", actor_id,
            invoice_id=invoice_id,
        )

        with pytest.raises(DocumentHasDependentsError) as exc_info:
            documents.void_document(
                seeded.organization_id, "invoice", invoice_id, "Error", date(2024, 6, 20), "void-1", actor_id
            )
        assert exc_info.value.dependent_type == "payment"
        assert exc_info.value.dependent_count == 1

        documents.void_document(
            seeded.organization_id, "payment", UUID(payment.result["payment_id"]), "Bounced",
            date(2024, 6, 20), "void-2", actor_id,
        )
        documents.void_document(
            seeded.organization_id, "invoice", invoice_id, "Error", date(2024, 6, 20), "void-3", actor_id
        )
        for code in ("1000", "1200", "4000"):
            assert _balance(session_factory, seeded, code) == Decimal("0")
        with session_factory() as s:
            assert s.get(Payment, UUID(payment.result["payment_id"])).status == DocumentStatus.VOIDED.value

    def test_void_twice_rejected(self, documents, seeded, actor_id):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1")
        args = (seeded.organization_id, "invoice", UUID(invoice.result["invoice_id"]), "Error", date(2024, 6, 20))
        documents.void_document(*args, "void-1", actor_id)
        with pytest.raises(DocumentAlreadyVoidedError):
            documents.void_document(*args, "void-2", actor_id)

    def test_void_replay(self, documents, seeded, actor_id):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1")
        args = (seeded.organization_id, "invoice", UUID(invoice.result["invoice_id"]), "Error", date(2024, 6, 20))
        first = documents.void_document(*args, "void-1", actor_id)
        again = documents.void_document(*args, "void-1", actor_id)
        assert again.replayed is True
        assert again.result == first.result

    def test_void_unknown_document(self, documents, seeded, actor_id):
        with pytest.raises(DocumentNotFoundError):
            documents.void_document(
                seeded.organization_id, "invoice", uuid4(), "Error", date(2024, 6, 20), "void-1", actor_id
            )

    def test_unsupported_document_type(self, documents, seeded, actor_id):
        with pytest.raises(UnsupportedDocumentTypeError) as exc_info:
            documents.void_document(
                seeded.organization_id, "credit_memo", uuid4(), "Error", date(2024, 6, 20), "void-1", actor_id
            )
        assert exc_info.value.doc_type == "credit_memo"

    def test_void_lands_in_closed_period(self, documents, seeded, actor_id, clock, session_factory):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 1, 10), "inv-jan")
        with session_scope(session_factory) as s:
            PeriodService(s, clock).close_period(seeded.organization_id, seeded.periods[1], actor_id)

        documents.void_document(
            seeded.organization_id, "invoice", UUID(invoice.result["invoice_id"]), "Late correction",
            date(2024, 1, 31), "void-1", actor_id,
        )
        assert _balance(session_factory, seeded, "1200") == Decimal("0")

    def test_void_audited_as_void(self, documents, seeded, actor_id, session_factory):
        invoice = _service_invoice(documents, seeded, actor_id, date(2024, 6, 3), "inv-1")
        documents.void_document(
            seeded.organization_id, "invoice", UUID(invoice.result["invoice_id"]), "Error",
            date(2024, 6, 20), "void-1", actor_id,
        )
        with session_factory() as s:
            entry = s.execute(
                select(AuditLogEntry).where(AuditLogEntry.resource_type == "invoice.void")
            ).scalar_one()
        assert entry.action == "void"
        assert entry.user_id == actor_id
