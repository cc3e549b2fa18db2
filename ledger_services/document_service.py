"""
ledger_services.document_service -- accounting document workflows.

Responsibility:
    Posts invoices, bills, payments, opening inventory and GL account
    balances and warehouse transfers, and voids documents.  Checks that the
    opening-balance journals balance.  Each posting is one unit of work run
    through the TransactionCoordinator, so it is idempotent per caller key
    and atomic.

Architecture position:
    Services -- stateful orchestration over the kernel.  Composes
    JournalService and InventoryService inside the coordinator's
    transaction; never opens transactions of its own.

Postings:
    - Invoice:  Dr AR / Cr revenue; per stocked line FIFO outbound and
                Dr COGS / Cr inventory.
    - Bill:     Dr inventory / Cr AP; one inbound layer per line, which first
                settles open shortfalls (plus the COGS true-up journal).
    - Payment:  received  Dr cash / Cr AR;  made  Dr AP / Cr cash.
    - Opening:  Dr account / Cr opening-balance equity (reversed for a
                credit balance).
    - Transfer: FIFO transfer_out, one transfer_in layer per consumed layer
                at its unit cost; no journal (same inventory account).
                Never issues on credit: a short source fails even when it
                allows negative inventory.

Invariants enforced:
    - Voiding never deletes: every active journal of the document is
      reversed and tagged voided, every active movement is reversed.
    - An invoice with posted payments, or a bill with posted payments or
      consumed stock, cannot be voided.
    - A payment never exceeds the open balance of its document.
    - An invoice line for a stocked item must name a warehouse.

Failure modes:
    - DocumentNotFoundError / DocumentAlreadyVoidedError
    - DocumentHasDependentsError
    - UnsupportedDocumentTypeError
    - Any kernel error raised by the unit of work, unchanged.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AuditData,
    InventoryChange,
    JournalLineSpec,
    TransactionResult,
    UnitOfWorkResult,
)
from ledger_kernel.domain.settings import KernelSettings
from ledger_kernel.exceptions import (
    DocumentAlreadyVoidedError,
    DocumentHasDependentsError,
    DocumentNotFoundError,
    InsufficientInventoryError,
    InvalidQuantityError,
    ReferenceNotFoundError,
    UnsupportedDocumentTypeError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.documents import (
    Bill,
    BillLine,
    DocumentStatus,
    Invoice,
    InvoiceLine,
    Payment,
    PaymentDirection,
)
from ledger_kernel.models.inventory import (
    InventoryLayer,
    InventoryMovement,
    LayerSourceType,
    MovementStatus,
    MovementType,
)
from ledger_kernel.models.journal import JournalStatus
from ledger_kernel.models.master_data import Customer, Item, Vendor
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import JournalTotals, LedgerSelector
from ledger_kernel.services.inventory_service import InventoryService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.transaction_coordinator import TransactionCoordinator

logger = get_logger("services.documents")

ZERO = Decimal("0")


class DocumentType(str, Enum):
    INVOICE = "invoice"
    BILL = "bill"
    PAYMENT = "payment"


@dataclass(frozen=True)
class InvoiceLineInput:
    quantity: Decimal
    unit_price: Decimal
    description: str | None = None
    item_id: UUID | None = None
    warehouse_id: UUID | None = None


@dataclass(frozen=True)
class BillLineInput:
    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    unit_cost: Decimal


@dataclass(frozen=True)
class OpeningBalanceIntegrity:
    """Balance check over every opening-balance journal of an organization."""

    journals: tuple[JournalTotals, ...]
    epsilon: Decimal

    @property
    def imbalanced(self) -> tuple[JournalTotals, ...]:
        return tuple(j for j in self.journals if j.difference >= self.epsilon)

    @property
    def total_imbalance(self) -> Decimal:
        return sum((j.difference for j in self.journals), ZERO)

    @property
    def is_balanced(self) -> bool:
        return not self.imbalanced

    def to_dict(self) -> dict[str, Any]:
        return {
            "journal_count": len(self.journals),
            "balanced_count": len(self.journals) - len(self.imbalanced),
            "imbalanced_count": len(self.imbalanced),
            "total_imbalance": self.total_imbalance,
            "is_balanced": self.is_balanced,
            "imbalanced_journals": [j.journal_number for j in self.imbalanced],
        }


class DocumentService:
    """
    Entry points for the document workflows.

    Contract:
        Every public method takes the caller's idempotency key and returns
        the coordinator's TransactionResult; ``result`` holds the
        document-level fields (ids, numbers, amounts) as JSON values.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings: KernelSettings = config.kernel if config else KernelSettings()
        self._clock = clock or SystemClock()
        self._coordinator = TransactionCoordinator(
            session_factory, self._settings, self._clock
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _services(self, session: Session) -> tuple[JournalService, InventoryService]:
        return (
            JournalService(session, self._settings, self._clock),
            InventoryService(session, self._settings, self._clock),
        )

    def _account(self, session: Session, organization_id: UUID, role: str) -> UUID:
        return AccountSelector(session).resolve_role(
            organization_id, role, self._settings.account_codes
        )

    @staticmethod
    def _require(session: Session, model, organization_id: UUID, entity_id: UUID):
        row = session.execute(
            select(model).where(
                model.organization_id == organization_id,
                model.id == entity_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise ReferenceNotFoundError(model.__name__, str(entity_id))
        return row

    @staticmethod
    def _document_number(session: Session, prefix: str, name: str, organization_id: UUID) -> str:
        value = SequenceService(session).next_value(
            SequenceService.scoped(name, organization_id)
        )
        return f"{prefix}-{value:06d}"

    # ------------------------------------------------------------------
    # Invoice
    # ------------------------------------------------------------------

    def post_invoice(
        self,
        organization_id: UUID,
        customer_id: UUID,
        invoice_date: date,
        lines: list[InvoiceLineInput],
        idempotency_key: str,
        actor_id: UUID,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """Record a sale: revenue journal, FIFO issue and COGS per stocked line."""
        if not lines:
            raise ValidationError("an invoice needs at least one line")

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            journals, inventory = self._services(session)
            self._require(session, Customer, organization_id, customer_id)

            invoice = Invoice(
                organization_id=organization_id,
                invoice_number=self._document_number(
                    session, "INV", SequenceService.INVOICE, organization_id
                ),
                customer_id=customer_id,
                invoice_date=invoice_date,
                total_amount=ZERO,
                status=DocumentStatus.POSTED.value,
                created_by_id=actor_id,
            )
            total = ZERO
            for number, line in enumerate(lines, start=1):
                if line.quantity <= ZERO:
                    raise InvalidQuantityError("quantity", line.quantity)
                if line.unit_price < ZERO:
                    raise InvalidQuantityError("unit_price", line.unit_price)
                line_total = line.quantity * line.unit_price
                total += line_total
                invoice.lines.append(
                    InvoiceLine(
                        organization_id=organization_id,
                        line_number=number,
                        item_id=line.item_id,
                        warehouse_id=line.warehouse_id,
                        description=line.description,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        line_total=line_total,
                        created_by_id=actor_id,
                    )
                )
            invoice.total_amount = total
            session.add(invoice)
            session.flush()

            revenue = journals.create_journal(
                organization_id=organization_id,
                journal_date=invoice_date,
                lines=[
                    JournalLineSpec.dr(
                        self._account(session, organization_id, "accounts_receivable"), total
                    ),
                    JournalLineSpec.cr(
                        self._account(session, organization_id, "revenue"), total
                    ),
                ],
                actor_id=actor_id,
                description=f"Invoice {invoice.invoice_number}",
                source_type=DocumentType.INVOICE.value,
                source_id=invoice.id,
            )
            invoice.journal_id = revenue.id

            journal_ids = [revenue.id]
            movement_ids: list[UUID] = []
            changes: list[InventoryChange] = []
            cogs_total = ZERO
            for number, line in enumerate(lines, start=1):
                if line.item_id is None:
                    continue
                item = self._require(session, Item, organization_id, line.item_id)
                if not item.track_inventory:
                    continue
                if line.warehouse_id is None:
                    raise ValidationError(
                        f"line {number}: stocked item {item.sku} needs a warehouse"
                    )
                outbound = inventory.process_outbound(
                    organization_id=organization_id,
                    item_id=line.item_id,
                    warehouse_id=line.warehouse_id,
                    quantity=line.quantity,
                    source_type=DocumentType.INVOICE.value,
                    source_id=invoice.id,
                    posting_date=invoice_date,
                    actor_id=actor_id,
                    movement_type=MovementType.SALE,
                )
                movement_ids.extend(outbound.movement_ids)
                changes.append(InventoryChange(line.item_id, line.warehouse_id))
                cogs = inventory.create_cogs_journal(
                    organization_id=organization_id,
                    item_id=line.item_id,
                    total_cost=outbound.total_cost,
                    source_id=invoice.id,
                    posting_date=invoice_date,
                    actor_id=actor_id,
                    source_type=DocumentType.INVOICE.value,
                )
                if cogs is not None:
                    journal_ids.append(cogs.id)
                cogs_total += outbound.total_cost

            logger.info(
                "invoice_posted",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "total_amount": str(total),
                    "cogs": str(cogs_total),
                },
            )
            return UnitOfWorkResult(
                journal_ids=tuple(journal_ids),
                inventory_changes=tuple(changes),
                movement_ids=tuple(movement_ids),
                result={
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.invoice_number,
                    "total_amount": total,
                    "cost_of_goods_sold": cogs_total,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="invoice.post",
            posting_date=invoice_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={
                "customer_id": customer_id,
                "invoice_date": invoice_date,
                "lines": [asdict(line) for line in lines],
            },
        )

    # ------------------------------------------------------------------
    # Bill
    # ------------------------------------------------------------------

    def post_bill(
        self,
        organization_id: UUID,
        vendor_id: UUID,
        bill_date: date,
        lines: list[BillLineInput],
        idempotency_key: str,
        actor_id: UUID,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """Record a purchase: one layer per line, Dr inventory / Cr AP."""
        if not lines:
            raise ValidationError("a bill needs at least one line")

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            journals, inventory = self._services(session)
            self._require(session, Vendor, organization_id, vendor_id)

            bill = Bill(
                organization_id=organization_id,
                bill_number=self._document_number(
                    session, "BILL", SequenceService.BILL, organization_id
                ),
                vendor_id=vendor_id,
                bill_date=bill_date,
                total_amount=ZERO,
                status=DocumentStatus.POSTED.value,
                created_by_id=actor_id,
            )
            session.add(bill)
            session.flush()

            total = ZERO
            settlement_ids: list[UUID] = []
            movement_ids: list[UUID] = []
            changes: list[InventoryChange] = []
            for number, line in enumerate(lines, start=1):
                inbound = inventory.process_inbound(
                    organization_id=organization_id,
                    item_id=line.item_id,
                    warehouse_id=line.warehouse_id,
                    quantity=line.quantity,
                    unit_cost=line.unit_cost,
                    source_type=LayerSourceType.PURCHASE,
                    source_id=bill.id,
                    layer_date=bill_date,
                    actor_id=actor_id,
                )
                bill.lines.append(
                    BillLine(
                        organization_id=organization_id,
                        line_number=number,
                        item_id=line.item_id,
                        warehouse_id=line.warehouse_id,
                        quantity=line.quantity,
                        unit_cost=line.unit_cost,
                        line_total=inbound.total_value,
                        created_by_id=actor_id,
                    )
                )
                total += inbound.total_value
                settlement_ids.extend(inbound.journal_ids)
                movement_ids.append(inbound.movement_id)
                changes.append(InventoryChange(line.item_id, line.warehouse_id))
            bill.total_amount = total

            journal = journals.create_journal(
                organization_id=organization_id,
                journal_date=bill_date,
                lines=[
                    JournalLineSpec.dr(self._account(session, organization_id, "inventory"), total),
                    JournalLineSpec.cr(
                        self._account(session, organization_id, "accounts_payable"), total
                    ),
                ],
                actor_id=actor_id,
                description=f"Bill {bill.bill_number}",
                source_type=DocumentType.BILL.value,
                source_id=bill.id,
            )
            bill.journal_id = journal.id

            logger.info(
                "bill_posted",
                extra={
                    "bill_id": str(bill.id),
                    "bill_number": bill.bill_number,
                    "total_amount": str(total),
                },
            )
            return UnitOfWorkResult(
                journal_ids=(journal.id, *settlement_ids),
                inventory_changes=tuple(changes),
                movement_ids=tuple(movement_ids),
                result={
                    "bill_id": bill.id,
                    "bill_number": bill.bill_number,
                    "total_amount": total,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="bill.post",
            posting_date=bill_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={
                "vendor_id": vendor_id,
                "bill_date": bill_date,
                "lines": [asdict(line) for line in lines],
            },
        )

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def record_payment(
        self,
        organization_id: UUID,
        amount: Decimal,
        payment_date: date,
        idempotency_key: str,
        actor_id: UUID,
        invoice_id: UUID | None = None,
        bill_id: UUID | None = None,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """Cash against one invoice (received) or one bill (made)."""
        if (invoice_id is None) == (bill_id is None):
            raise ValidationError("a payment applies to exactly one invoice or bill")
        if amount is None or amount <= ZERO:
            raise InvalidQuantityError("amount", amount)

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            journals, _ = self._services(session)
            if invoice_id is not None:
                doc_type, model, doc_id = DocumentType.INVOICE, Invoice, invoice_id
                direction = PaymentDirection.RECEIVED
            else:
                doc_type, model, doc_id = DocumentType.BILL, Bill, bill_id
                direction = PaymentDirection.MADE

            document = self._load_document(session, organization_id, doc_type, model, doc_id)
            paid = self._posted_payments_total(session, organization_id, doc_type, doc_id)
            if paid + amount > document.total_amount:
                raise InvalidQuantityError("amount", amount)

            cash = self._account(session, organization_id, "cash")
            if direction == PaymentDirection.RECEIVED:
                entry = [
                    JournalLineSpec.dr(cash, amount),
                    JournalLineSpec.cr(
                        self._account(session, organization_id, "accounts_receivable"), amount
                    ),
                ]
            else:
                entry = [
                    JournalLineSpec.dr(
                        self._account(session, organization_id, "accounts_payable"), amount
                    ),
                    JournalLineSpec.cr(cash, amount),
                ]

            payment = Payment(
                organization_id=organization_id,
                direction=direction.value,
                invoice_id=invoice_id,
                bill_id=bill_id,
                amount=amount,
                payment_date=payment_date,
                status=DocumentStatus.POSTED.value,
                created_by_id=actor_id,
            )
            session.add(payment)
            session.flush()

            journal = journals.create_journal(
                organization_id=organization_id,
                journal_date=payment_date,
                lines=entry,
                actor_id=actor_id,
                description=f"Payment {direction.value} for {doc_type.value} {doc_id}",
                source_type=DocumentType.PAYMENT.value,
                source_id=payment.id,
            )
            payment.journal_id = journal.id

            return UnitOfWorkResult(
                journal_ids=(journal.id,),
                result={
                    "payment_id": payment.id,
                    "direction": direction.value,
                    "amount": amount,
                    "open_balance": document.total_amount - paid - amount,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="payment.record",
            posting_date=payment_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={
                "amount": amount,
                "payment_date": payment_date,
                "invoice_id": invoice_id,
                "bill_id": bill_id,
            },
        )

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def create_opening_balance(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        as_of_date: date,
        idempotency_key: str,
        actor_id: UUID,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        def unit_of_work(session: Session) -> UnitOfWorkResult:
            _, inventory = self._services(session)
            opening = inventory.create_opening_balance(
                organization_id=organization_id,
                item_id=item_id,
                warehouse_id=warehouse_id,
                quantity=quantity,
                unit_cost=unit_cost,
                as_of_date=as_of_date,
                actor_id=actor_id,
            )
            return UnitOfWorkResult(
                journal_ids=tuple(
                    j for j in (opening.journal_id, opening.settlement_journal_id) if j
                ),
                inventory_changes=(InventoryChange(item_id, warehouse_id),),
                movement_ids=(opening.movement_id,),
                result={
                    "opening_balance_id": opening.opening_balance_id,
                    "layer_id": opening.layer_id,
                    "total_value": opening.total_value,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="inventory.opening_balance",
            posting_date=as_of_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={
                "item_id": item_id,
                "warehouse_id": warehouse_id,
                "quantity": quantity,
                "unit_cost": unit_cost,
                "as_of_date": as_of_date,
            },
        )

    # ------------------------------------------------------------------
    # Account opening balances
    # ------------------------------------------------------------------

    def create_account_opening_balance(
        self,
        organization_id: UUID,
        account_id: UUID,
        amount: Decimal,
        as_of_date: date,
        idempotency_key: str,
        actor_id: UUID,
        description: str | None = None,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """
        Opening balance of one GL account against opening-balance equity.

        A positive ``amount`` is a debit balance (Dr account / Cr equity), a
        negative one a credit balance.  Stock accounts take their opening
        value through ``create_opening_balance`` so layers exist behind it.
        """
        if amount is None or amount == ZERO:
            raise InvalidQuantityError("amount", amount)

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            journals, _ = self._services(session)
            equity = self._account(session, organization_id, "opening_balance_equity")
            if account_id == equity:
                raise ValidationError("opening balance equity cannot open against itself")

            text = description or "Opening balance"
            if amount > ZERO:
                lines = [
                    JournalLineSpec.dr(account_id, amount, text),
                    JournalLineSpec.cr(equity, amount, text),
                ]
            else:
                lines = [
                    JournalLineSpec.dr(equity, -amount, text),
                    JournalLineSpec.cr(account_id, -amount, text),
                ]
            journal = journals.create_journal(
                organization_id=organization_id,
                journal_date=as_of_date,
                lines=lines,
                actor_id=actor_id,
                description=text,
                source_type="account_opening_balance",
                source_id=account_id,
            )
            logger.info(
                "account_opening_balance_created",
                extra={"account_id": str(account_id), "amount": str(amount)},
            )
            return UnitOfWorkResult(
                journal_ids=(journal.id,),
                result={
                    "journal_id": journal.id,
                    "account_id": account_id,
                    "amount": amount,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="account.opening_balance",
            posting_date=as_of_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={
                "account_id": account_id,
                "amount": amount,
                "as_of_date": as_of_date,
            },
        )

    def validate_opening_balance_integrity(
        self, organization_id: UUID
    ) -> OpeningBalanceIntegrity:
        """Check that every account and inventory opening journal balances."""
        with self._session_factory() as session:
            totals = LedgerSelector(session).journal_totals_for_sources(
                organization_id, ("account_opening_balance", "opening_balance")
            )
        integrity = OpeningBalanceIntegrity(
            journals=tuple(totals), epsilon=self._settings.balance_epsilon
        )
        if not integrity.is_balanced:
            logger.warning(
                "opening_balance_imbalance",
                extra={
                    "imbalanced_count": len(integrity.imbalanced),
                    "total_imbalance": str(integrity.total_imbalance),
                },
            )
        return integrity

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    def transfer_inventory(
        self,
        organization_id: UUID,
        item_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: Decimal,
        transfer_date: date,
        idempotency_key: str,
        actor_id: UUID,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """Move stock between warehouses, carrying FIFO cost with it."""
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("source and destination warehouse must differ")

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            _, inventory = self._services(session)
            transfer_id = uuid4()
            outbound = inventory.process_outbound(
                organization_id=organization_id,
                item_id=item_id,
                warehouse_id=from_warehouse_id,
                quantity=quantity,
                source_type="transfer",
                source_id=transfer_id,
                posting_date=transfer_date,
                actor_id=actor_id,
                movement_type=MovementType.TRANSFER_OUT,
            )
            if outbound.shortfall_quantity > ZERO:
                # a transfer only carries stock the source actually holds
                raise InsufficientInventoryError(
                    quantity - outbound.shortfall_quantity,
                    quantity,
                    str(item_id),
                    str(from_warehouse_id),
                )
            movement_ids = list(outbound.movement_ids)
            settlement_ids: list[UUID] = []
            for consumed in outbound.consumed_layers:
                inbound = inventory.process_inbound(
                    organization_id=organization_id,
                    item_id=item_id,
                    warehouse_id=to_warehouse_id,
                    quantity=consumed.quantity,
                    unit_cost=consumed.unit_cost,
                    source_type=LayerSourceType.TRANSFER_IN,
                    source_id=transfer_id,
                    layer_date=transfer_date,
                    actor_id=actor_id,
                )
                movement_ids.append(inbound.movement_id)
                settlement_ids.extend(inbound.journal_ids)

            return UnitOfWorkResult(
                journal_ids=tuple(settlement_ids),
                inventory_changes=(
                    InventoryChange(item_id, from_warehouse_id),
                    InventoryChange(item_id, to_warehouse_id),
                ),
                movement_ids=tuple(movement_ids),
                result={
                    "transfer_id": transfer_id,
                    "quantity": quantity,
                    "total_cost": outbound.total_cost,
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation="inventory.transfer",
            posting_date=transfer_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data,
            request_payload={
                "item_id": item_id,
                "from_warehouse_id": from_warehouse_id,
                "to_warehouse_id": to_warehouse_id,
                "quantity": quantity,
                "transfer_date": transfer_date,
            },
        )

    # ------------------------------------------------------------------
    # Void
    # ------------------------------------------------------------------

    @staticmethod
    def _load_document(
        session: Session,
        organization_id: UUID,
        doc_type: DocumentType,
        model,
        doc_id: UUID,
    ):
        document = session.execute(
            select(model)
            .where(model.organization_id == organization_id, model.id == doc_id)
            .with_for_update()
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(doc_type.value, str(doc_id))
        if document.status == DocumentStatus.VOIDED:
            raise DocumentAlreadyVoidedError(doc_type.value, str(doc_id))
        return document

    @staticmethod
    def _posted_payments_total(
        session: Session, organization_id: UUID, doc_type: DocumentType, doc_id: UUID
    ) -> Decimal:
        column = Payment.invoice_id if doc_type == DocumentType.INVOICE else Payment.bill_id
        total = session.execute(
            select(func.sum(Payment.amount)).where(
                Payment.organization_id == organization_id,
                column == doc_id,
                Payment.status == DocumentStatus.POSTED.value,
            )
        ).scalar_one()
        return total if total is not None else ZERO

    @staticmethod
    def _posted_payment_count(
        session: Session, organization_id: UUID, doc_type: DocumentType, doc_id: UUID
    ) -> int:
        column = Payment.invoice_id if doc_type == DocumentType.INVOICE else Payment.bill_id
        return session.execute(
            select(func.count(Payment.id)).where(
                Payment.organization_id == organization_id,
                column == doc_id,
                Payment.status == DocumentStatus.POSTED.value,
            )
        ).scalar_one()

    def _check_dependents(
        self,
        session: Session,
        organization_id: UUID,
        doc_type: DocumentType,
        doc_id: UUID,
    ) -> None:
        if doc_type == DocumentType.PAYMENT:
            return

        payments = self._posted_payment_count(session, organization_id, doc_type, doc_id)
        if payments:
            raise DocumentHasDependentsError(doc_type.value, str(doc_id), "payment", payments)

        if doc_type == DocumentType.BILL:
            consumed = session.execute(
                select(func.count(InventoryLayer.id)).where(
                    InventoryLayer.organization_id == organization_id,
                    InventoryLayer.source_id == doc_id,
                    InventoryLayer.quantity_remaining < InventoryLayer.original_quantity,
                )
            ).scalar_one()
            if consumed:
                raise DocumentHasDependentsError(
                    doc_type.value, str(doc_id), "consumed_layer", consumed
                )

    def void_document(
        self,
        organization_id: UUID,
        doc_type: DocumentType | str,
        doc_id: UUID,
        reason: str,
        void_date: date,
        idempotency_key: str,
        actor_id: UUID,
        audit_data: AuditData | None = None,
    ) -> TransactionResult:
        """
        Void an invoice, bill or payment.

        Reverses every active journal and inventory movement the document
        produced and marks the document voided.  Runs as a reversal, so the
        void date may fall in a soft-closed or closed period.

        Raises:
            UnsupportedDocumentTypeError: Unknown ``doc_type``.
            DocumentNotFoundError / DocumentAlreadyVoidedError
            DocumentHasDependentsError: Payments recorded, or bill stock
                already issued.
        """
        try:
            doc_type = DocumentType(doc_type)
        except ValueError:
            raise UnsupportedDocumentTypeError(str(doc_type)) from None
        model = {
            DocumentType.INVOICE: Invoice,
            DocumentType.BILL: Bill,
            DocumentType.PAYMENT: Payment,
        }[doc_type]

        def unit_of_work(session: Session) -> UnitOfWorkResult:
            journals, inventory = self._services(session)
            document = self._load_document(session, organization_id, doc_type, model, doc_id)
            self._check_dependents(session, organization_id, doc_type, doc_id)

            movements = list(
                session.execute(
                    select(InventoryMovement)
                    .where(
                        InventoryMovement.organization_id == organization_id,
                        InventoryMovement.source_id == doc_id,
                        InventoryMovement.status == MovementStatus.ACTIVE.value,
                        InventoryMovement.reversal_of_id.is_(None),
                    )
                    .order_by(InventoryMovement.created_at)
                ).scalars()
            )
            reversal_movements = [
                inventory.create_inventory_reversal(
                    organization_id, movement.id, void_date, actor_id
                )
                for movement in movements
            ]

            reversal_journals = [
                journals.reverse_journal(
                    organization_id=organization_id,
                    journal_id=journal.id,
                    reason=reason,
                    reversal_date=void_date,
                    actor_id=actor_id,
                    status=JournalStatus.VOIDED,
                )
                for journal in journals.journals_for_source(
                    organization_id, doc_type.value, doc_id
                )
            ]

            document.status = DocumentStatus.VOIDED.value
            document.voided_at = self._clock.now()
            document.void_reason = reason
            document.updated_by_id = actor_id
            session.flush()

            logger.info(
                "document_voided",
                extra={
                    "doc_type": doc_type.value,
                    "doc_id": str(doc_id),
                    "journals_reversed": len(reversal_journals),
                    "movements_reversed": len(reversal_movements),
                },
            )
            changes = {
                InventoryChange(m.item_id, m.warehouse_id) for m in reversal_movements
            }
            return UnitOfWorkResult(
                journal_ids=tuple(j.id for j in reversal_journals),
                inventory_changes=tuple(changes),
                movement_ids=tuple(m.id for m in reversal_movements),
                result={
                    "doc_type": doc_type.value,
                    "doc_id": doc_id,
                    "status": DocumentStatus.VOIDED.value,
                    "reversal_journal_ids": [j.id for j in reversal_journals],
                },
            )

        return self._coordinator.run(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            operation=f"{doc_type.value}.void",
            posting_date=void_date,
            transaction_fn=unit_of_work,
            actor_id=actor_id,
            audit_data=audit_data or AuditData(user_id=actor_id, action="void"),
            is_reversal=True,
            request_payload={
                "doc_type": doc_type.value,
                "doc_id": doc_id,
                "reason": reason,
                "void_date": void_date,
            },
        )
