"""
Module: ledger_kernel.models.documents
Responsibility: ORM persistence for the accounting documents that flow
    through the TransactionCoordinator: invoices, bills and payments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A posted document keeps its amounts; it can only move to voided.
    - Open AR = total of posted invoices minus their active payments.
      Open AP = total of posted bills minus their active payments.

Audit relevance:
    journal_id links each document to the journal that recorded it; voiding
    reverses that journal instead of deleting anything.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantMixin, TrackedBase, UUIDString


class DocumentStatus(str, Enum):
    POSTED = "posted"
    VOIDED = "voided"


class PaymentDirection(str, Enum):
    RECEIVED = "received"
    MADE = "made"


class Invoice(TenantMixin, TrackedBase):
    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("organization_id", "invoice_number", name="uq_invoice_org_number"),
        Index("idx_invoice_org_status", "organization_id", "status"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
    )

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10),
        default=DocumentStatus.POSTED,
        nullable=False,
    )

    journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        lazy="selectin",
        order_by="InvoiceLine.line_number",
    )


class InvoiceLine(TenantMixin, TrackedBase):
    __tablename__ = "invoice_lines"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=True,
    )

    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")


class Bill(TenantMixin, TrackedBase):
    __tablename__ = "bills"

    __table_args__ = (
        UniqueConstraint("organization_id", "bill_number", name="uq_bill_org_number"),
        Index("idx_bill_org_status", "organization_id", "status"),
    )

    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)

    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
    )

    bill_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10),
        default=DocumentStatus.POSTED,
        nullable=False,
    )

    journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["BillLine"]] = relationship(
        back_populates="bill",
        lazy="selectin",
        order_by="BillLine.line_number",
    )


class BillLine(TenantMixin, TrackedBase):
    __tablename__ = "bill_lines"

    bill_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    bill: Mapped["Bill"] = relationship(back_populates="lines")


class Payment(TenantMixin, TrackedBase):
    """Cash received against an invoice or paid against a bill."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_invoice", "invoice_id"),
        Index("idx_payment_bill", "bill_id"),
    )

    direction: Mapped[PaymentDirection] = mapped_column(String(10), nullable=False)

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=True,
    )

    bill_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("bills.id", ondelete="RESTRICT"),
        nullable=True,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10),
        default=DocumentStatus.POSTED,
        nullable=False,
    )

    journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=True,
    )

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
