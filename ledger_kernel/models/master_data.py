"""
Module: ledger_kernel.models.master_data
Responsibility: Minimal master-data tables the engine reads: warehouses,
    items, customers and vendors.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Warehouse.allow_negative_inventory is the ONLY switch that permits
      on-hand quantity to drop below zero.  There is no per-transaction
      override.

Audit relevance:
    CRUD for these rows belongs to an outer layer; the kernel verifies
    existence and reads the negative-inventory flag.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantMixin, TrackedBase


class Warehouse(TenantMixin, TrackedBase):
    """Stock location.  Carries the warehouse-level negative inventory flag."""

    __tablename__ = "warehouses"

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_warehouse_org_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    allow_negative_inventory: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )


class Item(TenantMixin, TrackedBase):
    """Stocked or non-stocked product."""

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("organization_id", "sku", name="uq_item_org_sku"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    track_inventory: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )


class Customer(TenantMixin, TrackedBase):
    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Vendor(TenantMixin, TrackedBase):
    __tablename__ = "vendors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
