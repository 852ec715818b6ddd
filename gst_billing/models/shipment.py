"""
Products and shipments (goods dispatches).

These tables belong to the inventory side of the application.
The billing engine reads them to build invoices and never
changes them.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import String, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gst_billing.models.base import Base


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    material: Mapped[str | None] = mapped_column(String(100), nullable=True)
    color: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hsn_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    sac_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    unit_of_measurement: Mapped[str] = mapped_column(
        String(10), nullable=False, default="PCS"
    )
    cost_price: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    selling_price: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Product {self.name}>"


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    shipment_number: Mapped[str] = mapped_column(String(30), nullable=False)
    shipment_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer_id: Mapped[int | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    items: Mapped[list["ShipmentItem"]] = relationship(
        back_populates="shipment", order_by="ShipmentItem.id"
    )

    def __repr__(self) -> str:
        return f"<Shipment {self.shipment_number}>"


class ShipmentItem(Base):
    __tablename__ = "shipment_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    shipment_id: Mapped[int] = mapped_column(
        ForeignKey("shipments.id"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )

    shipment: Mapped["Shipment"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()
