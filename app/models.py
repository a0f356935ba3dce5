from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class OrderStatus(str, Enum):
    PENDING = 'PENDING'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'


class Location(Base):
    __tablename__ = 'locations'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Category(Base):
    __tablename__ = 'categories'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Supplier(Base):
    __tablename__ = 'suppliers'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_info: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'
    __table_args__ = (
        CheckConstraint('minimum_threshold >= 0', name='products_threshold_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    minimum_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    checkbox_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductCategory(Base):
    __tablename__ = 'product_categories'

    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), primary_key=True)
    category_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('categories.id', ondelete='CASCADE'), primary_key=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')


class ProductSupplier(Base):
    __tablename__ = 'product_suppliers'

    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), primary_key=True)
    supplier_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('suppliers.id', ondelete='CASCADE'), primary_key=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    cost_override: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))


class Order(Base):
    __tablename__ = 'orders'
    __table_args__ = (
        UniqueConstraint('order_number', name='orders_order_number_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    location_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('locations.id'), nullable=False)
    submitted_by: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING, server_default='PENDING'
    )
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderLine(Base):
    __tablename__ = 'order_lines'
    __table_args__ = (
        CheckConstraint('counted_quantity_snapshot >= 0', name='order_lines_counted_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    product_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('products.id'))
    item_name_snapshot: Mapped[str] = mapped_column(Text, nullable=False)
    unit_snapshot: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    supplier_name_snapshot: Mapped[str | None] = mapped_column(Text)
    category_names_snapshot: Mapped[list] = mapped_column(JSON, nullable=False, default=list, server_default='[]')
    counted_quantity_snapshot: Mapped[int] = mapped_column(Integer, nullable=False)
    minimum_threshold_snapshot: Mapped[int] = mapped_column(Integer, nullable=False)
    checkbox_only_snapshot: Mapped[bool] = mapped_column(Boolean, nullable=False)
    needs_ordering: Mapped[bool] = mapped_column(Boolean, nullable=False)
    fulfilled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    fulfilled_by: Mapped[str | None] = mapped_column(Text)
    fulfilled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    actor_name: Mapped[str | None] = mapped_column(Text)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('orders.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
