from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class ReorderBody(BaseModel):
    from_index: int
    to_index: int


class BulkAssignBody(BaseModel):
    ordered_ids: list[int]


class AutoSortBody(BaseModel):
    field: str


class MemberCreateBody(BaseModel):
    name: str
    address: str | None = None
    color: str | None = None
    contact_info: str | None = None
    email: str | None = None
    phone: str | None = None


class MemberUpdateBody(BaseModel):
    name: str | None = None
    address: str | None = None
    color: str | None = None
    contact_info: str | None = None
    email: str | None = None
    phone: str | None = None


class ProductCreateBody(BaseModel):
    name: str
    unit: str = ''
    minimum_threshold: int = 0
    checkbox_only: bool = False
    hidden: bool = False
    description: str | None = None
    cost: Decimal | None = None
    category_ids: list[int] = Field(default_factory=list)
    supplier_ids: list[int] = Field(default_factory=list)
    primary_category_id: int | None = None
    primary_supplier_id: int | None = None


class ProductUpdateBody(BaseModel):
    name: str | None = None
    unit: str | None = None
    minimum_threshold: int | None = None
    checkbox_only: bool | None = None
    hidden: bool | None = None
    description: str | None = None
    cost: Decimal | None = None
    category_ids: list[int] | None = None
    supplier_ids: list[int] | None = None
    primary_category_id: int | None = None
    primary_supplier_id: int | None = None


class CountRowBody(BaseModel):
    product_id: int
    # Sign is checked by the counting session so the caller gets a specific message.
    counted_quantity: int | None = None
    flagged_for_order: bool | None = None


class CountPreviewBody(BaseModel):
    location_id: int
    entries: list[CountRowBody] = Field(default_factory=list)


class OrderSubmitBody(BaseModel):
    location_id: int | None = None
    submitted_by: str | None = None
    note: str | None = None
    entries: list[CountRowBody] = Field(default_factory=list)


class OrderStatusBody(BaseModel):
    status: str
