# billgen/api/v1/schemas/bills.py
"""Request and response schemas for bill endpoints (camelCase on the wire)."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from billgen.domain.models.bill import BillStatus, BillType

# Money leaves the API as a JSON number; Decimal stays internal.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BillItemIn(CamelModel):
    """One line of goods on a generate request."""

    description: str = Field(min_length=1, max_length=200)
    hsn_code: str | None = Field(default=None, max_length=10)
    quantity: Decimal
    unit: str | None = Field(default=None, max_length=10)
    rate: Decimal
    amount: Decimal | None = None


class BillGenerateRequest(CamelModel):
    """
    Body of ``POST /bills/generate``.

    Amounts are left unconstrained here so the bill service can answer with
    its own INVALID_AMOUNT / GST-mismatch errors. There is no status field:
    every bill starts as DRAFT and moves on through PUT.
    """

    transaction_id: str | None = Field(default=None, max_length=64)
    bill_type: BillType
    bill_date: date | None = None

    party_name: str = Field(min_length=1, max_length=200)
    party_address: str | None = None
    party_gstin: str | None = Field(default=None, max_length=15)
    party_state: str | None = Field(default=None, max_length=50)
    party_state_code: str | None = Field(default=None, max_length=2)

    total_before_tax: Decimal | None = None
    sgst: Decimal | None = None
    cgst: Decimal | None = None
    igst: Decimal | None = None
    total_amount: Decimal | None = None
    reverse_charge: bool = False

    items: list[BillItemIn] = Field(default_factory=list)
    transport_mode: str | None = Field(default=None, max_length=30)
    vehicle_number: str | None = Field(default=None, max_length=20)
    date_of_supply: date | None = None
    place_of_supply: str | None = Field(default=None, max_length=50)

    terms: str | None = None
    notes: str | None = None


class BillUpdate(CamelModel):
    """
    Body of ``PUT /bills/{id}``.

    Unknown keys are kept (``extra="allow"``) so the update rules can name
    the frozen field a caller tried to change instead of silently dropping it.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    status: BillStatus | None = None
    terms: str | None = None
    notes: str | None = None

    def to_patch(self) -> dict:
        declared = type(self).model_fields
        patch = {name: getattr(self, name) for name in self.model_fields_set if name in declared}
        patch.update(self.model_extra or {})
        return patch


class BillItemOut(CamelModel):
    description: str
    hsn_code: str | None = None
    quantity: Money
    unit: str | None = None
    rate: Money
    amount: Money


class BillDetail(CamelModel):
    """Full bill record returned in responses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    bill_type: BillType
    bill_number: str
    bill_date: date

    party_name: str
    party_address: str | None
    party_gstin: str | None
    party_state: str | None
    party_state_code: str | None

    total_before_tax: Money
    sgst: Money | None
    cgst: Money | None
    igst: Money | None
    total_amount: Money
    reverse_charge: bool
    amount_in_words: str

    status: BillStatus
    transaction_id: str | None
    digital_signature: str

    items: list[BillItemOut]
    transport_mode: str | None
    vehicle_number: str | None
    date_of_supply: date | None
    place_of_supply: str | None
    terms: str | None
    notes: str | None

    created_at: datetime
    updated_at: datetime
