# billgen/domain/models/bill.py
"""
Domain types for bills.

BillType / BillStatus: enums shared by the ORM model, the API schemas and
the services.
BillDraft: a fully validated bill that has not been numbered or persisted yet.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from billgen.domain.services.tax_calculator import NO_TAX, TaxSplit


class BillType(str, Enum):
    PURCHASE_VOUCHER = "PURCHASE_VOUCHER"
    TAX_INVOICE = "TAX_INVOICE"


class BillStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"


@dataclass
class BillDraft:
    """Everything needed to persist a bill except its number and signature."""

    bill_type: BillType
    bill_date: date
    party_name: str
    total_before_tax: Decimal
    total_amount: Decimal
    amount_in_words: str
    tax: TaxSplit = NO_TAX
    party_address: str | None = None
    party_gstin: str | None = None
    party_state: str | None = None
    party_state_code: str | None = None
    reverse_charge: bool = False
    status: BillStatus = BillStatus.DRAFT
    transaction_id: str | None = None
    items: list[dict[str, Any]] = field(default_factory=list)
    transport_mode: str | None = None
    vehicle_number: str | None = None
    date_of_supply: date | None = None
    place_of_supply: str | None = None
    terms: str | None = None
    notes: str | None = None
