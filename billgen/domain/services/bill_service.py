# billgen/domain/services/bill_service.py
"""
Bill generation rules.

Turns a generate request into a validated BillDraft without touching storage,
so a rejected request never consumes a bill number.

Two input shapes are accepted:

1. Line items (``items``): the pre-tax total comes from quantity × rate.
   Tax invoices always carry GST; purchase vouchers only under reverse
   charge. Intra/inter state is decided by the party state code against ours.
2. Summary amounts only: ``totalAmount`` plus optional ``totalBeforeTax`` and
   either ``sgst`` + ``cgst`` or ``igst``. Supplied components must match the
   flat-rate split of the pre-tax total (9% + 9% or 18%).

Whatever the shape, totalBeforeTax + tax must equal totalAmount within 0.01.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from billgen.domain.errors import BillValidationError, InvalidAmount
from billgen.domain.models.bill import BillDraft, BillStatus, BillType
from billgen.domain.services.amount_words import amount_in_words
from billgen.domain.services.tax_calculator import (
    DEFAULT_GST_RATE,
    NO_TAX,
    ZERO,
    TaxSplit,
    amounts_match,
    compute_grand_total,
    compute_line_amount,
    compute_tax,
    compute_totals,
    is_inter_state,
    reconciles,
    round2,
    to_decimal,
)

logger = logging.getLogger("bill_service")

DEFAULT_UNIT = "kg"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _money(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    dec = to_decimal(value, field)
    if dec < ZERO:
        raise InvalidAmount(f"{field} cannot be negative", field=field)
    return round2(dec)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _bill_type(value: Any) -> BillType:
    try:
        return BillType(value.value if isinstance(value, BillType) else value)
    except ValueError:
        allowed = ", ".join(t.value for t in BillType)
        raise BillValidationError(
            f"Unknown billType '{value}'. Allowed: {allowed}", field="billType"
        )


def _supplied_tax(data: Mapping[str, Any]) -> TaxSplit:
    """Read sgst/cgst/igst from the request, enforcing pairing and exclusivity."""
    sgst = _money(data.get("sgst"), "sgst")
    cgst = _money(data.get("cgst"), "cgst")
    igst = _money(data.get("igst"), "igst")

    if (sgst is None) != (cgst is None):
        missing = "cgst" if cgst is None else "sgst"
        raise BillValidationError("sgst and cgst must be supplied together", field=missing)
    if igst is not None and sgst is not None:
        raise BillValidationError(
            "igst cannot be combined with sgst/cgst", field="igst"
        )
    return TaxSplit(sgst=sgst, cgst=cgst, igst=igst)


def _check_tax_matches(supplied: TaxSplit, expected: TaxSplit) -> None:
    """GST-mismatch check: every supplied component must match the flat-rate split."""
    if expected.is_empty:
        field = "igst" if supplied.igst is not None else "sgst"
        raise BillValidationError("This bill does not carry GST", field=field)
    if (supplied.igst is None) != (expected.igst is None):
        field = "igst" if supplied.igst is not None else "sgst"
        kind = "inter-state (IGST)" if expected.igst is not None else "intra-state (CGST + SGST)"
        raise BillValidationError(f"This supply is {kind}", field=field)

    for name in ("sgst", "cgst", "igst"):
        got = getattr(supplied, name)
        want = getattr(expected, name)
        if got is not None and not amounts_match(got, want):
            raise BillValidationError(
                f"{name} {got} does not match the expected {want} for this taxable amount",
                field=name,
            )


def _normalise_items(raw_items: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Validate line items and fix their amounts. Money is stored as strings."""
    items: list[dict[str, Any]] = []
    for idx, raw in enumerate(raw_items):
        description = _text(raw.get("description"))
        if not description:
            raise BillValidationError(
                "Item description is required", field=f"items[{idx}].description"
            )
        try:
            amount = compute_line_amount(raw.get("quantity"), raw.get("rate"))
        except InvalidAmount as exc:
            raise InvalidAmount(exc.message, field=f"items[{idx}].{exc.field}")

        supplied = raw.get("amount")
        if supplied is not None and not amounts_match(to_decimal(supplied, "amount"), amount):
            raise BillValidationError(
                f"Item amount {supplied} does not equal quantity × rate ({amount})",
                field=f"items[{idx}].amount",
            )

        items.append({
            "description": description,
            "hsn_code": _text(raw.get("hsn_code")),
            "quantity": str(to_decimal(raw.get("quantity"), "quantity")),
            "unit": _text(raw.get("unit")) or DEFAULT_UNIT,
            "rate": str(to_decimal(raw.get("rate"), "rate")),
            "amount": str(amount),
        })
    return items


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def prepare_bill(
    data: Mapping[str, Any],
    *,
    gst_rate: Decimal = DEFAULT_GST_RATE,
    company_state: str | None = None,
    company_state_code: str = "29",
    today: date | None = None,
) -> BillDraft:
    """
    Validate a generate request (snake_case keys) and compute every derived
    field. Raises BillValidationError (or a subclass) before any side effect.
    """
    bill_type = _bill_type(data.get("bill_type"))
    party_name = _text(data.get("party_name"))
    if not party_name:
        raise BillValidationError("partyName is required", field="partyName")

    party_state_code = _text(data.get("party_state_code"))
    inter_state = is_inter_state(party_state_code, company_state_code)
    reverse_charge = bool(data.get("reverse_charge"))

    supplied_before = _money(data.get("total_before_tax"), "totalBeforeTax")
    supplied_total = _money(data.get("total_amount"), "totalAmount")
    supplied_tax = _supplied_tax(data)

    raw_items = data.get("items") or []
    if raw_items:
        items = _normalise_items(raw_items)
        total_before_tax = compute_totals(
            {"quantity": i["quantity"], "rate": i["rate"]} for i in items
        )
        if supplied_before is not None and not amounts_match(supplied_before, total_before_tax):
            raise BillValidationError(
                f"totalBeforeTax {supplied_before} does not equal the item total {total_before_tax}",
                field="totalBeforeTax",
            )
        taxable = bill_type is BillType.TAX_INVOICE or reverse_charge
        tax = compute_tax(total_before_tax, inter_state, gst_rate) if taxable else NO_TAX
        if not supplied_tax.is_empty:
            _check_tax_matches(supplied_tax, tax)
    else:
        items = []
        if supplied_total is None:
            raise BillValidationError("totalAmount is required", field="totalAmount")

        if not supplied_tax.is_empty:
            supplied_inter = supplied_tax.igst is not None
            if party_state_code and supplied_inter != inter_state:
                kind = "inter-state (IGST)" if inter_state else "intra-state (CGST + SGST)"
                raise BillValidationError(
                    f"Party state {party_state_code} makes this supply {kind}",
                    field="igst" if supplied_inter else "sgst",
                )
            total_before_tax = (
                supplied_before
                if supplied_before is not None
                else round2(supplied_total - supplied_tax.total)
            )
            _check_tax_matches(supplied_tax, compute_tax(total_before_tax, supplied_inter, gst_rate))
            tax = supplied_tax
        elif supplied_before is None:
            total_before_tax, tax = supplied_total, NO_TAX
        elif bill_type is BillType.TAX_INVOICE and not amounts_match(supplied_before, supplied_total):
            total_before_tax = supplied_before
            tax = compute_tax(total_before_tax, inter_state, gst_rate)
        else:
            total_before_tax, tax = supplied_before, NO_TAX

    total_amount = compute_grand_total(total_before_tax, tax)
    if supplied_total is not None and not amounts_match(supplied_total, total_amount):
        raise BillValidationError(
            f"totalAmount {supplied_total} does not equal totalBeforeTax + GST ({total_amount})",
            field="totalAmount",
        )

    place_of_supply = _text(data.get("place_of_supply"))
    if place_of_supply is None and bill_type is BillType.TAX_INVOICE:
        place_of_supply = _text(data.get("party_state")) or company_state

    draft = BillDraft(
        bill_type=bill_type,
        bill_date=data.get("bill_date") or today or date.today(),
        party_name=party_name,
        party_address=_text(data.get("party_address")),
        party_gstin=_text(data.get("party_gstin")),
        party_state=_text(data.get("party_state")),
        party_state_code=party_state_code,
        total_before_tax=total_before_tax,
        tax=tax,
        total_amount=total_amount,
        amount_in_words=amount_in_words(total_amount),
        reverse_charge=reverse_charge,
        status=BillStatus.DRAFT,
        transaction_id=_text(data.get("transaction_id")),
        items=items,
        transport_mode=_text(data.get("transport_mode")),
        vehicle_number=_text(data.get("vehicle_number")),
        date_of_supply=data.get("date_of_supply"),
        place_of_supply=place_of_supply,
        terms=_text(data.get("terms")),
        notes=_text(data.get("notes")),
    )
    logger.debug(
        "Prepared %s for %s: before tax %s, GST %s, total %s",
        bill_type.value, party_name, total_before_tax, tax.total, total_amount,
    )
    return draft


def check_invariants(draft: BillDraft) -> None:
    """Last line of defence before a draft is numbered and persisted."""
    if not draft.party_name:
        raise BillValidationError("partyName is required", field="partyName")
    tax = draft.tax
    if tax.igst is not None and (tax.sgst is not None or tax.cgst is not None):
        raise BillValidationError("igst cannot be combined with sgst/cgst", field="igst")
    if (tax.sgst is None) != (tax.cgst is None):
        raise BillValidationError("sgst and cgst must be supplied together", field="sgst")
    for name, value in (
        ("totalBeforeTax", draft.total_before_tax),
        ("totalAmount", draft.total_amount),
        ("tax", tax.total),
    ):
        if value < ZERO:
            raise InvalidAmount(f"{name} cannot be negative", field=name)
    if not reconciles(draft.total_before_tax, tax, draft.total_amount):
        raise BillValidationError(
            "totalAmount does not equal totalBeforeTax + GST", field="totalAmount"
        )


def sign_bill(bill_number: str, bill_date: date, total_amount: Decimal, secret: str) -> str:
    """Opaque tamper-evidence token printed on the bill (HMAC-SHA256, hex)."""
    message = f"{bill_number}|{bill_date.isoformat()}|{round2(total_amount)}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
