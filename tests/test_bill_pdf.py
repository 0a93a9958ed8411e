"""Tests for bill PDF rendering."""

import asyncio
import threading
import time
from datetime import date, datetime
from decimal import Decimal

import pytest

from billgen.domain.errors import RenderTimeout, TemplateDataMissing
from billgen.domain.models.bill import BillType
from billgen.domain.services import bill_pdf
from billgen.domain.services.bill_pdf import (
    BillRenderer,
    Branding,
    build_context,
    pdf_filename,
    render_bill_pdf,
)

BRANDING = Branding(
    company_name="VIGHNESHWARA ENTERPRISES",
    company_gstin="29ABCDE1234F1Z5",
    company_state="Karnataka",
    gst_rate=Decimal("0.18"),
)


@pytest.fixture
def tax_invoice() -> dict:
    return {
        "bill_type": "TAX_INVOICE",
        "bill_number": "TAX-20260305-0001",
        "bill_date": date(2026, 3, 5),
        "party_name": "Sri Lakshmi Metals & Co",
        "party_address": "Peenya, Bengaluru",
        "party_gstin": "29AAACS1234K1Z2",
        "party_state": "Karnataka",
        "party_state_code": "29",
        "total_before_tax": Decimal("42500.00"),
        "sgst": Decimal("3825.00"),
        "cgst": Decimal("3825.00"),
        "igst": None,
        "total_amount": Decimal("50150.00"),
        "reverse_charge": False,
        "amount_in_words": "Rupees Fifty Thousand One Hundred Fifty Only",
        "digital_signature": "ab" * 32,
        "items": [{
            "description": "Copper scrap",
            "hsn_code": "7404",
            "quantity": Decimal("100"),
            "unit": "kg",
            "rate": Decimal("425"),
            "amount": Decimal("42500.00"),
        }],
        "terms": "Payment within 15 days",
    }


@pytest.fixture
def purchase_voucher() -> dict:
    return {
        "bill_type": BillType.PURCHASE_VOUCHER,
        "bill_number": "PV-20260305-0001",
        "bill_date": date(2026, 3, 5),
        "party_name": "Ramesh Kumar",
        "total_before_tax": Decimal("18000.00"),
        "total_amount": Decimal("18000.00"),
        "transaction_id": "TXN-1001",
        "items": [],
    }


class TestBuildContext:
    @pytest.mark.parametrize("field", ["bill_type", "bill_number", "bill_date", "party_name", "total_amount"])
    def test_required_fields(self, tax_invoice, field):
        tax_invoice[field] = None
        with pytest.raises(TemplateDataMissing) as exc:
            build_context(tax_invoice, BRANDING)
        assert exc.value.field == field

    def test_unknown_type(self, tax_invoice):
        tax_invoice["bill_type"] = "CREDIT_NOTE"
        with pytest.raises(TemplateDataMissing):
            build_context(tax_invoice, BRANDING)

    def test_intra_state_tax_rows(self, tax_invoice):
        ctx = build_context(tax_invoice, BRANDING)
        assert ctx["tax_rows"] == [("CGST (9%)", "3,825.00"), ("SGST (9%)", "3,825.00")]
        assert ctx["total_amount"] == "50,150.00"
        assert ctx["bill_date"] == "05/03/2026"
        assert ctx["party_name"] == "Sri Lakshmi Metals &amp; Co"
        assert ctx["place_of_supply"] == "Karnataka"

    def test_igst_row(self, tax_invoice):
        tax_invoice.update(sgst=None, cgst=None, igst=Decimal("7650.00"))
        ctx = build_context(tax_invoice, BRANDING)
        assert ctx["tax_rows"] == [("IGST (18%)", "7,650.00")]

    def test_summary_line_without_items(self, purchase_voucher):
        ctx = build_context(purchase_voucher, BRANDING)
        assert len(ctx["items"]) == 1
        assert ctx["items"][0]["amount"] == "18,000.00"
        assert "TXN-1001" in ctx["items"][0]["description"]
        assert ctx["tax_rows"] == []
        assert ctx["amount_in_words"] == "Rupees Eighteen Thousand Only"


class TestRenderBillPdf:
    def test_tax_invoice_pdf(self, tax_invoice):
        pdf = render_bill_pdf(build_context(tax_invoice, BRANDING))
        assert pdf.startswith(b"%PDF")

    def test_purchase_voucher_pdf(self, purchase_voucher):
        pdf = render_bill_pdf(build_context(purchase_voucher, BRANDING))
        assert pdf.startswith(b"%PDF")

    def test_same_bill_same_bytes(self, tax_invoice):
        stamp = datetime(2026, 3, 5, 10, 30)
        first = render_bill_pdf(build_context(tax_invoice, BRANDING), generated_at=stamp)
        second = render_bill_pdf(build_context(tax_invoice, BRANDING), generated_at=stamp)
        assert first == second

    def test_filename(self):
        assert pdf_filename(BillType.TAX_INVOICE, "TAX-20260305-0001") == "TAX_INVOICE_TAX-20260305-0001.pdf"
        assert pdf_filename("PURCHASE_VOUCHER", "PV-20260305-0002") == "PURCHASE_VOUCHER_PV-20260305-0002.pdf"


class TestBillRenderer:
    def test_render(self, tax_invoice, event_loop):
        renderer = BillRenderer(max_concurrency=1, timeout=30, branding=BRANDING)
        renderer.start()
        try:
            pdf = event_loop.run_until_complete(renderer.render(tax_invoice))
        finally:
            renderer.close()
        assert pdf.startswith(b"%PDF")
        assert renderer.in_flight == 0
        assert not renderer.started

    def test_not_started(self, tax_invoice, event_loop):
        renderer = BillRenderer(branding=BRANDING)
        with pytest.raises(RuntimeError):
            event_loop.run_until_complete(renderer.render(tax_invoice))

    def test_missing_data_fails_before_render(self, tax_invoice, event_loop, monkeypatch):
        calls = []
        monkeypatch.setattr(bill_pdf, "render_bill_pdf", lambda *a: calls.append(a) or b"")
        tax_invoice["party_name"] = ""

        renderer = BillRenderer(branding=BRANDING)
        renderer.start()
        try:
            with pytest.raises(TemplateDataMissing):
                event_loop.run_until_complete(renderer.render(tax_invoice))
        finally:
            renderer.close()
        assert calls == []

    def test_timeout_holds_slot_until_worker_returns(self, tax_invoice, event_loop, monkeypatch):
        def slow(context, generated_at=None):
            time.sleep(0.5)
            return b"%PDF-slow"

        monkeypatch.setattr(bill_pdf, "render_bill_pdf", slow)

        renderer = BillRenderer(max_concurrency=1, timeout=0.05, branding=BRANDING)
        renderer.start()
        try:
            with pytest.raises(RenderTimeout):
                event_loop.run_until_complete(renderer.render(tax_invoice))
            assert renderer.in_flight == 1

            event_loop.run_until_complete(asyncio.sleep(0.7))
            assert renderer.in_flight == 0
        finally:
            renderer.close()

    def test_render_after_timeout_waits_for_slot(self, tax_invoice, event_loop, monkeypatch):
        calls = []

        def first_slow(context, generated_at=None):
            calls.append(time.perf_counter())
            if len(calls) == 1:
                time.sleep(0.6)
                return b"%PDF-slow"
            return b"%PDF-fast"

        monkeypatch.setattr(bill_pdf, "render_bill_pdf", first_slow)

        renderer = BillRenderer(max_concurrency=1, timeout=0.2, branding=BRANDING)
        renderer.start()
        try:
            with pytest.raises(RenderTimeout):
                event_loop.run_until_complete(renderer.render(tax_invoice))
            pdf = event_loop.run_until_complete(renderer.render(tax_invoice))
        finally:
            renderer.close()

        assert pdf == b"%PDF-fast"
        assert len(calls) == 2
        # the second build only started once the first worker was done
        assert calls[1] - calls[0] >= 0.55
        assert renderer.in_flight == 0

    def test_concurrency_bounded(self, tax_invoice, event_loop, monkeypatch):
        lock = threading.Lock()
        state = {"running": 0, "peak": 0}

        def tracked(context, generated_at=None):
            with lock:
                state["running"] += 1
                state["peak"] = max(state["peak"], state["running"])
            time.sleep(0.05)
            with lock:
                state["running"] -= 1
            return b"%PDF-tracked"

        monkeypatch.setattr(bill_pdf, "render_bill_pdf", tracked)

        renderer = BillRenderer(max_concurrency=2, timeout=30, branding=BRANDING)
        renderer.start()

        async def run():
            return await asyncio.gather(*[renderer.render(tax_invoice) for _ in range(6)])

        try:
            results = event_loop.run_until_complete(run())
        finally:
            renderer.close()
        assert results == [b"%PDF-tracked"] * 6
        assert state["peak"] <= 2
        assert renderer.in_flight == 0
