# billgen/domain/services/bill_pdf.py
"""
Render bills (purchase vouchers and tax invoices) as PDF.
Uses ReportLab for PDF generation.

Rendering is split in two steps:

1. ``build_context()`` checks that every field the template prints is present
   and formats it. Missing data raises TemplateDataMissing before any PDF work.
2. ``render_bill_pdf()`` lays the context out with the template for its bill
   type. Output is built with ReportLab's invariant mode, so two renders of
   the same bill differ only in the "Generated on" footer.

``BillRenderer`` is the process-wide engine handle used by the API: started
once at startup, closed at shutdown, with a bounded number of renders in
flight and a wall-clock budget per render.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import (
    SimpleDocTemplate,
    Table,
    TableStyle,
    Paragraph,
    Spacer,
)

from billgen.config.settings import settings
from billgen.domain.errors import RenderTimeout, TemplateDataMissing
from billgen.domain.models.bill import BillType
from billgen.domain.services.amount_words import amount_in_words

logger = logging.getLogger("bill_pdf")

REQUIRED_FIELDS = ("bill_type", "bill_number", "bill_date", "party_name", "total_amount")

THEME_COLORS = {
    BillType.PURCHASE_VOUCHER: colors.HexColor("#E53E3E"),
    BillType.TAX_INVOICE: colors.HexColor("#38A169"),
}

GRID_COLOR = colors.Color(0.8, 0.8, 0.8)
LABEL_BG = colors.Color(0.95, 0.95, 0.95)


@dataclass(frozen=True)
class Branding:
    """Company constants printed on every bill."""
    company_name: str
    company_gstin: str
    company_state: str
    gst_rate: Decimal

    @classmethod
    def from_settings(cls) -> "Branding":
        return cls(
            company_name=settings.COMPANY_NAME,
            company_gstin=settings.COMPANY_GSTIN,
            company_state=settings.COMPANY_STATE,
            gst_rate=settings.GST_RATE,
        )


# ---------------------------------------------------------------------------
# Context building (template substitution)
# ---------------------------------------------------------------------------

def _fmt_amount(val) -> str:
    if val is None:
        return "0.00"
    return f"{Decimal(str(val)):,.2f}"


def _fmt_date(val) -> str:
    if isinstance(val, datetime):
        val = val.date()
    if isinstance(val, date):
        return val.strftime("%d/%m/%Y")
    return str(val)


def _fmt_rate(rate: Decimal) -> str:
    pct = (rate * 100).normalize()
    return f"{pct:f}%"


def _text(val) -> str:
    return escape(str(val)) if val not in (None, "") else "N/A"


def build_context(bill: Mapping[str, Any], branding: Branding | None = None) -> dict[str, Any]:
    """
    Validate and format a bill record (snake_case keys) for its template.

    Raises TemplateDataMissing when a printed field is absent.
    """
    for field in REQUIRED_FIELDS:
        if bill.get(field) in (None, ""):
            raise TemplateDataMissing(f"Bill field '{field}' is required to render", field=field)

    try:
        bill_type = BillType(bill["bill_type"])
    except ValueError:
        raise TemplateDataMissing(f"No template for bill type '{bill['bill_type']}'", field="bill_type")

    branding = branding or Branding.from_settings()

    items = []
    for idx, item in enumerate(bill.get("items") or [], start=1):
        items.append({
            "sno": str(idx),
            "description": _text(item.get("description")),
            "hsn_code": _text(item.get("hsn_code")),
            "quantity": f"{item.get('quantity')} {item.get('unit') or 'kg'}",
            "rate": _fmt_amount(item.get("rate")),
            "amount": _fmt_amount(item.get("amount")),
        })
    if not items:
        # Summary bills: one line carrying the pre-tax total
        items.append({
            "sno": "1",
            "description": "Goods as per transaction" + (
                f" {escape(str(bill['transaction_id']))}" if bill.get("transaction_id") else ""
            ),
            "hsn_code": "N/A",
            "quantity": "-",
            "rate": "-",
            "amount": _fmt_amount(bill.get("total_before_tax") or bill["total_amount"]),
        })

    half_rate = _fmt_rate(branding.gst_rate / 2)
    tax_rows: list[tuple[str, str]] = []
    if bill.get("igst") is not None:
        tax_rows.append((f"IGST ({_fmt_rate(branding.gst_rate)})", _fmt_amount(bill["igst"])))
    else:
        if bill.get("cgst") is not None:
            tax_rows.append((f"CGST ({half_rate})", _fmt_amount(bill["cgst"])))
        if bill.get("sgst") is not None:
            tax_rows.append((f"SGST ({half_rate})", _fmt_amount(bill["sgst"])))

    return {
        "bill_type": bill_type,
        "bill_number": escape(str(bill["bill_number"])),
        "bill_date": _fmt_date(bill["bill_date"]),
        "party_name": escape(str(bill["party_name"])),
        "party_address": _text(bill.get("party_address")),
        "party_gstin": bill.get("party_gstin"),
        "party_state": bill.get("party_state"),
        "party_state_code": bill.get("party_state_code"),
        "place_of_supply": _text(bill.get("place_of_supply") or branding.company_state),
        "reverse_charge": "Yes" if bill.get("reverse_charge") else "No",
        "transport_mode": bill.get("transport_mode"),
        "vehicle_number": bill.get("vehicle_number"),
        "date_of_supply": _fmt_date(bill["date_of_supply"]) if bill.get("date_of_supply") else None,
        "items": items,
        "total_before_tax": _fmt_amount(bill.get("total_before_tax") or bill["total_amount"]),
        "tax_rows": tax_rows,
        "total_amount": _fmt_amount(bill["total_amount"]),
        "amount_in_words": escape(bill.get("amount_in_words") or amount_in_words(bill["total_amount"])),
        "terms": escape(bill["terms"]) if bill.get("terms") else None,
        "digital_signature": bill.get("digital_signature"),
        "company_name": escape(branding.company_name),
        "company_gstin": branding.company_gstin,
    }


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _styles(theme) -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "company": ParagraphStyle(
            "Company", parent=base["Heading1"], fontSize=22, leading=26,
            alignment=1, textColor=theme, spaceAfter=4,
        ),
        "subtitle": ParagraphStyle("Subtitle", parent=base["Normal"], fontSize=10, alignment=1),
        "title": ParagraphStyle(
            "BillTitle", parent=base["Heading2"], fontSize=16, alignment=1, spaceBefore=8, spaceAfter=12,
        ),
        "section": ParagraphStyle(
            "Section", parent=base["Normal"], fontSize=10, textColor=theme, fontName="Helvetica-Bold",
            spaceAfter=4,
        ),
        "value": ParagraphStyle("Value", parent=base["Normal"], fontSize=9, leading=13),
        "words": ParagraphStyle(
            "Words", parent=base["Normal"], fontSize=10, leading=14, backColor=colors.Color(0.97, 0.97, 0.97),
            borderPadding=6, leftIndent=4,
        ),
        "footer": ParagraphStyle(
            "Footer", parent=base["Normal"], fontSize=8, textColor=colors.grey, alignment=1,
        ),
        "right": ParagraphStyle("Right", parent=base["Normal"], fontSize=10, alignment=2),
    }


def _block(title: str, lines: list[str], styles) -> list:
    cell = [Paragraph(title, styles["section"])]
    cell.extend(Paragraph(line, styles["value"]) for line in lines)
    return cell


def _info_table(left: list, right: list) -> Table:
    table = Table([[left, right]], colWidths=[90 * mm, 90 * mm])
    table.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
    ]))
    return table


def _items_table(ctx: dict, theme, with_hsn: bool) -> Table:
    if with_hsn:
        header = ["S.No", "Description", "HSN/SAC", "Qty", "Rate (Rs)", "Amount (Rs)"]
        widths = [12 * mm, 60 * mm, 22 * mm, 28 * mm, 26 * mm, 32 * mm]
    else:
        header = ["S.No", "Description", "Quantity", "Rate (Rs)", "Amount (Rs)"]
        widths = [12 * mm, 82 * mm, 28 * mm, 26 * mm, 32 * mm]

    rows = [header]
    for item in ctx["items"]:
        row = [item["sno"], Paragraph(item["description"], getSampleStyleSheet()["Normal"])]
        if with_hsn:
            row.append(item["hsn_code"])
        row.extend([item["quantity"], item["rate"], item["amount"]])
        rows.append(row)

    table = Table(rows, colWidths=widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), theme),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (-1, 0), (-1, -1), "RIGHT"),
        ("ALIGN", (-2, 1), (-2, -1), "RIGHT"),
        ("TOPPADDING", (0, 0), (-1, -1), 6),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]))
    return table


def _totals_table(ctx: dict, theme, subtotal_label: str, total_label: str) -> Table:
    rows = [[subtotal_label, ctx["total_before_tax"]]]
    rows.extend([label, value] for label, value in ctx["tax_rows"])
    rows.append([total_label, ctx["total_amount"]])

    table = Table(rows, colWidths=[50 * mm, 40 * mm], hAlign="RIGHT")
    table.setStyle(TableStyle([
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("LINEABOVE", (0, -1), (-1, -1), 1.5, theme),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("TEXTCOLOR", (0, -1), (-1, -1), theme),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def _purchase_voucher(ctx: dict, styles, theme) -> list:
    elements = [
        Paragraph(ctx["company_name"], styles["company"]),
        Paragraph("PURCHASE VOUCHER", styles["title"]),
    ]

    details = [
        f"Bill No: {ctx['bill_number']}",
        f"Date: {ctx['bill_date']}",
        f"Reverse Charge: {ctx['reverse_charge']}",
    ]
    if ctx["vehicle_number"]:
        details.append(f"Vehicle: {escape(ctx['vehicle_number'])}")

    supplier = [f"Name: {ctx['party_name']}", f"Address: {ctx['party_address']}"]
    if ctx["party_gstin"]:
        supplier.append(f"GSTIN: {escape(ctx['party_gstin'])}")

    elements.append(_info_table(
        _block("Bill Details", details, styles),
        _block("Supplier Details", supplier, styles),
    ))
    elements.append(Spacer(1, 12))
    elements.append(_items_table(ctx, theme, with_hsn=False))
    elements.append(Spacer(1, 12))
    elements.append(_totals_table(ctx, theme, "Subtotal", "Grand Total"))
    elements.append(Spacer(1, 14))
    elements.append(Paragraph(f"<b>Amount in Words:</b> {ctx['amount_in_words']}", styles["words"]))
    return elements


def _tax_invoice(ctx: dict, styles, theme) -> list:
    elements = [
        Paragraph(ctx["company_name"], styles["company"]),
        Paragraph(f"GST No: {ctx['company_gstin']}", styles["subtitle"]),
        Paragraph("TAX INVOICE", styles["title"]),
    ]

    details = [
        f"Invoice No: {ctx['bill_number']}",
        f"Date: {ctx['bill_date']}",
        f"Place of Supply: {ctx['place_of_supply']}",
        f"Reverse Charge: {ctx['reverse_charge']}",
    ]
    if ctx["transport_mode"]:
        details.append(f"Transport: {escape(ctx['transport_mode'])}")
    if ctx["vehicle_number"]:
        details.append(f"Vehicle: {escape(ctx['vehicle_number'])}")
    if ctx["date_of_supply"]:
        details.append(f"Date of Supply: {ctx['date_of_supply']}")

    bill_to = [f"Name: {ctx['party_name']}", f"Address: {ctx['party_address']}"]
    if ctx["party_gstin"]:
        bill_to.append(f"GST No: {escape(ctx['party_gstin'])}")
    if ctx["party_state"]:
        state = escape(ctx["party_state"])
        if ctx["party_state_code"]:
            state += f" ({escape(ctx['party_state_code'])})"
        bill_to.append(f"State: {state}")

    elements.append(_info_table(
        _block("Invoice Details", details, styles),
        _block("Bill To", bill_to, styles),
    ))
    elements.append(Spacer(1, 12))
    elements.append(_items_table(ctx, theme, with_hsn=True))
    elements.append(Spacer(1, 12))
    elements.append(_totals_table(ctx, theme, "Taxable Amount", "Total Amount"))
    elements.append(Spacer(1, 14))
    elements.append(Paragraph(f"<b>Amount in Words:</b> {ctx['amount_in_words']}", styles["words"]))

    if ctx["terms"]:
        elements.append(Spacer(1, 10))
        elements.extend(_block("Terms", [ctx["terms"]], styles))

    elements.append(Spacer(1, 30))
    elements.append(Paragraph(f"For {ctx['company_name']}", styles["right"]))
    if ctx["digital_signature"]:
        elements.append(Paragraph(f"Digitally signed: {ctx['digital_signature'][:16]}", styles["right"]))
    elements.append(Spacer(1, 20))
    elements.append(Paragraph("Authorised Signatory", styles["right"]))
    return elements


TEMPLATES = {
    BillType.PURCHASE_VOUCHER: _purchase_voucher,
    BillType.TAX_INVOICE: _tax_invoice,
}


def pdf_filename(bill_type: BillType | str, bill_number: str) -> str:
    """Download name: ``<billType>_<billNumber>.pdf``."""
    type_value = bill_type.value if isinstance(bill_type, BillType) else bill_type
    return f"{type_value}_{bill_number}.pdf"


def render_bill_pdf(context: dict[str, Any], generated_at: datetime | None = None) -> bytes:
    """
    Lay out a context from build_context() and return the PDF bytes.

    Synchronous and CPU bound; the API calls it through BillRenderer.
    """
    bill_type = context["bill_type"]
    theme = THEME_COLORS[bill_type]
    styles = _styles(theme)

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"{bill_type.value} {context['bill_number']}",
        author=context["company_name"],
        invariant=1,
    )

    elements = TEMPLATES[bill_type](context, styles, theme)

    # Footer
    stamp = (generated_at or datetime.now()).strftime("%d-%b-%Y %H:%M")
    elements.append(Spacer(1, 20))
    elements.append(
        Paragraph(
            f"This is a computer-generated document. Generated on {stamp}",
            styles["footer"],
        )
    )

    doc.build(elements)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Engine handle
# ---------------------------------------------------------------------------

class BillRenderer:
    """
    Long-lived rendering engine.

    ``start()`` creates a worker pool once per process; ``close()`` releases
    it. Each ``render()`` holds one of ``max_concurrency`` slots while its PDF
    is built in the pool. A render that times out answers RenderTimeout at
    once, but its slot stays taken until the worker thread actually returns.
    """

    def __init__(
        self,
        max_concurrency: int | None = None,
        timeout: float | None = None,
        branding: Branding | None = None,
    ) -> None:
        self.max_concurrency = max_concurrency or settings.RENDER_MAX_CONCURRENCY
        self.timeout = timeout or settings.RENDER_TIMEOUT_SECONDS
        self.branding = branding or Branding.from_settings()
        self._executor: ThreadPoolExecutor | None = None
        self._slots = asyncio.Semaphore(self.max_concurrency)
        self._in_flight = 0

    @property
    def started(self) -> bool:
        return self._executor is not None

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def start(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_concurrency, thread_name_prefix="bill-render",
            )
            logger.info("Bill renderer started (%d workers)", self.max_concurrency)

    def close(self) -> None:
        if self._executor is not None:
            executor, self._executor = self._executor, None
            executor.shutdown(wait=False, cancel_futures=True)
            logger.info("Bill renderer closed")

    def _release_slot(self, job: asyncio.Future | None = None) -> None:
        if job is not None and not job.cancelled() and job.exception() is not None:
            logger.warning("Abandoned render finished with %r", job.exception())
        self._in_flight -= 1
        self._slots.release()

    async def render(self, bill: Mapping[str, Any]) -> bytes:
        context = build_context(bill, self.branding)
        if self._executor is None:
            raise RuntimeError("BillRenderer.start() has not been called")

        loop = asyncio.get_running_loop()
        await self._slots.acquire()
        self._in_flight += 1
        started = time.perf_counter()
        try:
            job = loop.run_in_executor(self._executor, render_bill_pdf, context, datetime.now())
        except BaseException:
            self._release_slot()
            raise
        try:
            # slot is released when the worker thread returns, not on timeout
            pdf = await asyncio.wait_for(asyncio.shield(job), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Rendering %s exceeded %.1fs", context["bill_number"], self.timeout,
            )
            raise RenderTimeout(
                f"Rendering {context['bill_number']} exceeded {self.timeout}s"
            )
        finally:
            if job.done():
                self._release_slot()
            else:
                job.add_done_callback(self._release_slot)

        logger.info(
            "Rendered %s (%d bytes) in %.0f ms",
            context["bill_number"], len(pdf), (time.perf_counter() - started) * 1000,
        )
        return pdf
