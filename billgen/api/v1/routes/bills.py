# billgen/api/v1/routes/bills.py
"""
Bill generation, lookup, listing, status update and PDF download endpoints.
"""

from __future__ import annotations

import io
import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from billgen.config.settings import settings
from billgen.core.db import get_db
from billgen.domain.models.bill import BillStatus, BillType
from billgen.domain.services.bill_pdf import BillRenderer, pdf_filename
from billgen.domain.services.bill_service import prepare_bill
from billgen.infrastructure.db.models import Bill
from billgen.infrastructure.db.repositories import BillRepository

from billgen.api.v1.deps import get_renderer
from billgen.api.v1.envelope import ok, paginated
from billgen.api.v1.schemas.bills import (
    BillDetail,
    BillGenerateRequest,
    BillUpdate,
)

logger = logging.getLogger("api.v1.bills")

router = APIRouter(prefix="/bills", tags=["Bills"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _bill_to_detail(bill: Bill) -> dict:
    """Convert a Bill ORM object to the camelCase JSON shape of BillDetail."""
    return BillDetail.model_validate(bill).model_dump(mode="json", by_alias=True)


def _bill_to_record(bill: Bill) -> dict:
    """snake_case BillDetail dict with Decimal money and date objects, for rendering."""
    return BillDetail.model_validate(bill).model_dump()


# ---------------------------------------------------------------------------
# Generate a bill
# ---------------------------------------------------------------------------

@router.post("/generate", response_model=dict, status_code=status.HTTP_201_CREATED)
async def generate_bill(
    body: BillGenerateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Validate the request, compute GST and words, allocate the next bill
    number for (billType, billDate) and persist the bill.

    Nothing is written and no number is consumed when validation fails.
    """
    draft = prepare_bill(
        body.model_dump(),
        gst_rate=settings.GST_RATE,
        company_state=settings.COMPANY_STATE,
        company_state_code=settings.COMPANY_STATE_CODE,
    )
    bill = await BillRepository(db).create(draft)
    return ok(data=_bill_to_detail(bill), message="Bill generated successfully")


# ---------------------------------------------------------------------------
# List bills (paginated)
# ---------------------------------------------------------------------------

@router.get("", response_model=dict)
async def list_bills(
    search: str | None = Query(default=None, description="Party name or bill number contains"),
    bill_status: BillStatus | None = Query(default=None, alias="status"),
    bill_type: BillType | None = Query(default=None, alias="billType"),
    min_amount: Decimal | None = Query(default=None, alias="minAmount", description="totalAmount >= this"),
    max_amount: Decimal | None = Query(default=None, alias="maxAmount", description="totalAmount <= this"),
    date_from: date | None = Query(default=None, alias="dateFrom", description="billDate >= this"),
    date_to: date | None = Query(default=None, alias="dateTo", description="billDate <= this"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List bills, newest first, with optional filters."""
    bills, total = await BillRepository(db).list_bills(
        search=search,
        status=bill_status.value if bill_status else None,
        bill_type=bill_type.value if bill_type else None,
        min_amount=min_amount,
        max_amount=max_amount,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return paginated(
        items=[_bill_to_detail(b) for b in bills],
        total=total,
        page=page,
        limit=limit,
    )


# ---------------------------------------------------------------------------
# Get single bill
# ---------------------------------------------------------------------------

@router.get("/{bill_id}", response_model=dict)
async def get_bill(
    bill_id: str,
    db: AsyncSession = Depends(get_db),
):
    bill = await BillRepository(db).get(bill_id)
    return ok(data=_bill_to_detail(bill))


# ---------------------------------------------------------------------------
# Update status / annotations
# ---------------------------------------------------------------------------

@router.put("/{bill_id}", response_model=dict)
async def update_bill(
    bill_id: str,
    body: BillUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Change ``status``, ``terms`` or ``notes``. Any other field is rejected
    with IMMUTABLE_FIELD, and status only moves forward (DRAFT → SENT → PAID).
    """
    bill = await BillRepository(db).update(bill_id, body.to_patch())
    return ok(data=_bill_to_detail(bill), message="Bill updated")


# ---------------------------------------------------------------------------
# Download bill PDF
# ---------------------------------------------------------------------------

@router.get("/{bill_id}/pdf")
async def download_pdf(
    bill_id: str,
    db: AsyncSession = Depends(get_db),
    renderer: BillRenderer = Depends(get_renderer),
):
    """Render the bill with the template for its type and stream it back."""
    bill = await BillRepository(db).get(bill_id)
    pdf_bytes = await renderer.render(_bill_to_record(bill))
    logger.info("Serving %s (%d bytes)", bill.bill_number, len(pdf_bytes))

    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{pdf_filename(bill.bill_type, bill.bill_number)}"'
        },
    )
