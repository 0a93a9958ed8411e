# billgen/domain/services/bill_numbering.py
"""
Bill number allocation.

Format: {PREFIX}-{YYYYMMDD}-{SEQUENCE}
    PV-20250115-0001    (purchase voucher)
    TAX-20250115-0042   (tax invoice)

The sequence restarts every calendar day for each bill type and is padded to
4 digits, so at most 9999 bills of one type can be issued per day.

Allocation never reserves anything on its own: ``allocate()`` proposes the
next number after the highest one already stored for the (prefix, day) pair,
and the INSERT that carries it is guarded by the UNIQUE constraint on
``bills.bill_number``. Two concurrent writers proposing the same number
cannot both commit; the loser retries with a fresh proposal (see
BillRepository.create). This holds across any number of processes, unlike an
in-memory counter.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billgen.domain.errors import AllocationExhausted, BillValidationError
from billgen.domain.models.bill import BillType
from billgen.infrastructure.db.models import Bill

logger = logging.getLogger("bill_numbering")

PREFIXES: dict[BillType, str] = {
    BillType.PURCHASE_VOUCHER: "PV",
    BillType.TAX_INVOICE: "TAX",
}

SEQUENCE_DIGITS = 4
MAX_SEQUENCE = 10 ** SEQUENCE_DIGITS - 1

BILL_NUMBER_RE = re.compile(r"^(PV|TAX)-(\d{8})-(\d{4})$")


def prefix_for(bill_type: BillType | str) -> str:
    try:
        return PREFIXES[BillType(bill_type)]
    except ValueError:
        raise BillValidationError(f"Unknown bill type '{bill_type}'", field="billType")


def day_key(prefix: str, issue_date: date) -> str:
    """Common leading part of every number issued for (prefix, day)."""
    return f"{prefix}-{issue_date.strftime('%Y%m%d')}-"


def format_bill_number(prefix: str, issue_date: date, sequence: int) -> str:
    if sequence < 1:
        raise ValueError(f"sequence must be >= 1, got {sequence}")
    if sequence > MAX_SEQUENCE:
        raise AllocationExhausted(
            f"No {prefix} bill numbers left for {issue_date.isoformat()} "
            f"(limit {MAX_SEQUENCE} per day)"
        )
    return f"{day_key(prefix, issue_date)}{sequence:0{SEQUENCE_DIGITS}d}"


def parse_sequence(bill_number: str) -> int:
    m = BILL_NUMBER_RE.match(bill_number)
    if not m:
        raise ValueError(f"Malformed bill number: {bill_number!r}")
    return int(m.group(3))


class BillNumberAllocator:
    """Proposes the next bill number for a (bill type, day) pair from storage."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def last_sequence(self, prefix: str, issue_date: date) -> int:
        """Highest sequence already stored for the day, 0 if none."""
        # Zero padding makes the lexicographic max the numeric max.
        stmt = select(func.max(Bill.bill_number)).where(
            Bill.bill_number.startswith(day_key(prefix, issue_date), autoescape=True)
        )
        last = (await self.db.execute(stmt)).scalar_one_or_none()
        return parse_sequence(last) if last else 0

    async def allocate(self, bill_type: BillType | str, issue_date: date) -> str:
        prefix = prefix_for(bill_type)
        last = await self.last_sequence(prefix, issue_date)
        number = format_bill_number(prefix, issue_date, last + 1)
        logger.debug("Proposed bill number %s", number)
        return number
