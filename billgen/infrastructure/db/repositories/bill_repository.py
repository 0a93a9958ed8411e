import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billgen.config.settings import settings
from billgen.domain.errors import AllocationExhausted, NotFound
from billgen.domain.models.bill import BillDraft
from billgen.domain.services.bill_numbering import BillNumberAllocator
from billgen.domain.services.bill_service import check_invariants, sign_bill
from billgen.domain.services.bill_workflow import validate_patch
from billgen.infrastructure.db.models import Bill

logger = logging.getLogger("bill_repository")


def _is_bill_number_conflict(exc: IntegrityError) -> bool:
    # sqlite: "UNIQUE constraint failed: bills.bill_number"
    # postgres: 'duplicate key value violates unique constraint "ix_bills_bill_number"'
    return "bill_number" in str(exc.orig)


class BillRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ---------- small helpers ----------

    @staticmethod
    def _parse_id(bill_id: uuid.UUID | str) -> uuid.UUID:
        if isinstance(bill_id, uuid.UUID):
            return bill_id
        try:
            return uuid.UUID(str(bill_id))
        except ValueError:
            raise NotFound("Bill not found")

    @staticmethod
    def _build(draft: BillDraft, bill_number: str, signature: str) -> Bill:
        return Bill(
            id=uuid.uuid4(),
            bill_type=draft.bill_type.value,
            bill_number=bill_number,
            bill_date=draft.bill_date,
            party_name=draft.party_name,
            party_address=draft.party_address,
            party_gstin=draft.party_gstin,
            party_state=draft.party_state,
            party_state_code=draft.party_state_code,
            total_before_tax=draft.total_before_tax,
            sgst=draft.tax.sgst,
            cgst=draft.tax.cgst,
            igst=draft.tax.igst,
            total_amount=draft.total_amount,
            reverse_charge=draft.reverse_charge,
            amount_in_words=draft.amount_in_words,
            status=draft.status.value,
            transaction_id=draft.transaction_id,
            digital_signature=signature,
            items=draft.items,
            transport_mode=draft.transport_mode,
            vehicle_number=draft.vehicle_number,
            date_of_supply=draft.date_of_supply,
            place_of_supply=draft.place_of_supply,
            terms=draft.terms,
            notes=draft.notes,
        )

    # ---------- main methods ----------

    async def create(
        self,
        draft: BillDraft,
        *,
        max_retries: int | None = None,
        signature_secret: str | None = None,
    ) -> Bill:
        """
        Number and persist a validated draft.

        The draft is re-checked before a number is proposed, so an invalid
        bill never reaches allocation. A UNIQUE violation on bill_number means
        another writer committed the same number first: roll back, propose
        again from the new maximum, retry.
        """
        check_invariants(draft)

        attempts = max_retries or settings.BILL_NUMBER_MAX_RETRIES
        secret = signature_secret or settings.SIGNATURE_SECRET
        allocator = BillNumberAllocator(self.db)

        for attempt in range(1, attempts + 1):
            bill_number = await allocator.allocate(draft.bill_type, draft.bill_date)
            bill = self._build(
                draft,
                bill_number,
                sign_bill(bill_number, draft.bill_date, draft.total_amount, secret),
            )
            self.db.add(bill)
            try:
                await self.db.commit()
            except IntegrityError as exc:
                await self.db.rollback()
                if not _is_bill_number_conflict(exc):
                    raise
                logger.warning(
                    "Bill number %s taken by a concurrent writer (attempt %d/%d)",
                    bill_number, attempt, attempts,
                )
                continue

            await self.db.refresh(bill)
            logger.info(
                "Created %s %s for %s (total %s)",
                bill.bill_type, bill.bill_number, bill.party_name, bill.total_amount,
            )
            return bill

        raise AllocationExhausted(
            f"Could not reserve a {draft.bill_type.value} number for "
            f"{draft.bill_date.isoformat()} after {attempts} attempts"
        )

    async def get(self, bill_id: uuid.UUID | str) -> Bill:
        result = await self.db.execute(select(Bill).where(Bill.id == self._parse_id(bill_id)))
        bill = result.scalar_one_or_none()
        if bill is None:
            raise NotFound("Bill not found")
        return bill

    async def list_bills(
        self,
        *,
        search: str | None = None,
        status: str | None = None,
        bill_type: str | None = None,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Bill], int]:
        """Return one page of bills (newest first) and the total match count."""
        q = select(Bill)

        if search:
            term = search.strip()
            q = q.where(
                or_(
                    Bill.party_name.icontains(term, autoescape=True),
                    Bill.bill_number.icontains(term, autoescape=True),
                )
            )
        if status:
            q = q.where(Bill.status == status)
        if bill_type:
            q = q.where(Bill.bill_type == bill_type)
        if min_amount is not None:
            q = q.where(Bill.total_amount >= min_amount)
        if max_amount is not None:
            q = q.where(Bill.total_amount <= max_amount)
        if date_from:
            q = q.where(Bill.bill_date >= date_from)
        if date_to:
            q = q.where(Bill.bill_date <= date_to)

        count_q = select(func.count()).select_from(q.subquery())
        total = (await self.db.execute(count_q)).scalar() or 0

        q = (
            q.order_by(Bill.created_at.desc(), Bill.bill_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(q)
        return list(result.scalars().all()), total

    async def update(self, bill_id: uuid.UUID | str, patch: Mapping[str, Any]) -> Bill:
        """Apply status / annotation changes. Frozen fields raise ImmutableFieldViolation."""
        bill = await self.get(bill_id)
        changes = validate_patch(bill.status, patch)
        if not changes:
            return bill

        for key, value in changes.items():
            setattr(bill, key, value)
        await self.db.commit()
        await self.db.refresh(bill)
        logger.info("Updated bill %s: %s", bill.bill_number, sorted(changes))
        return bill
