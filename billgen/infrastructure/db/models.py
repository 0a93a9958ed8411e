import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Index, Numeric, String, Text, Uuid

from billgen.domain.models.bill import BillStatus
from billgen.infrastructure.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        Index("ix_bills_status_created", "status", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bill_type = Column(String(20), nullable=False)
    # UNIQUE is what makes concurrent number allocation safe
    bill_number = Column(String(20), nullable=False, unique=True, index=True)
    bill_date = Column(Date, nullable=False)

    party_name = Column(String(200), nullable=False, index=True)
    party_address = Column(Text)
    party_gstin = Column(String(15))
    party_state = Column(String(50))
    party_state_code = Column(String(2))

    total_before_tax = Column(Numeric(14, 2), nullable=False)
    sgst = Column(Numeric(14, 2))
    cgst = Column(Numeric(14, 2))
    igst = Column(Numeric(14, 2))
    total_amount = Column(Numeric(14, 2), nullable=False)
    reverse_charge = Column(Boolean, nullable=False, default=False)
    amount_in_words = Column(String(300), nullable=False)

    status = Column(String(10), nullable=False, default=BillStatus.DRAFT.value)
    transaction_id = Column(String(64), index=True)
    digital_signature = Column(String(128), nullable=False)

    items = Column(JSON, nullable=False, default=list)
    transport_mode = Column(String(30))
    vehicle_number = Column(String(20))
    date_of_supply = Column(Date)
    place_of_supply = Column(String(50))
    terms = Column(Text)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
