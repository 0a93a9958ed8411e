"""Shared test fixtures for the bill generation test suite."""

import asyncio
from datetime import date

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from billgen.core.db import get_db
from billgen.domain.services.bill_pdf import BillRenderer
from billgen.infrastructure.db import models  # noqa: F401
from billgen.infrastructure.db.base import Base


@pytest.fixture(scope="session")
def event_loop():
    """Use a single event loop for the entire test session."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def db_engine(tmp_path, event_loop):
    """A fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bills.db'}")

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    event_loop.run_until_complete(_create())
    yield engine
    event_loop.run_until_complete(engine.dispose())


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def renderer():
    r = BillRenderer(max_concurrency=2, timeout=30)
    r.start()
    yield r
    r.close()


@pytest.fixture
def client(session_factory, renderer, event_loop):
    """httpx client bound to the app, with the test database and renderer."""
    from billgen.main import app

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    app.state.renderer = renderer

    c = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    yield c
    event_loop.run_until_complete(c.aclose())
    app.dependency_overrides.clear()
    app.state.renderer = None


@pytest.fixture
def bill_day() -> date:
    return date(2026, 3, 5)


@pytest.fixture
def tax_invoice_request() -> dict:
    """Intra-state tax invoice given as summary amounts (Karnataka party)."""
    return {
        "billType": "TAX_INVOICE",
        "partyName": "Sri Lakshmi Metals",
        "partyAddress": "12 Industrial Area, Peenya, Bengaluru",
        "partyGstin": "29AAACS1234K1Z2",
        "partyState": "Karnataka",
        "partyStateCode": "29",
        "totalBeforeTax": 42500,
        "totalAmount": 50150,
    }


@pytest.fixture
def purchase_voucher_request() -> dict:
    """Unregistered supplier, no GST."""
    return {
        "billType": "PURCHASE_VOUCHER",
        "transactionId": "TXN-1001",
        "partyName": "Ramesh Kumar",
        "partyAddress": "Hosur Road, Bengaluru",
        "totalAmount": 18000,
    }
