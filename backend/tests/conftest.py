"""Shared test fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from datetime import date
from decimal import Decimal
import uuid

from ledgermatch.database import Base
from ledgermatch.dependencies import get_db
from ledgermatch.main import app
from ledgermatch.models.category import Category
from ledgermatch.models.email_receipt import EmailReceipt
from ledgermatch.models.transaction import Transaction, TransactionStatus, TransactionType

HOUSEHOLD_ID = "household-1"
OTHER_HOUSEHOLD_ID = "household-2"


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test using in-memory SQLite."""
    # Use StaticPool to ensure all connections use the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def household_id():
    return HOUSEHOLD_ID


@pytest.fixture
def headers():
    """Household scope header for API calls."""
    return {"X-Household-Id": HOUSEHOLD_ID}


@pytest.fixture
def make_transaction(db_session):
    """Factory for ledger rows; defaults describe a pending ILS card expense."""
    def _make(**overrides):
        fields = dict(
            id=str(uuid.uuid4()),
            household_id=HOUSEHOLD_ID,
            date=date(2026, 3, 10),
            amount=Decimal("100.00"),
            currency="ILS",
            merchant_raw="SHUFERSAL DEAL",
            status=TransactionStatus.pending,
            type=TransactionType.expense,
            source="cc_slip",
        )
        fields.update(overrides)
        txn = Transaction(**fields)
        db_session.add(txn)
        db_session.commit()
        db_session.refresh(txn)
        return txn
    return _make


@pytest.fixture
def make_receipt(db_session):
    """Factory for stored receipts."""
    def _make(**overrides):
        fields = dict(
            id=str(uuid.uuid4()),
            household_id=HOUSEHOLD_ID,
            merchant_name="Shufersal Online",
            amount=Decimal("100.00"),
            currency="ILS",
            receipt_date=date(2026, 3, 10),
            items=[{"name": "Milk", "quantity": 2, "price": 6.5}],
            is_receipt=True,
        )
        fields.update(overrides)
        receipt = EmailReceipt(**fields)
        db_session.add(receipt)
        db_session.commit()
        db_session.refresh(receipt)
        return receipt
    return _make


@pytest.fixture
def sample_categories(db_session):
    """A small category vocabulary."""
    categories = [
        Category(name="Groceries", name_local="מזון וצריכה", keywords=["shufersal", "שופרסל"]),
        Category(name="Dining", name_local="מסעדות ובתי קפה", keywords=["cafe", "קפה"]),
        Category(name="Transportation", name_local="תחבורה", keywords=["pango"]),
        Category(name="Transfers", name_local="העברות", keywords=["bit", "paybox"]),
    ]
    db_session.add_all(categories)
    db_session.commit()
    return categories
