"""Pytest configuration: in-memory database sessions and ledger builders."""

import os

# Set test database URL BEFORE any imports from condofin
# This keeps the module-level engine away from the working directory
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from condofin.models import (  # noqa: E402
    Base,
    Creditor,
    ExtraCharge,
    FeeHistory,
    Owner,
    Transaction,
    TransactionMonth,
    TransactionType,
    Unit,
)
from condofin.services.config import EngineConfig  # noqa: E402


@pytest.fixture
def db_session():
    """Create test database session."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def config():
    """Engine configuration with defaults (no .env lookup)."""
    return EngineConfig(database_url="sqlite:///:memory:")


@pytest.fixture
def make_unit(db_session):
    def _make(code="1A", monthly_fee="37.50", **kwargs):
        unit = Unit(code=code, monthly_fee=Decimal(monthly_fee), **kwargs)
        db_session.add(unit)
        db_session.commit()
        return unit

    return _make


@pytest.fixture
def make_creditor(db_session):
    def _make(name="Aguas", amount_due=None, is_fixed=False, **kwargs):
        creditor = Creditor(
            name=name,
            amount_due=Decimal(amount_due) if amount_due is not None else None,
            is_fixed=is_fixed,
            **kwargs,
        )
        db_session.add(creditor)
        db_session.commit()
        return creditor

    return _make


@pytest.fixture
def make_fee(db_session):
    def _make(amount, effective_from, effective_to=None, unit=None, creditor=None):
        record = FeeHistory(
            unit_id=unit.id if unit else None,
            creditor_id=creditor.id if creditor else None,
            amount=Decimal(amount),
            effective_from=effective_from,
            effective_to=effective_to,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return _make


@pytest.fixture
def make_extra(db_session):
    def _make(amount, effective_from, effective_to=None, unit=None, description="Obras"):
        charge = ExtraCharge(
            unit_id=unit.id if unit else None,
            description=description,
            amount=Decimal(amount),
            effective_from=effective_from,
            effective_to=effective_to,
        )
        db_session.add(charge)
        db_session.commit()
        return charge

    return _make


@pytest.fixture
def make_owner(db_session):
    def _make(unit, name, start_month=None, end_month=None, previous_debt="0", **kwargs):
        owner = Owner(
            unit_id=unit.id,
            name=name,
            start_month=start_month,
            end_month=end_month,
            previous_debt=Decimal(previous_debt),
            **kwargs,
        )
        db_session.add(owner)
        db_session.commit()
        return owner

    return _make


@pytest.fixture
def make_transaction(db_session):
    def _make(
        amount,
        on=date(2024, 1, 10),
        unit=None,
        creditor=None,
        reference_month=None,
        type=TransactionType.PAYMENT,
        category=None,
        description="Transferencia",
    ):
        transaction = Transaction(
            transaction_date=on,
            description=description,
            amount=Decimal(amount),
            type=type,
            category=category,
            reference_month=reference_month,
            unit_id=unit.id if unit else None,
            creditor_id=creditor.id if creditor else None,
        )
        db_session.add(transaction)
        db_session.commit()
        return transaction

    return _make


@pytest.fixture
def allocate(db_session):
    """Insert allocation rows directly (bypassing the ledger invariant checks)."""

    def _allocate(transaction, *parts):
        rows = []
        for month, amount in parts:
            row = TransactionMonth(transaction_id=transaction.id, month=month, amount=Decimal(amount))
            db_session.add(row)
            rows.append(row)
        db_session.commit()
        db_session.expire(transaction, ["month_allocations"])
        return rows

    return _allocate
