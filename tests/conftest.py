"""
Test configuration and fixtures.

Tests run against an in-memory SQLite database; every test gets a fresh
schema.
"""
import os
import pytest
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import Generator, List, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import pytz

# Set test configuration before importing app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RECOMMENDATIONS_ENABLED"] = "false"
os.environ["USAGE_DAY_TIMEZONE"] = "UTC"

from stockpulse.main import app
from stockpulse.core.deps import get_recommender
from stockpulse.core.timeutil import to_db
from stockpulse.db.base import Base
from stockpulse.db.session import get_db
import stockpulse.models  # noqa: F401
from stockpulse.models import (
    CurrentStock,
    Ingredient,
    MenuItem,
    PurchaseOrder,
    PurchaseOrderItem,
    RecipeLine,
    SaleOrder,
    SaleOrderItem,
    StockChangeEvent,
    Supplier,
)


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed "now" for service tests: Friday 2024-03-15 12:00 UTC
FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=pytz.UTC)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a database session on a fresh schema."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_recommender] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def clock():
    """Clock pinned to FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def make_supplier(db: Session):
    def _make(name: str = "Fresh Farms") -> Supplier:
        supplier = Supplier(name=name)
        db.add(supplier)
        db.commit()
        db.refresh(supplier)
        return supplier
    return _make


@pytest.fixture
def make_ingredient(db: Session):
    def _make(name: str = "Tomatoes", unit: str = "kg", supplier: Optional[Supplier] = None) -> Ingredient:
        ingredient = Ingredient(name=name, unit=unit, supplier_id=supplier.id if supplier else None)
        db.add(ingredient)
        db.commit()
        db.refresh(ingredient)
        return ingredient
    return _make


@pytest.fixture
def add_event(db: Session):
    """Append a raw ledger event (no snapshot update)."""
    def _add(ingredient: Ingredient, delta: float, at: datetime, reason: Optional[str] = None) -> StockChangeEvent:
        event = StockChangeEvent(
            ingredient_id=ingredient.id,
            quantity_delta=Decimal(str(delta)),
            reason=reason or ("consumption" if delta < 0 else "purchase"),
            actor_id="test",
            created_at=to_db(at),
        )
        db.add(event)
        db.commit()
        return event
    return _add


@pytest.fixture
def add_usage_history(add_event):
    """
    One consumption event per day, the last value landing ``end_days_ago``
    days before ``now``.
    """
    def _add(ingredient: Ingredient, values: List[float], now: datetime = FIXED_NOW, end_days_ago: int = 1):
        count = len(values)
        for i, value in enumerate(values):
            days_ago = end_days_ago + (count - 1 - i)
            if value:
                add_event(ingredient, -value, now - timedelta(days=days_ago))
    return _add


@pytest.fixture
def set_stock(db: Session):
    def _set(
        ingredient: Ingredient,
        quantity: float,
        last_updated: datetime = FIXED_NOW,
        expiry_date: Optional[date] = None,
    ) -> CurrentStock:
        stock = CurrentStock(
            ingredient_id=ingredient.id,
            quantity=Decimal(str(quantity)),
            expiry_date=expiry_date,
            last_updated=to_db(last_updated),
        )
        db.add(stock)
        db.commit()
        return stock
    return _set


@pytest.fixture
def receive_order(db: Session):
    """A received purchase order with one line."""
    def _receive(
        supplier: Supplier,
        ingredient: Ingredient,
        unit_cost: float,
        at: datetime,
        status: str = "received",
    ) -> PurchaseOrder:
        order = PurchaseOrder(supplier_id=supplier.id, status=status, created_at=to_db(at))
        db.add(order)
        db.flush()
        db.add(PurchaseOrderItem(
            order_id=order.id,
            ingredient_id=ingredient.id,
            name=ingredient.name,
            quantity=Decimal("10"),
            unit_cost=Decimal(str(unit_cost)),
        ))
        db.commit()
        return order
    return _receive


@pytest.fixture
def make_menu_item(db: Session):
    def _make(name: str, recipe: List[tuple]) -> MenuItem:
        """recipe: [(ingredient, quantity_per_sale), ...]"""
        item = MenuItem(name=name, price=Decimal("12.50"))
        db.add(item)
        db.flush()
        for ingredient, qty in recipe:
            db.add(RecipeLine(
                menu_item_id=item.id,
                ingredient_id=ingredient.id,
                quantity=Decimal(str(qty)),
                unit=ingredient.unit,
            ))
        db.commit()
        db.refresh(item)
        return item
    return _make


@pytest.fixture
def record_sale(db: Session):
    def _record(menu_item: MenuItem, quantity: int, at: datetime, status: str = "completed") -> SaleOrder:
        order = SaleOrder(status=status, created_at=to_db(at))
        db.add(order)
        db.flush()
        db.add(SaleOrderItem(order_id=order.id, menu_item_id=menu_item.id, quantity=quantity))
        db.commit()
        return order
    return _record
