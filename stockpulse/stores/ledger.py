"""
Ledger Store: read access to the stock ledger, stock snapshots, purchase
orders, POS sales and recipes.

The engine only talks to the abstract LedgerStore; SqlLedgerStore is the
SQLAlchemy implementation. Every read failure surfaces as LedgerReadError
and every timestamp leaves this module as an aware UTC datetime.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockpulse.core.exceptions import IngredientNotFoundError, LedgerReadError, StockInvariantError
from stockpulse.core.timeutil import Timestampish, to_db, to_utc, utcnow
from stockpulse.models.ingredient import Ingredient, Supplier
from stockpulse.models.inventory import CurrentStock, StockChangeEvent, STOCK_CHANGE_REASONS
from stockpulse.models.menu import MenuItem, RecipeLine
from stockpulse.models.purchasing import PurchaseOrder, PurchaseOrderItem
from stockpulse.models.sales import SaleOrder, SaleOrderItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    ingredient_id: UUID
    delta: float
    reason: str
    timestamp: datetime


@dataclass(frozen=True)
class StockSnapshot:
    ingredient_id: UUID
    quantity: float
    expiry_date: Optional[date]
    last_updated: datetime


@dataclass(frozen=True)
class IngredientRef:
    id: UUID
    name: str
    unit: str
    supplier_id: Optional[UUID] = None


@dataclass(frozen=True)
class OrderLine:
    ingredient_id: UUID
    name: str
    unit_cost: float


@dataclass(frozen=True)
class ReceivedOrder:
    supplier_id: UUID
    supplier_name: str
    timestamp: datetime
    items: List[OrderLine] = field(default_factory=list)


@dataclass(frozen=True)
class SaleLine:
    menu_item_id: UUID
    quantity_sold: int
    timestamp: datetime


@dataclass(frozen=True)
class RecipeIngredient:
    ingredient_id: UUID
    qty_per_sale: float
    unit: str


@dataclass(frozen=True)
class MenuRecipe:
    menu_item_id: UUID
    name: str
    ingredients: List[RecipeIngredient] = field(default_factory=list)


class LedgerStore(ABC):
    """Storage-agnostic view of the ledger consumed by the analytics engine."""

    @abstractmethod
    def query(self, ingredient_id: UUID, since: datetime) -> List[LedgerEvent]:
        """Events for an ingredient at or after ``since``, oldest first."""

    @abstractmethod
    def current_snapshot(self, ingredient_id: UUID) -> Optional[StockSnapshot]:
        pass

    @abstractmethod
    def stocked_snapshots(self) -> List[StockSnapshot]:
        """All snapshots with quantity > 0."""

    @abstractmethod
    def received_purchase_orders(self, limit: int = 100) -> List[ReceivedOrder]:
        """Most recent received purchase orders, newest first."""

    @abstractmethod
    def completed_sales(self, since: datetime) -> List[SaleLine]:
        pass

    @abstractmethod
    def menu_recipes(self) -> List[MenuRecipe]:
        pass

    @abstractmethod
    def ingredients(self) -> List[IngredientRef]:
        pass

    @abstractmethod
    def ingredient(self, ingredient_id: UUID) -> Optional[IngredientRef]:
        pass


class SqlLedgerStore(LedgerStore):
    """LedgerStore backed by the relational schema in stockpulse.models."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _reading(self, what: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            # Leave the session usable for the next ingredient in the batch
            self.db.rollback()
            raise LedgerReadError(f"Failed to read {what}: {e}") from e

    def query(self, ingredient_id: UUID, since: datetime) -> List[LedgerEvent]:
        stmt = (
            select(StockChangeEvent)
            .where(
                StockChangeEvent.ingredient_id == ingredient_id,
                StockChangeEvent.created_at >= to_db(since),
            )
            .order_by(StockChangeEvent.created_at)
        )
        with self._reading(f"ledger for ingredient {ingredient_id}"):
            rows = self.db.execute(stmt).scalars().all()

        return [
            LedgerEvent(
                ingredient_id=row.ingredient_id,
                delta=float(row.quantity_delta),
                reason=row.reason,
                timestamp=to_utc(row.created_at),
            )
            for row in rows
        ]

    def current_snapshot(self, ingredient_id: UUID) -> Optional[StockSnapshot]:
        stmt = select(CurrentStock).where(CurrentStock.ingredient_id == ingredient_id)
        with self._reading(f"stock for ingredient {ingredient_id}"):
            row = self.db.execute(stmt).scalar_one_or_none()
        return self._to_snapshot(row) if row else None

    def stocked_snapshots(self) -> List[StockSnapshot]:
        stmt = select(CurrentStock).where(CurrentStock.quantity > 0)
        with self._reading("stock snapshots"):
            rows = self.db.execute(stmt).scalars().all()
        return [self._to_snapshot(row) for row in rows]

    def received_purchase_orders(self, limit: int = 100) -> List[ReceivedOrder]:
        stmt = (
            select(PurchaseOrder, Supplier.name)
            .join(Supplier, PurchaseOrder.supplier_id == Supplier.id)
            .where(PurchaseOrder.status == "received")
            .order_by(PurchaseOrder.created_at.desc())
            .limit(limit)
        )
        with self._reading("received purchase orders"):
            orders = self.db.execute(stmt).all()
            order_ids = [order.id for order, _ in orders]
            items_by_order: Dict[UUID, List[OrderLine]] = {oid: [] for oid in order_ids}
            if order_ids:
                item_rows = self.db.execute(
                    select(PurchaseOrderItem).where(PurchaseOrderItem.order_id.in_(order_ids))
                ).scalars().all()
                for item in item_rows:
                    items_by_order[item.order_id].append(OrderLine(
                        ingredient_id=item.ingredient_id,
                        name=item.name,
                        unit_cost=float(item.unit_cost),
                    ))

        return [
            ReceivedOrder(
                supplier_id=order.supplier_id,
                supplier_name=supplier_name,
                timestamp=to_utc(order.created_at),
                items=items_by_order[order.id],
            )
            for order, supplier_name in orders
        ]

    def completed_sales(self, since: datetime) -> List[SaleLine]:
        stmt = (
            select(SaleOrderItem.menu_item_id, SaleOrderItem.quantity, SaleOrder.created_at)
            .join(SaleOrder, SaleOrderItem.order_id == SaleOrder.id)
            .where(
                SaleOrder.status == "completed",
                SaleOrder.created_at >= to_db(since),
            )
        )
        with self._reading("completed sales"):
            rows = self.db.execute(stmt).all()
        return [
            SaleLine(
                menu_item_id=row.menu_item_id,
                quantity_sold=int(row.quantity),
                timestamp=to_utc(row.created_at),
            )
            for row in rows
        ]

    def menu_recipes(self) -> List[MenuRecipe]:
        stmt = (
            select(MenuItem.id, MenuItem.name, RecipeLine.ingredient_id, RecipeLine.quantity, RecipeLine.unit)
            .join(RecipeLine, RecipeLine.menu_item_id == MenuItem.id)
            .order_by(MenuItem.name)
        )
        with self._reading("menu recipes"):
            rows = self.db.execute(stmt).all()

        recipes: Dict[UUID, MenuRecipe] = {}
        for row in rows:
            if row.id not in recipes:
                recipes[row.id] = MenuRecipe(menu_item_id=row.id, name=row.name)
            recipes[row.id].ingredients.append(RecipeIngredient(
                ingredient_id=row.ingredient_id,
                qty_per_sale=float(row.quantity),
                unit=row.unit,
            ))
        return list(recipes.values())

    def ingredients(self) -> List[IngredientRef]:
        with self._reading("ingredients"):
            rows = self.db.execute(select(Ingredient).order_by(Ingredient.name)).scalars().all()
        return [self._to_ref(row) for row in rows]

    def ingredient(self, ingredient_id: UUID) -> Optional[IngredientRef]:
        with self._reading(f"ingredient {ingredient_id}"):
            row = self.db.get(Ingredient, ingredient_id)
        return self._to_ref(row) if row else None

    def record_stock_change(
        self,
        ingredient_id: UUID,
        delta: float,
        reason: str,
        actor_id: str,
        notes: Optional[str] = None,
        expiry_date: Optional[date] = None,
        at: Optional[Timestampish] = None,
    ) -> StockSnapshot:
        """
        Append a ledger event and move the running balance with it.

        The event and the snapshot update are committed together. A change
        that would leave the balance below zero is rejected with
        StockInvariantError; nothing is written in that case.
        """
        if reason not in STOCK_CHANGE_REASONS:
            raise ValueError(f"Unknown stock change reason '{reason}'")

        if self.db.get(Ingredient, ingredient_id) is None:
            raise IngredientNotFoundError(ingredient_id)

        when = to_db(at) if at is not None else to_db(utcnow())
        delta_dec = Decimal(str(delta))

        stock = self.db.execute(
            select(CurrentStock).where(CurrentStock.ingredient_id == ingredient_id).with_for_update()
        ).scalar_one_or_none()

        current = Decimal(stock.quantity) if stock else Decimal(0)
        new_quantity = current + delta_dec
        if new_quantity < 0:
            self.db.rollback()
            raise StockInvariantError(ingredient_id, float(current), float(delta_dec))

        if stock is None:
            stock = CurrentStock(ingredient_id=ingredient_id, quantity=Decimal(0), last_updated=when)
            self.db.add(stock)

        stock.quantity = new_quantity
        stock.last_updated = when
        if expiry_date is not None:
            stock.expiry_date = expiry_date

        self.db.add(StockChangeEvent(
            ingredient_id=ingredient_id,
            quantity_delta=delta_dec,
            reason=reason,
            actor_id=actor_id,
            notes=notes,
            created_at=when,
        ))
        self.db.commit()
        self.db.refresh(stock)

        logger.debug("Recorded %s of %s for ingredient %s", reason, delta, ingredient_id)
        return self._to_snapshot(stock)

    @staticmethod
    def _to_snapshot(row: CurrentStock) -> StockSnapshot:
        return StockSnapshot(
            ingredient_id=row.ingredient_id,
            quantity=float(row.quantity),
            expiry_date=row.expiry_date,
            last_updated=to_utc(row.last_updated),
        )

    @staticmethod
    def _to_ref(row: Ingredient) -> IngredientRef:
        return IngredientRef(id=row.id, name=row.name, unit=row.unit, supplier_id=row.supplier_id)
