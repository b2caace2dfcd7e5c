"""
Result Store: persistence for forecasts, anomalies and waste predictions.

Duplicate suppression is a conditional write, not a read-then-write check.
Each anomaly / waste prediction holds a unique ``dedup_key`` while it is
the live alert for its slot. Saving a new record:

1. releases the key of a live record created before the dedup window
   (that alert has gone stale and is superseded), then
2. inserts with ``ON CONFLICT (dedup_key) DO NOTHING``.

Two concurrent runs therefore cannot both insert for the same slot inside
the window: the database arbitrates, and the loser sees rowcount 0.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging
import uuid

from sqlalchemy import delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockpulse.core.exceptions import AnomalyNotFoundError
from stockpulse.core.timeutil import to_db, utcnow
from stockpulse.models.analytics import Anomaly, IngredientForecast, WastePrediction

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_HOURS = 24


@dataclass
class AnomalyCandidate:
    """An anomaly produced by a detector, not yet persisted."""
    type: str
    ingredient_id: Optional[UUID]
    severity: str
    description: str
    details: Dict[str, Any] = field(default_factory=dict)
    recommendation: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return f"{self.type}:{self.ingredient_id or 'none'}"


@dataclass
class ForecastRecord:
    ingredient_id: UUID
    forecast_date: date
    forecast_quantity: float
    confidence: int
    model_version: str
    factors: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WasteRiskCandidate:
    ingredient_id: UUID
    ingredient_name: str
    quantity: float
    predicted_waste: float
    predicted_usage: float
    waste_percent: float
    risk_level: str
    expiry_date: date
    days_until_expiry: int
    recommendation: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return str(self.ingredient_id)


class ResultStore(ABC):
    @abstractmethod
    def insert_anomaly_if_no_unresolved_duplicate(
        self, anomaly: AnomalyCandidate, window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS
    ) -> bool:
        """Insert unless an unresolved (type, ingredient) twin exists inside the window."""

    @abstractmethod
    def upsert_forecast(self, points: List[ForecastRecord]) -> int:
        """Replace an ingredient's forecasts from the first new date onwards."""

    @abstractmethod
    def upsert_waste_prediction(
        self, prediction: WasteRiskCandidate, window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS
    ) -> bool:
        pass

    @abstractmethod
    def resolve_anomaly(self, anomaly_id: UUID) -> Anomaly:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass


class SqlResultStore(ResultStore):
    """ResultStore backed by the analytics tables."""

    def __init__(self, db: Session):
        self.db = db

    def insert_anomaly_if_no_unresolved_duplicate(
        self, anomaly: AnomalyCandidate, window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS
    ) -> bool:
        now = utcnow()
        key = anomaly.dedup_key

        self.db.execute(
            update(Anomaly)
            .where(Anomaly.dedup_key == key, Anomaly.created_at < to_db(now - timedelta(hours=window_hours)))
            .values(dedup_key=None)
            .execution_options(synchronize_session=False)
        )

        inserted = self._insert_unless_conflict(Anomaly, {
            "id": uuid.uuid4(),
            "type": anomaly.type,
            "ingredient_id": anomaly.ingredient_id,
            "severity": anomaly.severity,
            "description": anomaly.description,
            "details": anomaly.details,
            "recommendation": anomaly.recommendation,
            "resolved": False,
            "dedup_key": key,
            "created_at": to_db(now),
        })
        if not inserted:
            logger.debug("Suppressed duplicate anomaly %s", key)
        return inserted

    def upsert_forecast(self, points: List[ForecastRecord]) -> int:
        if not points:
            return 0

        now = to_db(utcnow())
        by_ingredient: Dict[UUID, List[ForecastRecord]] = {}
        for p in points:
            by_ingredient.setdefault(p.ingredient_id, []).append(p)

        for ingredient_id, ingredient_points in by_ingredient.items():
            first_date = min(p.forecast_date for p in ingredient_points)
            self.db.execute(
                delete(IngredientForecast).where(
                    IngredientForecast.ingredient_id == ingredient_id,
                    IngredientForecast.forecast_date >= first_date,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.add_all([
                IngredientForecast(
                    ingredient_id=ingredient_id,
                    forecast_date=p.forecast_date,
                    forecast_quantity=Decimal(f"{p.forecast_quantity:.3f}"),
                    confidence=p.confidence,
                    model_version=p.model_version,
                    factors=p.factors,
                    created_at=now,
                )
                for p in ingredient_points
            ])

        self.db.flush()
        return len(points)

    def upsert_waste_prediction(
        self, prediction: WasteRiskCandidate, window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS
    ) -> bool:
        now = utcnow()
        key = prediction.dedup_key

        self.db.execute(
            update(WastePrediction)
            .where(
                WastePrediction.dedup_key == key,
                WastePrediction.created_at < to_db(now - timedelta(hours=window_hours)),
            )
            .values(dedup_key=None)
            .execution_options(synchronize_session=False)
        )

        return self._insert_unless_conflict(WastePrediction, {
            "id": uuid.uuid4(),
            "ingredient_id": prediction.ingredient_id,
            "predicted_waste": Decimal(f"{prediction.predicted_waste:.3f}"),
            "predicted_usage": Decimal(f"{prediction.predicted_usage:.3f}"),
            "waste_percent": Decimal(f"{prediction.waste_percent:.2f}"),
            "risk_level": prediction.risk_level,
            "expiry_date": prediction.expiry_date,
            "days_until_expiry": prediction.days_until_expiry,
            "recommendation": prediction.recommendation,
            "dedup_key": key,
            "created_at": to_db(now),
        })

    def resolve_anomaly(self, anomaly_id: UUID) -> Anomaly:
        anomaly = self.db.get(Anomaly, anomaly_id)
        if anomaly is None:
            raise AnomalyNotFoundError(anomaly_id)

        if not anomaly.resolved:
            anomaly.resolved = True
            anomaly.resolved_at = to_db(utcnow())
            anomaly.dedup_key = None
            self.db.commit()
            self.db.refresh(anomaly)
        return anomaly

    def list_anomalies(self, resolved: Optional[bool] = None, limit: int = 100) -> List[Anomaly]:
        stmt = select(Anomaly)
        if resolved is not None:
            stmt = stmt.where(Anomaly.resolved == resolved)
        stmt = stmt.order_by(Anomaly.created_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def list_waste_predictions(self, limit: int = 100) -> List[WastePrediction]:
        stmt = select(WastePrediction).order_by(WastePrediction.created_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def _insert_unless_conflict(self, model, values: Dict[str, Any]) -> bool:
        """INSERT ... ON CONFLICT (dedup_key) DO NOTHING; True if a row was written."""
        table = model.__table__
        dialect = self.db.get_bind().dialect.name

        if dialect == "postgresql":
            stmt = pg_insert(table).values(**values).on_conflict_do_nothing(index_elements=["dedup_key"])
        elif dialect == "sqlite":
            stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=["dedup_key"])
        else:
            # No native upsert: let the unique constraint reject the row inside a savepoint
            try:
                with self.db.begin_nested():
                    self.db.execute(insert(table).values(**values))
                return True
            except IntegrityError:
                return False

        result = self.db.execute(stmt)
        return result.rowcount == 1
