"""
Tests for result persistence and duplicate suppression.
"""
from datetime import date, timedelta
import uuid
import pytest
from sqlalchemy import select

from stockpulse.core.exceptions import AnomalyNotFoundError
from stockpulse.core.timeutil import to_db, utcnow
from stockpulse.models import Anomaly, IngredientForecast, WastePrediction
from stockpulse.stores.results import (
    AnomalyCandidate,
    ForecastRecord,
    SqlResultStore,
    WasteRiskCandidate,
)


def spike(ingredient_id, severity="low"):
    return AnomalyCandidate(
        type="usage_spike",
        ingredient_id=ingredient_id,
        severity=severity,
        description="Usage spike",
        details={"z_score": 2.45},
    )


def waste(ingredient_id):
    return WasteRiskCandidate(
        ingredient_id=ingredient_id,
        ingredient_name="Tomatoes",
        quantity=100.0,
        predicted_waste=80.0,
        predicted_usage=20.0,
        waste_percent=80.0,
        risk_level="critical",
        expiry_date=date(2024, 3, 17),
        days_until_expiry=2,
    )


class TestAnomalyDedup:

    def test_first_insert_succeeds(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)

        assert store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id)) is True
        store.commit()

        anomaly = db.execute(select(Anomaly)).scalar_one()
        assert anomaly.details == {"z_score": 2.45}
        assert anomaly.resolved is False
        assert anomaly.dedup_key == f"usage_spike:{ingredient.id}"

    def test_duplicate_within_window_suppressed(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)

        assert store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id))
        assert not store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id, "high"))
        store.commit()

        assert len(db.execute(select(Anomaly)).scalars().all()) == 1

    def test_other_type_not_a_duplicate(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        ghost = AnomalyCandidate("ghost_inventory", ingredient.id, "medium", "Ghost stock")

        assert store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id))
        assert store.insert_anomaly_if_no_unresolved_duplicate(ghost)

    def test_resolve_frees_slot(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id))
        store.commit()
        anomaly = db.execute(select(Anomaly)).scalar_one()

        resolved = store.resolve_anomaly(anomaly.id)

        assert resolved.resolved is True
        assert resolved.resolved_at is not None
        assert resolved.dedup_key is None
        assert store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id))

    def test_resolve_is_idempotent(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id))
        store.commit()
        anomaly_id = db.execute(select(Anomaly.id)).scalar_one()

        first = store.resolve_anomaly(anomaly_id).resolved_at
        second = store.resolve_anomaly(anomaly_id).resolved_at

        assert first == second

    def test_resolve_unknown(self, db):
        with pytest.raises(AnomalyNotFoundError):
            SqlResultStore(db).resolve_anomaly(uuid.uuid4())

    def test_stale_record_superseded(self, db, make_ingredient):
        """An unresolved alert older than the window no longer blocks a new one."""
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id))
        store.commit()
        old = db.execute(select(Anomaly)).scalar_one()
        old.created_at = to_db(utcnow() - timedelta(hours=25))
        db.commit()

        assert store.insert_anomaly_if_no_unresolved_duplicate(spike(ingredient.id), window_hours=24)
        store.commit()

        rows = db.execute(select(Anomaly).order_by(Anomaly.created_at)).scalars().all()
        assert len(rows) == 2
        assert rows[0].dedup_key is None
        assert rows[0].resolved is False
        assert rows[1].dedup_key == f"usage_spike:{ingredient.id}"

    def test_list_filters_resolved(self, db, make_ingredient):
        tomatoes = make_ingredient("Tomatoes")
        basil = make_ingredient("Basil")
        store = SqlResultStore(db)
        store.insert_anomaly_if_no_unresolved_duplicate(spike(tomatoes.id))
        store.insert_anomaly_if_no_unresolved_duplicate(spike(basil.id))
        store.commit()
        store.resolve_anomaly(store.list_anomalies()[0].id)

        assert len(store.list_anomalies()) == 2
        assert len(store.list_anomalies(resolved=False)) == 1
        assert len(store.list_anomalies(resolved=True)) == 1
        assert len(store.list_anomalies(limit=1)) == 1


class TestWastePredictionDedup:

    def test_second_prediction_suppressed(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)

        assert store.upsert_waste_prediction(waste(ingredient.id))
        assert not store.upsert_waste_prediction(waste(ingredient.id))
        store.commit()

        rows = store.list_waste_predictions()
        assert len(rows) == 1
        assert rows[0].risk_level == "critical"
        assert float(rows[0].waste_percent) == 80.0

    def test_stale_prediction_superseded(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        store.upsert_waste_prediction(waste(ingredient.id))
        store.commit()
        old = db.execute(select(WastePrediction)).scalar_one()
        old.created_at = to_db(utcnow() - timedelta(hours=30))
        db.commit()

        assert store.upsert_waste_prediction(waste(ingredient.id))


class TestUpsertForecast:

    def _points(self, ingredient_id, start, quantities):
        return [
            ForecastRecord(
                ingredient_id=ingredient_id,
                forecast_date=start + timedelta(days=i),
                forecast_quantity=q,
                confidence=52,
                model_version="seasonal-wma-v1",
                factors={"method": "test"},
            )
            for i, q in enumerate(quantities)
        ]

    def test_empty_is_noop(self, db):
        assert SqlResultStore(db).upsert_forecast([]) == 0

    def test_rerun_replaces_rows(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        start = date(2024, 3, 16)

        store.upsert_forecast(self._points(ingredient.id, start, [10.0] * 7))
        store.commit()
        store.upsert_forecast(self._points(ingredient.id, start, [12.0] * 7))
        store.commit()

        rows = db.execute(select(IngredientForecast)).scalars().all()
        assert len(rows) == 7
        assert {float(r.forecast_quantity) for r in rows} == {12.0}

    def test_shorter_rerun_drops_later_dates(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)
        start = date(2024, 3, 16)

        store.upsert_forecast(self._points(ingredient.id, start, [10.0] * 7))
        store.commit()
        store.upsert_forecast(self._points(ingredient.id, start, [11.0] * 3))
        store.commit()

        rows = db.execute(select(IngredientForecast)).scalars().all()
        assert sorted(r.forecast_date for r in rows) == [start + timedelta(days=i) for i in range(3)]

    def test_earlier_rows_kept(self, db, make_ingredient):
        ingredient = make_ingredient()
        store = SqlResultStore(db)

        store.upsert_forecast(self._points(ingredient.id, date(2024, 3, 10), [9.0]))
        store.upsert_forecast(self._points(ingredient.id, date(2024, 3, 16), [10.0] * 2))
        store.commit()

        assert len(db.execute(select(IngredientForecast)).scalars().all()) == 3
