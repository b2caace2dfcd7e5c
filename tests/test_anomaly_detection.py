"""
Tests for the anomaly detectors and the detection run.
"""
from datetime import timedelta
import pytest
from sqlalchemy import select

from stockpulse.core.exceptions import LedgerReadError
from stockpulse.models import Anomaly
from stockpulse.services.anomaly_detection import (
    AnomalyDetectionService,
    price_creep_severity,
    trailing_price_change,
    variance_severity,
)
from stockpulse.stores.ledger import SqlLedgerStore
from stockpulse.stores.results import SqlResultStore


class FixedRecommender:
    def __init__(self, text="Check the walk-in cooler."):
        self.text = text
        self.contexts = []

    def recommend(self, context):
        self.contexts.append(context)
        return self.text


class BrokenRecommender:
    def recommend(self, context):
        raise RuntimeError("upstream timeout")


class NoOrdersLedger(SqlLedgerStore):
    def received_purchase_orders(self, limit=100):
        raise LedgerReadError("purchase orders unavailable")


@pytest.fixture
def service_factory(db, clock):
    def _make(recommender=None, ledger=None):
        return AnomalyDetectionService(
            ledger or SqlLedgerStore(db),
            SqlResultStore(db),
            recommender=recommender,
            clock=clock,
        )
    return _make


class TestSeverityHelpers:

    @pytest.mark.parametrize("change,expected", [(10, "low"), (15, "medium"), (24.9, "medium"), (25, "high")])
    def test_price_creep_severity(self, change, expected):
        assert price_creep_severity(change) == expected

    @pytest.mark.parametrize("variance,expected", [(12, "low"), (-20, "medium"), (30, "high"), (-45, "high")])
    def test_variance_severity(self, variance, expected):
        assert variance_severity(variance) == expected

    def test_trailing_price_change(self):
        prices = [11.0, 11.5, 12.0, 13.5]
        assert trailing_price_change(prices, 3) == pytest.approx(17.39, abs=0.01)
        assert trailing_price_change(prices, 4) == pytest.approx(22.73, abs=0.01)

    def test_trailing_price_change_needs_history(self):
        assert trailing_price_change([11.0, 12.0], 3) is None
        assert trailing_price_change([11.0, 12.0], 1) is None
        assert trailing_price_change([0.0, 5.0, 6.0], 3) is None


class TestUsageSpikes:

    def test_spike_flagged(self, service_factory, make_ingredient, add_usage_history):
        """[10 x 6, 50] gives z = 2.449: flagged, severity low."""
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])

        anomalies = service_factory().detect_usage_spikes()

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.type == "usage_spike"
        assert anomaly.ingredient_id == ingredient.id
        assert anomaly.severity == "low"
        assert anomaly.details["z_score"] == pytest.approx(2.449, abs=0.001)
        assert anomaly.details["actual_value"] == 50.0
        assert anomaly.details["expected_value"] == pytest.approx(15.714, abs=0.001)
        assert anomaly.description.startswith('Usage of "Tomatoes" was 218% higher than normal yesterday')

    def test_constant_usage_not_flagged(self, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [12] * 14)

        assert service_factory().detect_usage_spikes() == []

    def test_too_little_history(self, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 80])

        assert service_factory().detect_usage_spikes() == []

    def test_no_usage_yesterday(self, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50], end_days_ago=2)

        assert service_factory().detect_usage_spikes() == []

    def test_custom_threshold(self, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])

        assert service_factory().detect_usage_spikes(z_threshold=3.0) == []


class TestPriceCreep:

    @pytest.fixture
    def creeping_prices(self, clock, make_supplier, make_ingredient, receive_order):
        supplier = make_supplier()
        ingredient = make_ingredient(supplier=supplier)
        for days_ago, price in ((4, 11.0), (3, 11.5), (2, 12.0), (1, 13.5)):
            receive_order(supplier, ingredient, price, clock() - timedelta(days=days_ago))
        # Drafts are not received prices
        receive_order(supplier, ingredient, 99.0, clock(), status="draft")
        return supplier, ingredient

    def test_three_order_window(self, service_factory, creeping_prices):
        supplier, ingredient = creeping_prices

        anomalies = service_factory().detect_price_creep()

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.severity == "medium"
        assert anomaly.details["price_change_percent"] == pytest.approx(17.39, abs=0.01)
        assert anomaly.details["expected_value"] == 11.5
        assert anomaly.details["actual_value"] == 13.5
        assert anomaly.details["supplier_id"] == str(supplier.id)
        assert "from Fresh Farms increased by 17.4% over the last 3 orders" in anomaly.description

    def test_four_order_window(self, service_factory, creeping_prices):
        anomalies = service_factory().detect_price_creep(orders_to_check=4)

        assert anomalies[0].severity == "medium"
        assert anomalies[0].details["price_change_percent"] == pytest.approx(22.73, abs=0.01)

    def test_small_increase_ignored(self, service_factory, clock, make_supplier, make_ingredient, receive_order):
        supplier = make_supplier()
        ingredient = make_ingredient(supplier=supplier)
        for days_ago, price in ((3, 10.0), (2, 10.5), (1, 10.9)):
            receive_order(supplier, ingredient, price, clock() - timedelta(days=days_ago))

        assert service_factory().detect_price_creep() == []

    def test_too_few_orders(self, service_factory, clock, make_supplier, make_ingredient, receive_order):
        supplier = make_supplier()
        ingredient = make_ingredient(supplier=supplier)
        receive_order(supplier, ingredient, 10.0, clock() - timedelta(days=2))
        receive_order(supplier, ingredient, 20.0, clock() - timedelta(days=1))

        assert service_factory().detect_price_creep() == []


class TestGhostInventory:

    def test_idle_stock_medium(self, service_factory, clock, make_ingredient, set_stock):
        ingredient = make_ingredient()
        set_stock(ingredient, 5, last_updated=clock() - timedelta(days=45))

        anomalies = service_factory().detect_ghost_inventory()

        assert len(anomalies) == 1
        assert anomalies[0].severity == "medium"
        assert anomalies[0].details["days_inactive"] == 45
        assert anomalies[0].description == (
            '"Tomatoes" shows 5 kg in stock but hasn\'t had any activity in 45 days. '
            "Please verify actual stock."
        )

    def test_long_idle_stock_high(self, service_factory, clock, make_ingredient, set_stock):
        ingredient = make_ingredient()
        set_stock(ingredient, 5, last_updated=clock() - timedelta(days=90))

        anomalies = service_factory().detect_ghost_inventory()

        assert anomalies[0].severity == "high"
        assert anomalies[0].details["days_inactive"] == 90

    def test_recent_activity_not_flagged(self, service_factory, clock, make_ingredient, set_stock, add_event):
        ingredient = make_ingredient()
        set_stock(ingredient, 5, last_updated=clock() - timedelta(days=45))
        add_event(ingredient, -1, clock() - timedelta(days=3))

        assert service_factory().detect_ghost_inventory() == []

    def test_empty_stock_not_flagged(self, service_factory, clock, make_ingredient, set_stock):
        ingredient = make_ingredient()
        set_stock(ingredient, 0, last_updated=clock() - timedelta(days=90))

        assert service_factory().detect_ghost_inventory() == []


class TestTheoreticalVariance:

    @pytest.fixture
    def pizza_sales(self, clock, make_ingredient, make_menu_item, record_sale):
        """50 pizzas at 0.2 kg of tomatoes each: 10 kg expected."""
        ingredient = make_ingredient()
        pizza = make_menu_item("Margherita", [(ingredient, 0.2)])
        record_sale(pizza, 50, clock() - timedelta(days=1))
        return ingredient

    def test_overuse_high(self, service_factory, clock, pizza_sales, add_event):
        add_event(pizza_sales, -14, clock() - timedelta(days=2))

        anomalies = service_factory().detect_theoretical_variance()

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.severity == "high"
        assert anomaly.details["expected_value"] == pytest.approx(10.0)
        assert anomaly.details["actual_value"] == pytest.approx(14.0)
        assert anomaly.details["deviation_percent"] == pytest.approx(40.0)
        assert anomaly.description.startswith('Used 40.0% more "Tomatoes" than expected based on sales')

    def test_overuse_medium(self, service_factory, clock, pizza_sales, add_event):
        add_event(pizza_sales, -12.5, clock() - timedelta(days=2))

        anomalies = service_factory().detect_theoretical_variance()

        assert anomalies[0].severity == "medium"

    def test_within_tolerance(self, service_factory, clock, pizza_sales, add_event):
        add_event(pizza_sales, -10.5, clock() - timedelta(days=2))

        assert service_factory().detect_theoretical_variance() == []

    def test_restocks_do_not_count_as_usage(self, service_factory, clock, pizza_sales, add_event):
        add_event(pizza_sales, -10, clock() - timedelta(days=2))
        add_event(pizza_sales, 40, clock() - timedelta(days=1))

        assert service_factory().detect_theoretical_variance() == []

    def test_underuse(self, service_factory, clock, pizza_sales, add_event):
        add_event(pizza_sales, -6, clock() - timedelta(days=2))

        anomalies = service_factory().detect_theoretical_variance()

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.severity == "high"
        assert anomaly.details["deviation_percent"] == pytest.approx(-40.0)
        assert anomaly.description.startswith('Used 40.0% less "Tomatoes" than expected based on sales')

    def test_zero_theoretical_usage_skipped(
        self, service_factory, clock, make_ingredient, make_menu_item, record_sale, add_event
    ):
        basil = make_ingredient("Basil")
        garnish = make_menu_item("Garnish", [(basil, 0)])
        record_sale(garnish, 20, clock() - timedelta(days=1))
        oil = make_ingredient("Olive Oil", unit="l")
        bread = make_menu_item("Bread", [(oil, 0.05)])
        record_sale(bread, 0, clock() - timedelta(days=1))
        add_event(basil, -3, clock() - timedelta(days=2))
        add_event(oil, -2, clock() - timedelta(days=2))

        assert service_factory().detect_theoretical_variance() == []

    def test_old_and_uncompleted_sales_excluded(
        self, service_factory, clock, make_menu_item, pizza_sales, record_sale, add_event
    ):
        pizza = make_menu_item("Marinara", [(pizza_sales, 0.2)])
        record_sale(pizza, 50, clock() - timedelta(days=10))
        record_sale(pizza, 50, clock() - timedelta(days=1), status="cancelled")
        record_sale(pizza, 50, clock() - timedelta(days=1), status="pending")
        add_event(pizza_sales, -10, clock() - timedelta(days=2))

        assert service_factory().detect_theoretical_variance() == []


class TestRunAnomalyDetection:

    def test_saves_and_counts(self, db, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])

        result = service_factory().run_anomaly_detection()

        assert result["total"] == 1
        assert result["counts_by_type"] == {
            "usage_spike": 1,
            "price_creep": 0,
            "ghost_inventory": 0,
            "theoretical_variance": 0,
        }
        stored = db.execute(select(Anomaly)).scalar_one()
        assert stored.type == "usage_spike"
        assert stored.resolved is False

    def test_second_run_deduplicated(self, db, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])
        service = service_factory()

        service.run_anomaly_detection()
        second = service.run_anomaly_detection()

        assert second["total"] == 0
        assert len(db.execute(select(Anomaly)).scalars().all()) == 1

    def test_selected_types_only(self, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])

        result = service_factory().run_anomaly_detection(["ghost_inventory"])

        assert result == {"counts_by_type": {"ghost_inventory": 0}, "total": 0}

    def test_unknown_type_rejected(self, service_factory):
        with pytest.raises(ValueError):
            service_factory().run_anomaly_detection(["usage_spike", "bogus"])

    def test_failing_detector_isolated(self, db, clock, service_factory, make_ingredient, set_stock):
        ingredient = make_ingredient()
        set_stock(ingredient, 5, last_updated=clock() - timedelta(days=45))

        result = service_factory(ledger=NoOrdersLedger(db)).run_anomaly_detection()

        assert result["counts_by_type"]["price_creep"] == 0
        assert result["counts_by_type"]["ghost_inventory"] == 1
        assert result["total"] == 1

    def test_recommendation_attached(self, db, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])
        recommender = FixedRecommender()

        service_factory(recommender=recommender).run_anomaly_detection(["usage_spike"])

        stored = db.execute(select(Anomaly)).scalar_one()
        assert stored.recommendation == "Check the walk-in cooler."
        assert recommender.contexts[0]["kind"] == "anomaly"
        assert recommender.contexts[0]["ingredient_name"] == "Tomatoes"

    def test_failing_recommender_leaves_none(self, db, service_factory, make_ingredient, add_usage_history):
        ingredient = make_ingredient()
        add_usage_history(ingredient, [10, 10, 10, 10, 10, 10, 50])

        result = service_factory(recommender=BrokenRecommender()).run_anomaly_detection(["usage_spike"])

        assert result["total"] == 1
        assert db.execute(select(Anomaly)).scalar_one().recommendation is None
