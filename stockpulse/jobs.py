"""
Batch job runner for scheduled analytics.

Usage:
    python -m stockpulse.jobs anomalies          # daily
    python -m stockpulse.jobs forecasts          # daily, followed by expiry risks
    python -m stockpulse.jobs ghost-inventory    # weekly
    python -m stockpulse.jobs price-creep        # when purchase orders are received

Scheduling is external (cron or similar).
"""
import argparse
import logging
import sys
from typing import Dict, List, Optional

from stockpulse.core.config import get_settings
from stockpulse.core.log_config import configure_logging
from stockpulse.db.session import session_scope
from stockpulse.services.anomaly_detection import AnomalyDetectionService
from stockpulse.services.expiry_risk import ExpiryRiskPredictor
from stockpulse.services.forecast import ForecastService
from stockpulse.services.recommendations import RecommendationClient
from stockpulse.stores.ledger import SqlLedgerStore
from stockpulse.stores.results import SqlResultStore

logger = logging.getLogger(__name__)

JOBS = ("anomalies", "forecasts", "ghost-inventory", "price-creep")


def run_job(name: str, db, recommender: Optional[RecommendationClient] = None) -> Dict:
    """Run one job against an open session and return its summary."""
    settings = get_settings()
    ledger = SqlLedgerStore(db)
    results = SqlResultStore(db)
    tz = settings.USAGE_DAY_TIMEZONE

    if name == "forecasts":
        summary = ForecastService(ledger, results, recommender=recommender, timezone=tz).generate_all_forecasts()
        risks = ExpiryRiskPredictor(
            ledger, results, recommender=recommender, timezone=tz,
            dedup_window_hours=settings.DEDUP_WINDOW_HOURS,
        ).get_expiry_risks()
        summary["expiry_risks"] = len(risks)
        return summary

    types_by_job = {
        "anomalies": None,
        "ghost-inventory": ["ghost_inventory"],
        "price-creep": ["price_creep"],
    }
    if name not in types_by_job:
        raise ValueError(f"Unknown job '{name}'")

    service = AnomalyDetectionService(
        ledger, results, recommender=recommender, timezone=tz,
        dedup_window_hours=settings.DEDUP_WINDOW_HOURS,
    )
    return service.run_anomaly_detection(types_by_job[name])


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="stockpulse.jobs", description="Run a StockPulse analytics job")
    parser.add_argument("job", choices=JOBS)
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    recommender = RecommendationClient.from_settings(settings)

    try:
        with session_scope() as db:
            summary = run_job(args.job, db, recommender)
    except Exception:
        logger.exception("Job %s failed", args.job)
        return 1

    logger.info("Job %s finished: %s", args.job, summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
