"""
Anomaly router: run the detectors, list alerts, resolve them.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from stockpulse.core.config import get_settings
from stockpulse.core.deps import get_ledger_store, get_recommender, get_result_store
from stockpulse.schemas.analytics import AnomalyResponse, RunAnomalyRequest, RunAnomalyResponse
from stockpulse.services.anomaly_detection import AnomalyDetectionService
from stockpulse.services.recommendations import RecommendationClient
from stockpulse.stores.ledger import SqlLedgerStore
from stockpulse.stores.results import SqlResultStore


router = APIRouter(prefix="/anomalies", tags=["anomalies"])


@router.post("/run", response_model=RunAnomalyResponse)
def run_anomaly_detection(
    req: Optional[RunAnomalyRequest] = None,
    ledger: SqlLedgerStore = Depends(get_ledger_store),
    results: SqlResultStore = Depends(get_result_store),
    recommender: Optional[RecommendationClient] = Depends(get_recommender),
):
    """
    Run all detectors, or the subset named in ``types``.

    Returns the number of new anomalies saved per type.
    """
    settings = get_settings()
    service = AnomalyDetectionService(
        ledger,
        results,
        recommender=recommender,
        timezone=settings.USAGE_DAY_TIMEZONE,
        dedup_window_hours=settings.DEDUP_WINDOW_HOURS,
    )

    try:
        return service.run_anomaly_detection(req.types if req else None)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.get("", response_model=List[AnomalyResponse])
def list_anomalies(
    resolved: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    results: SqlResultStore = Depends(get_result_store),
):
    """Most recent anomalies first, optionally filtered by resolved state."""
    return results.list_anomalies(resolved=resolved, limit=limit)


@router.post("/{anomaly_id}/resolve", response_model=AnomalyResponse)
def resolve_anomaly(
    anomaly_id: UUID,
    results: SqlResultStore = Depends(get_result_store),
):
    """Mark an anomaly resolved; the detector may raise it again afterwards."""
    return results.resolve_anomaly(anomaly_id)
