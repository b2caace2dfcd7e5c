"""
Inventory router for stock mutations and expiry risk.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from stockpulse.core.config import get_settings
from stockpulse.core.deps import get_ledger_store, get_recommender, get_result_store
from stockpulse.schemas.analytics import WastePredictionResponse
from stockpulse.schemas.inventory import StockChangeRequest, StockSnapshotResponse
from stockpulse.services.expiry_risk import ExpiryRiskPredictor
from stockpulse.services.recommendations import RecommendationClient
from stockpulse.stores.ledger import SqlLedgerStore
from stockpulse.stores.results import SqlResultStore


router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.post("/stock-changes", response_model=StockSnapshotResponse, status_code=status.HTTP_201_CREATED)
def record_stock_change(
    change: StockChangeRequest,
    ledger: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Record a stock movement and return the new balance.

    A change that would take stock below zero is rejected with 409.
    """
    snapshot = ledger.record_stock_change(
        ingredient_id=change.ingredient_id,
        delta=change.quantity_delta,
        reason=change.reason,
        actor_id=change.actor_id,
        notes=change.notes,
        expiry_date=change.expiry_date,
    )
    return StockSnapshotResponse(
        ingredient_id=snapshot.ingredient_id,
        quantity=snapshot.quantity,
        expiry_date=snapshot.expiry_date,
        last_updated=snapshot.last_updated,
    )


@router.get("/expiry-risks", response_model=List[WastePredictionResponse])
def get_expiry_risks(
    ledger: SqlLedgerStore = Depends(get_ledger_store),
    results: SqlResultStore = Depends(get_result_store),
    recommender: Optional[RecommendationClient] = Depends(get_recommender),
):
    """Stock at medium or higher risk of expiring before it is used."""
    settings = get_settings()
    predictor = ExpiryRiskPredictor(
        ledger,
        results,
        recommender=recommender,
        timezone=settings.USAGE_DAY_TIMEZONE,
        dedup_window_hours=settings.DEDUP_WINDOW_HOURS,
    )

    return [
        WastePredictionResponse(
            ingredient_id=p.ingredient_id,
            ingredient_name=p.ingredient_name,
            quantity=p.quantity,
            predicted_waste=round(p.predicted_waste, 3),
            predicted_usage=round(p.predicted_usage, 3),
            waste_percent=round(p.waste_percent, 2),
            risk_level=p.risk_level,
            expiry_date=p.expiry_date,
            days_until_expiry=p.days_until_expiry,
            recommendation=p.recommendation,
        )
        for p in predictor.get_expiry_risks()
    ]
