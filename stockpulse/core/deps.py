"""
FastAPI dependencies shared by the routers.
"""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from stockpulse.db.session import get_db
from stockpulse.services.recommendations import RecommendationClient
from stockpulse.stores.ledger import SqlLedgerStore
from stockpulse.stores.results import SqlResultStore


def get_ledger_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    return SqlLedgerStore(db)


def get_result_store(db: Session = Depends(get_db)) -> SqlResultStore:
    return SqlResultStore(db)


def get_recommender(request: Request) -> Optional[RecommendationClient]:
    """The process-wide recommendation client built at startup."""
    return getattr(request.app.state, "recommender", None)
