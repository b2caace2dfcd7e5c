"""
SQLAlchemy models for StockPulse.
"""
# Reference data
from stockpulse.models.ingredient import Supplier, Ingredient
from stockpulse.models.menu import MenuItem, RecipeLine

# Ledger
from stockpulse.models.inventory import StockChangeEvent, CurrentStock, STOCK_CHANGE_REASONS

# Purchasing & sales
from stockpulse.models.purchasing import PurchaseOrder, PurchaseOrderItem
from stockpulse.models.sales import SaleOrder, SaleOrderItem

# Analytics outputs
from stockpulse.models.analytics import IngredientForecast, Anomaly, WastePrediction


__all__ = [
    # Reference
    "Supplier",
    "Ingredient",
    "MenuItem",
    "RecipeLine",
    # Ledger
    "StockChangeEvent",
    "CurrentStock",
    "STOCK_CHANGE_REASONS",
    # Purchasing & sales
    "PurchaseOrder",
    "PurchaseOrderItem",
    "SaleOrder",
    "SaleOrderItem",
    # Analytics
    "IngredientForecast",
    "Anomaly",
    "WastePrediction",
]
