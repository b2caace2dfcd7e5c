"""
StockPulse: inventory analytics for restaurant stock ledgers.
"""
__version__ = "0.1.0"
