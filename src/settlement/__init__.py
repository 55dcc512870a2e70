"""
Settlement Module

Settles finished bets from tournament results or operator input
"""

from src.settlement.engine import (
    SettlementEngine,
    SettlementInput,
    SettlementResult,
    dead_heat_fraction,
)
from src.settlement.results_feed import DataGolfResultsFeed, EventResults, FinishRow

__all__ = [
    "SettlementEngine",
    "SettlementInput",
    "SettlementResult",
    "dead_heat_fraction",
    "DataGolfResultsFeed",
    "EventResults",
    "FinishRow",
]
