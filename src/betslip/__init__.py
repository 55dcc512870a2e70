"""
Betslip operations
"""

from src.betslip.service import BetslipService, EventLocks

__all__ = [
    "BetslipService",
    "EventLocks",
]
