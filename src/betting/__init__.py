"""
Betting Strategy Module

Market types, Kelly stake pricing and exposure caps
"""

from src.betting.markets import Market, identity_key, opponent_keys
from src.betting.kelly import (
    EdgeCalculator,
    StakePlan,
    calculate_kelly_fraction,
)
from src.betting.exposure import (
    BetCandidate,
    BetStatus,
    ExposureCapEngine,
    ExposureLedger,
)

__all__ = [
    "Market",
    "identity_key",
    "opponent_keys",
    "EdgeCalculator",
    "StakePlan",
    "calculate_kelly_fraction",
    "BetCandidate",
    "BetStatus",
    "ExposureCapEngine",
    "ExposureLedger",
]
