"""
Kelly Criterion Bet Sizing

Converts a model probability and decimal odds into a fractional-Kelly stake.

The Kelly criterion formula:
    f* = (b*p - q) / b = (p*odds - 1) / (odds - 1)

Where:
    f* = fraction of bankroll to bet
    b = odds - 1 (net odds)
    p = probability of winning
    q = 1 - p (probability of losing)
    odds = decimal odds (e.g., 4.0 means 3 units profit per unit staked)
"""

import sys
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config.settings import STAKING_CONFIG
from src.betting.markets import Market

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StakePlan:
    """Stake sizing for a single bet"""
    edge_prob: float  # p - 1/odds
    ev_per_unit: float  # p*b - q
    kelly_full: float
    kelly_frac: float  # After applying Kelly multiplier, clamped to [0, 1]
    stake_units: float

    @classmethod
    def empty(cls) -> "StakePlan":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0)


def finite_or_zero(value: Optional[float]) -> float:
    """Coerce None / NaN / inf to 0.0"""
    if value is None:
        return 0.0
    value = float(value)
    return value if np.isfinite(value) else 0.0


def calculate_kelly_fraction(probability: float, odds: float) -> float:
    """
    Calculate full Kelly fraction for a single bet

    Args:
        probability: Estimated probability of winning (0-1)
        odds: Decimal odds

    Returns:
        Kelly fraction (can be negative if EV < 0)

    Examples:
        >>> round(calculate_kelly_fraction(0.30, 4.0), 4)
        0.0667
        >>> calculate_kelly_fraction(0.10, 5.0)
        -0.125
    """
    b = odds - 1
    if b <= 0:
        return 0.0

    # f* = (p * (b + 1) - 1) / b
    return (probability * (b + 1) - 1) / b


class EdgeCalculator:
    """
    Prices a bet: edge, expected value, Kelly fractions and raw stake

    The raw stake is fractional Kelly on the unit bankroll, scaled down for
    matchup markets. Exposure caps are applied later by ExposureCapEngine.
    """

    def __init__(
        self,
        bankroll_units: float = STAKING_CONFIG["bankroll_units"],
        kelly_fraction: float = STAKING_CONFIG["kelly_fraction"],
        min_edge: float = STAKING_CONFIG["min_edge"],
        market_multipliers: Optional[Dict[str, float]] = None,
    ):
        """
        Args:
            bankroll_units: Bankroll in betting units
            kelly_fraction: Fraction of Kelly to use (0.25 = quarter Kelly)
            min_edge: Edge below which a bet is flagged (never blocked)
            market_multipliers: Stake multipliers keyed by "default",
                "matchup2", "matchup3"
        """
        self.bankroll_units = bankroll_units
        self.kelly_fraction = kelly_fraction
        self.min_edge = min_edge
        self.market_multipliers = dict(STAKING_CONFIG["market_multipliers"])
        if market_multipliers:
            self.market_multipliers.update(market_multipliers)

    def stake_multiplier(self, market: Market) -> float:
        """Stake multiplier for a market"""
        market = Market.from_label(market)
        return self.market_multipliers.get(
            market.multiplier_key, self.market_multipliers["default"]
        )

    def price(
        self,
        probability: Optional[float],
        odds: Optional[float],
        market: Market = Market.UNCLASSIFIED,
    ) -> StakePlan:
        """
        Price a single bet

        Args:
            probability: Model win probability (None treated as 0)
            odds: Decimal odds (None or <= 1 means no bet)
            market: Market of the bet

        Returns:
            StakePlan with raw (uncapped) stake
        """
        p = finite_or_zero(probability)
        if odds is None or not np.isfinite(odds) or odds <= 1.0:
            return StakePlan.empty()

        implied_prob = 1.0 / odds
        edge = p - implied_prob
        b = odds - 1
        q = 1 - p
        ev_per_unit = p * b - q

        kelly_full = calculate_kelly_fraction(p, odds)
        kelly_frac = float(np.clip(kelly_full * self.kelly_fraction, 0.0, 1.0))
        stake = kelly_frac * self.bankroll_units * self.stake_multiplier(market)

        return StakePlan(
            edge_prob=finite_or_zero(edge),
            ev_per_unit=finite_or_zero(ev_per_unit),
            kelly_full=finite_or_zero(kelly_full),
            kelly_frac=finite_or_zero(kelly_frac),
            stake_units=max(0.0, finite_or_zero(stake)),
        )

    def is_value(self, plan: StakePlan) -> bool:
        """Whether a plan clears the minimum edge threshold (display only)"""
        return plan.edge_prob >= self.min_edge


if __name__ == "__main__":
    print("Kelly Criterion Examples")
    print("=" * 50)

    calc = EdgeCalculator()
    test_bets = [
        (0.30, 4.0, Market.TOP_20),
        (0.55, 2.1, Market.MATCHUP_2),
        (0.40, 3.2, Market.MATCHUP_3),
    ]

    for prob, odds, market in test_bets:
        plan = calc.price(prob, odds, market)
        print(f"\n   {market.label}: Prob {prob:.0%}, Odds {odds:.2f}")
        print(f"   Edge: {plan.edge_prob:.2%}, EV/unit: {plan.ev_per_unit:.3f}")
        print(f"   Kelly: {plan.kelly_full:.4f}, Fractional: {plan.kelly_frac:.4f}")
        print(f"   Raw stake: {plan.stake_units:.2f}u")
