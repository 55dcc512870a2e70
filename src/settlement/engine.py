"""
Settlement Engine

Turns finish / cut results into win-loss flags and realized returns.

Top-N markets pay dead-heat rules: when several players tie across the last
paid places, the stake is split. For Top 20 with a player finishing T18
alongside 5 others:

    paid places remaining = 20 - 18 + 1 = 3
    fraction = 3 / 6 = 0.5
"""

import sys
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config.settings import SETTLEMENT_CONFIG
from src.betting.markets import Market
from src.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementInput:
    """Outcome data for one player"""
    finish_position: Optional[int] = None  # 1 = winner
    tie_count_at_position: int = 1
    made_cut: Optional[bool] = None


@dataclass(frozen=True)
class SettlementResult:
    """Result written back to a bet"""
    win_flag: Optional[int]  # 1 / 0 / None (unsettled)
    return_units: Optional[float]
    dead_heat_fraction: Optional[float] = None

    @property
    def is_settled(self) -> bool:
        return self.win_flag is not None


UNSETTLED = SettlementResult(win_flag=None, return_units=None)


def dead_heat_fraction(finish_position: int, tie_count: int, top_n: int) -> float:
    """
    Dead-heat fraction for a Top-N market

    Args:
        finish_position: Finish rank (1 = winner)
        tie_count: Players sharing that rank
        top_n: Paid places

    Returns:
        Fraction of full profit paid (0-1)

    Examples:
        >>> dead_heat_fraction(18, 6, 20)
        0.5
        >>> dead_heat_fraction(5, 2, 20)
        1.0
    """
    if tie_count <= 0:
        return 0.0
    paid_places_remaining = top_n - finish_position + 1
    return float(np.clip(paid_places_remaining / tie_count, 0.0, 1.0))


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if np.isfinite(value) else None


class SettlementEngine:
    """Settles bets from outcome data or operator input"""

    def __init__(self, return_tolerance: float = SETTLEMENT_CONFIG["return_tolerance"]):
        self.return_tolerance = return_tolerance

    @staticmethod
    def classify(label) -> Market:
        return Market.from_label(label)

    @staticmethod
    def _win_return(stake: float, odds: Optional[float], fraction: float = 1.0) -> Optional[float]:
        # Won with unknown odds: amount is back-filled once odds are known
        if odds is None:
            return None
        return stake * (odds - 1) * fraction

    def settle(
        self,
        market: Market,
        stake_units: Optional[float],
        odds: Optional[float],
        outcome: Optional[SettlementInput],
    ) -> Optional[SettlementResult]:
        """
        Settle a bet automatically

        Args:
            market: Bet market
            stake_units: Stake of the bet
            odds: Decimal odds (None if not yet known)
            outcome: Finish / cut data for the bet's player

        Returns:
            SettlementResult, or None when the bet cannot be settled yet
        """
        market = self.classify(market)
        stake = _to_float(stake_units)
        if stake is None or stake <= 0 or outcome is None:
            return None
        odds = _to_float(odds)

        if market.top_n is not None:
            top_n = market.top_n
            pos = outcome.finish_position
            if pos is None or pos > top_n:
                return SettlementResult(win_flag=0, return_units=-stake)

            fraction = dead_heat_fraction(pos, outcome.tie_count_at_position, top_n)
            return SettlementResult(
                win_flag=1,
                return_units=self._win_return(stake, odds, fraction),
                dead_heat_fraction=fraction,
            )

        if market in (Market.MAKE_CUT, Market.MISS_CUT):
            if outcome.made_cut is None:
                return None
            won = outcome.made_cut if market is Market.MAKE_CUT else not outcome.made_cut
            if not won:
                return SettlementResult(win_flag=0, return_units=-stake)
            return SettlementResult(win_flag=1, return_units=self._win_return(stake, odds))

        return None

    def settle_manual(
        self,
        market: Market,
        stake_units: Optional[float],
        odds: Optional[float],
        is_win: bool,
        dead_heat_fraction: Optional[float] = None,
    ) -> SettlementResult:
        """
        Settle a bet from operator input

        Args:
            market: Bet market
            stake_units: Stake of the bet (None treated as 0)
            odds: Decimal odds
            is_win: Whether the bet won
            dead_heat_fraction: Optional fraction in (0, 1], Top-N markets only

        Returns:
            SettlementResult
        """
        market = self.classify(market)
        stake = _to_float(stake_units) or 0.0
        odds = _to_float(odds)

        if not is_win:
            return SettlementResult(win_flag=0, return_units=-stake)

        fraction = 1.0
        if dead_heat_fraction is not None:
            if not 0 < dead_heat_fraction <= 1:
                raise ValidationError(
                    f"Dead heat fraction must be in (0, 1], got {dead_heat_fraction}"
                )
            if market.top_n is not None:
                fraction = float(dead_heat_fraction)
            else:
                logger.debug(f"Ignoring dead heat fraction for {market.label}")

        return SettlementResult(
            win_flag=1,
            return_units=self._win_return(stake, odds, fraction),
            dead_heat_fraction=fraction if market.top_n is not None else None,
        )

    @staticmethod
    def unsettle() -> SettlementResult:
        return UNSETTLED

    def outcome_label(
        self,
        market: Market,
        win_flag: Optional[int],
        stake_units: Optional[float],
        odds: Optional[float],
        return_units: Optional[float],
    ) -> str:
        """
        Display label for a settled bet

        Returns:
            "" (unsettled), "Loss", "Win", or "W - DHR" when a Top-N win
            paid less than full profit
        """
        if win_flag is None:
            return ""
        if win_flag == 0:
            return "Loss"

        market = self.classify(market)
        stake, odds, ret = _to_float(stake_units), _to_float(odds), _to_float(return_units)
        if market.top_n is not None and None not in (stake, odds, ret):
            full_profit = stake * (odds - 1)
            if ret < full_profit and abs(ret - full_profit) > self.return_tolerance:
                return "W - DHR"

        return "Win"
