"""
Exposure Caps

Re-derives the stakes of every pending bet of one event. Caps cascade:
per-player and per-opponent exposure caps (net of stakes already placed),
then a hard per-bet cap.

Exposure keys (name keys resolve to the dg-keyed identity of the same player
when the event has one):
    player   - the bet's own player identity
    opponent - for matchups, every listed opponent (backing X is a fade of
               X's opponents); for miss-cut bets, the player's own identity
"""

import sys
import logging
from pathlib import Path
from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config.settings import STAKING_CONFIG
from src.betting.kelly import EdgeCalculator, StakePlan, finite_or_zero
from src.betting.markets import Market, identity_key

logger = logging.getLogger(__name__)


class BetStatus(Enum):
    PENDING = "PENDING"
    PLACED = "PLACED"


@dataclass(frozen=True)
class BetCandidate:
    """A bet as seen by the staking engine"""
    bet_id: str
    event_id: str
    market: Market
    player_identity: str
    opponents: Tuple[str, ...] = ()
    model_probability: Optional[float] = None
    decimal_odds: Optional[float] = None
    book: Optional[str] = None
    status: BetStatus = BetStatus.PENDING
    stake_units: Optional[float] = None  # frozen stake, used for PLACED bets
    player_name: Optional[str] = None

    def opponent_exposure_keys(self) -> Tuple[str, ...]:
        """Keys whose opponent exposure this bet adds to"""
        if self.market.is_matchup:
            return tuple(self.opponents)
        if self.market is Market.MISS_CUT:
            return (self.player_identity,)
        return ()


def identity_aliases(bets: Iterable[BetCandidate]) -> Dict[str, str]:
    """
    Map name keys to the dg-keyed identity of the same player

    Opponents are listed by name while players with a DataGolf id are keyed
    by id. A name seen with two different ids is left unresolved.

    Examples:
        >>> bet = BetCandidate("b1", "evt1", Market.MISS_CUT, "dg:18417",
        ...                    player_name="Scottie Scheffler")
        >>> identity_aliases([bet])
        {'name:Scottie Scheffler': 'dg:18417'}
    """
    aliases = {}
    ambiguous = set()
    for bet in bets:
        if not bet.player_name or not bet.player_identity.startswith("dg:"):
            continue
        name_key = identity_key(None, bet.player_name)
        if aliases.get(name_key, bet.player_identity) != bet.player_identity:
            ambiguous.add(name_key)
        aliases[name_key] = bet.player_identity

    for name_key in ambiguous:
        logger.warning(f"{name_key} matches several DataGolf ids, not resolved")
        del aliases[name_key]
    return aliases


@dataclass
class ExposureLedger:
    """Stake sums by identity for one event"""
    player_pending: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    player_placed: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    opponent_pending: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    opponent_placed: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    aliases: Dict[str, str] = field(default_factory=dict)

    def resolve(self, key: str) -> str:
        return self.aliases.get(key, key)

    def player_key(self, bet: BetCandidate) -> str:
        return self.resolve(bet.player_identity)

    def opponent_keys(self, bet: BetCandidate) -> Tuple[str, ...]:
        # A 3-ball listing one player under both id and name counts once
        return tuple(dict.fromkeys(self.resolve(k) for k in bet.opponent_exposure_keys()))

    def add(self, bet: BetCandidate, stake: float, placed: bool) -> None:
        players = self.player_placed if placed else self.player_pending
        opponents = self.opponent_placed if placed else self.opponent_pending

        players[self.player_key(bet)] += stake
        for key in self.opponent_keys(bet):
            opponents[key] += stake

    def player_total(self, key: str) -> float:
        key = self.resolve(key)
        return self.player_pending.get(key, 0.0) + self.player_placed.get(key, 0.0)

    def opponent_total(self, key: str) -> float:
        key = self.resolve(key)
        return self.opponent_pending.get(key, 0.0) + self.opponent_placed.get(key, 0.0)


def cap_factor(pending_sum: float, placed_sum: float, cap: float) -> float:
    """
    Scale factor that keeps pending + placed exposure within cap

    Examples:
        >>> cap_factor(100.0, 25.0, 75.0)
        0.5
        >>> cap_factor(0.0, 80.0, 75.0)
        1.0
    """
    if pending_sum <= 0:
        return 1.0
    remaining = cap - placed_sum
    return float(np.clip(remaining / pending_sum, 0.0, 1.0))


class ExposureCapEngine:
    """
    Recomputes final stakes for every pending bet of an event

    recompute() is a pure function of the snapshot it is given: the same
    pending/placed set always yields the same stakes.
    """

    def __init__(
        self,
        calculator: Optional[EdgeCalculator] = None,
        cap_fraction: float = STAKING_CONFIG["cap_fraction"],
        max_bet_frac: float = STAKING_CONFIG["max_bet_frac"],
    ):
        """
        Args:
            calculator: Edge calculator used to price pending bets
            cap_fraction: Per-player / per-opponent exposure cap (fraction of bankroll)
            max_bet_frac: Hard cap on a single bet (fraction of bankroll)
        """
        self.calculator = calculator or EdgeCalculator()
        self.cap_fraction = cap_fraction
        self.max_bet_frac = max_bet_frac

    @property
    def exposure_cap(self) -> float:
        return self.cap_fraction * self.calculator.bankroll_units

    @property
    def max_bet(self) -> float:
        return self.max_bet_frac * self.calculator.bankroll_units

    def build_ledger(
        self,
        pending: List[BetCandidate],
        raw_plans: Dict[str, StakePlan],
        placed: List[BetCandidate],
    ) -> ExposureLedger:
        """Sum raw pending stakes and frozen placed stakes by exposure key"""
        ledger = ExposureLedger(aliases=identity_aliases(pending + placed))
        for bet in pending:
            ledger.add(bet, raw_plans[bet.bet_id].stake_units, placed=False)
        for bet in placed:
            ledger.add(bet, finite_or_zero(bet.stake_units), placed=True)
        return ledger

    def recompute(
        self,
        event_id: str,
        bets: Iterable[BetCandidate],
    ) -> Dict[str, StakePlan]:
        """
        Re-derive the stake plan of every pending bet of an event

        Args:
            event_id: Event to recompute
            bets: Snapshot of bets (PENDING and PLACED); other events are ignored

        Returns:
            Dictionary of {bet_id: StakePlan} for the event's pending bets
        """
        snapshot = [b for b in bets if b.event_id == event_id]
        pending = [b for b in snapshot if b.status is BetStatus.PENDING]
        placed = [b for b in snapshot if b.status is BetStatus.PLACED]

        raw_plans = {
            bet.bet_id: self.calculator.price(bet.model_probability, bet.decimal_odds, bet.market)
            for bet in pending
        }

        ledger = self.build_ledger(pending, raw_plans, placed)
        cap = self.exposure_cap

        player_factors = {
            key: cap_factor(total, ledger.player_placed.get(key, 0.0), cap)
            for key, total in ledger.player_pending.items()
        }
        opponent_factors = {
            key: cap_factor(total, ledger.opponent_placed.get(key, 0.0), cap)
            for key, total in ledger.opponent_pending.items()
        }

        plans = {}
        for bet in pending:
            raw = raw_plans[bet.bet_id]

            factor = player_factors.get(ledger.player_key(bet), 1.0)
            # The most constrained opponent binds
            for key in ledger.opponent_keys(bet):
                factor = min(factor, opponent_factors.get(key, 1.0))

            stake = min(raw.stake_units * factor, self.max_bet)
            plans[bet.bet_id] = replace(raw, stake_units=finite_or_zero(stake))

            if not self.calculator.is_value(raw) and raw.stake_units > 0:
                logger.warning(
                    f"{event_id}: {bet.player_identity} ({bet.market.label}) "
                    f"edge {raw.edge_prob:.3f} below minimum {self.calculator.min_edge:.3f}"
                )

        logger.debug(
            f"Recomputed {len(plans)} pending bets for event {event_id} "
            f"({len(placed)} placed)"
        )
        return plans

    def event_exposure(
        self,
        event_id: str,
        bets: Iterable[BetCandidate],
    ) -> ExposureLedger:
        """Ledger of current (final) stakes for an event, pending and placed"""
        snapshot = [b for b in bets if b.event_id == event_id]
        ledger = ExposureLedger(aliases=identity_aliases(snapshot))
        for bet in snapshot:
            ledger.add(bet, finite_or_zero(bet.stake_units), placed=bet.status is BetStatus.PLACED)
        return ledger
