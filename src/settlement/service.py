"""
Settlement Service

Applies the settlement engine to stored bets: automatic settlement from
event results, manual settlement by the operator, and unsettling.
"""

import sys
import logging
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from src.betting.exposure import BetStatus
from src.exceptions import ValidationError
from src.settlement.engine import SettlementEngine, SettlementResult
from src.settlement.results_feed import DataGolfResultsFeed, EventResults
from src.storage.bet_store import BetRecord, InMemoryBetStore

logger = logging.getLogger(__name__)


class SettlementService:
    """Settles stored bets"""

    def __init__(
        self,
        store: InMemoryBetStore,
        engine: Optional[SettlementEngine] = None,
        feed: Optional[DataGolfResultsFeed] = None,
    ):
        """
        Args:
            store: Bet record store
            engine: Settlement engine
            feed: Results feed, needed only for settle_event_from_feed
        """
        self.store = store
        self.engine = engine or SettlementEngine()
        self.feed = feed

    def settle_bet(self, bet: BetRecord, results: EventResults) -> Optional[SettlementResult]:
        """
        Settle one bet from event results

        Returns:
            The written result, or None if the bet stays unsettled
        """
        outcome = results.outcome_for(dg_id=bet.dg_id, player_name=bet.player_name)
        if outcome is None:
            logger.debug(f"No result for {bet.identity} in event {bet.event_id}")
            return None

        result = self.engine.settle(bet.market, bet.stake_units, bet.odds_dec, outcome)
        if result is None:
            return None

        self.store.apply_settlement(bet.id, result)
        return result

    def settle_event(self, event_id: str, results: EventResults) -> int:
        """
        Settle every placed, unsettled bet of an event

        Args:
            event_id: Event to settle
            results: Finish data for the event

        Returns:
            Number of bets updated
        """
        updated = 0
        skipped = 0
        for bet in self.store.list_unsettled(event_id):
            if self.settle_bet(bet, results) is None:
                skipped += 1
            else:
                updated += 1

        logger.info(f"Event {event_id}: settled {updated} bets, {skipped} left open")
        return updated

    def settle_event_from_feed(self, event_id: str, year: int) -> int:
        """Fetch results for an event and settle it"""
        feed = self.feed or DataGolfResultsFeed()
        results = feed.fetch_event_results(event_id, year)
        return self.settle_event(event_id, results)

    def settle_manual(
        self,
        bet_id: str,
        is_win: bool,
        dead_heat_fraction: Optional[float] = None,
    ) -> BetRecord:
        """Settle a placed bet from operator input, bypassing results lookup"""
        bet = self.store.get(bet_id)
        if bet.status is not BetStatus.PLACED:
            raise ValidationError(f"Bet {bet_id} is {bet.status.value}; only placed bets settle")
        result = self.engine.settle_manual(
            bet.market, bet.stake_units, bet.odds_dec, is_win, dead_heat_fraction
        )
        logger.info(f"Manually settled {bet_id}: {'win' if is_win else 'loss'}")
        return self.store.apply_settlement(bet_id, result)

    def unsettle(self, bet_id: str) -> BetRecord:
        """Clear a bet's result"""
        self.store.get(bet_id)
        return self.store.apply_settlement(bet_id, self.engine.unsettle())

    def outcome_label(self, bet: BetRecord) -> str:
        return self.engine.outcome_label(
            bet.market, bet.result_win_flag, bet.stake_units, bet.odds_dec, bet.return_units
        )
