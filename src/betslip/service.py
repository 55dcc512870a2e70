"""
Betslip Service

Every change to an event's pending set (add, odds/book edit, status change,
removal) re-derives the stakes of the whole event. The read-compute-write
cycle runs under a per-event lock, so two recomputes of the same event never
interleave while different events proceed independently.
"""

import sys
import logging
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Dict, List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from src.betting.exposure import BetStatus, ExposureCapEngine
from src.betting.kelly import StakePlan
from src.exceptions import BetNotFoundError, ValidationError
from src.storage.bet_store import BetRecord, InMemoryBetStore
from src.storage.event_store import EventWeek, InMemoryEventStore

logger = logging.getLogger(__name__)


class EventLocks:
    """One lock per event id"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, event_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(event_id)
            if lock is None:
                lock = self._locks[event_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, event_id: str):
        lock = self.get(event_id)
        with lock:
            yield


class BetslipService:
    """Betslip operations over a bet store"""

    def __init__(
        self,
        store: InMemoryBetStore,
        engine: Optional[ExposureCapEngine] = None,
        locks: Optional[EventLocks] = None,
        events: Optional[InMemoryEventStore] = None,
    ):
        """
        Args:
            store: Bet record store
            engine: Exposure cap engine (default settings if omitted)
            locks: Lock registry shared with other services on the same store
            events: Event history store (archived / final events)
        """
        self.store = store
        self.engine = engine or ExposureCapEngine()
        self.locks = locks or EventLocks()
        self.events = events if events is not None else InMemoryEventStore()

    def _recompute_locked(self, event_id: str) -> Dict[str, StakePlan]:
        snapshot = [r.to_candidate() for r in self.store.list_event(event_id)]
        plans = self.engine.recompute(event_id, snapshot)
        self.store.apply_plans(plans)
        return plans

    def recompute(self, event_id: str) -> Dict[str, StakePlan]:
        """
        Re-derive and persist stakes for all pending bets of an event

        Returns:
            Dictionary of {bet_id: StakePlan} written to the store
        """
        with self.locks.hold(event_id):
            return self._recompute_locked(event_id)

    def _require_live(self, bet_id: str) -> BetRecord:
        record = self.store.get(bet_id)
        if record.archived:
            raise ValidationError(f"Bet {bet_id} is archived")
        return record

    def _require_open_event(self, event_id: str) -> None:
        week = self.events.find(event_id)
        if week is not None and week.is_final:
            raise ValidationError(f"Event {week.label} is final")

    def add_bet(
        self,
        event_id: str,
        market,
        player_name: str,
        dg_id: Optional[str] = None,
        opponents=(),
        odds: Optional[float] = None,
        book: Optional[str] = None,
        p_model: Optional[float] = None,
    ) -> BetRecord:
        """Add a pending bet (no-op for a duplicate) and recompute its event"""
        self._require_open_event(event_id)
        with self.locks.hold(event_id):
            record, created = self.store.add(
                event_id=event_id,
                market=market,
                player_name=player_name,
                dg_id=dg_id,
                opponents=opponents,
                market_odds_best_dec=odds,
                market_book_best=book,
                p_model=p_model,
            )
            if created:
                logger.info(f"Added {record.market.label} bet on {player_name} ({event_id})")
            else:
                logger.info(f"Bet already on slip: {record.unique_key}")
            self._recompute_locked(event_id)
            return self.store.get(record.id)

    def update_bet(
        self,
        bet_id: str,
        odds: Optional[float] = None,
        book: Optional[str] = None,
        status: Optional[BetStatus] = None,
    ) -> BetRecord:
        """Edit entered odds, book or status and recompute the event"""
        record = self._require_live(bet_id)
        changes = {}
        if odds is not None:
            changes["odds_entered_dec"] = odds
        if book is not None:
            changes["market_book_best"] = book
        if status is not None:
            if not isinstance(status, BetStatus):
                try:
                    status = BetStatus(str(status).upper())
                except ValueError:
                    raise ValidationError(f"Unknown status: {status}")
            # A pending bet is re-staked, which would leave its return stale
            if record.is_settled and status is not BetStatus.PLACED:
                raise ValidationError(f"Bet {bet_id} is settled; unsettle it first")
            changes["status"] = status

        with self.locks.hold(record.event_id):
            if changes:
                self.store.update(bet_id, **changes)
            self._recompute_locked(record.event_id)
            return self.store.get(bet_id)

    def place_bet(self, bet_id: str) -> BetRecord:
        """Mark a bet PLACED, freezing its stake as used exposure"""
        return self.update_bet(bet_id, status=BetStatus.PLACED)

    def remove_bet(self, bet_id: str) -> Optional[BetRecord]:
        """Remove a bet and recompute its event; unknown ids are a no-op"""
        try:
            event_id = self._require_live(bet_id).event_id
        except BetNotFoundError:
            return None

        with self.locks.hold(event_id):
            removed = self.store.delete(bet_id)
            self._recompute_locked(event_id)
            return removed

    def list_event(self, event_id: str, include_archived: bool = False) -> List[BetRecord]:
        """Pending bets first, then placed, each in creation order"""
        records = self.store.list_event(event_id, include_archived=include_archived)
        return sorted(records, key=lambda r: r.status is BetStatus.PLACED)

    def archive_placed(
        self,
        event_id: str,
        event_name: Optional[str] = None,
        event_year: Optional[int] = None,
    ) -> int:
        """
        Move an event's placed bets into its history and recompute the slip

        Pending bets stay on the slip. Nothing is recorded when the event has
        no placed bets.

        Returns:
            Number of bets archived
        """
        with self.locks.hold(event_id):
            archived = self.store.archive_placed(event_id)
            if archived:
                week = self.events.upsert(event_id, event_name or str(event_id), event_year)
                logger.info(f"Archived {len(archived)} placed bets to {week.label}")
                self._recompute_locked(event_id)
            return len(archived)

    def finalize_event(self, event_id: str, is_final: bool = True) -> EventWeek:
        """Mark an archived event final (no new bets) or reopen it"""
        with self.locks.hold(event_id):
            week = self.events.set_final(event_id, is_final)
        logger.info(f"{week.label}: {'final' if week.is_final else 'reopened'}")
        return week
