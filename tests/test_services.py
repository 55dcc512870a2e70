"""
Tests for betslip and settlement services
"""

import sys
import threading
from dataclasses import replace
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.betting.exposure import BetStatus
from src.betting.kelly import StakePlan
from src.betslip.service import BetslipService, EventLocks
from src.exceptions import BetNotFoundError, EventNotFoundError, ValidationError
from src.settlement.results_feed import EventResults, FinishRow
from src.settlement.service import SettlementService


@pytest.fixture
def betslip(store, engine):
    return BetslipService(store, engine=engine)


@pytest.fixture
def settlement_service(store):
    return SettlementService(store)


class TestEventLocks:
    """Tests for EventLocks"""

    def test_same_event_same_lock(self):
        locks = EventLocks()
        assert locks.get("evt1") is locks.get("evt1")
        assert locks.get("evt1") is not locks.get("evt2")


class TestBetslipService:
    """Tests for BetslipService"""

    def test_add_prices_bet(self, betslip):
        record = betslip.add_bet("evt1", "Top 20", "A", odds=4.0, p_model=0.30)

        assert record.edge_prob == pytest.approx(0.05)
        assert record.kelly_frac == pytest.approx(0.2 / 3 * 0.25)
        assert record.stake_units == pytest.approx(8.3333, rel=1e-4)

    def test_add_rescales_siblings(self, betslip):
        """Test a second bet on a player shrinks the first"""
        a = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        assert a.stake_units == pytest.approx(50.0)

        betslip.add_bet("evt1", "Make Cut", "A", odds=3.0, p_model=0.6)
        assert betslip.store.get(a.id).stake_units == pytest.approx(37.5)

    def test_duplicate_add(self, betslip):
        a = betslip.add_bet("evt1", "Top 20", "A", odds=4.0, p_model=0.30)
        b = betslip.add_bet("evt1", "Top 20", "A", odds=9.0, p_model=0.90)
        assert a.id == b.id
        assert len(betslip.store) == 1

    def test_edit_odds_recomputes(self, betslip):
        record = betslip.add_bet("evt1", "Top 20", "A", odds=4.0, p_model=0.30)
        updated = betslip.update_bet(record.id, odds=5.0, book="draftkings")

        assert updated.odds_dec == 5.0
        assert updated.market_book_best == "draftkings"
        assert updated.edge_prob == pytest.approx(0.30 - 0.2)

    def test_place_freezes_stake(self, betslip):
        """Test placed stakes stop changing and count as used exposure"""
        a = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        placed = betslip.place_bet(a.id)
        assert placed.status is BetStatus.PLACED
        assert placed.stake_units == pytest.approx(50.0)

        b = betslip.add_bet("evt1", "Make Cut", "A", odds=3.0, p_model=0.6)
        assert b.stake_units == pytest.approx(25.0)
        assert betslip.store.get(a.id).stake_units == pytest.approx(50.0)

    def test_remove_recomputes(self, betslip):
        a = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        b = betslip.add_bet("evt1", "Make Cut", "A", odds=3.0, p_model=0.6)

        removed = betslip.remove_bet(b.id)

        assert removed.id == b.id
        assert betslip.store.get(a.id).stake_units == pytest.approx(50.0)

    def test_remove_unknown(self, betslip):
        assert betslip.remove_bet("nope") is None

    def test_update_unknown(self, betslip):
        with pytest.raises(BetNotFoundError):
            betslip.update_bet("nope", odds=2.0)

    def test_events_independent(self, betslip):
        a = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        betslip.add_bet("evt2", "Make Cut", "A", odds=3.0, p_model=0.6)
        assert betslip.store.get(a.id).stake_units == pytest.approx(50.0)

    def test_list_event_pending_first(self, betslip):
        a = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        b = betslip.add_bet("evt1", "Top 20", "B", odds=3.0, p_model=0.6)
        betslip.place_bet(a.id)

        assert [r.id for r in betslip.list_event("evt1")] == [b.id, a.id]

    def test_recompute_idempotent(self, betslip):
        betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        betslip.add_bet("evt1", "Miss Cut", "B", odds=2.5, p_model=0.5)
        betslip.add_bet("evt1", "Matchup 2-Ball", "C", opponents=["B"], odds=2.0, p_model=0.6)

        first = betslip.recompute("evt1")
        second = betslip.recompute("evt1")
        assert first == second

    def test_concurrent_adds_keep_caps(self, betslip):
        """Test concurrent changes to one event leave consistent stakes"""
        def add(i):
            betslip.add_bet("evt1", "Top 20" if i % 2 else "Make Cut", f"P{i % 3}",
                            dg_id=str(1000 + i), odds=3.0, p_model=0.6)

        threads = [threading.Thread(target=add, args=(i,)) for i in range(24)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stored = {r.id: r.stake_units for r in betslip.store.list_event("evt1")}
        assert len(stored) == 24
        # A fresh recompute must find nothing to change
        plans = betslip.recompute("evt1")
        assert {k: p.stake_units for k, p in plans.items()} == stored

    def test_failed_write_leaves_store_unchanged(self, store, engine):
        """Test a plan that cannot be written does not partially apply"""
        betslip = BetslipService(store, engine=engine)
        a = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)

        engine.recompute = Mock(return_value={
            a.id: replace(engine.calculator.price(0.6, 3.0), stake_units=1.0),
            "ghost": engine.calculator.price(0.6, 3.0),
        })
        with pytest.raises(BetNotFoundError):
            betslip.recompute("evt1")
        assert store.get(a.id).stake_units == pytest.approx(50.0)


    def test_fade_cap_spans_dg_and_name(self, betslip, engine):
        """Test a dg-keyed miss-cut and matchups naming the same player share one fade cap"""
        betslip.add_bet("evt1", "Miss Cut", "Scottie Scheffler", dg_id="18417", odds=3.0, p_model=0.6)
        for name in ("B", "C", "D"):
            betslip.add_bet("evt1", "Matchup 2-Ball", name, opponents=["Scottie Scheffler"],
                            odds=3.0, p_model=0.6)

        candidates = [r.to_candidate() for r in betslip.store.list_event("evt1")]
        ledger = engine.event_exposure("evt1", candidates)
        assert ledger.opponent_total("dg:18417") == pytest.approx(75.0)


class TestSettlementService:
    """Tests for SettlementService"""

    def _placed(self, betslip, market, name, dg_id, odds, p=0.6):
        record = betslip.add_bet("evt1", market, name, dg_id=dg_id, odds=odds, p_model=p)
        return betslip.place_bet(record.id)

    def test_settle_event(self, betslip, settlement_service, sample_results):
        top20 = self._placed(betslip, "Top 20", "Tied Player 0", "118", 5.0, p=0.3)
        make_cut = self._placed(betslip, "Make Cut", "Cut Player", "199", 1.5, p=0.8)
        miss_cut = self._placed(betslip, "Miss Cut", "Winner Player", "100", 4.0, p=0.3)
        unknown = self._placed(betslip, "Top 20", "Not In Field", "555", 5.0, p=0.3)
        pending = betslip.add_bet("evt1", "Top 20", "Winner Player", dg_id="100", odds=5.0, p_model=0.3)

        updated = settlement_service.settle_event("evt1", sample_results)
        assert updated == 3

        store = settlement_service.store
        r = store.get(top20.id)
        assert r.result_win_flag == 1
        assert r.return_units == pytest.approx(top20.stake_units * 4 * 0.5)

        assert store.get(make_cut.id).result_win_flag == 0
        assert store.get(make_cut.id).return_units == pytest.approx(-make_cut.stake_units)
        assert store.get(miss_cut.id).result_win_flag == 0
        assert store.get(unknown.id).result_win_flag is None
        assert store.get(pending.id).result_win_flag is None

    def test_settle_event_skips_settled(self, betslip, settlement_service, sample_results):
        self._placed(betslip, "Top 20", "Winner Player", "100", 5.0, p=0.3)
        assert settlement_service.settle_event("evt1", sample_results) == 1
        assert settlement_service.settle_event("evt1", sample_results) == 0

    def test_settle_by_name(self, betslip, settlement_service, sample_results):
        record = betslip.add_bet("evt1", "Top 20", "Solo Fifth", odds=5.0, p_model=0.3)
        betslip.place_bet(record.id)
        assert settlement_service.settle_event("evt1", sample_results) == 1

    def test_settle_from_feed(self, betslip, store, sample_results):
        feed = Mock()
        feed.fetch_event_results.return_value = sample_results
        service = SettlementService(store, feed=feed)
        self._placed(betslip, "Top 20", "Winner Player", "100", 5.0, p=0.3)

        assert service.settle_event_from_feed("evt1", 2025) == 1
        feed.fetch_event_results.assert_called_once_with("evt1", 2025)

    def test_manual_and_unsettle_round_trip(self, betslip, settlement_service):
        bet = self._placed(betslip, "Top 20", "A", None, 5.0, p=0.3)

        settled = settlement_service.settle_manual(bet.id, is_win=True, dead_heat_fraction=0.5)
        assert settled.result_win_flag == 1
        assert settled.return_units == pytest.approx(bet.stake_units * 4 * 0.5)
        assert settlement_service.outcome_label(settled) == "W - DHR"

        restored = settlement_service.unsettle(bet.id)
        assert restored == bet
        assert settlement_service.outcome_label(restored) == ""

    def test_manual_invalid_fraction(self, betslip, settlement_service):
        bet = self._placed(betslip, "Top 20", "A", None, 5.0, p=0.3)
        with pytest.raises(ValidationError):
            settlement_service.settle_manual(bet.id, is_win=True, dead_heat_fraction=2.0)
        assert settlement_service.store.get(bet.id).result_win_flag is None

    def test_unsettle_unknown(self, settlement_service):
        with pytest.raises(BetNotFoundError):
            settlement_service.unsettle("nope")

    def test_late_odds(self, store, settlement_service):
        """Test a win recorded before odds were known"""
        record, _ = store.add("evt1", "Top 20", "Winner Player", dg_id="100", p_model=0.3)
        store.update(record.id, status=BetStatus.PLACED)
        store.apply_plans({record.id: StakePlan(0.0, 0.0, 0.0, 0.0, 10.0)})

        results = EventResults("evt1", [FinishRow("100", "Winner Player", 1, True)])
        assert settlement_service.settle_event("evt1", results) == 1

        r = store.get(record.id)
        assert r.result_win_flag == 1
        assert r.return_units is None


    def test_manual_requires_placed(self, betslip, settlement_service):
        """Test a pending bet cannot be settled, so a later re-stake never leaves a stale return"""
        bet = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)

        with pytest.raises(ValidationError):
            settlement_service.settle_manual(bet.id, is_win=True)

        betslip.add_bet("evt1", "Make Cut", "A", odds=3.0, p_model=0.6)
        record = settlement_service.store.get(bet.id)
        assert record.result_win_flag is None
        assert record.stake_units == pytest.approx(37.5)

    def test_settled_bet_cannot_return_to_pending(self, betslip, settlement_service):
        bet = self._placed(betslip, "Top 20", "A", None, 3.0)
        settlement_service.settle_manual(bet.id, is_win=False)

        with pytest.raises(ValidationError):
            betslip.update_bet(bet.id, status="pending")
        assert betslip.store.get(bet.id).status is BetStatus.PLACED


class TestEventHistory:
    """Tests for archiving placed bets and finalizing events"""

    def test_archive_placed(self, betslip):
        a = betslip.place_bet(betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6).id)
        b = betslip.add_bet("evt1", "Make Cut", "A", odds=3.0, p_model=0.6)
        assert b.stake_units == pytest.approx(25.0)

        assert betslip.archive_placed("evt1", "The Masters", 2025) == 1

        assert betslip.store.get(a.id).archived
        assert [r.id for r in betslip.list_event("evt1")] == [b.id]
        assert [r.id for r in betslip.list_event("evt1", include_archived=True)] == [a.id, b.id]
        # Archived exposure has left the slip
        assert betslip.store.get(b.id).stake_units == pytest.approx(50.0)
        assert betslip.events.get("evt1").label == "The Masters 2025"

    def test_archive_without_placed_bets(self, betslip):
        betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        assert betslip.archive_placed("evt1", "The Masters", 2025) == 0
        assert len(betslip.events) == 0

    def test_archived_bets_are_history(self, betslip):
        a = betslip.place_bet(betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6).id)
        betslip.archive_placed("evt1")

        with pytest.raises(ValidationError):
            betslip.update_bet(a.id, odds=4.0)
        with pytest.raises(ValidationError):
            betslip.remove_bet(a.id)

        again = betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6)
        assert again.id != a.id

    def test_archived_bets_still_settle(self, betslip, settlement_service, sample_results):
        bet = betslip.add_bet("evt1", "Top 20", "Winner Player", dg_id="100", odds=5.0, p_model=0.3)
        betslip.place_bet(bet.id)
        betslip.archive_placed("evt1")

        assert settlement_service.settle_event("evt1", sample_results) == 1
        assert settlement_service.store.get(bet.id).result_win_flag == 1

    def test_finalize_and_reopen(self, betslip):
        betslip.place_bet(betslip.add_bet("evt1", "Top 20", "A", odds=3.0, p_model=0.6).id)
        betslip.archive_placed("evt1", "The Masters", 2025)

        assert betslip.finalize_event("evt1").is_final
        with pytest.raises(ValidationError):
            betslip.add_bet("evt1", "Top 20", "B", odds=3.0, p_model=0.6)

        assert not betslip.finalize_event("evt1", is_final=False).is_final
        assert betslip.add_bet("evt1", "Top 20", "B", odds=3.0, p_model=0.6).stake_units > 0

    def test_finalize_unknown_event(self, betslip):
        with pytest.raises(EventNotFoundError):
            betslip.finalize_event("evt9")
