#!/usr/bin/env python
"""
Golf Betslip CLI

Usage:
    uv run python -m src.cli.betslip --help
    uv run python -m src.cli.betslip price --prob 0.30 --odds 4.0 --market "Top 20"
    uv run python -m src.cli.betslip add --event 14 --market "Top 20" --player "Scottie Scheffler" --dg-id 18417 --prob 0.30 --odds 4.0
    uv run python -m src.cli.betslip show --event 14
    uv run python -m src.cli.betslip settle --event 14 --year 2025
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from config.settings import BET_STORE_PATH, EVENT_STORE_PATH, STAKING_CONFIG
from src.betting.exposure import BetStatus, ExposureCapEngine
from src.betting.kelly import EdgeCalculator
from src.betting.markets import Market
from src.betslip.service import BetslipService
from src.exceptions import GolfBetError
from src.reporting.performance import generate_csv_report, generate_summary_report
from src.settlement.service import SettlementService
from src.storage.bet_store import BetRecord, CsvBetStore
from src.storage.event_store import CsvEventStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class BetslipCLI:
    """CLI for the betslip"""

    def __init__(
        self,
        store_path: Path = BET_STORE_PATH,
        bankroll_units: float = STAKING_CONFIG["bankroll_units"],
        kelly_fraction: float = STAKING_CONFIG["kelly_fraction"],
    ):
        """
        Args:
            store_path: CSV file holding the bets (event history sits beside it)
            bankroll_units: Bankroll in units
            kelly_fraction: Kelly multiplier (default: quarter Kelly)
        """
        self.calculator = EdgeCalculator(
            bankroll_units=bankroll_units,
            kelly_fraction=kelly_fraction,
        )
        store_path = Path(store_path)
        self.store = CsvBetStore(store_path)
        self.events = CsvEventStore(store_path.parent / EVENT_STORE_PATH.name)
        self.betslip = BetslipService(
            self.store, engine=ExposureCapEngine(self.calculator), events=self.events
        )
        self.settlement = SettlementService(self.store)

    def price(self, prob: float, odds: float, market: str) -> None:
        """Print the pricing of a single bet"""
        market = Market.from_label(market)
        plan = self.calculator.price(prob, odds, market)

        print(f"\n{market.label}: p={prob:.3f} odds={odds:.2f}")
        print("-" * 40)
        print(f"  Edge:        {plan.edge_prob:+.2%}")
        print(f"  EV / unit:   {plan.ev_per_unit:+.3f}")
        print(f"  Full Kelly:  {plan.kelly_full:.4f}")
        print(f"  Frac Kelly:  {plan.kelly_frac:.4f}")
        print(f"  Raw stake:   {plan.stake_units:.2f}u")
        if not self.calculator.is_value(plan):
            print(f"  (edge below {self.calculator.min_edge:.0%} threshold)")

    def show(self, event_id: str) -> None:
        """Print the betslip of an event"""
        records = self.betslip.list_event(event_id)
        if not records:
            print(f"No bets for event {event_id}")
            return

        print(f"\n{'=' * 78}")
        print(f"Betslip: event {event_id}")
        print("=" * 78)
        print(f"{'Status':<8} {'Market':<15} {'Player':<22} {'Odds':>6} {'Edge':>7} {'Stake':>7}  Result")
        print("-" * 78)
        for r in records:
            self._print_row(r)

        pending = sum(r.stake_units or 0 for r in records if r.status is BetStatus.PENDING)
        placed = sum(r.stake_units or 0 for r in records if r.status is BetStatus.PLACED)
        print("-" * 78)
        print(f"Pending: {pending:.2f}u  Placed: {placed:.2f}u")

    def _print_row(self, r: BetRecord) -> None:
        odds = f"{r.odds_dec:.2f}" if r.odds_dec is not None else "-"
        edge = f"{r.edge_prob:+.1%}" if r.edge_prob is not None else "-"
        stake = f"{r.stake_units:.2f}" if r.stake_units is not None else "-"
        print(
            f"{r.status.value:<8} {r.market.label:<15} {r.player_name[:22]:<22} "
            f"{odds:>6} {edge:>7} {stake:>7}  {self.settlement.outcome_label(r)}"
        )
        print(f"{'':<8} id={r.id}")

    def history(self) -> None:
        """Print archived events with their placed bets"""
        weeks = self.events.list_all()
        if not weeks:
            print("No archived events")
            return

        for week in weeks:
            bets = [b for b in self.store.list_all() if b.event_id == week.event_id and b.archived]
            settled = [b for b in bets if b.is_settled]
            net = sum(b.return_units or 0.0 for b in settled)
            flag = "final" if week.is_final else "open"
            print(f"{week.label:<32} [{flag:<5}] {len(bets):>3} bets  "
                  f"{len(settled):>3} settled  {net:+.2f}u")

    def report(self, event_id: Optional[str] = None, csv: bool = False) -> None:
        """Print the performance summary"""
        bets = self.store.list_all()
        if event_id is not None:
            bets = [b for b in bets if b.event_id == event_id]
        print(generate_summary_report(bets))
        if csv:
            path = generate_csv_report(bets)
            logger.info(f"Saved bet history to {path}")


def _parse_opponents(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [o.strip() for o in raw.split(",") if o.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Golf Betslip CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s price --prob 0.30 --odds 4.0 --market "Top 20"
  %(prog)s add --event 14 --market "Matchup 2-Ball" --player "Jon Rahm" --opponents "Rory McIlroy" --prob 0.55 --odds 2.1
  %(prog)s edit BET_ID --status PLACED
  %(prog)s settle-manual BET_ID --win --dead-heat 0.5
  %(prog)s archive --event 14 --name "The Masters" --year 2025
  %(prog)s report --csv
        """
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=BET_STORE_PATH,
        help=f"Bet store CSV (default: {BET_STORE_PATH})"
    )
    parser.add_argument(
        "--bankroll", "-b",
        type=float,
        default=STAKING_CONFIG["bankroll_units"],
        help=f"Bankroll in units (default: {STAKING_CONFIG['bankroll_units']})"
    )
    parser.add_argument(
        "--kelly",
        type=float,
        default=STAKING_CONFIG["kelly_fraction"],
        help=f"Kelly multiplier (default: {STAKING_CONFIG['kelly_fraction']})"
    )

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("price", help="Price a single bet")
    p.add_argument("--prob", "-p", type=float, required=True, help="Model probability")
    p.add_argument("--odds", "-o", type=float, required=True, help="Decimal odds")
    p.add_argument("--market", "-m", default="Top 20", help="Market label")

    p = sub.add_parser("add", help="Add a bet to an event's slip")
    p.add_argument("--event", "-e", required=True, help="Event id")
    p.add_argument("--market", "-m", required=True, help="Market label")
    p.add_argument("--player", required=True, help="Player name")
    p.add_argument("--dg-id", help="DataGolf player id")
    p.add_argument("--opponents", help="Comma separated opponents (matchups)")
    p.add_argument("--prob", "-p", type=float, help="Model probability")
    p.add_argument("--odds", "-o", type=float, help="Decimal odds")
    p.add_argument("--book", help="Sportsbook")

    p = sub.add_parser("edit", help="Edit odds, book or status of a bet")
    p.add_argument("bet_id")
    p.add_argument("--odds", "-o", type=float, help="Entered decimal odds")
    p.add_argument("--book", help="Sportsbook")
    p.add_argument("--status", choices=[s.value for s in BetStatus], help="New status")

    p = sub.add_parser("remove", help="Remove a bet")
    p.add_argument("bet_id")

    p = sub.add_parser("show", help="Show an event's slip")
    p.add_argument("--event", "-e", required=True, help="Event id")

    p = sub.add_parser("recompute", help="Recompute stakes for an event")
    p.add_argument("--event", "-e", required=True, help="Event id")

    p = sub.add_parser("settle", help="Settle an event from DataGolf results")
    p.add_argument("--event", "-e", required=True, help="Event id")
    p.add_argument("--year", "-y", type=int, required=True, help="Event year")

    p = sub.add_parser("settle-manual", help="Settle a bet by hand")
    p.add_argument("bet_id")
    result = p.add_mutually_exclusive_group(required=True)
    result.add_argument("--win", action="store_true", help="Bet won")
    result.add_argument("--loss", action="store_true", help="Bet lost")
    p.add_argument("--dead-heat", type=float, help="Dead heat fraction for Top-N wins (e.g. 0.5)")

    p = sub.add_parser("unsettle", help="Clear a bet's result")
    p.add_argument("bet_id")

    p = sub.add_parser("archive", help="Move an event's placed bets into its history")
    p.add_argument("--event", "-e", required=True, help="Event id")
    p.add_argument("--name", help="Event name (default: event id)")
    p.add_argument("--year", "-y", type=int, help="Event year")

    p = sub.add_parser("finalize", help="Mark an archived event final")
    p.add_argument("--event", "-e", required=True, help="Event id")
    p.add_argument("--reopen", action="store_true", help="Clear the final flag instead")

    sub.add_parser("history", help="List archived events")

    p = sub.add_parser("report", help="Performance summary")
    p.add_argument("--event", "-e", help="Restrict to one event")
    p.add_argument("--csv", action="store_true", help="Also write bet history CSV")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        cli = BetslipCLI(
            store_path=args.store,
            bankroll_units=args.bankroll,
            kelly_fraction=args.kelly,
        )

        if args.command == "price":
            cli.price(args.prob, args.odds, args.market)
        elif args.command == "add":
            record = cli.betslip.add_bet(
                event_id=args.event,
                market=args.market,
                player_name=args.player,
                dg_id=args.dg_id,
                opponents=_parse_opponents(args.opponents),
                odds=args.odds,
                book=args.book,
                p_model=args.prob,
            )
            cli.show(record.event_id)
        elif args.command == "edit":
            record = cli.betslip.update_bet(
                args.bet_id, odds=args.odds, book=args.book,
                status=BetStatus(args.status) if args.status else None,
            )
            cli.show(record.event_id)
        elif args.command == "remove":
            removed = cli.betslip.remove_bet(args.bet_id)
            if removed is None:
                logger.warning(f"Bet not found: {args.bet_id}")
            else:
                cli.show(removed.event_id)
        elif args.command == "show":
            cli.show(args.event)
        elif args.command == "recompute":
            cli.betslip.recompute(args.event)
            cli.show(args.event)
        elif args.command == "settle":
            updated = cli.settlement.settle_event_from_feed(args.event, args.year)
            print(f"Settled {updated} bets")
        elif args.command == "settle-manual":
            record = cli.settlement.settle_manual(
                args.bet_id, is_win=args.win, dead_heat_fraction=args.dead_heat
            )
            print(f"{record.player_name}: {cli.settlement.outcome_label(record)} "
                  f"({record.return_units if record.return_units is not None else '-'})")
        elif args.command == "unsettle":
            record = cli.settlement.unsettle(args.bet_id)
            print(f"{record.player_name}: unsettled")
        elif args.command == "archive":
            archived = cli.betslip.archive_placed(args.event, args.name, args.year)
            print(f"Archived {archived} bets")
        elif args.command == "finalize":
            week = cli.betslip.finalize_event(args.event, is_final=not args.reopen)
            print(f"{week.label}: {'final' if week.is_final else 'open'}")
        elif args.command == "history":
            cli.history()
        elif args.command == "report":
            cli.report(event_id=args.event, csv=args.csv)
    except GolfBetError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
