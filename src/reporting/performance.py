"""
Betting Performance

ROI, hit rate and drawdown over settled bets, plus text / CSV reports
"""

import sys
from pathlib import Path
from collections import defaultdict
from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config.settings import RESULTS_DIR
from src.storage.bet_store import BetRecord


@dataclass
class PerformanceMetrics:
    """Performance over settled bets"""
    # Counts
    settled_bets: int
    winning_bets: int
    hit_rate: float
    awaiting_return: int  # wins whose return is not known yet (missing odds)

    # Money (units)
    total_staked: float
    net_return: float
    roi: float

    # Averages
    avg_odds: float
    avg_edge: float

    # Risk
    max_drawdown: float


def _settled(bets: List[BetRecord]) -> List[BetRecord]:
    return [b for b in bets if b.is_settled]


def calculate_performance(bets: List[BetRecord]) -> PerformanceMetrics:
    """
    Calculate performance from bet records

    Unsettled bets are ignored. Wins with an unknown return count toward the
    hit rate but not toward staked/returned units.

    Args:
        bets: Bet records

    Returns:
        PerformanceMetrics
    """
    settled = _settled(bets)

    if not settled:
        return PerformanceMetrics(
            settled_bets=0,
            winning_bets=0,
            hit_rate=0.0,
            awaiting_return=0,
            total_staked=0.0,
            net_return=0.0,
            roi=0.0,
            avg_odds=0.0,
            avg_edge=0.0,
            max_drawdown=0.0,
        )

    winning = sum(1 for b in settled if b.result_win_flag == 1)
    priced = [b for b in settled if b.return_units is not None]
    awaiting = len(settled) - len(priced)

    returns = np.array([b.return_units for b in priced], dtype=float)
    total_staked = float(sum(b.stake_units or 0.0 for b in priced))
    net_return = float(returns.sum()) if len(returns) else 0.0

    # Drawdown of cumulative return, in settlement order
    if len(returns):
        cumulative = np.cumsum(returns)
        peak = np.maximum.accumulate(np.concatenate([[0.0], cumulative]))[1:]
        max_drawdown = float(np.max(peak - cumulative))
    else:
        max_drawdown = 0.0

    odds = [b.odds_dec for b in settled if b.odds_dec is not None]
    edges = [b.edge_prob for b in settled if b.edge_prob is not None]

    return PerformanceMetrics(
        settled_bets=len(settled),
        winning_bets=winning,
        hit_rate=winning / len(settled),
        awaiting_return=awaiting,
        total_staked=total_staked,
        net_return=net_return,
        roi=net_return / total_staked if total_staked > 0 else 0.0,
        avg_odds=float(np.mean(odds)) if odds else 0.0,
        avg_edge=float(np.mean(edges)) if edges else 0.0,
        max_drawdown=max_drawdown,
    )


def analyze_by_dimension(bets: List[BetRecord], dimension: str) -> dict:
    """
    Break settled bets down by a dimension

    Args:
        bets: Bet records
        dimension: "market", "event" or "book"

    Returns:
        {key: {"bets", "wins", "hit_rate", "staked", "return", "roi"}}
    """
    grouped = defaultdict(list)

    for bet in _settled(bets):
        if dimension == "market":
            key = bet.market.label
        elif dimension == "event":
            key = bet.event_id
        elif dimension == "book":
            key = bet.market_book_best or "unknown"
        else:
            key = "all"

        grouped[key].append(bet)

    results = {}
    for key, group_bets in grouped.items():
        total = len(group_bets)
        wins = sum(1 for b in group_bets if b.result_win_flag == 1)
        priced = [b for b in group_bets if b.return_units is not None]
        staked = sum(b.stake_units or 0.0 for b in priced)
        ret = sum(b.return_units for b in priced)

        results[key] = {
            "bets": total,
            "wins": wins,
            "hit_rate": wins / total if total > 0 else 0,
            "staked": staked,
            "return": ret,
            "roi": ret / staked if staked > 0 else 0,
        }

    return results


def bets_to_dataframe(bets: List[BetRecord]) -> pd.DataFrame:
    """Flatten bet records into a DataFrame"""
    rows = []
    for b in bets:
        rows.append({
            "id": b.id,
            "event_id": b.event_id,
            "market": b.market.label,
            "player_name": b.player_name,
            "dg_id": b.dg_id,
            "opponents": ", ".join(b.opponents),
            "book": b.market_book_best,
            "odds_dec": b.odds_dec,
            "p_model": b.p_model,
            "edge_prob": b.edge_prob,
            "kelly_frac": b.kelly_frac,
            "stake_units": b.stake_units,
            "status": b.status.value,
            "result_win_flag": b.result_win_flag,
            "return_units": b.return_units,
        })
    return pd.DataFrame(rows)


def generate_csv_report(bets: List[BetRecord], output_path: Path = None) -> Path:
    """
    Write bet records to CSV

    Returns:
        Output file path
    """
    output_path = output_path or RESULTS_DIR / "bet_history.csv"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    bets_to_dataframe(bets).to_csv(output_path, index=False)
    return output_path


def generate_summary_report(bets: List[BetRecord]) -> str:
    """Text summary of performance"""
    metrics = calculate_performance(bets)

    lines = []
    lines.append("=" * 60)
    lines.append("BETTING PERFORMANCE SUMMARY")
    lines.append("=" * 60)
    lines.append(f"Settled bets: {metrics.settled_bets}")
    lines.append(f"Winning bets: {metrics.winning_bets}")
    lines.append(f"Hit rate: {metrics.hit_rate:.1%}")
    if metrics.awaiting_return:
        lines.append(f"Wins awaiting odds: {metrics.awaiting_return}")
    lines.append("-" * 60)
    lines.append(f"Total staked: {metrics.total_staked:.2f}u")
    lines.append(f"Net return: {metrics.net_return:+.2f}u")
    lines.append(f"ROI: {metrics.roi:.1%}")
    lines.append(f"Max drawdown: {metrics.max_drawdown:.2f}u")
    lines.append(f"Average odds: {metrics.avg_odds:.2f}")
    lines.append(f"Average edge: {metrics.avg_edge:.2%}")

    by_market = analyze_by_dimension(bets, "market")
    if by_market:
        lines.append("-" * 60)
        lines.append("By market:")
        for key, stats in sorted(by_market.items()):
            lines.append(
                f"  {key:<16} {stats['bets']:>4} bets  "
                f"{stats['hit_rate']:>6.1%} hit  {stats['return']:>+8.2f}u  "
                f"ROI {stats['roi']:.1%}"
            )

    lines.append("=" * 60)
    return "\n".join(lines)
