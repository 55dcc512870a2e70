"""
Tournament Results Feed

Fetches finish positions and cut status for an event from DataGolf and
turns them into SettlementInput records keyed by player identity.

Usage:
    feed = DataGolfResultsFeed(api_key="...")
    results = feed.fetch_event_results(event_id="14", year=2025)
    outcome = results.outcome_for(dg_id="18417")
"""

import re
import sys
import time
import logging
from pathlib import Path
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
import requests

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config.settings import RESULTS_FEED_CONFIG
from src.betting.markets import identity_key
from src.exceptions import ConfigurationError, FeedError
from src.settlement.engine import SettlementInput

logger = logging.getLogger(__name__)

_ID_FIELDS = ("dg_id", "dgId", "player_dg_id", "player_id", "playerId")
_FINISH_FIELDS = ("finish_position", "finishPos", "finish", "position", "pos", "fin_text")
_NAME_FIELDS = ("player_name", "playerName", "name")
_LIST_FIELDS = ("data", "results", "players", "event_stats")


@dataclass(frozen=True)
class FinishRow:
    """Finish data for a single player"""
    dg_id: Optional[str]
    player_name: Optional[str]
    finish_position: Optional[int]
    made_cut: Optional[bool]

    @property
    def identity(self) -> str:
        return identity_key(self.dg_id, self.player_name)


def parse_finish_position(raw) -> Optional[int]:
    """
    Parse a finish position

    Examples:
        >>> parse_finish_position(18)
        18
        >>> parse_finish_position("T18")
        18
        >>> parse_finish_position("CUT") is None
        True
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw) if np.isfinite(raw) and raw > 0 else None

    match = re.fullmatch(r"T?(\d+)", str(raw).strip().upper())
    if not match:
        return None
    pos = int(match.group(1))
    return pos if pos > 0 else None


def _first_present(row: dict, fields: Iterable[str]):
    for name in fields:
        value = row.get(name)
        if value is not None and value != "":
            return value
    return None


def parse_made_cut(row: dict) -> Optional[bool]:
    """Cut status from made_cut / madeCut, or inverted missed_cut"""
    for name in ("made_cut", "madeCut"):
        if row.get(name) is not None:
            return bool(row[name])
    if row.get("missed_cut") is not None:
        return not bool(row["missed_cut"])
    return None


def parse_finish_rows(payload) -> List[FinishRow]:
    """
    Normalize a feed payload into finish rows

    The payload can be a bare list of rows or an object holding the rows
    under "data", "results", "players" or "event_stats". Rows without a
    usable player id or name are dropped.
    """
    candidates = []
    if isinstance(payload, list):
        candidates.extend(payload)
    elif isinstance(payload, dict):
        for name in _LIST_FIELDS:
            if isinstance(payload.get(name), list):
                candidates.extend(payload[name])

    rows = []
    for raw in candidates:
        if not isinstance(raw, dict):
            continue

        dg_id = _first_present(raw, _ID_FIELDS)
        if dg_id is not None:
            try:
                dg_id = str(int(float(dg_id)))
            except (TypeError, ValueError):
                dg_id = None

        name = _first_present(raw, _NAME_FIELDS)
        if dg_id is None and name is None:
            continue

        rows.append(FinishRow(
            dg_id=dg_id,
            player_name=str(name) if name is not None else None,
            finish_position=parse_finish_position(_first_present(raw, _FINISH_FIELDS)),
            made_cut=parse_made_cut(raw),
        ))

    return rows


class EventResults:
    """Finish rows of one event, indexed by player identity"""

    def __init__(self, event_id: str, rows: List[FinishRow]):
        self.event_id = event_id
        self.rows = rows
        self.tie_counts: Dict[int, int] = Counter(
            r.finish_position for r in rows if r.finish_position is not None
        )
        self._by_identity: Dict[str, FinishRow] = {}
        for row in rows:
            if row.dg_id is not None:
                self._by_identity[identity_key(row.dg_id)] = row
            if row.player_name:
                self._by_identity.setdefault(identity_key(None, row.player_name), row)

    def __len__(self) -> int:
        return len(self.rows)

    def outcome_for(
        self,
        dg_id: Optional[str] = None,
        player_name: Optional[str] = None,
    ) -> Optional[SettlementInput]:
        """
        Settlement input for a player

        Looks the player up by DataGolf id first, then by name.

        Returns:
            SettlementInput, or None if the player is not in the results
        """
        row = None
        if dg_id is not None and str(dg_id).strip():
            row = self._by_identity.get(identity_key(dg_id))
        if row is None and player_name:
            row = self._by_identity.get(identity_key(None, player_name))
        if row is None:
            return None

        ties = self.tie_counts.get(row.finish_position, 1) if row.finish_position is not None else 1
        return SettlementInput(
            finish_position=row.finish_position,
            tie_count_at_position=ties,
            made_cut=row.made_cut,
        )


class DataGolfResultsFeed:
    """Client for the DataGolf historical event results endpoint"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = RESULTS_FEED_CONFIG["base_url"],
        tour: str = RESULTS_FEED_CONFIG["tour"],
        timeout: float = RESULTS_FEED_CONFIG["timeout"],
        max_retries: int = RESULTS_FEED_CONFIG["max_retries"],
        retry_delay: float = RESULTS_FEED_CONFIG["retry_delay"],
    ):
        """
        Args:
            api_key: DataGolf API key (default: DATAGOLF_API_KEY env variable)
            base_url: Endpoint URL
            tour: Tour code
            timeout: Request timeout in seconds
            max_retries: Attempts before giving up
            retry_delay: Base delay between attempts in seconds
        """
        self.api_key = api_key if api_key is not None else RESULTS_FEED_CONFIG["api_key"]
        self.base_url = base_url
        self.tour = tour
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = requests.Session()

    def _build_params(self, event_id: str, year: int) -> dict:
        return {
            "tour": self.tour,
            "event_id": str(event_id),
            "year": str(year),
            "file_format": "json",
            "key": self.api_key,
        }

    def _fetch_json(self, event_id: str, year: int):
        """Fetch the raw payload with retry"""
        if not self.api_key:
            raise ConfigurationError("Missing DATAGOLF_API_KEY")

        params = self._build_params(event_id, year)
        last_error = None

        for attempt in range(self.max_retries):
            try:
                response = self.session.get(self.base_url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.warning(
                    f"Results fetch failed (attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay * (attempt + 1))

        raise FeedError(
            f"DataGolf fetch failed for event_id={event_id} year={year}: {last_error}"
        )

    def fetch_event_results(self, event_id: str, year: int) -> EventResults:
        """
        Fetch finish data for an event

        Args:
            event_id: DataGolf event id
            year: Event year

        Returns:
            EventResults

        Raises:
            ConfigurationError: No API key configured
            FeedError: Feed unreachable after retries
        """
        payload = self._fetch_json(event_id, year)
        rows = parse_finish_rows(payload)
        logger.info(f"Fetched {len(rows)} finish rows for event {event_id} ({year})")
        return EventResults(event_id, rows)
