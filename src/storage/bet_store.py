"""
Bet Record Store

Holds betslip records: the stake plan written by the exposure engine and
the settlement written by the settlement engine. Every write that touches
several fields or several rows is applied under one lock, after validation,
and is rolled back if it cannot be persisted, so a failed write leaves the
store unchanged.

Archived bets are the event history: placed bets moved off the live slip.
They keep their stake and can still be settled, but no longer count toward
the exposure of the slip.
"""

import os
import sys
import uuid
import logging
import tempfile
import threading
from pathlib import Path
from datetime import datetime
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Optional, Tuple

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from src.betting.exposure import BetCandidate, BetStatus
from src.betting.kelly import StakePlan
from src.betting.markets import Market, identity_key, opponent_keys
from src.exceptions import BetNotFoundError, DataError, ValidationError
from src.settlement.engine import SettlementResult

logger = logging.getLogger(__name__)


@dataclass
class BetRecord:
    """Stored bet"""
    id: str
    event_id: str
    market: Market
    player_name: str
    dg_id: Optional[str] = None
    opponents: Tuple[str, ...] = ()
    market_odds_best_dec: Optional[float] = None
    market_book_best: Optional[str] = None
    odds_entered_dec: Optional[float] = None
    p_model: Optional[float] = None
    edge_prob: Optional[float] = None
    ev_per_unit: Optional[float] = None
    kelly_full: Optional[float] = None
    kelly_frac: Optional[float] = None
    stake_units: Optional[float] = None
    status: BetStatus = BetStatus.PENDING
    result_win_flag: Optional[int] = None
    return_units: Optional[float] = None
    archived: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def identity(self) -> str:
        return identity_key(self.dg_id, self.player_name)

    @property
    def odds_dec(self) -> Optional[float]:
        """Entered odds take precedence over best market odds"""
        if self.odds_entered_dec is not None:
            return self.odds_entered_dec
        return self.market_odds_best_dec

    @property
    def unique_key(self) -> str:
        return make_unique_key(
            self.event_id, self.market, self.dg_id, self.player_name, self.opponents
        )

    @property
    def is_settled(self) -> bool:
        return self.result_win_flag is not None

    def to_candidate(self) -> BetCandidate:
        return BetCandidate(
            bet_id=self.id,
            event_id=self.event_id,
            market=self.market,
            player_identity=self.identity,
            opponents=opponent_keys(self.opponents),
            model_probability=self.p_model,
            decimal_odds=self.odds_dec,
            book=self.market_book_best,
            status=self.status,
            stake_units=self.stake_units,
            player_name=self.player_name,
        )


def make_unique_key(event_id, market, dg_id, player_name, opponents) -> str:
    return "|".join([
        str(event_id),
        Market.from_label(market).value,
        str(dg_id or ""),
        player_name or "",
        ",".join(opponents or ()),
    ])


def write_csv_atomic(df: pd.DataFrame, path: Path) -> None:
    """
    Write a DataFrame to CSV through a temp file and rename

    Raises:
        DataError: The file could not be written (the old file is kept)
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        os.close(fd)
        try:
            df.to_csv(tmp_name, index=False)
            os.replace(tmp_name, path)
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
    except OSError as e:
        raise DataError(f"Could not write {path}: {e}")


_PLAN_FIELDS = ("edge_prob", "ev_per_unit", "kelly_full", "kelly_frac", "stake_units")
_EDITABLE_FIELDS = {
    "odds_entered_dec", "market_odds_best_dec", "market_book_best", "p_model", "status",
}


class InMemoryBetStore:
    """Dictionary-backed bet store"""

    def __init__(self):
        self._records: Dict[str, BetRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def _persist(self) -> None:
        """Hook for durable stores"""
        pass

    @contextmanager
    def _transaction(self):
        """Apply a mutation and persist it, restoring the old rows on failure"""
        with self._lock:
            previous = dict(self._records)
            try:
                yield
                self._persist()
            except Exception:
                self._records = previous
                raise

    def _require(self, bet_id: str) -> BetRecord:
        record = self._records.get(bet_id)
        if record is None:
            raise BetNotFoundError(f"Bet not found: {bet_id}")
        return record

    def add(
        self,
        event_id: str,
        market,
        player_name: str,
        dg_id: Optional[str] = None,
        opponents=(),
        market_odds_best_dec: Optional[float] = None,
        market_book_best: Optional[str] = None,
        p_model: Optional[float] = None,
    ) -> Tuple[BetRecord, bool]:
        """
        Add a pending bet, or return the existing live one with the same key

        Returns:
            (record, created)
        """
        if not event_id:
            raise ValidationError("event_id is required")
        if not player_name and not dg_id:
            raise ValidationError("player_name or dg_id is required")
        if p_model is not None and not 0 <= p_model <= 1:
            raise ValidationError(f"p_model must be in [0, 1], got {p_model}")

        if isinstance(opponents, str):
            opponents = [o.strip() for o in opponents.split(",")]
        opponents = tuple(o for o in (opponents or ()) if o)
        market = Market.from_label(market)
        dg_id = str(dg_id).strip() if dg_id is not None and str(dg_id).strip() else None

        with self._lock:
            key = make_unique_key(event_id, market, dg_id, player_name, opponents)
            existing = self.find_by_unique_key(key)
            if existing is not None:
                return replace(existing), False

            record = BetRecord(
                id=uuid.uuid4().hex,
                event_id=str(event_id),
                market=market,
                player_name=player_name,
                dg_id=dg_id,
                opponents=opponents,
                market_odds_best_dec=market_odds_best_dec,
                market_book_best=market_book_best,
                odds_entered_dec=market_odds_best_dec,
                p_model=p_model,
            )
            with self._transaction():
                self._records[record.id] = record
            return replace(record), True

    def get(self, bet_id: str) -> BetRecord:
        with self._lock:
            return replace(self._require(bet_id))

    def find_by_unique_key(self, key: str) -> Optional[BetRecord]:
        """Live (not archived) bet with the given key"""
        with self._lock:
            for record in self._records.values():
                if not record.archived and record.unique_key == key:
                    return record
        return None

    def update(self, bet_id: str, **changes) -> BetRecord:
        """Update user-editable fields (odds, book, probability, status)"""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {sorted(unknown)}")
        if "status" in changes and not isinstance(changes["status"], BetStatus):
            try:
                changes["status"] = BetStatus(str(changes["status"]).upper())
            except ValueError:
                raise ValidationError(f"Unknown status: {changes['status']}")

        with self._transaction():
            updated = replace(self._require(bet_id), **changes)
            self._records[bet_id] = updated
        return replace(updated)

    def delete(self, bet_id: str) -> Optional[BetRecord]:
        """Delete a bet; returns the removed record or None if absent"""
        with self._lock:
            if bet_id not in self._records:
                return None
            with self._transaction():
                record = self._records.pop(bet_id)
            return record

    def list_event(
        self,
        event_id: str,
        status: Optional[BetStatus] = None,
        include_archived: bool = False,
    ) -> List[BetRecord]:
        """Bets of an event in creation order (live slip unless include_archived)"""
        with self._lock:
            records = [
                replace(r) for r in self._records.values()
                if r.event_id == event_id
                and (status is None or r.status is status)
                and (include_archived or not r.archived)
            ]
        return sorted(records, key=lambda r: r.created_at)

    def list_all(self) -> List[BetRecord]:
        with self._lock:
            records = [replace(r) for r in self._records.values()]
        return sorted(records, key=lambda r: r.created_at)

    def list_unsettled(self, event_id: Optional[str] = None) -> List[BetRecord]:
        """Placed bets without a result, archived or not"""
        return [
            r for r in self.list_all()
            if r.status is BetStatus.PLACED and not r.is_settled
            and (event_id is None or r.event_id == event_id)
        ]

    def apply_plans(self, plans: Dict[str, StakePlan]) -> None:
        """Write stake plans for several bets at once (all or nothing)"""
        with self._lock:
            missing = [bet_id for bet_id in plans if bet_id not in self._records]
            if missing:
                raise BetNotFoundError(f"Bets not found: {missing}")

            with self._transaction():
                for bet_id, plan in plans.items():
                    self._records[bet_id] = replace(
                        self._records[bet_id],
                        **{name: getattr(plan, name) for name in _PLAN_FIELDS},
                    )

    def apply_settlement(self, bet_id: str, result: SettlementResult) -> BetRecord:
        """Write win flag and return together"""
        with self._transaction():
            updated = replace(
                self._require(bet_id),
                result_win_flag=result.win_flag,
                return_units=result.return_units,
            )
            self._records[bet_id] = updated
        return replace(updated)

    def archive_placed(self, event_id: str) -> List[BetRecord]:
        """Move an event's placed bets off the live slip; returns them"""
        with self._transaction():
            archived = []
            for bet_id, record in list(self._records.items()):
                if record.event_id == event_id and record.status is BetStatus.PLACED \
                        and not record.archived:
                    self._records[bet_id] = replace(record, archived=True)
                    archived.append(replace(self._records[bet_id]))
        return sorted(archived, key=lambda r: r.created_at)


def _none_if_na(value):
    if isinstance(value, (list, tuple)):
        return value
    return None if pd.isna(value) else value


class CsvBetStore(InMemoryBetStore):
    """Bet store persisted to a CSV file"""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            df = pd.read_csv(self.path, dtype={"id": str, "event_id": str, "dg_id": str})
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataError(f"Unreadable bet store {self.path}: {e}")

        for row in df.to_dict(orient="records"):
            record = self._from_row(row)
            self._records[record.id] = record
        logger.debug(f"Loaded {len(self._records)} bets from {self.path}")

    @staticmethod
    def _from_row(row: dict) -> BetRecord:
        values = {k: _none_if_na(v) for k, v in row.items()}
        opponents = values.get("opponents")
        win_flag = values.get("result_win_flag")

        return BetRecord(
            id=str(values["id"]),
            event_id=str(values["event_id"]),
            market=Market(values["market"]),
            player_name=values.get("player_name") or "",
            dg_id=values.get("dg_id"),
            opponents=tuple(opponents.split("|")) if opponents else (),
            market_odds_best_dec=values.get("market_odds_best_dec"),
            market_book_best=values.get("market_book_best"),
            odds_entered_dec=values.get("odds_entered_dec"),
            p_model=values.get("p_model"),
            edge_prob=values.get("edge_prob"),
            ev_per_unit=values.get("ev_per_unit"),
            kelly_full=values.get("kelly_full"),
            kelly_frac=values.get("kelly_frac"),
            stake_units=values.get("stake_units"),
            status=BetStatus(values["status"]),
            result_win_flag=int(win_flag) if win_flag is not None else None,
            return_units=values.get("return_units"),
            archived=str(values.get("archived")).lower() == "true",
            created_at=datetime.fromisoformat(values["created_at"]),
        )

    @staticmethod
    def _to_row(record: BetRecord) -> dict:
        row = {f.name: getattr(record, f.name) for f in fields(record)}
        row["market"] = record.market.value
        row["status"] = record.status.value
        row["opponents"] = "|".join(record.opponents)
        row["created_at"] = record.created_at.isoformat()
        return row

    def _persist(self) -> None:
        columns = [f.name for f in fields(BetRecord)]
        df = pd.DataFrame([self._to_row(r) for r in self._records.values()], columns=columns)
        write_csv_atomic(df, self.path)
