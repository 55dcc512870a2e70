"""
Event History Store

One row per archived event: display label, name, year and whether its
results are final.
"""

import sys
import logging
import threading
from pathlib import Path
from datetime import datetime
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Optional

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from src.exceptions import DataError, EventNotFoundError, ValidationError
from src.storage.bet_store import write_csv_atomic

logger = logging.getLogger(__name__)


@dataclass
class EventWeek:
    """An archived event"""
    event_id: str
    event_name: str
    event_year: Optional[int] = None
    is_final: bool = False
    archived_at: datetime = field(default_factory=datetime.now)

    @property
    def label(self) -> str:
        """
        Display label

        Examples:
            >>> EventWeek("14", "The Masters", 2025).label
            'The Masters 2025'
        """
        if self.event_year is None:
            return self.event_name
        return f"{self.event_name} {self.event_year}"


class InMemoryEventStore:
    """Dictionary-backed event history"""

    def __init__(self):
        self._weeks: Dict[str, EventWeek] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._weeks)

    def _persist(self) -> None:
        """Hook for durable stores"""
        pass

    def _commit(self, event_id: str, week: Optional[EventWeek]) -> None:
        previous = self._weeks.get(event_id)
        self._weeks[event_id] = week
        try:
            self._persist()
        except Exception:
            if previous is None:
                del self._weeks[event_id]
            else:
                self._weeks[event_id] = previous
            raise

    def upsert(self, event_id: str, event_name: str, event_year: Optional[int] = None) -> EventWeek:
        """Create an event row, or refresh name and year of an existing one"""
        if not event_id:
            raise ValidationError("event_id is required")

        with self._lock:
            existing = self._weeks.get(str(event_id))
            if existing is None:
                week = EventWeek(str(event_id), event_name or str(event_id), event_year)
            else:
                week = replace(existing, event_name=event_name or existing.event_name,
                               event_year=event_year if event_year is not None else existing.event_year)
            self._commit(week.event_id, week)
            return replace(week)

    def get(self, event_id: str) -> EventWeek:
        with self._lock:
            week = self._weeks.get(str(event_id))
            if week is None:
                raise EventNotFoundError(f"Event not archived: {event_id}")
            return replace(week)

    def find(self, event_id: str) -> Optional[EventWeek]:
        with self._lock:
            week = self._weeks.get(str(event_id))
            return replace(week) if week is not None else None

    def set_final(self, event_id: str, is_final: bool = True) -> EventWeek:
        with self._lock:
            week = replace(self.get(event_id), is_final=bool(is_final))
            self._commit(week.event_id, week)
            return replace(week)

    def list_all(self) -> List[EventWeek]:
        with self._lock:
            weeks = [replace(w) for w in self._weeks.values()]
        return sorted(weeks, key=lambda w: w.archived_at)


class CsvEventStore(InMemoryEventStore):
    """Event history persisted to a CSV file"""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            df = pd.read_csv(self.path, dtype={"event_id": str, "event_name": str})
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataError(f"Unreadable event store {self.path}: {e}")

        for row in df.to_dict(orient="records"):
            year = row.get("event_year")
            week = EventWeek(
                event_id=row["event_id"],
                event_name=row["event_name"],
                event_year=int(year) if pd.notna(year) else None,
                is_final=str(row.get("is_final")).lower() == "true",
                archived_at=datetime.fromisoformat(row["archived_at"]),
            )
            self._weeks[week.event_id] = week
        logger.debug(f"Loaded {len(self._weeks)} events from {self.path}")

    def _persist(self) -> None:
        rows = []
        for week in self._weeks.values():
            row = {f.name: getattr(week, f.name) for f in fields(week)}
            row["archived_at"] = week.archived_at.isoformat()
            rows.append(row)
        df = pd.DataFrame(rows, columns=[f.name for f in fields(EventWeek)])
        write_csv_atomic(df, self.path)
