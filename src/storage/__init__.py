"""
Bet record storage
"""

from src.storage.bet_store import BetRecord, InMemoryBetStore, CsvBetStore, make_unique_key
from src.storage.event_store import EventWeek, InMemoryEventStore, CsvEventStore

__all__ = [
    "BetRecord",
    "InMemoryBetStore",
    "CsvBetStore",
    "make_unique_key",
    "EventWeek",
    "InMemoryEventStore",
    "CsvEventStore",
]
