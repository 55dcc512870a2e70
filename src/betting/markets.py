"""
Market Types

Golf betting markets handled by the betslip. A free-text market label
(e.g. "Top 20", "Matchup 2-Ball") is resolved once into a Market member and
the typed value is used everywhere downstream.
"""

import re
from enum import Enum
from typing import Optional


def normalize_label(label: Optional[str]) -> str:
    """
    Normalize a market label for matching

    Examples:
        >>> normalize_label("  Top   20 ")
        'top_20'
        >>> normalize_label("Matchup 2-Ball")
        'matchup_2-ball'
    """
    return re.sub(r"\s+", "_", (label or "").strip().lower())


class Market(Enum):
    """Closed set of supported markets"""

    TOP_20 = "top_20"
    MAKE_CUT = "make_cut"
    MISS_CUT = "miss_cut"
    MATCHUP_2 = "matchup_2"
    MATCHUP_3 = "matchup_3"
    UNCLASSIFIED = "unclassified"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Market":
        """
        Resolve a market label

        Args:
            label: Free-text label ("Top 20", "make_cut", "Matchup 3-Ball", ...)

        Returns:
            Market member (UNCLASSIFIED when nothing matches)
        """
        if isinstance(label, Market):
            return label

        norm = normalize_label(label)
        for member, patterns in _LABEL_PATTERNS:
            if any(p in norm for p in patterns):
                return member
        return cls.UNCLASSIFIED

    @property
    def top_n(self) -> Optional[int]:
        """Paid places for Top-N markets, None otherwise"""
        return 20 if self is Market.TOP_20 else None

    @property
    def is_matchup(self) -> bool:
        return self in (Market.MATCHUP_2, Market.MATCHUP_3)

    @property
    def multiplier_key(self) -> str:
        """Key into the market stake-multiplier table"""
        if self is Market.MATCHUP_2:
            return "matchup2"
        if self is Market.MATCHUP_3:
            return "matchup3"
        return "default"

    @property
    def label(self) -> str:
        return _DISPLAY_LABELS[self]


_LABEL_PATTERNS = (
    (Market.TOP_20, ("top20", "top_20")),
    (Market.MAKE_CUT, ("make_cut", "makecut")),
    (Market.MISS_CUT, ("miss_cut", "misscut")),
    (Market.MATCHUP_2, ("matchup_2", "matchup2")),
    (Market.MATCHUP_3, ("matchup_3", "matchup3")),
)

_DISPLAY_LABELS = {
    Market.TOP_20: "Top 20",
    Market.MAKE_CUT: "Make Cut",
    Market.MISS_CUT: "Miss Cut",
    Market.MATCHUP_2: "Matchup 2-Ball",
    Market.MATCHUP_3: "Matchup 3-Ball",
    Market.UNCLASSIFIED: "Unclassified",
}


def identity_key(dg_id: Optional[str] = None, player_name: Optional[str] = None) -> str:
    """
    Identity key for a player

    DataGolf id wins when present, otherwise the player name. Strings that
    already carry a "dg:" / "name:" prefix are returned unchanged.

    Examples:
        >>> identity_key("18417", "Scottie Scheffler")
        'dg:18417'
        >>> identity_key(None, "Scottie Scheffler")
        'name:Scottie Scheffler'
    """
    if dg_id is not None and str(dg_id).strip() != "":
        return f"dg:{str(dg_id).strip()}"

    name = (player_name or "").strip()
    if name.startswith("dg:") or name.startswith("name:"):
        return name
    return f"name:{name}"


def opponent_keys(opponents) -> tuple:
    """Normalize an opponents list (or a comma separated string) to identity keys"""
    if not opponents:
        return ()
    if isinstance(opponents, str):
        opponents = opponents.split(",")
    keys = []
    for opp in opponents:
        opp = str(opp).strip()
        if not opp:
            continue
        keys.append(identity_key(None, opp))
    return tuple(keys)
