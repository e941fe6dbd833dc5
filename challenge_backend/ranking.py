"""
Leaderboard ranking over users' cumulative points.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

if TYPE_CHECKING:
    from challenge_backend.db import DbClient

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


@dataclass
class LeaderboardEntry:
    username: str
    points: int
    rank: int

    def as_dict(self) -> dict:
        return asdict(self)


def competition_rank(scores: Iterable[Tuple[str, int]]) -> List[LeaderboardEntry]:
    """
    Rank (username, points) pairs with standard competition ranking.

    Equal points share a rank and the next distinct value skips ahead by the
    size of the tie, so points [50, 50, 40] rank as [1, 1, 3]. Rows come back
    ordered by points descending, then username.
    """
    ordered = sorted(scores, key=lambda item: (-item[1], item[0]))
    entries: List[LeaderboardEntry] = []
    previous_points: Optional[int] = None
    rank = 0
    for position, (username, points) in enumerate(ordered, start=1):
        if points != previous_points:
            rank = position
            previous_points = points
        entries.append(LeaderboardEntry(username=username, points=points, rank=rank))
    return entries


class RankingEngine:
    """Read-only leaderboard queries on top of a DbClient."""

    def __init__(self, db: "DbClient"):
        self.db = db

    def top_scores(self, limit: int = DEFAULT_LIMIT) -> Optional[List[LeaderboardEntry]]:
        """
        Return the top `limit` users by cumulative points.

        None means the ranking could not be computed right now; it is not the
        same as an empty leaderboard.
        """
        if limit <= 0:
            return []
        try:
            return self.db.rank_users(limit)
        except Exception:
            logger.exception("Failed to compute leaderboard (limit=%s)", limit)
            return None
