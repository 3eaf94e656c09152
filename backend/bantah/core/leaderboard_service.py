"""
Leaderboard Service - Ranks users by social and wagering activity.
"""
from typing import Optional, Dict, Any, List

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.enums import ChatType
from bantah.utils.serializers import public_user

GROUP_POINTS = 10
WIN_POINTS = 20
DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def leaderboard_score(groups_joined: int, events_won: int, total_winnings: float) -> float:
    return round(groups_joined * GROUP_POINTS + events_won * WIN_POINTS + total_winnings, 2)


class LeaderboardService:
    """Service for computing the leaderboard."""

    @classmethod
    def _rankings(cls) -> List[Dict[str, Any]]:
        users = list(mongo.users.find({"is_blocked": {"$ne": True}}, {"password_hash": 0}))
        stats = {s["user_id"]: s for s in mongo.user_stats.find({})}

        groups: Dict[ObjectId, int] = {}
        for chat in mongo.chats.find({"type": ChatType.GROUP.value, "is_blocked": {"$ne": True}}, {"participants": 1}):
            for pid in chat.get("participants", []):
                groups[pid] = groups.get(pid, 0) + 1

        entries = []
        for user in users:
            user_stats = stats.get(user["_id"], {})
            groups_joined = groups.get(user["_id"], 0)
            events_won = int(user_stats.get("events_won", 0))
            total_winnings = round(float(user_stats.get("total_earnings", 0)), 2)

            entry = public_user(user)
            entry.update({
                "groups_joined": groups_joined,
                "events_won": events_won,
                "total_winnings": total_winnings,
                "score": leaderboard_score(groups_joined, events_won, total_winnings),
            })
            entries.append(entry)

        entries.sort(key=lambda e: (-e["score"], e["username"] or ""))
        for rank, entry in enumerate(entries, start=1):
            entry["rank"] = rank
        return entries

    @classmethod
    def get_leaderboard(cls, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), MAX_LIMIT))
        return cls._rankings()[:limit]

    @classmethod
    def get_user_rank(cls, user_id: str) -> Optional[Dict[str, Any]]:
        for entry in cls._rankings():
            if entry["_id"] == user_id:
                return entry
        return None
