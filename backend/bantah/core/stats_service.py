"""
Stats Service - Per-user counters and platform summaries.
"""
from datetime import timedelta
from typing import Dict, Any

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.enums import ChatType, EventStatus, ReportStatus
from bantah.utils.validators import utcnow

STAT_FIELDS = (
    "events_created",
    "events_participated",
    "total_wagered_yes",
    "total_wagered_no",
    "events_won",
    "events_lost",
    "challenges_won",
    "challenges_lost",
    "total_earnings",
)


class StatsService:
    """Service for user and platform statistics."""

    @classmethod
    def ensure_user_stats(cls, user_id: str) -> None:
        mongo.user_stats.update_one(
            {"user_id": ObjectId(user_id)},
            {"$setOnInsert": {field: 0 for field in STAT_FIELDS}},
            upsert=True
        )

    @classmethod
    def increment(cls, user_id: str, **deltas) -> None:
        """Increment stat counters, e.g. increment(uid, events_won=1, total_earnings=95)."""
        unknown = set(deltas) - set(STAT_FIELDS)
        if unknown:
            raise ValueError(f"unknown stat fields: {sorted(unknown)}")
        cls.ensure_user_stats(user_id)
        mongo.user_stats.update_one(
            {"user_id": ObjectId(user_id)},
            {"$inc": deltas, "$set": {"updated_at": utcnow()}}
        )

    @classmethod
    def get_user_stats(cls, user_id: str) -> Dict[str, Any]:
        from .wallet_service import WalletService

        cls.ensure_user_stats(user_id)
        stats = mongo.user_stats.find_one({"user_id": ObjectId(user_id)})
        result = {field: stats.get(field, 0) for field in STAT_FIELDS}
        result["total_earnings"] = round(float(result["total_earnings"]), 2)
        result["total_wagered_yes"] = round(float(result["total_wagered_yes"]), 2)
        result["total_wagered_no"] = round(float(result["total_wagered_no"]), 2)
        result["current_balance"] = WalletService.get_wallet_balance(user_id)
        return result

    @classmethod
    def get_admin_stats(cls) -> Dict[str, int]:
        return {
            "total_events": mongo.events.count_documents({}),
            "active_users": mongo.users.count_documents({"is_blocked": {"$ne": True}}),
            "total_groups": mongo.chats.count_documents({
                "type": ChatType.GROUP.value,
                "is_blocked": {"$ne": True}
            }),
            "pending_reports": mongo.reports.count_documents({"status": ReportStatus.PENDING.value}),
        }

    @classmethod
    def get_platform_summary(cls) -> Dict[str, Any]:
        from .platform_service import PlatformService

        settings = PlatformService.get_settings()
        pools = {p["event_id"]: p for p in mongo.event_pools.find({})}

        categories: Dict[str, Dict[str, Any]] = {}
        total_pool = 0.0
        for event in mongo.events.find({}, {"category": 1, "status": 1}):
            pool = pools.get(event["_id"], {})
            entry = categories.setdefault(event.get("category") or "other", {
                "category": event.get("category") or "other",
                "event_count": 0,
                "total_pool": 0.0,
                "platform_fees": 0.0,
            })
            entry["event_count"] += 1
            entry["total_pool"] += float(pool.get("total_amount", 0))
            # Fees are only earned once an event settles
            if event.get("status") == EventStatus.COMPLETED.value:
                entry["platform_fees"] += float(pool.get("admin_fee", 0))
            total_pool += float(pool.get("total_amount", 0))

        category_stats = []
        for entry in sorted(categories.values(), key=lambda e: e["category"]):
            entry["total_pool"] = round(entry["total_pool"], 2)
            entry["platform_fees"] = round(entry["platform_fees"], 2)
            category_stats.append(entry)

        since = utcnow() - timedelta(days=30)
        return {
            "total_users": mongo.users.count_documents({}),
            "total_events": mongo.events.count_documents({}),
            "total_groups": mongo.chats.count_documents({"type": ChatType.GROUP.value}),
            "total_pool_amount": round(total_pool, 2),
            "total_platform_fees": round(float(settings.get("fees_collected", 0)), 2),
            "platform_fee_balance": round(float(settings.get("fees_balance", 0)), 2),
            "active_users_last_30d": mongo.users.count_documents({"last_login_at": {"$gte": since}}),
            "category_stats": category_stats,
        }
