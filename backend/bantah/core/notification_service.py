"""
Notification Service - Notification triggers for wagering activity.

Responsibilities:
- Persist notifications for a user
- Queue them for realtime delivery (polled by clients)
- Fan out to admins for evidence review
- Read/unread bookkeeping
"""
import logging
from typing import Optional, Dict, List

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)


class NotificationType:
    """Notification type constants."""
    # Event notifications
    EVENT_WIN = "event_win"
    EVENT_LOSS = "event_loss"
    NEW_EVENT = "new_event"
    EVENT_UPDATE = "event_update"
    EARNINGS = "earnings"

    # Social notifications
    FOLLOW = "follow"
    GROUP_MESSAGE = "group_message"
    DIRECT_MESSAGE = "direct_message"
    GROUP_MENTION = "group_mention"
    LEADERBOARD_UPDATE = "leaderboard_update"
    GROUP_ACHIEVEMENT = "group_achievement"
    GROUP_ROLE = "group_role"

    # Challenge notifications
    CHALLENGE = "challenge"
    CHALLENGE_RESPONSE = "challenge_response"
    EVIDENCE_SUBMITTED = "evidence_submitted"

    # Join notifications
    JOIN_REQUEST = "join_request"
    JOIN_RESPONSE = "join_response"

    # Wallet notifications
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"

    # Bonus notifications
    REFERRAL = "referral"
    WELCOME_BONUS = "welcome_bonus"

    SYSTEM = "system"


class NotificationService:
    """Service for managing notifications."""

    @classmethod
    def create_notification(
        cls,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict] = None,
        link: Optional[str] = None,
        priority: str = "normal"
    ) -> str:
        """
        Create a notification for a user.

        Args:
            user_id: User to notify
            notification_type: Type of notification
            title: Notification title
            message: Notification message
            data: Additional data (event_id, challenge_id, etc.)
            link: Optional client link
            priority: Priority level (low, normal, high, urgent)

        Returns:
            Notification ID
        """
        notification = {
            "user_id": ObjectId(user_id),
            "type": notification_type,
            "title": title,
            "message": message,
            "link": link,
            "data": data or {},
            "priority": priority,
            "read": False,
            "read_at": None,
            "created_at": utcnow()
        }

        result = mongo.notifications.insert_one(notification)
        notification["_id"] = result.inserted_id

        cls._push_realtime(user_id, notification)

        return str(result.inserted_id)

    @classmethod
    def _push_realtime(cls, user_id: str, notification: Dict) -> None:
        """Queue the notification for clients polling the realtime channel."""
        notification_copy = notification.copy()
        notification_copy["_id"] = str(notification_copy["_id"])
        notification_copy["user_id"] = str(notification_copy["user_id"])

        mongo.notification_queue.insert_one({
            "user_id": ObjectId(user_id),
            "notification": notification_copy,
            "delivered": False,
            "created_at": utcnow()
        })

    @classmethod
    def notify_admins(cls, notification_type: str, title: str, message: str, data: Optional[Dict] = None) -> int:
        """Send the same notification to every admin. Returns number notified."""
        admins = mongo.users.find({"is_admin": True, "is_blocked": {"$ne": True}}, {"_id": 1})
        count = 0
        for admin in admins:
            cls.create_notification(
                user_id=str(admin["_id"]),
                notification_type=notification_type,
                title=title,
                message=message,
                data=data,
                priority="high"
            )
            count += 1
        return count

    # ==================== EVENT NOTIFICATIONS ====================

    @classmethod
    def notify_event_result(
        cls,
        user_id: str,
        event_id: str,
        event_title: str,
        won: bool,
        payout: float = 0.0
    ) -> str:
        """Notify a participant of the outcome of an event they joined."""
        if won:
            return cls.create_notification(
                user_id=user_id,
                notification_type=NotificationType.EVENT_WIN,
                title="You won!",
                message=f"Your prediction on '{event_title}' was correct. {payout:.2f} has been paid out.",
                data={"event_id": event_id, "payout": payout},
                link=f"/events/{event_id}"
            )
        return cls.create_notification(
            user_id=user_id,
            notification_type=NotificationType.EVENT_LOSS,
            title="Event settled",
            message=f"Your prediction on '{event_title}' did not win this time.",
            data={"event_id": event_id},
            link=f"/events/{event_id}"
        )

    # ==================== JOIN NOTIFICATIONS ====================

    @classmethod
    def notify_join_request(cls, creator_id: str, event_id: str, event_title: str, user_id: str) -> str:
        """Notify event creator of a new join request."""
        user = mongo.users.find_one({"_id": ObjectId(user_id)})
        user_name = user.get("username", "Someone") if user else "Someone"

        return cls.create_notification(
            user_id=creator_id,
            notification_type=NotificationType.JOIN_REQUEST,
            title="New Join Request",
            message=f"{user_name} wants to join '{event_title}'.",
            data={"event_id": event_id, "requester_id": user_id},
            priority="high"
        )

    @classmethod
    def notify_join_response(cls, user_id: str, event_id: str, event_title: str, accepted: bool) -> str:
        """Notify requester that their join request was answered."""
        verdict = "accepted" if accepted else "declined"
        return cls.create_notification(
            user_id=user_id,
            notification_type=NotificationType.JOIN_RESPONSE,
            title=f"Join Request {verdict.title()}",
            message=f"Your request to join '{event_title}' was {verdict}.",
            data={"event_id": event_id, "status": verdict}
        )

    # ==================== READ STATE ====================

    @classmethod
    def get_user_notifications(
        cls,
        user_id: str,
        page: int = 1,
        per_page: int = 20,
        unread_only: bool = False
    ) -> List[Dict]:
        """Get a page of the user's notifications, newest first."""
        query = {"user_id": ObjectId(user_id)}
        if unread_only:
            query["read"] = False

        return list(
            mongo.notifications.find(query)
            .sort("created_at", -1)
            .skip((page - 1) * per_page)
            .limit(per_page)
        )

    @classmethod
    def mark_as_read(cls, notification_id: str, user_id: str) -> bool:
        """Mark notification as read."""
        result = mongo.notifications.update_one(
            {"_id": ObjectId(notification_id), "user_id": ObjectId(user_id)},
            {"$set": {"read": True, "read_at": utcnow()}}
        )
        return result.matched_count > 0

    @classmethod
    def mark_all_as_read(cls, user_id: str) -> int:
        """Mark all user's notifications as read."""
        result = mongo.notifications.update_many(
            {"user_id": ObjectId(user_id), "read": False},
            {"$set": {"read": True, "read_at": utcnow()}}
        )
        return result.modified_count

    @classmethod
    def get_unread_count(cls, user_id: str) -> int:
        """Get count of unread notifications."""
        return mongo.notifications.count_documents({
            "user_id": ObjectId(user_id),
            "read": False
        })

    @classmethod
    def drain_queue(cls, user_id: str, limit: int = 50) -> List[Dict]:
        """Return undelivered realtime records and mark them delivered."""
        records = list(
            mongo.notification_queue.find({"user_id": ObjectId(user_id), "delivered": False})
            .sort([("created_at", 1), ("_id", 1)])
            .limit(limit)
        )
        if records:
            mongo.notification_queue.update_many(
                {"_id": {"$in": [r["_id"] for r in records]}},
                {"$set": {"delivered": True, "delivered_at": utcnow()}}
            )
        return [r["notification"] for r in records]
