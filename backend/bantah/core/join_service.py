"""
Join Request Service - Access to private events.

Responsibilities:
- Record join requests for private events
- Notify the creator of new requests
- Let the creator accept or decline
- Allow a declined request to be renewed
"""
from typing import Optional, Dict, Tuple, List

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.enums import EventStatus, JoinRequestStatus
from bantah.utils.permissions import is_creator
from bantah.utils.serializers import public_user, serialize
from bantah.utils.validators import utcnow


class JoinRequestService:
    """Service for the private event join request flow."""

    @classmethod
    def create_join_request(
        cls,
        event_id: str,
        user_id: str,
        message: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Ask to join a private event.

        Returns:
            Tuple of (join_request, error_message)
        """
        from .notification_service import NotificationService

        event = mongo.events.find_one({"_id": ObjectId(event_id)})
        if not event:
            return None, "Event not found"

        if event["status"] != EventStatus.ACTIVE.value:
            return None, "Event is not active"

        if not event.get("is_private"):
            return None, "This event is public. Join it directly"

        if is_creator(user_id, event):
            return None, "You created this event"

        existing = mongo.event_join_requests.find_one({
            "event_id": ObjectId(event_id),
            "user_id": ObjectId(user_id)
        })

        if existing:
            if existing["status"] == JoinRequestStatus.PENDING.value:
                return None, "Join request already pending"
            elif existing["status"] == JoinRequestStatus.ACCEPTED.value:
                return None, "Your join request was already accepted"
            # Declined requests can be renewed
            mongo.event_join_requests.delete_one({"_id": existing["_id"]})

        join_request = {
            "event_id": ObjectId(event_id),
            "user_id": ObjectId(user_id),
            "message": (message.strip()[:500] or None) if isinstance(message, str) else None,
            "status": JoinRequestStatus.PENDING.value,
            "response_message": None,
            "created_at": utcnow(),
            "responded_at": None
        }
        result = mongo.event_join_requests.insert_one(join_request)
        join_request["_id"] = result.inserted_id

        NotificationService.notify_join_request(
            creator_id=str(event["creator_id"]),
            event_id=event_id,
            event_title=event["title"],
            user_id=user_id
        )

        return join_request, None

    @classmethod
    def get_pending_requests(cls, event_id: str, user_id: str) -> Tuple[Optional[List[Dict]], Optional[str]]:
        """Pending requests for an event, visible to its creator only."""
        event = mongo.events.find_one({"_id": ObjectId(event_id)})
        if not event:
            return None, "Event not found"

        if not is_creator(user_id, event):
            return None, "Only the event creator can view join requests"

        requests = list(mongo.event_join_requests.find({
            "event_id": ObjectId(event_id),
            "status": JoinRequestStatus.PENDING.value
        }).sort("created_at", 1))

        users = {
            u["_id"]: u for u in mongo.users.find({"_id": {"$in": [r["user_id"] for r in requests]}})
        }
        result = []
        for r in requests:
            entry = serialize(r)
            entry["user"] = public_user(users.get(r["user_id"]))
            result.append(entry)
        return result, None

    @classmethod
    def respond_to_request(
        cls,
        event_id: str,
        request_id: str,
        creator_id: str,
        status: str,
        response_message: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Accept or decline a join request.

        Returns:
            Tuple of (updated_request, error_message)
        """
        from .notification_service import NotificationService

        if status not in (JoinRequestStatus.ACCEPTED.value, JoinRequestStatus.DECLINED.value):
            return None, "Status must be 'accepted' or 'declined'"

        event = mongo.events.find_one({"_id": ObjectId(event_id)})
        if not event:
            return None, "Event not found"

        if not is_creator(creator_id, event):
            return None, "Only the event creator can respond to join requests"

        join_request = mongo.event_join_requests.find_one({
            "_id": ObjectId(request_id),
            "event_id": ObjectId(event_id)
        })
        if not join_request:
            return None, "Join request not found"

        if join_request["status"] != JoinRequestStatus.PENDING.value:
            return None, f"Join request already {join_request['status']}"

        update = {
            "status": status,
            "response_message": (response_message.strip()[:500] or None) if isinstance(response_message, str) else None,
            "responded_at": utcnow()
        }
        mongo.event_join_requests.update_one({"_id": join_request["_id"]}, {"$set": update})
        join_request.update(update)

        NotificationService.notify_join_response(
            user_id=str(join_request["user_id"]),
            event_id=event_id,
            event_title=event["title"],
            accepted=status == JoinRequestStatus.ACCEPTED.value
        )

        return join_request, None
