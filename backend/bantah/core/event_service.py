"""
Event Service - Prediction events.

Responsibilities:
- Create events and their pools
- Join with a YES/NO prediction, locking the wager
- Cancel events and refund stakes
- Search, category counts and per-user history
"""
import logging
import re
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from bantah.extensions import db as mongo
from bantah.utils.enums import EventStatus, JoinRequestStatus, ParticipantStatus
from bantah.utils.serializers import public_user, serialize
from bantah.utils.validators import parse_datetime, utcnow

logger = logging.getLogger(__name__)


class EventService:
    """Service for prediction events."""

    @classmethod
    def create_event(cls, creator_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an event from already-validated form data.

        Returns:
            The inserted event document
        """
        from .pool_service import PoolService
        from .stats_service import StatsService

        now = utcnow()
        event = {
            "creator_id": ObjectId(creator_id),
            "title": data["title"].strip(),
            "description": (data.get("description") or "").strip(),
            "category": data["category"].strip().lower(),
            "start_time": parse_datetime(data["start_time"]),
            "end_time": parse_datetime(data["end_time"]),
            "wager_amount": round(float(data["wager_amount"]), 2),
            "max_participants": int(data.get("max_participants") or 2),
            "participant_count": 0,
            "banner_url": data.get("banner_url") or None,
            "is_private": bool(data.get("is_private", False)),
            "rules": [r.strip() for r in data.get("rules") or []],
            "status": EventStatus.ACTIVE.value,
            "outcome": None,
            "created_at": now,
            "updated_at": now
        }

        result = mongo.events.insert_one(event)
        event["_id"] = result.inserted_id
        PoolService.create_pool(result.inserted_id)
        StatsService.increment(creator_id, events_created=1)

        logger.info("Event %s created by %s", result.inserted_id, creator_id)
        return event

    @classmethod
    def get_event(cls, event_id: str) -> Optional[Dict[str, Any]]:
        return mongo.events.find_one({"_id": ObjectId(event_id)})

    @classmethod
    def get_event_details(cls, event: Dict[str, Any]) -> Dict[str, Any]:
        """Event with creator, pool and participants, JSON-ready."""
        from .pool_service import PoolService

        creator = mongo.users.find_one({"_id": event["creator_id"]})
        details = serialize(event)
        details["creator"] = public_user(creator)
        details["pool"] = PoolService.get_pool_state(str(event["_id"]))
        details["participants"] = cls.get_participants(str(event["_id"]))
        return details

    @classmethod
    def _has_accepted_request(cls, event_oid: ObjectId, user_oid: ObjectId) -> bool:
        return mongo.event_join_requests.find_one({
            "event_id": event_oid,
            "user_id": user_oid,
            "status": JoinRequestStatus.ACCEPTED.value
        }) is not None

    @classmethod
    def join_event(
        cls,
        event_id: str,
        user_id: str,
        prediction: bool,
        wager_amount: Optional[float] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Join an event with a prediction.

        Steps: validate the request, reserve a slot on the event row, lock
        the wager in the user's wallet, insert the participant, add the
        stake to the pool. Every failure after the reservation gives the
        slot back, and a join that lands after a cancellation is refunded.

        Returns:
            Tuple of (participant, error_message)
        """
        from .pool_service import PoolService
        from .stats_service import StatsService
        from .wallet_service import WalletService

        event_oid = ObjectId(event_id)
        user_oid = ObjectId(user_id)

        event = mongo.events.find_one({"_id": event_oid})
        if not event:
            return None, "Event not found"

        if event.get("is_private") and event["creator_id"] != user_oid:
            if not cls._has_accepted_request(event_oid, user_oid):
                return None, "This is a private event. Your join request must be accepted first"

        if mongo.event_participants.find_one({"event_id": event_oid, "user_id": user_oid}):
            return None, "You have already joined this event"

        required = round(float(event["wager_amount"]), 2)
        if wager_amount is not None and round(float(wager_amount), 2) != required:
            return None, "Invalid wager amount"

        error = cls._reserve_slot(event)
        if error:
            return None, error

        success, error = WalletService.lock_funds(user_id, required, str(event_oid), "event_wager")
        if not success:
            cls._release_slot(event_oid)
            return None, "Insufficient funds to join event"

        participant = {
            "event_id": event_oid,
            "user_id": user_oid,
            "prediction": bool(prediction),
            "wager_amount": required,
            "status": ParticipantStatus.ACTIVE.value,
            "payout": None,
            "joined_at": utcnow()
        }
        try:
            result = mongo.event_participants.insert_one(participant)
        except DuplicateKeyError:
            WalletService.credit_wallet(user_id, required, "event_refund", str(event_oid),
                                        notes="Duplicate join reverted")
            cls._release_slot(event_oid)
            return None, "You have already joined this event"
        participant["_id"] = result.inserted_id

        current = mongo.events.find_one({"_id": event_oid}, {"status": 1})
        if current["status"] == EventStatus.CANCELLED.value:
            PoolService.refund_participant(result.inserted_id, "Event cancelled while joining")
            return None, "Event is not active"

        fee, net = PoolService.update_pool_amount(event_oid, required, bool(prediction))
        mongo.event_participants.update_one(
            {"_id": result.inserted_id},
            {"$set": {"admin_fee": fee, "net_amount": net}}
        )
        participant.update({"admin_fee": fee, "net_amount": net})

        side = "total_wagered_yes" if prediction else "total_wagered_no"
        StatsService.increment(user_id, events_participated=1, **{side: required})

        logger.info("User %s joined event %s predicting %s", user_id, event_id, prediction)
        return participant, None

    @classmethod
    def _reserve_slot(cls, event: Dict[str, Any]) -> Optional[str]:
        """Claim one participant slot on an open event. Returns an error when none is free."""
        now = utcnow()
        reserved = mongo.events.find_one_and_update(
            {
                "_id": event["_id"],
                "status": EventStatus.ACTIVE.value,
                "end_time": {"$gt": now},
                "participant_count": {"$lt": event["max_participants"]}
            },
            {"$inc": {"participant_count": 1}}
        )
        if reserved is not None:
            return None

        event = mongo.events.find_one({"_id": event["_id"]})
        if event["status"] != EventStatus.ACTIVE.value:
            return "Event is not active"
        if event["end_time"] <= now:
            return "Event has already ended"
        return "Event has reached maximum participants"

    @classmethod
    def _release_slot(cls, event_oid: ObjectId):
        mongo.events.update_one({"_id": event_oid}, {"$inc": {"participant_count": -1}})

    @classmethod
    def cancel_event(cls, event_id: str, user: Dict[str, Any]) -> Tuple[Optional[Dict], Optional[str]]:
        """Cancel an unsettled event (creator or admin) and refund every stake."""
        from .notification_service import NotificationService, NotificationType
        from .platform_service import PlatformService
        from .pool_service import PoolService

        event_oid = ObjectId(event_id)
        event = mongo.events.find_one({"_id": event_oid})
        if not event:
            return None, "Event not found"

        is_admin = bool(user.get("is_admin"))
        if event["creator_id"] != user["_id"] and not is_admin:
            return None, "Only the event creator can cancel this event"

        claimed = mongo.events.find_one_and_update(
            {"_id": event_oid, "status": EventStatus.ACTIVE.value},
            {"$set": {
                "status": EventStatus.CANCELLED.value,
                "cancelled_at": utcnow(),
                "cancelled_by": user["_id"],
                "updated_at": utcnow()
            }}
        )
        if claimed is None:
            return None, f"Event is already {event['status']}"

        participant_ids = [p["user_id"] for p in mongo.event_participants.find(
            {"event_id": event_oid, "status": ParticipantStatus.ACTIVE.value}, {"user_id": 1}
        )]
        refunded, total = PoolService.refund_pool(event_oid, f"Event '{event['title']}' cancelled")

        for participant_id in participant_ids:
            if participant_id == user["_id"]:
                continue
            NotificationService.create_notification(
                user_id=str(participant_id),
                notification_type=NotificationType.EVENT_UPDATE,
                title="Event Cancelled",
                message=f"'{event['title']}' was cancelled. Your wager of {event['wager_amount']:.2f} has been refunded.",
                data={"event_id": event_id, "refund": event["wager_amount"]}
            )

        if is_admin and event["creator_id"] != user["_id"]:
            PlatformService.log_admin_action(str(user["_id"]), "cancel_event", "event", event_id,
                                             {"refunded": refunded, "total": total})

        return {"event_id": event_id, "refunded": refunded, "total_refunded": total}, None

    @classmethod
    def get_participants(cls, event_id: str) -> List[Dict[str, Any]]:
        participants = list(
            mongo.event_participants.find({"event_id": ObjectId(event_id)}).sort("joined_at", 1)
        )
        users = {
            u["_id"]: u for u in mongo.users.find({"_id": {"$in": [p["user_id"] for p in participants]}})
        }
        result = []
        for p in participants:
            entry = serialize(p)
            entry["user"] = public_user(users.get(p["user_id"]))
            result.append(entry)
        return result

    @classmethod
    def get_user_prediction(cls, event_id: str, user_id: str) -> Optional[bool]:
        participant = mongo.event_participants.find_one(
            {"event_id": ObjectId(event_id), "user_id": ObjectId(user_id)},
            {"prediction": 1}
        )
        return participant["prediction"] if participant else None

    @classmethod
    def list_events(
        cls,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        viewer_id: Optional[str] = None
    ) -> Tuple[List[Dict], int]:
        """
        Search events newest first. Private events are only listed to their
        creator and participants.

        Returns:
            Tuple of (events, total_count)
        """
        query: Dict[str, Any] = {}
        if search:
            regex = re.compile(re.escape(search.strip()), re.IGNORECASE)
            query["$or"] = [{"title": regex}, {"description": regex}, {"category": regex}]
        if category:
            query["category"] = category.lower()
        if status:
            query["status"] = status

        visibility: List[Dict[str, Any]] = [{"is_private": {"$ne": True}}]
        if viewer_id:
            viewer_oid = ObjectId(viewer_id)
            joined = mongo.event_participants.distinct("event_id", {"user_id": viewer_oid})
            visibility += [{"creator_id": viewer_oid}, {"_id": {"$in": joined}}]
        query = {"$and": [query, {"$or": visibility}]} if query else {"$or": visibility}

        total = mongo.events.count_documents(query)
        events = list(
            mongo.events.find(query)
            .sort("created_at", -1)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        return events, total

    @classmethod
    def get_category_stats(cls) -> List[Dict[str, Any]]:
        """Count of events per category, excluding completed ones."""
        pipeline = [
            {"$match": {"status": {"$ne": EventStatus.COMPLETED.value}}},
            {"$group": {"_id": "$category", "count": {"$sum": 1}}},
            {"$sort": {"_id": 1}}
        ]
        return [{"category": row["_id"], "count": row["count"]} for row in mongo.events.aggregate(pipeline)]

    @classmethod
    def _match_status(cls, event: Dict[str, Any], participant_count: int) -> str:
        if event["status"] == EventStatus.CANCELLED.value:
            return "cancelled"
        if event["status"] == EventStatus.COMPLETED.value or event["end_time"] <= utcnow():
            return "completed"
        if participant_count >= 2:
            return "matched"
        return "waiting"

    @classmethod
    def get_history(cls, user_id: str) -> Dict[str, List[Dict]]:
        """Events the user created and events the user joined."""
        user_oid = ObjectId(user_id)

        created = []
        for event in mongo.events.find({"creator_id": user_oid}).sort("created_at", -1):
            count = mongo.event_participants.count_documents({"event_id": event["_id"]})
            created.append({
                "id": str(event["_id"]),
                "type": "event",
                "title": event["title"],
                "category": event.get("category"),
                "amount": event["wager_amount"],
                "start_time": event["start_time"].isoformat(),
                "end_time": event["end_time"].isoformat(),
                "status": event["status"],
                "match_status": cls._match_status(event, count),
                "participant_count": count,
                "is_creator": True,
                "is_editable": event["status"] == EventStatus.ACTIVE.value and count == 0,
            })

        joined = []
        participations = list(mongo.event_participants.find({"user_id": user_oid}).sort("joined_at", -1))
        events = {e["_id"]: e for e in mongo.events.find({"_id": {"$in": [p["event_id"] for p in participations]}})}
        for p in participations:
            event = events.get(p["event_id"])
            if not event:
                continue
            count = mongo.event_participants.count_documents({"event_id": event["_id"]})
            outcome = {
                ParticipantStatus.WON.value: "won",
                ParticipantStatus.LOST.value: "lost",
                ParticipantStatus.REFUNDED.value: "refunded",
            }.get(p["status"])
            payout = p.get("payout") or 0.0
            joined.append({
                "id": str(event["_id"]),
                "type": "event",
                "title": event["title"],
                "category": event.get("category"),
                "prediction": p["prediction"],
                "amount": p["wager_amount"],
                "outcome": outcome,
                "earnings": round(payout - p["wager_amount"], 2) if outcome == "won" else None,
                "date": p["joined_at"].isoformat(),
                "start_time": event["start_time"].isoformat(),
                "end_time": event["end_time"].isoformat(),
                "match_status": cls._match_status(event, count),
                "participant_count": count,
                "is_creator": event["creator_id"] == user_oid,
            })

        return {"created": created, "participated": joined}
