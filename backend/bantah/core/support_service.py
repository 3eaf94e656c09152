"""
Support Service - Help desk tickets between users and admins.
"""
import logging
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.enums import MessageType, TicketPriority, TicketStatus
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value]


class SupportService:
    """Service for support tickets."""

    @classmethod
    def get_active_ticket(cls, user_id: str) -> Optional[Dict[str, Any]]:
        tickets = list(mongo.support_tickets.find({
            "user_id": ObjectId(user_id),
            "status": {"$in": ACTIVE_STATUSES}
        }).sort("created_at", -1).limit(1))
        return tickets[0] if tickets else None

    @classmethod
    def create_ticket(
        cls,
        user_id: str,
        message: str,
        priority: str = TicketPriority.NORMAL.value
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Open a ticket with its first message.

        Returns:
            Tuple of (ticket, error_message)
        """
        message = message.strip() if isinstance(message, str) else ""
        if not message:
            return None, "Message is required"

        if priority not in [p.value for p in TicketPriority]:
            return None, "Invalid priority"

        if cls.get_active_ticket(user_id):
            return None, "You already have an active support ticket"

        now = utcnow()
        ticket = {
            "user_id": ObjectId(user_id),
            "status": TicketStatus.OPEN.value,
            "priority": priority,
            "resolved_at": None,
            "created_at": now,
            "updated_at": now
        }
        result = mongo.support_tickets.insert_one(ticket)
        ticket["_id"] = result.inserted_id

        cls._insert_message(result.inserted_id, ObjectId(user_id), message, MessageType.TEXT.value, False)
        return ticket, None

    @classmethod
    def get_messages(cls, ticket_id: str) -> List[Dict[str, Any]]:
        return list(mongo.support_messages.find({"ticket_id": ObjectId(ticket_id)}).sort([("created_at", 1), ("_id", 1)]))

    @classmethod
    def _insert_message(cls, ticket_oid, sender_oid, content, message_type, is_admin) -> Dict[str, Any]:
        message = {
            "ticket_id": ticket_oid,
            "sender_id": sender_oid,
            "content": content,
            "type": message_type,
            "is_admin": is_admin,
            "created_at": utcnow()
        }
        result = mongo.support_messages.insert_one(message)
        message["_id"] = result.inserted_id
        mongo.support_tickets.update_one({"_id": ticket_oid}, {"$set": {"updated_at": utcnow()}})
        return message

    @classmethod
    def send_message(
        cls,
        ticket_id: str,
        sender: Dict[str, Any],
        content: str,
        message_type: str = MessageType.TEXT.value
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """Post to a ticket as its owner or as an admin."""
        from .notification_service import NotificationService, NotificationType

        content = content.strip() if isinstance(content, str) else ""
        if not content:
            return None, "Message cannot be empty"

        ticket = mongo.support_tickets.find_one({"_id": ObjectId(ticket_id)})
        if not ticket:
            return None, "Ticket not found"

        is_admin = bool(sender.get("is_admin"))
        if ticket["user_id"] != sender["_id"] and not is_admin:
            return None, "You do not have access to this ticket"

        if ticket["status"] not in ACTIVE_STATUSES:
            return None, f"Ticket is {ticket['status']}"

        staff_reply = is_admin and ticket["user_id"] != sender["_id"]
        message = cls._insert_message(ticket["_id"], sender["_id"], content, message_type, staff_reply)

        if staff_reply:
            if ticket["status"] == TicketStatus.OPEN.value:
                mongo.support_tickets.update_one(
                    {"_id": ticket["_id"]},
                    {"$set": {"status": TicketStatus.IN_PROGRESS.value}}
                )
            NotificationService.create_notification(
                user_id=str(ticket["user_id"]),
                notification_type=NotificationType.SYSTEM,
                title="Support replied",
                message=content[:100],
                data={"ticket_id": ticket_id}
            )

        return message, None

    @classmethod
    def update_status(cls, ticket_id: str, status: str, admin_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        from .platform_service import PlatformService

        if status not in [s.value for s in TicketStatus]:
            return None, "Invalid status"

        update: Dict[str, Any] = {"status": status, "updated_at": utcnow()}
        if status == TicketStatus.RESOLVED.value:
            update["resolved_at"] = utcnow()

        result = mongo.support_tickets.update_one({"_id": ObjectId(ticket_id)}, {"$set": update})
        if result.matched_count == 0:
            return None, "Ticket not found"

        PlatformService.log_admin_action(admin_id, "update_ticket_status", "support_ticket", ticket_id,
                                         {"status": status})
        return mongo.support_tickets.find_one({"_id": ObjectId(ticket_id)}), None

    @classmethod
    def get_all_tickets(cls, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"status": status} if status else {}
        return list(mongo.support_tickets.find(query).sort("updated_at", -1))
