"""
Chat Service - Private, group, event and challenge conversations.

Responsibilities:
- Create or reuse chats (one private chat per pair of users)
- Keep event chat membership in step with event participants
- Send messages and track last_message / read receipts
- Notify the other member of private messages
"""
import logging
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.enums import ChatType, MessageType
from bantah.utils.serializers import public_user, serialize
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
MAX_GROUP_NAME_LENGTH = 100


class ChatService:
    """Service for chats and messages."""

    @classmethod
    def _new_chat(cls, chat_type: str, participant_ids: List[ObjectId], created_by: Optional[ObjectId],
                  **fields) -> Dict[str, Any]:
        now = utcnow()
        chat = {
            "type": chat_type,
            "participants": participant_ids,
            "created_by": created_by,
            "last_message": None,
            "created_at": now,
            "updated_at": now
        }
        chat.update(fields)
        result = mongo.chats.insert_one(chat)
        chat["_id"] = result.inserted_id
        return chat

    @classmethod
    def get_chat(cls, chat_id: str) -> Optional[Dict[str, Any]]:
        return mongo.chats.find_one({"_id": ObjectId(chat_id)})

    @classmethod
    def is_member(cls, chat: Dict[str, Any], user_id: str) -> bool:
        return ObjectId(user_id) in chat.get("participants", [])

    @classmethod
    def create_or_get_private_chat(cls, user_id: str, other_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Return the private chat between two users, creating it on first use.

        Returns:
            Tuple of (chat, error_message)
        """
        if user_id == other_id:
            return None, "You cannot start a chat with yourself"

        other = mongo.users.find_one({"_id": ObjectId(other_id)})
        if not other:
            return None, "User not found"

        pair = [ObjectId(user_id), ObjectId(other_id)]
        existing = mongo.chats.find_one({
            "type": ChatType.PRIVATE.value,
            "participants": {"$all": pair, "$size": 2}
        })
        if existing:
            return existing, None

        return cls._new_chat(ChatType.PRIVATE.value, pair, ObjectId(user_id)), None

    @classmethod
    def create_group_chat(
        cls,
        creator_id: str,
        name: str,
        participant_ids: List[str]
    ) -> Tuple[Optional[Dict], Optional[str]]:
        name = name.strip() if isinstance(name, str) else ""
        if not name or len(name) > MAX_GROUP_NAME_LENGTH:
            return None, "Group name must be between 1 and 100 characters"

        members = [ObjectId(creator_id)]
        for pid in participant_ids or []:
            oid = ObjectId(pid)
            if oid not in members:
                members.append(oid)

        found = mongo.users.count_documents({"_id": {"$in": members}})
        if found != len(members):
            return None, "One or more participants were not found"

        chat = cls._new_chat(ChatType.GROUP.value, members, ObjectId(creator_id), name=name)
        cls.post_system_message(str(chat["_id"]), f"Group '{name}' created")
        return chat, None

    @classmethod
    def get_event_chat(cls, event_id: str, user_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        """Event chat for the creator or a participant, synced with current participants."""
        event = mongo.events.find_one({"_id": ObjectId(event_id)})
        if not event:
            return None, "Event not found"

        members = [event["creator_id"]] + mongo.event_participants.distinct(
            "user_id", {"event_id": event["_id"]}
        )
        if ObjectId(user_id) not in members:
            return None, "Only the creator and participants can access this chat"

        chat = mongo.chats.find_one({"type": ChatType.EVENT.value, "event_id": event["_id"]})
        if not chat:
            return cls._new_chat(
                ChatType.EVENT.value, members, event["creator_id"],
                event_id=event["_id"], name=event["title"]
            ), None

        mongo.chats.update_one(
            {"_id": chat["_id"]},
            {"$addToSet": {"participants": {"$each": members}}}
        )
        return mongo.chats.find_one({"_id": chat["_id"]}), None

    @classmethod
    def create_challenge_chat(cls, challenge: Dict[str, Any]) -> Dict[str, Any]:
        chat = cls._new_chat(
            ChatType.CHALLENGE.value,
            [challenge["challenger_id"], challenge["challenged_id"]],
            challenge["challenger_id"],
            challenge_id=challenge["_id"],
            name=challenge["title"],
            support_added=False
        )
        cls.post_system_message(
            str(chat["_id"]),
            f"Challenge '{challenge['title']}' created for {challenge['amount']:.2f}"
        )
        return chat

    @classmethod
    def add_member(cls, chat_id: str, actor_id: str, member_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        chat = cls.get_chat(chat_id)
        if not chat or chat["type"] != ChatType.GROUP.value:
            return None, "Group not found"
        if chat.get("created_by") != ObjectId(actor_id):
            return None, "Only the group creator can add members"
        if not mongo.users.find_one({"_id": ObjectId(member_id)}):
            return None, "User not found"
        if ObjectId(member_id) in chat["participants"]:
            return None, "User is already a member"

        mongo.chats.update_one(
            {"_id": chat["_id"]},
            {"$addToSet": {"participants": ObjectId(member_id)}, "$set": {"updated_at": utcnow()}}
        )
        return cls.get_chat(chat_id), None

    @classmethod
    def remove_member(cls, chat_id: str, actor_id: str, member_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        chat = cls.get_chat(chat_id)
        if not chat or chat["type"] != ChatType.GROUP.value:
            return None, "Group not found"
        if chat.get("created_by") != ObjectId(actor_id):
            return None, "Only the group creator can remove members"
        if member_id == actor_id:
            return None, "The group creator cannot be removed"
        if ObjectId(member_id) not in chat["participants"]:
            return None, "User is not a member"

        mongo.chats.update_one(
            {"_id": chat["_id"]},
            {"$pull": {"participants": ObjectId(member_id)}, "$set": {"updated_at": utcnow()}}
        )
        return cls.get_chat(chat_id), None

    @classmethod
    def list_chats(cls, user_id: str) -> List[Dict[str, Any]]:
        """Caller's chats, most recently active first."""
        user_oid = ObjectId(user_id)
        chats = list(mongo.chats.find({
            "participants": user_oid,
            "is_blocked": {"$ne": True}
        }).sort("updated_at", -1))

        member_ids = {pid for chat in chats for pid in chat["participants"]}
        users = {u["_id"]: u for u in mongo.users.find({"_id": {"$in": list(member_ids)}})}

        result = []
        for chat in chats:
            entry = serialize(chat)
            entry["participants"] = [public_user(users.get(pid)) for pid in chat["participants"] if pid in users]
            entry["unread_count"] = mongo.messages.count_documents({
                "chat_id": chat["_id"],
                "sender_id": {"$ne": user_oid},
                "read_by": {"$ne": user_oid}
            })
            result.append(entry)
        return result

    @classmethod
    def get_messages(
        cls,
        chat_id: str,
        limit: int = 50,
        before: Optional[Any] = None
    ) -> List[Dict[str, Any]]:
        """The newest `limit` messages (older than `before`), oldest first."""
        query: Dict[str, Any] = {"chat_id": ObjectId(chat_id)}
        if before is not None:
            query["created_at"] = {"$lt": before}

        messages = list(mongo.messages.find(query).sort([("created_at", -1), ("_id", -1)]).limit(limit))
        messages.reverse()

        senders = {
            u["_id"]: u for u in mongo.users.find({"_id": {"$in": [m["sender_id"] for m in messages if m.get("sender_id")]}})
        }
        result = []
        for m in messages:
            entry = serialize(m)
            entry["sender"] = public_user(senders.get(m.get("sender_id")))
            result.append(entry)
        return result

    @classmethod
    def _store_message(cls, chat_id: ObjectId, sender_id: Optional[ObjectId], content: str,
                       message_type: str, reply_to: Optional[ObjectId] = None) -> Dict[str, Any]:
        now = utcnow()
        message = {
            "chat_id": chat_id,
            "sender_id": sender_id,
            "content": content,
            "type": message_type,
            "reply_to": reply_to,
            "read_by": [sender_id] if sender_id else [],
            "created_at": now
        }
        result = mongo.messages.insert_one(message)
        message["_id"] = result.inserted_id

        mongo.chats.update_one(
            {"_id": chat_id},
            {"$set": {
                "last_message": {
                    "content": content,
                    "type": message_type,
                    "sender_id": sender_id,
                    "created_at": now
                },
                "updated_at": now
            }}
        )
        return message

    @classmethod
    def post_system_message(cls, chat_id: str, content: str) -> Dict[str, Any]:
        return cls._store_message(ObjectId(chat_id), None, content, MessageType.SYSTEM.value)

    @classmethod
    def send_message(
        cls,
        chat_id: str,
        sender_id: str,
        content: str,
        message_type: str = MessageType.TEXT.value,
        reply_to: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Send a message to a chat the sender belongs to.

        Returns:
            Tuple of (message, error_message)
        """
        from .notification_service import NotificationService, NotificationType

        content = content.strip() if isinstance(content, str) else ""
        if not content:
            return None, "Message cannot be empty"
        if len(content) > MAX_MESSAGE_LENGTH:
            return None, "Message must be 2000 characters or fewer"

        allowed_types = (MessageType.TEXT.value, MessageType.IMAGE.value, MessageType.FILE.value)
        if message_type not in allowed_types:
            return None, "Invalid message type"

        chat = cls.get_chat(chat_id)
        if not chat or chat.get("is_blocked"):
            return None, "Chat not found"
        if not cls.is_member(chat, sender_id):
            return None, "You are not a member of this chat"

        reply_oid = None
        if reply_to:
            reply_oid = ObjectId(reply_to)
            if not mongo.messages.find_one({"_id": reply_oid, "chat_id": chat["_id"]}):
                return None, "Replied message not found"

        message = cls._store_message(chat["_id"], ObjectId(sender_id), content, message_type, reply_oid)

        if chat["type"] == ChatType.PRIVATE.value:
            sender = mongo.users.find_one({"_id": ObjectId(sender_id)}) or {}
            for pid in chat["participants"]:
                if pid == ObjectId(sender_id):
                    continue
                NotificationService.create_notification(
                    user_id=str(pid),
                    notification_type=NotificationType.DIRECT_MESSAGE,
                    title=f"New message from {sender.get('username', 'someone')}",
                    message=content[:100],
                    data={"chat_id": chat_id, "message_id": str(message["_id"])}
                )

        return message, None

    @classmethod
    def mark_read(cls, chat_id: str, user_id: str) -> int:
        result = mongo.messages.update_many(
            {"chat_id": ObjectId(chat_id), "read_by": {"$ne": ObjectId(user_id)}},
            {"$addToSet": {"read_by": ObjectId(user_id)}}
        )
        return result.modified_count

    @classmethod
    def delete_group(cls, chat_id: str) -> bool:
        """Remove a group chat and all of its messages."""
        chat = cls.get_chat(chat_id)
        if not chat or chat["type"] != ChatType.GROUP.value:
            return False
        mongo.messages.delete_many({"chat_id": chat["_id"]})
        mongo.chats.delete_one({"_id": chat["_id"]})
        logger.info("Deleted group chat %s", chat_id)
        return True
