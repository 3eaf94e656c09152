"""
User Service - Profiles, search and the follow graph.
"""
import logging
import re
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from bantah.extensions import db as mongo
from bantah.utils.serializers import public_user
from bantah.utils.validators import safe_object_id, utcnow

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10


class UserService:
    """Service for user profiles and social connections."""

    @classmethod
    def find_user(cls, identifier: str) -> Optional[Dict[str, Any]]:
        """Look a user up by id or username."""
        oid = safe_object_id(identifier)
        if oid:
            user = mongo.users.find_one({"_id": oid}, {"password_hash": 0})
            if user:
                return user
        return mongo.users.find_one({"username": identifier}, {"password_hash": 0})

    @classmethod
    def get_profile(cls, user: Dict[str, Any], viewer_id: Optional[str] = None) -> Dict[str, Any]:
        from .stats_service import StatsService

        profile = public_user(user)
        profile.update({
            "bio": user.get("bio"),
            "is_admin": bool(user.get("is_admin")),
            "created_at": user["created_at"].isoformat() if user.get("created_at") else None,
            "followers_count": mongo.followers.count_documents({"following_id": user["_id"]}),
            "following_count": mongo.followers.count_documents({"follower_id": user["_id"]}),
            "stats": StatsService.get_user_stats(str(user["_id"])),
        })
        if viewer_id:
            profile["is_following"] = mongo.followers.find_one({
                "follower_id": ObjectId(viewer_id),
                "following_id": user["_id"]
            }) is not None
        return profile

    @classmethod
    def update_profile(cls, user_id: str, data: Dict[str, Any]) -> Tuple[Optional[Dict], Optional[str]]:
        """Apply validated profile fields. Username changes must stay unique."""
        update = {k: v for k, v in data.items() if k in ("name", "bio", "avatar_url", "username") and v is not None}
        if not update:
            return None, "No profile fields to update"

        update["updated_at"] = utcnow()
        try:
            mongo.users.update_one({"_id": ObjectId(user_id)}, {"$set": update})
        except DuplicateKeyError:
            return None, "Username is already taken"

        return mongo.users.find_one({"_id": ObjectId(user_id)}, {"password_hash": 0}), None

    @classmethod
    def search_users(cls, query: str, viewer_id: str) -> Tuple[Optional[List[Dict]], Optional[str]]:
        query = (query or "").strip()
        if len(query) < SEARCH_MIN_LENGTH:
            return None, "Search query must be at least 2 characters"

        regex = re.compile(re.escape(query), re.IGNORECASE)
        users = mongo.users.find({
            "$or": [{"username": regex}, {"name": regex}],
            "_id": {"$ne": ObjectId(viewer_id)},
            "is_blocked": {"$ne": True}
        }).limit(SEARCH_LIMIT)
        return [public_user(u) for u in users], None

    @classmethod
    def follow(cls, follower_id: str, following_id: str) -> Tuple[bool, Optional[str]]:
        from .notification_service import NotificationService, NotificationType

        if follower_id == following_id:
            return False, "You cannot follow yourself"

        target = mongo.users.find_one({"_id": ObjectId(following_id)})
        if not target:
            return False, "User not found"

        try:
            mongo.followers.insert_one({
                "follower_id": ObjectId(follower_id),
                "following_id": ObjectId(following_id),
                "created_at": utcnow()
            })
        except DuplicateKeyError:
            return False, "You are already following this user"

        follower = mongo.users.find_one({"_id": ObjectId(follower_id)}) or {}
        NotificationService.create_notification(
            user_id=following_id,
            notification_type=NotificationType.FOLLOW,
            title="New Follower",
            message=f"{follower.get('username', 'Someone')} started following you.",
            data={"follower_id": follower_id}
        )
        return True, None

    @classmethod
    def unfollow(cls, follower_id: str, following_id: str) -> Tuple[bool, Optional[str]]:
        result = mongo.followers.delete_one({
            "follower_id": ObjectId(follower_id),
            "following_id": ObjectId(following_id)
        })
        if result.deleted_count == 0:
            return False, "You are not following this user"
        return True, None

    @classmethod
    def get_followers(cls, user_id: str) -> List[Dict[str, Any]]:
        ids = [f["follower_id"] for f in mongo.followers.find({"following_id": ObjectId(user_id)})]
        return [public_user(u) for u in mongo.users.find({"_id": {"$in": ids}})]

    @classmethod
    def get_following(cls, user_id: str) -> List[Dict[str, Any]]:
        ids = [f["following_id"] for f in mongo.followers.find({"follower_id": ObjectId(user_id)})]
        return [public_user(u) for u in mongo.users.find({"_id": {"$in": ids}})]

    @classmethod
    def set_blocked(cls, target_id: str, admin_id: str, blocked: bool) -> Tuple[bool, Optional[str]]:
        """Block or unblock a user account."""
        from .platform_service import PlatformService

        if target_id == admin_id:
            return False, "You cannot block yourself" if blocked else "You cannot unblock yourself"

        result = mongo.users.update_one(
            {"_id": ObjectId(target_id)},
            {"$set": {"is_blocked": blocked, "updated_at": utcnow()}}
        )
        if result.matched_count == 0:
            return False, "User not found"

        PlatformService.log_admin_action(admin_id, "block_user" if blocked else "unblock_user", "user", target_id)
        return True, None
