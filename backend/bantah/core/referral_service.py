"""
Referral Service - Referral codes, rewards and the welcome bonus.
"""
import logging
import secrets
import string
from typing import Optional, Dict, Any, Tuple

from bson import ObjectId
from flask import current_app
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from bantah.extensions import db as mongo
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def generate_referral_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


class ReferralService:
    """Service for referrals and sign-up bonuses."""

    @classmethod
    def get_or_create_code(cls, user_id: str) -> str:
        user = mongo.users.find_one({"_id": ObjectId(user_id)}, {"referral_code": 1})
        if user and user.get("referral_code"):
            return user["referral_code"]

        while True:
            code = generate_referral_code()
            try:
                mongo.users.update_one({"_id": ObjectId(user_id)}, {"$set": {"referral_code": code}})
                return code
            except DuplicateKeyError:
                continue

    @classmethod
    def apply_code(cls, user_id: str, code: str) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Record that `user_id` was referred by the owner of `code`.

        Returns:
            Tuple of (referral, error_message)
        """
        code = (code or "").strip().upper()
        if not code:
            return None, "Referral code is required"

        referrer = mongo.users.find_one({"referral_code": code})
        if not referrer:
            return None, "Invalid referral code"

        if referrer["_id"] == ObjectId(user_id):
            return None, "You cannot use your own referral code"

        if mongo.referrals.find_one({"referred_id": ObjectId(user_id)}):
            return None, "You have already been referred"

        referral = {
            "referrer_id": referrer["_id"],
            "referred_id": ObjectId(user_id),
            "code": code,
            "status": "pending",
            "created_at": utcnow(),
            "completed_at": None
        }
        result = mongo.referrals.insert_one(referral)
        referral["_id"] = result.inserted_id
        return referral, None

    @classmethod
    def get_stats(cls, user_id: str) -> Dict[str, Any]:
        user_oid = ObjectId(user_id)
        rewards = mongo.referral_rewards.find({"user_id": user_oid, "paid": True}, {"amount": 1})
        return {
            "code": cls.get_or_create_code(user_id),
            "total_referrals": mongo.referrals.count_documents({"referrer_id": user_oid}),
            "pending_referrals": mongo.referrals.count_documents({"referrer_id": user_oid, "status": "pending"}),
            "completed_referrals": mongo.referrals.count_documents({"referrer_id": user_oid, "status": "completed"}),
            "total_rewards": round(sum(float(r["amount"]) for r in rewards), 2),
        }

    @classmethod
    def claim_welcome_bonus(cls, user_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Credit the one-time welcome bonus, and reward the referrer if the
        user signed up with a code.

        Returns:
            Tuple of (result, error_message)
        """
        from .notification_service import NotificationService, NotificationType
        from .wallet_service import WalletService

        claimed = mongo.users.find_one_and_update(
            {"_id": ObjectId(user_id), "welcome_bonus_claimed": {"$ne": True}},
            {"$set": {"welcome_bonus_claimed": True, "welcome_bonus_claimed_at": utcnow()}}
        )
        if claimed is None:
            return None, "Welcome bonus already claimed"

        bonus = round(float(current_app.config["WELCOME_BONUS_AMOUNT"]), 2)
        _, balance = WalletService.credit_wallet(user_id, bonus, "welcome_bonus", notes="Welcome bonus")
        NotificationService.create_notification(
            user_id=user_id,
            notification_type=NotificationType.WELCOME_BONUS,
            title="Welcome Bonus",
            message=f"{bonus:.2f} has been added to your wallet. Welcome to Bantah!",
            data={"amount": bonus}
        )

        referral = mongo.referrals.find_one_and_update(
            {"referred_id": ObjectId(user_id), "status": "pending"},
            {"$set": {"status": "completed", "completed_at": utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        referral_reward = None
        if referral:
            referral_reward = round(float(current_app.config["REFERRAL_REWARD_AMOUNT"]), 2)
            referrer_id = str(referral["referrer_id"])
            WalletService.credit_wallet(referrer_id, referral_reward, "referral_reward", str(referral["_id"]),
                                        notes="Referral reward")
            mongo.referral_rewards.insert_one({
                "referral_id": referral["_id"],
                "user_id": referral["referrer_id"],
                "amount": referral_reward,
                "paid": True,
                "created_at": utcnow()
            })
            NotificationService.create_notification(
                user_id=referrer_id,
                notification_type=NotificationType.REFERRAL,
                title="Referral Reward",
                message=f"{claimed.get('username', 'Your friend')} joined with your code. You earned {referral_reward:.2f}.",
                data={"referral_id": str(referral["_id"]), "amount": referral_reward}
            )

        logger.info("Welcome bonus %.2f paid to %s", bonus, user_id)
        return {"bonus": bonus, "balance": balance, "referral_reward": referral_reward}, None
