"""
Platform Service - House ledger and admin settings.

Responsibilities:
- Accumulate admin fees and settlement dust
- Let admins withdraw accumulated fees
- Hold the settlement method flag (fiat or coins)
- Write the admin audit log
"""
import logging
from typing import Optional, Dict, Any, Tuple

from bson import ObjectId
from pymongo import ReturnDocument

from bantah.extensions import db as mongo
from bantah.utils.enums import SettlementMethod
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)

SETTINGS_ID = "platform"


class PlatformService:
    """Service for platform-level balances and flags."""

    @classmethod
    def get_settings(cls) -> Dict[str, Any]:
        now = utcnow()
        return mongo.platform.find_one_and_update(
            {"_id": SETTINGS_ID},
            {"$setOnInsert": {
                "settlement_method": SettlementMethod.FIAT.value,
                "fees_collected": 0.0,
                "fees_withdrawn": 0.0,
                "fees_balance": 0.0,
                "created_at": now
            }},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )

    @classmethod
    def get_settlement_method(cls) -> str:
        return cls.get_settings().get("settlement_method", SettlementMethod.FIAT.value)

    @classmethod
    def set_settlement_method(cls, use_coins: bool, admin_id: str) -> str:
        cls.get_settings()
        method = SettlementMethod.COINS.value if use_coins else SettlementMethod.FIAT.value
        mongo.platform.update_one(
            {"_id": SETTINGS_ID},
            {"$set": {"settlement_method": method, "updated_at": utcnow()}}
        )
        cls.log_admin_action(admin_id, "toggle_settlement_method", "platform", SETTINGS_ID, {"method": method})
        return method

    @classmethod
    def add_fees(cls, amount: float, source: str, reference_id: Optional[str] = None) -> None:
        """Add collected fees to the house balance."""
        amount = round(float(amount), 2)
        if amount <= 0:
            return
        cls.get_settings()
        mongo.platform.update_one(
            {"_id": SETTINGS_ID},
            {"$inc": {"fees_collected": amount, "fees_balance": amount},
             "$set": {"updated_at": utcnow()}}
        )
        mongo.platform_fees.insert_one({
            "amount": amount,
            "source": source,
            "reference_id": reference_id,
            "created_at": utcnow()
        })
        logger.info("Platform fees +%.2f from %s %s", amount, source, reference_id)

    @classmethod
    def withdraw_fees(cls, amount: float, admin_id: str) -> Tuple[bool, Optional[str], float]:
        """
        Withdraw accumulated fees.

        Returns:
            Tuple of (success, error_message, remaining_balance)
        """
        amount = round(float(amount), 2)
        cls.get_settings()
        settings = mongo.platform.find_one_and_update(
            {"_id": SETTINGS_ID, "fees_balance": {"$gte": amount - 0.005}},
            {"$inc": {"fees_balance": -amount, "fees_withdrawn": amount},
             "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        if settings is None:
            available = round(float(cls.get_settings().get("fees_balance", 0)), 2)
            return False, f"Insufficient platform fees. Available: {available:.2f}", available

        cls.log_admin_action(admin_id, "withdraw_platform_fees", "platform", SETTINGS_ID, {"amount": amount})
        return True, None, round(float(settings["fees_balance"]), 2)

    @classmethod
    def log_admin_action(
        cls,
        admin_id: str,
        action_type: str,
        target_type: str,
        target_id: Any,
        details: Optional[Dict] = None
    ) -> None:
        mongo.admin_actions.insert_one({
            "admin_id": ObjectId(admin_id),
            "action_type": action_type,
            "target_type": target_type,
            "target_id": str(target_id),
            "details": details or {},
            "created_at": utcnow()
        })
        logger.info("Admin %s: %s on %s %s", admin_id, action_type, target_type, target_id)
