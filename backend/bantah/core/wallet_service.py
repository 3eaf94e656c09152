"""
Wallet Service - Personal wallet ledger.

Responsibilities:
- Create wallets on demand
- Credit and debit balances atomically
- Lock stakes for events and challenges
- Record every movement in wallet_transactions
"""
import logging
from typing import Optional, Dict, Tuple, List

from bson import ObjectId
from pymongo import ReturnDocument

from bantah.extensions import db as mongo
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)

# Small threshold to avoid floating point issues
BALANCE_EPSILON = 0.005


class WalletService:
    """Service for personal wallet operations."""

    @classmethod
    def get_or_create_wallet(cls, user_id: str) -> Dict:
        """Return the user's wallet, creating an empty one if needed."""
        now = utcnow()
        return mongo.wallets.find_one_and_update(
            {"user_id": ObjectId(user_id)},
            {"$setOnInsert": {
                "balance": 0.0,
                "coins": 0,
                "created_at": now,
                "updated_at": now
            }},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )

    @classmethod
    def get_wallet_balance(cls, user_id: str) -> float:
        """Get user's wallet balance."""
        wallet = cls.get_or_create_wallet(user_id)
        return round(float(wallet.get("balance", 0)), 2)

    @classmethod
    def credit_wallet(
        cls,
        user_id: str,
        amount: float,
        source: str,
        reference_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Tuple[bool, float]:
        """
        Credit user's wallet.

        Args:
            user_id: User ID
            amount: Amount to credit
            source: Source of credit (deposit, winnings, refund, bonus...)
            reference_id: Reference to the event/challenge/deposit
            notes: Optional notes

        Returns:
            Tuple of (success, new_balance)
        """
        amount = round(float(amount), 2)
        if amount <= 0:
            return False, cls.get_wallet_balance(user_id)

        now = utcnow()
        wallet = mongo.wallets.find_one_and_update(
            {"user_id": ObjectId(user_id)},
            {
                "$inc": {"balance": amount},
                "$set": {"updated_at": now},
                "$setOnInsert": {"coins": 0, "created_at": now}
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        new_balance = round(float(wallet["balance"]), 2)

        cls._record_transaction(
            wallet, user_id, "credit", amount, new_balance,
            source=source, reference_id=reference_id, notes=notes
        )
        logger.info("Credited %.2f to user %s (%s)", amount, user_id, source)

        return True, new_balance

    @classmethod
    def debit_wallet(
        cls,
        user_id: str,
        amount: float,
        purpose: str,
        reference_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Tuple[bool, Optional[str], float]:
        """
        Debit user's wallet. The balance check and the decrement happen in a
        single conditional update so concurrent debits cannot overdraw.

        Returns:
            Tuple of (success, error_message, amount_debited)
        """
        amount = round(float(amount), 2)
        if amount <= 0:
            return False, "Invalid amount", 0.0

        wallet = mongo.wallets.find_one_and_update(
            {
                "user_id": ObjectId(user_id),
                "balance": {"$gte": amount - BALANCE_EPSILON}
            },
            {
                "$inc": {"balance": -amount},
                "$set": {"updated_at": utcnow()}
            },
            return_document=ReturnDocument.AFTER
        )

        if wallet is None:
            logger.warning("Debit of %.2f refused for user %s: insufficient balance", amount, user_id)
            return False, "Insufficient balance", 0.0

        new_balance = round(float(wallet["balance"]), 2)
        cls._record_transaction(
            wallet, user_id, "debit", amount, new_balance,
            purpose=purpose, reference_id=reference_id, notes=notes
        )
        logger.info("Debited %.2f from user %s (%s)", amount, user_id, purpose)

        return True, None, amount

    @classmethod
    def lock_funds(cls, user_id: str, amount: float, reference_id: str, purpose: str) -> Tuple[bool, Optional[str]]:
        """Take a stake out of the wallet for an event or challenge."""
        success, error, _ = cls.debit_wallet(
            user_id=user_id,
            amount=amount,
            purpose=purpose,
            reference_id=reference_id,
            notes=f"Stake locked for {purpose.replace('_', ' ')}"
        )
        if not success:
            return False, "Insufficient funds" if error == "Insufficient balance" else error
        return True, None

    @classmethod
    def credit_coins(cls, user_id: str, coins: int, source: str, reference_id: Optional[str] = None) -> int:
        """Credit coins (coin settlement mode). Returns the new coin balance."""
        coins = int(coins)
        now = utcnow()
        wallet = mongo.wallets.find_one_and_update(
            {"user_id": ObjectId(user_id)},
            {
                "$inc": {"coins": coins},
                "$set": {"updated_at": now},
                "$setOnInsert": {"balance": 0.0, "created_at": now}
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        mongo.wallet_transactions.insert_one({
            "wallet_id": wallet["_id"],
            "user_id": ObjectId(user_id),
            "type": "coin_credit",
            "amount": coins,
            "source": source,
            "reference_id": reference_id,
            "coins_after": wallet["coins"],
            "created_at": now
        })
        logger.info("Credited %d coins to user %s (%s)", coins, user_id, source)
        return int(wallet["coins"])

    @classmethod
    def _record_transaction(cls, wallet, user_id, tx_type, amount, balance_after, **fields) -> None:
        doc = {
            "wallet_id": wallet["_id"],
            "user_id": ObjectId(user_id),
            "type": tx_type,
            "amount": amount,
            "balance_after": balance_after,
            "created_at": utcnow()
        }
        doc.update({k: v for k, v in fields.items() if v is not None})
        mongo.wallet_transactions.insert_one(doc)

    @classmethod
    def get_wallet_transactions(
        cls,
        user_id: str,
        limit: int = 50
    ) -> List[Dict]:
        """Get wallet transaction history."""
        transactions = list(mongo.wallet_transactions.find({
            "user_id": ObjectId(user_id)
        }).sort("created_at", -1).limit(limit))

        for t in transactions:
            t["_id"] = str(t["_id"])
            t["user_id"] = str(t["user_id"])
            t["wallet_id"] = str(t["wallet_id"])
            if t.get("created_at"):
                t["created_at"] = t["created_at"].isoformat()

        return transactions
