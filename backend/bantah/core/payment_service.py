"""
Payment Service - Deposits and withdrawals.

Responsibilities:
- Create pending deposits and hand the user a Paystack checkout URL
- Verify deposits and credit the wallet exactly once
- Debit the wallet for withdrawal requests
"""
import logging
import secrets
import time
from typing import Optional, Dict, Any, Tuple

from bson import ObjectId
from flask import current_app
from pymongo import ReturnDocument

from bantah.extensions import db as mongo
from bantah.payments.services import PaystackService, to_kobo
from bantah.utils.enums import PaymentStatus
from bantah.utils.validators import utcnow

logger = logging.getLogger(__name__)


def generate_deposit_reference() -> str:
    return f"DEP_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class PaymentService:
    """Service for wallet funding and payouts."""

    @classmethod
    def gateway(cls) -> PaystackService:
        return PaystackService.from_config(current_app.config)

    @classmethod
    def initialize_deposit(
        cls,
        user: Dict[str, Any],
        amount: float,
        callback_url: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Record a pending deposit and start a Paystack checkout.

        Returns:
            Tuple of (deposit_info, error_message)
        """
        minimum = current_app.config["MIN_DEPOSIT_AMOUNT"]
        if amount < minimum:
            return None, f"Minimum deposit amount is {minimum:.0f}"

        reference = generate_deposit_reference()
        deposit = {
            "user_id": user["_id"],
            "amount": round(float(amount), 2),
            "reference": reference,
            "status": PaymentStatus.PENDING.value,
            "gateway": "paystack",
            "created_at": utcnow(),
            "completed_at": None
        }
        mongo.deposits.insert_one(deposit)

        response = cls.gateway().initialize_transaction(
            email=user["email"],
            amount=deposit["amount"],
            reference=reference,
            callback_url=callback_url,
            metadata={"user_id": str(user["_id"])}
        )
        if not response.get("status"):
            mongo.deposits.update_one(
                {"reference": reference},
                {"$set": {"status": PaymentStatus.FAILED.value, "failure_reason": response.get("message")}}
            )
            return None, response.get("message") or "Could not initialize payment"

        data = response.get("data", {})
        return {
            "reference": reference,
            "amount": deposit["amount"],
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code")
        }, None

    @classmethod
    def verify_deposit(cls, reference: str, user_id: Optional[str] = None) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Confirm a deposit with the gateway and credit the wallet.

        The pending -> completed flip is a conditional update, so a deposit
        verified twice (client and webhook) is credited once.

        Returns:
            Tuple of (deposit_info, error_message)
        """
        from .notification_service import NotificationService, NotificationType
        from .wallet_service import WalletService

        query: Dict[str, Any] = {"reference": reference}
        if user_id:
            query["user_id"] = ObjectId(user_id)
        deposit = mongo.deposits.find_one(query)
        if not deposit:
            return None, "Deposit not found"

        if deposit["status"] == PaymentStatus.COMPLETED.value:
            return {
                "reference": reference,
                "amount": deposit["amount"],
                "status": deposit["status"],
                "balance": WalletService.get_wallet_balance(str(deposit["user_id"])),
                "already_verified": True
            }, None
        if deposit["status"] == PaymentStatus.FAILED.value:
            return None, "Deposit failed"

        response = cls.gateway().verify_transaction(reference)
        data = response.get("data") or {}
        if not response.get("status") or data.get("status") != PaystackService.STATUS_SUCCESS:
            reason = data.get("status") or response.get("message") or "verification failed"
            if data.get("status") in (PaystackService.STATUS_FAILED, PaystackService.STATUS_ABANDONED):
                mongo.deposits.update_one(
                    {"_id": deposit["_id"], "status": PaymentStatus.PENDING.value},
                    {"$set": {"status": PaymentStatus.FAILED.value, "failure_reason": reason}}
                )
            logger.warning("Deposit %s not verified: %s", reference, reason)
            return None, f"Payment not successful: {reason}"

        if int(data.get("amount", 0)) != to_kobo(deposit["amount"]):
            mongo.deposits.update_one(
                {"_id": deposit["_id"], "status": PaymentStatus.PENDING.value},
                {"$set": {"status": PaymentStatus.FAILED.value, "failure_reason": "amount mismatch"}}
            )
            logger.warning("Deposit %s amount mismatch: %s", reference, data.get("amount"))
            return None, "Payment amount does not match deposit"

        claimed = mongo.deposits.find_one_and_update(
            {"_id": deposit["_id"], "status": PaymentStatus.PENDING.value},
            {"$set": {"status": PaymentStatus.COMPLETED.value, "completed_at": utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        user_key = str(deposit["user_id"])
        if claimed is None:
            return {
                "reference": reference,
                "amount": deposit["amount"],
                "status": PaymentStatus.COMPLETED.value,
                "balance": WalletService.get_wallet_balance(user_key),
                "already_verified": True
            }, None

        _, balance = WalletService.credit_wallet(user_key, deposit["amount"], "deposit", reference,
                                                 notes="Paystack deposit")
        NotificationService.create_notification(
            user_id=user_key,
            notification_type=NotificationType.DEPOSIT_CONFIRMED,
            title="Deposit Confirmed",
            message=f"{deposit['amount']:.2f} has been added to your wallet.",
            data={"reference": reference, "amount": deposit["amount"]}
        )
        return {
            "reference": reference,
            "amount": deposit["amount"],
            "status": PaymentStatus.COMPLETED.value,
            "balance": balance,
            "already_verified": False
        }, None

    @classmethod
    def request_withdrawal(
        cls,
        user_id: str,
        amount: float,
        account_number: str,
        bank_code: str
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """Debit the wallet and queue a withdrawal for payout."""
        from .notification_service import NotificationService, NotificationType
        from .wallet_service import WalletService

        minimum = current_app.config["MIN_WITHDRAWAL_AMOUNT"]
        if amount < minimum:
            return None, f"Minimum withdrawal amount is {minimum:.0f}"
        if not account_number or not bank_code:
            return None, "Account number and bank code are required"

        withdrawal_oid = ObjectId()
        success, error, debited = WalletService.debit_wallet(
            user_id, amount, "withdrawal", str(withdrawal_oid), notes=f"Withdrawal to {account_number}"
        )
        if not success:
            return None, error

        withdrawal = {
            "_id": withdrawal_oid,
            "user_id": ObjectId(user_id),
            "amount": debited,
            "account_number": account_number,
            "bank_code": bank_code,
            "status": PaymentStatus.PENDING.value,
            "created_at": utcnow()
        }
        mongo.withdrawals.insert_one(withdrawal)

        NotificationService.create_notification(
            user_id=user_id,
            notification_type=NotificationType.WITHDRAWAL_REQUESTED,
            title="Withdrawal Requested",
            message=f"Your withdrawal of {debited:.2f} is being processed.",
            data={"withdrawal_id": str(withdrawal_oid), "amount": debited}
        )
        logger.info("Withdrawal %s of %.2f requested by %s", withdrawal_oid, debited, user_id)
        return withdrawal, None
