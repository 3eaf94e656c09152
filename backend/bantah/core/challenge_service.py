"""
Challenge Service - Peer-to-peer wagers.

Responsibilities:
- Create challenges and lock the challenger's stake
- Accept/decline, cancel and expire pending challenges
- Collect evidence and admin verification
- Pay the winner once an admin sets the outcome
"""
import logging
from datetime import timedelta
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId
from flask import current_app
from pymongo import ReturnDocument

from bantah.extensions import db as mongo
from bantah.events.models import split_fee
from bantah.utils.enums import ChallengeStatus
from bantah.utils.serializers import public_user, serialize
from bantah.utils.validators import from_cents, parse_amount, to_cents, utcnow

logger = logging.getLogger(__name__)

MIN_EXPIRY_MINUTES = 5
MAX_EXPIRY_MINUTES = 1440
SUPPORT_MESSAGE = "Support has been added to the chat"


def format_time_left(seconds: int) -> str:
    """Countdown label: "M:SS", or "Expired" once time is up."""
    if seconds <= 0:
        return "Expired"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


class ChallengeService:
    """Service for challenges between two users."""

    @classmethod
    def create_challenge(
        cls,
        challenger_id: str,
        challenged_id: str,
        title: str,
        amount: float,
        expires_in: Optional[int] = None,
        description: Optional[str] = None,
        evidence_type: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Create a challenge and lock the challenger's stake.

        Returns:
            Tuple of (challenge, error_message)
        """
        from .chat_service import ChatService
        from .notification_service import NotificationService, NotificationType
        from .wallet_service import WalletService

        if challenger_id == challenged_id:
            return None, "You cannot challenge yourself"

        minimum = current_app.config["MIN_CHALLENGE_AMOUNT"]
        amount = parse_amount(amount)
        if amount is None or amount < minimum:
            return None, f"Minimum challenge amount is {minimum:.0f}"

        if expires_in is None:
            expires_in = current_app.config["CHALLENGE_DEFAULT_EXPIRY_MINUTES"]
        if not MIN_EXPIRY_MINUTES <= expires_in <= MAX_EXPIRY_MINUTES:
            return None, "Expiry must be between 5 and 1440 minutes"

        challenged = mongo.users.find_one({"_id": ObjectId(challenged_id)})
        if not challenged:
            return None, "Challenged user not found"
        if challenged.get("is_blocked"):
            return None, "This user cannot be challenged"

        challenge_oid = ObjectId()

        success, error = WalletService.lock_funds(challenger_id, amount, str(challenge_oid), "challenge_stake")
        if not success:
            return None, "Insufficient funds to create challenge"

        now = utcnow()
        challenge = {
            "_id": challenge_oid,
            "challenger_id": ObjectId(challenger_id),
            "challenged_id": ObjectId(challenged_id),
            "title": title,
            "description": description,
            "amount": amount,
            "evidence_type": evidence_type,
            "status": ChallengeStatus.PENDING.value,
            "winner_id": None,
            "evidence": [],
            "created_at": now,
            "expires_at": now + timedelta(minutes=expires_in),
            "updated_at": now
        }
        result = mongo.challenges.insert_one(challenge)

        chat = ChatService.create_challenge_chat(challenge)
        mongo.challenges.update_one({"_id": result.inserted_id}, {"$set": {"chat_id": chat["_id"]}})
        challenge["chat_id"] = chat["_id"]

        challenger = mongo.users.find_one({"_id": ObjectId(challenger_id)}) or {}
        NotificationService.create_notification(
            user_id=challenged_id,
            notification_type=NotificationType.CHALLENGE,
            title="New Challenge",
            message=f"{challenger.get('username', 'Someone')} challenged you to '{title}' for {challenge['amount']:.2f}",
            data={"challenge_id": str(result.inserted_id), "amount": challenge["amount"]},
            priority="high"
        )

        logger.info("Challenge %s created by %s against %s", result.inserted_id, challenger_id, challenged_id)
        return challenge, None

    @classmethod
    def _expire(cls, challenge: Dict[str, Any]) -> bool:
        """Flip one pending, past-due challenge to expired and refund the challenger."""
        from .wallet_service import WalletService

        claimed = mongo.challenges.find_one_and_update(
            {"_id": challenge["_id"], "status": ChallengeStatus.PENDING.value},
            {"$set": {"status": ChallengeStatus.EXPIRED.value, "updated_at": utcnow()}}
        )
        if claimed is None:
            return False
        WalletService.credit_wallet(
            str(challenge["challenger_id"]), challenge["amount"], "challenge_refund",
            str(challenge["_id"]), notes="Challenge expired"
        )
        return True

    @classmethod
    def expire_stale(cls, now=None) -> int:
        """Expire every pending challenge past its deadline. Returns how many expired."""
        now = now or utcnow()
        stale = list(mongo.challenges.find({
            "status": ChallengeStatus.PENDING.value,
            "expires_at": {"$lte": now}
        }))
        expired = sum(1 for challenge in stale if cls._expire(challenge))
        if expired:
            logger.info("Expired %d stale challenges", expired)
        return expired

    @classmethod
    def _refresh(cls, challenge: Dict[str, Any]) -> Dict[str, Any]:
        if challenge["status"] == ChallengeStatus.PENDING.value and challenge["expires_at"] <= utcnow():
            cls._expire(challenge)
            return mongo.challenges.find_one({"_id": challenge["_id"]})
        return challenge

    @classmethod
    def get_challenge(cls, challenge_id: str) -> Optional[Dict[str, Any]]:
        challenge = mongo.challenges.find_one({"_id": ObjectId(challenge_id)})
        if challenge:
            challenge = cls._refresh(challenge)
        return challenge

    @classmethod
    def is_participant(cls, challenge: Dict[str, Any], user_id: str) -> bool:
        return ObjectId(user_id) in (challenge["challenger_id"], challenge["challenged_id"])

    @classmethod
    def to_dict(cls, challenge: Dict[str, Any]) -> Dict[str, Any]:
        users = {
            u["_id"]: u for u in mongo.users.find(
                {"_id": {"$in": [challenge["challenger_id"], challenge["challenged_id"]]}}
            )
        }
        seconds = max(0, int((challenge["expires_at"] - utcnow()).total_seconds()))
        data = serialize(challenge)
        data["challenger"] = public_user(users.get(challenge["challenger_id"]))
        data["challenged"] = public_user(users.get(challenge["challenged_id"]))
        data["time_left_seconds"] = seconds
        data["time_left"] = format_time_left(seconds)
        return data

    @classmethod
    def list_user_challenges(cls, user_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        cls.expire_stale()
        user_oid = ObjectId(user_id)
        query: Dict[str, Any] = {"$or": [{"challenger_id": user_oid}, {"challenged_id": user_oid}]}
        if status:
            query["status"] = status
        return [cls.to_dict(c) for c in mongo.challenges.find(query).sort("created_at", -1)]

    @classmethod
    def respond(cls, challenge_id: str, user_id: str, accepted: bool) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Accept or decline a pending challenge.

        Accepting locks the challenged user's stake; declining refunds the
        challenger.

        Returns:
            Tuple of (challenge, error_message)
        """
        from .notification_service import NotificationService, NotificationType
        from .wallet_service import WalletService

        challenge = cls.get_challenge(challenge_id)
        if not challenge:
            return None, "Challenge not found"

        if challenge["challenged_id"] != ObjectId(user_id):
            return None, "Only the challenged user can respond"

        if challenge["status"] == ChallengeStatus.EXPIRED.value:
            return None, "Challenge has expired"
        if challenge["status"] != ChallengeStatus.PENDING.value:
            return None, f"Challenge is already {challenge['status']}"

        if accepted:
            success, error = WalletService.lock_funds(user_id, challenge["amount"], challenge_id, "challenge_stake")
            if not success:
                return None, "Insufficient funds to accept challenge"
            new_status = ChallengeStatus.ACCEPTED.value
        else:
            new_status = ChallengeStatus.DECLINED.value

        updated = mongo.challenges.find_one_and_update(
            {"_id": challenge["_id"], "status": ChallengeStatus.PENDING.value},
            {"$set": {"status": new_status, "responded_at": utcnow(), "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        if updated is None:
            if accepted:
                WalletService.credit_wallet(user_id, challenge["amount"], "challenge_refund", challenge_id,
                                            notes="Challenge no longer pending")
            return None, "Challenge is no longer pending"

        if not accepted:
            WalletService.credit_wallet(
                str(challenge["challenger_id"]), challenge["amount"], "challenge_refund",
                challenge_id, notes="Challenge declined"
            )

        verdict = "accepted" if accepted else "declined"
        NotificationService.create_notification(
            user_id=str(challenge["challenger_id"]),
            notification_type=NotificationType.CHALLENGE_RESPONSE,
            title=f"Challenge {verdict.title()}",
            message=f"Your challenge '{challenge['title']}' was {verdict}.",
            data={"challenge_id": challenge_id, "status": new_status}
        )

        return updated, None

    @classmethod
    def cancel(cls, challenge_id: str, user_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        from .wallet_service import WalletService

        challenge = cls.get_challenge(challenge_id)
        if not challenge:
            return None, "Challenge not found"
        if challenge["challenger_id"] != ObjectId(user_id):
            return None, "Only the challenger can cancel this challenge"

        updated = mongo.challenges.find_one_and_update(
            {"_id": challenge["_id"], "status": ChallengeStatus.PENDING.value},
            {"$set": {"status": ChallengeStatus.CANCELLED.value, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        if updated is None:
            return None, f"Challenge is already {challenge['status']}"

        WalletService.credit_wallet(user_id, challenge["amount"], "challenge_refund", challenge_id,
                                    notes="Challenge cancelled")
        return updated, None

    @classmethod
    def submit_evidence(
        cls,
        challenge_id: str,
        user_id: str,
        url: str,
        evidence_type: str,
        metadata: Optional[Dict] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        from .notification_service import NotificationService, NotificationType

        challenge = cls.get_challenge(challenge_id)
        if not challenge:
            return None, "Challenge not found"
        if not cls.is_participant(challenge, user_id):
            return None, "Only challenge participants can submit evidence"
        if challenge["status"] != ChallengeStatus.ACCEPTED.value:
            return None, "Evidence can only be submitted for accepted challenges"
        if not url:
            return None, "Evidence URL is required"

        evidence = {
            "url": url,
            "type": evidence_type or "image",
            "metadata": metadata or {},
            "submitted_by": ObjectId(user_id),
            "submitted_at": utcnow()
        }
        mongo.challenges.update_one(
            {"_id": challenge["_id"]},
            {"$push": {"evidence": evidence}, "$set": {"updated_at": utcnow()}}
        )

        NotificationService.notify_admins(
            NotificationType.EVIDENCE_SUBMITTED,
            "Evidence Submitted",
            f"New evidence for challenge '{challenge['title']}' needs review.",
            data={"challenge_id": challenge_id, "evidence_url": url}
        )
        return evidence, None

    @classmethod
    def review_evidence(
        cls,
        challenge_id: str,
        admin_id: str,
        approved: bool,
        checklist: Optional[Dict[str, bool]] = None,
        notes: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """Record an admin verdict on a challenge's evidence."""
        from .platform_service import PlatformService

        challenge = mongo.challenges.find_one({"_id": ObjectId(challenge_id)})
        if not challenge:
            return None, "Challenge not found"
        if not challenge.get("evidence"):
            return None, "No evidence has been submitted"

        now = utcnow()
        checklist = checklist or {}
        first = challenge["evidence"][0]
        verification = mongo.evidence_verifications.find_one_and_update(
            {"challenge_id": challenge["_id"]},
            {"$set": {
                "evidence_url": first["url"],
                "metadata": {
                    "file_type": first.get("type"),
                    "verified_at": now,
                    "verified_by": ObjectId(admin_id)
                },
                "status": "verified" if approved else "rejected",
                "verification_checklist": [
                    {"id": key, "verified": bool(value), "verified_at": now}
                    for key, value in checklist.items()
                ],
                "updated_at": now
            }},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        mongo.evidence_reviews.insert_one({
            "verification_id": verification["_id"],
            "admin_id": ObjectId(admin_id),
            "status": "approved" if approved else "rejected",
            "notes": notes,
            "checklist_results": checklist,
            "created_at": now
        })
        PlatformService.log_admin_action(admin_id, "review_evidence", "challenge", challenge_id,
                                         {"approved": approved})
        return verification, None

    @classmethod
    def get_evidence_reviews(cls, challenge_id: str) -> List[Dict[str, Any]]:
        verification = mongo.evidence_verifications.find_one({"challenge_id": ObjectId(challenge_id)})
        if not verification:
            return []
        return list(mongo.evidence_reviews.find({"verification_id": verification["_id"]}).sort("created_at", 1))

    @classmethod
    def set_outcome(cls, challenge_id: str, winner_id: str, admin_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Pay the winner of an accepted challenge.

        The pot is both stakes; the admin fee goes to the platform and the
        winner receives the rest.

        Returns:
            Tuple of (summary, error_message)
        """
        from .notification_service import NotificationService, NotificationType
        from .platform_service import PlatformService
        from .stats_service import StatsService
        from .wallet_service import WalletService

        challenge = mongo.challenges.find_one({"_id": ObjectId(challenge_id)})
        if not challenge:
            return None, "Challenge not found"

        winner_oid = ObjectId(winner_id)
        if winner_oid not in (challenge["challenger_id"], challenge["challenged_id"]):
            return None, "Winner must be a challenge participant"

        claimed = mongo.challenges.find_one_and_update(
            {"_id": challenge["_id"], "status": ChallengeStatus.ACCEPTED.value},
            {"$set": {
                "status": ChallengeStatus.COMPLETED.value,
                "winner_id": winner_oid,
                "completed_at": utcnow(),
                "settled_by": ObjectId(admin_id),
                "updated_at": utcnow()
            }}
        )
        if claimed is None:
            return None, f"Challenge is {challenge['status']}, only accepted challenges can be settled"

        pot_cents = to_cents(challenge["amount"]) * 2
        fee_cents, prize_cents = split_fee(pot_cents, current_app.config["ADMIN_FEE_PERCENT"])
        prize, fee = from_cents(prize_cents), from_cents(fee_cents)

        WalletService.credit_wallet(winner_id, prize, "challenge_winnings", challenge_id,
                                    notes=f"Won challenge '{challenge['title']}'")
        PlatformService.add_fees(fee, "challenge_settlement", challenge_id)

        loser_oid = challenge["challenged_id"] if winner_oid == challenge["challenger_id"] else challenge["challenger_id"]
        StatsService.increment(winner_id, challenges_won=1, total_earnings=prize)
        StatsService.increment(str(loser_oid), challenges_lost=1)

        NotificationService.create_notification(
            user_id=winner_id,
            notification_type=NotificationType.EARNINGS,
            title="Challenge Won",
            message=f"You won '{challenge['title']}'. {prize:.2f} has been added to your wallet.",
            data={"challenge_id": challenge_id, "payout": prize}
        )
        NotificationService.create_notification(
            user_id=str(loser_oid),
            notification_type=NotificationType.CHALLENGE_RESPONSE,
            title="Challenge Settled",
            message=f"The challenge '{challenge['title']}' was settled in your opponent's favour.",
            data={"challenge_id": challenge_id}
        )

        PlatformService.log_admin_action(admin_id, "set_challenge_outcome", "challenge", challenge_id,
                                         {"winner_id": winner_id, "payout": prize, "fee": fee})
        logger.info("Challenge %s settled: winner=%s payout=%.2f fee=%.2f", challenge_id, winner_id, prize, fee)

        return {
            "challenge_id": challenge_id,
            "winner_id": winner_id,
            "pot": from_cents(pot_cents),
            "platform_fee": fee,
            "payout": prize
        }, None

    @classmethod
    def request_support(cls, challenge_id: str, user_id: str) -> Tuple[Optional[Dict], Optional[str]]:
        from .chat_service import ChatService

        challenge = cls.get_challenge(challenge_id)
        if not challenge:
            return None, "Challenge not found"
        if not cls.is_participant(challenge, user_id):
            return None, "Only challenge participants can request support"
        if not challenge.get("chat_id"):
            return None, "Challenge has no chat"

        mongo.chats.update_one(
            {"_id": challenge["chat_id"]},
            {"$set": {"support_added": True, "support_requested_by": ObjectId(user_id)}}
        )
        message = ChatService.post_system_message(str(challenge["chat_id"]), SUPPORT_MESSAGE)
        return message, None

    @classmethod
    def report(cls, challenge_id: str, reporter_id: str, reason: Optional[str] = None) -> Tuple[Optional[Dict], Optional[str]]:
        from .report_service import ReportService

        challenge = cls.get_challenge(challenge_id)
        if not challenge:
            return None, "Challenge not found"

        return ReportService.create_report(
            reporter_id=reporter_id,
            report_type="challenge",
            target_id=challenge_id,
            reason=reason or "Reported challenge",
            reported_id=str(challenge["challenger_id"])
        )
