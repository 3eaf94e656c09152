"""
Pool Service - Event wager pools.

Responsibilities:
- Create the pool row alongside each event
- Add stakes to the YES or NO side after the admin fee
- Settle events: pay winners, collect fees, update stats
- Refund every stake when an event is cancelled
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId
from flask import current_app
from pymongo import ReturnDocument

from bantah.events.models import Stake, plan_settlement, split_fee
from bantah.extensions import db as mongo
from bantah.utils.enums import EventStatus, ParticipantStatus, PoolStatus, SettlementMethod
from bantah.utils.validators import from_cents, to_cents, utcnow

logger = logging.getLogger(__name__)


class PoolService:
    """Service for event pool bookkeeping and settlement."""

    @classmethod
    def create_pool(cls, event_id: ObjectId) -> None:
        now = utcnow()
        mongo.event_pools.insert_one({
            "event_id": event_id,
            "total_amount": 0.0,
            "admin_fee": 0.0,
            "yes_pool": 0.0,
            "no_pool": 0.0,
            "yes_count": 0,
            "no_count": 0,
            "status": PoolStatus.ACTIVE.value,
            "winning_prediction": None,
            "payout_per_winner": None,
            "created_at": now,
            "updated_at": now
        })

    @classmethod
    def get_pool(cls, event_id: str) -> Optional[Dict[str, Any]]:
        return mongo.event_pools.find_one({"event_id": ObjectId(event_id)})

    @classmethod
    def get_pool_state(cls, event_id: str) -> Dict[str, Any]:
        """
        Get current pool state for an event.

        Returns:
            Pool totals and per-side breakdown, empty dict if no pool
        """
        pool = cls.get_pool(event_id)
        if not pool:
            return {}

        yes_pool = round(float(pool.get("yes_pool", 0)), 2)
        no_pool = round(float(pool.get("no_pool", 0)), 2)

        return {
            "event_id": str(event_id),
            "total_amount": round(float(pool.get("total_amount", 0)), 2),
            "admin_fee": round(float(pool.get("admin_fee", 0)), 2),
            "yes_pool": yes_pool,
            "no_pool": no_pool,
            "distributable": round(yes_pool + no_pool, 2),
            "yes_count": pool.get("yes_count", 0),
            "no_count": pool.get("no_count", 0),
            "participant_count": pool.get("yes_count", 0) + pool.get("no_count", 0),
            "status": pool.get("status"),
            "winning_prediction": pool.get("winning_prediction"),
            "payout_per_winner": pool.get("payout_per_winner"),
        }

    @classmethod
    def update_pool_amount(cls, event_id: ObjectId, amount: float, prediction: bool) -> Tuple[float, float]:
        """
        Add a wager to the pool.

        Returns:
            Tuple of (admin_fee, net_amount) taken from this wager
        """
        fee_cents, net_cents = split_fee(to_cents(amount), current_app.config["ADMIN_FEE_PERCENT"])
        fee, net = from_cents(fee_cents), from_cents(net_cents)
        side = "yes" if prediction else "no"

        mongo.event_pools.update_one(
            {"event_id": event_id},
            {
                "$inc": {
                    "total_amount": round(float(amount), 2),
                    "admin_fee": fee,
                    f"{side}_pool": net,
                    f"{side}_count": 1
                },
                "$set": {"updated_at": utcnow()}
            }
        )
        return fee, net

    @classmethod
    def _stakes(cls, participants: List[Dict]) -> List[Stake]:
        return [
            Stake(
                user_id=str(p["user_id"]),
                prediction=bool(p["prediction"]),
                wager_cents=to_cents(p["wager_amount"]),
                net_cents=to_cents(p.get("net_amount", p["wager_amount"]))
            )
            for p in participants
        ]

    @classmethod
    def distribute_winnings(
        cls,
        event_id: str,
        winning_prediction: bool,
        admin_id: str
    ) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Settle an event once its outcome is known.

        The event is claimed with a conditional update first, so two admins
        settling at the same time cannot pay out twice.

        Returns:
            Tuple of (settlement_summary, error_message)
        """
        from .notification_service import NotificationService
        from .platform_service import PlatformService
        from .stats_service import StatsService
        from .wallet_service import WalletService

        event_oid = ObjectId(event_id)
        now = utcnow()

        pending = mongo.events.find_one({"_id": event_oid}, {"participant_count": 1})
        if pending and pending.get("participant_count", 0) > mongo.event_participants.count_documents(
                {"event_id": event_oid}):
            return None, "Joins are still being processed. Try again shortly"

        event = mongo.events.find_one_and_update(
            {
                "_id": event_oid,
                "status": EventStatus.ACTIVE.value,
                "end_time": {"$lte": now}
            },
            {"$set": {
                "status": EventStatus.COMPLETED.value,
                "outcome": winning_prediction,
                "settled_at": now,
                "settled_by": ObjectId(admin_id),
                "updated_at": now
            }},
            return_document=ReturnDocument.AFTER
        )

        if event is None:
            existing = mongo.events.find_one({"_id": event_oid})
            if not existing:
                return None, "Event not found"
            if existing["status"] != EventStatus.ACTIVE.value:
                return None, f"Event is already {existing['status']}"
            return None, "Cannot set outcome before the event ends"

        pool = mongo.event_pools.find_one({"event_id": event_oid}) or {}
        participants = list(mongo.event_participants.find({
            "event_id": event_oid,
            "status": ParticipantStatus.ACTIVE.value
        }))

        distributable_cents = to_cents(pool.get("yes_pool", 0)) + to_cents(pool.get("no_pool", 0))
        plan = plan_settlement(cls._stakes(participants), distributable_cents, winning_prediction)

        settlement_method = PlatformService.get_settlement_method()
        coin_rate_cents = to_cents(current_app.config["COIN_EXCHANGE_RATE"])
        event_ref = str(event_oid)
        title = event.get("title", "event")

        for user_id, cents in plan.payouts.items():
            payout = from_cents(cents)
            if settlement_method == SettlementMethod.COINS.value:
                WalletService.credit_coins(user_id, cents // coin_rate_cents, "event_winnings", event_ref)
            else:
                WalletService.credit_wallet(
                    user_id, payout, "event_winnings", event_ref,
                    notes=f"Winnings from '{title}'"
                )
            mongo.event_participants.update_one(
                {"event_id": event_oid, "user_id": ObjectId(user_id)},
                {"$set": {"status": ParticipantStatus.WON.value, "payout": payout, "settled_at": now}}
            )
            StatsService.increment(user_id, events_won=1, total_earnings=payout)
            NotificationService.notify_event_result(user_id, event_ref, title, True, payout)

        for user_id in plan.losers:
            mongo.event_participants.update_one(
                {"event_id": event_oid, "user_id": ObjectId(user_id)},
                {"$set": {"status": ParticipantStatus.LOST.value, "payout": 0.0, "settled_at": now}}
            )
            StatsService.increment(user_id, events_lost=1)
            NotificationService.notify_event_result(user_id, event_ref, title, False)

        for user_id, cents in plan.refunds.items():
            refund = from_cents(cents)
            if cents > 0:
                WalletService.credit_wallet(
                    user_id, refund, "event_refund", event_ref,
                    notes=f"No winning predictions on '{title}'"
                )
            mongo.event_participants.update_one(
                {"event_id": event_oid, "user_id": ObjectId(user_id)},
                {"$set": {"status": ParticipantStatus.REFUNDED.value, "payout": refund, "settled_at": now}}
            )

        fees = round(float(pool.get("admin_fee", 0)) + from_cents(plan.dust_cents), 2)
        PlatformService.add_fees(fees, "event_settlement", event_ref)

        payout_per_winner = from_cents(plan.payout_per_winner_cents) if plan.has_winners else None
        mongo.event_pools.update_one(
            {"event_id": event_oid},
            {"$set": {
                "status": PoolStatus.COMPLETED.value,
                "winning_prediction": winning_prediction,
                "payout_per_winner": payout_per_winner,
                "dust": from_cents(plan.dust_cents),
                "updated_at": now
            }}
        )

        PlatformService.log_admin_action(
            admin_id, "set_event_outcome", "event", event_ref,
            {"winning_prediction": winning_prediction, "winners": len(plan.payouts)}
        )
        logger.info(
            "Settled event %s: outcome=%s winners=%d losers=%d refunds=%d fees=%.2f",
            event_ref, winning_prediction, len(plan.payouts), len(plan.losers), len(plan.refunds), fees
        )

        return {
            "event_id": event_ref,
            "winning_prediction": winning_prediction,
            "winners": len(plan.payouts),
            "losers": len(plan.losers),
            "refunded": len(plan.refunds),
            "payout_per_winner": payout_per_winner,
            "distributable": from_cents(plan.distributable_cents),
            "platform_fees": fees,
            "settlement_method": settlement_method,
        }, None

    @classmethod
    def refund_participant(cls, participant_oid: ObjectId, reason: str) -> float:
        """Refund one active stake in full. Returns 0.0 when it was already settled or refunded."""
        from .wallet_service import WalletService

        participant = mongo.event_participants.find_one_and_update(
            {"_id": participant_oid, "status": ParticipantStatus.ACTIVE.value},
            {"$set": {"status": ParticipantStatus.REFUNDED.value, "settled_at": utcnow()}}
        )
        if participant is None:
            return 0.0

        amount = round(float(participant["wager_amount"]), 2)
        WalletService.credit_wallet(
            str(participant["user_id"]), amount, "event_refund", str(participant["event_id"]), notes=reason
        )
        mongo.event_participants.update_one({"_id": participant_oid}, {"$set": {"payout": amount}})
        return amount

    @classmethod
    def refund_pool(cls, event_oid: ObjectId, reason: str) -> Tuple[int, float]:
        """
        Return every active stake in full (fees included).

        Returns:
            Tuple of (participants_refunded, total_refunded)
        """
        participants = list(mongo.event_participants.find(
            {"event_id": event_oid, "status": ParticipantStatus.ACTIVE.value}, {"_id": 1}
        ))
        refunded = 0
        total = 0.0
        for p in participants:
            amount = cls.refund_participant(p["_id"], reason)
            if amount:
                refunded += 1
                total += amount

        mongo.event_pools.update_one(
            {"event_id": event_oid},
            {"$set": {"status": PoolStatus.CANCELLED.value, "updated_at": utcnow()}}
        )
        return refunded, round(total, 2)

    @classmethod
    def get_pending_outcomes(cls, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Active events whose end time has passed and still need an outcome."""
        now = now or utcnow()
        events = list(mongo.events.find({
            "status": EventStatus.ACTIVE.value,
            "end_time": {"$lte": now}
        }).sort("end_time", 1))

        pending = []
        for event in events:
            pending.append({
                "event_id": str(event["_id"]),
                "title": event.get("title"),
                "category": event.get("category"),
                "end_time": event["end_time"].isoformat(),
                "pool": cls.get_pool_state(str(event["_id"]))
            })
        return pending
