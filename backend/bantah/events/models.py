"""Event pool models and settlement arithmetic.

All amounts inside these helpers are integer minor units (kobo) so that
splitting a pool never creates or loses money to float rounding.
"""
from dataclasses import dataclass, field
from typing import List, Dict, Tuple


@dataclass
class Stake:
    user_id: str
    prediction: bool
    wager_cents: int
    net_cents: int


@dataclass
class SettlementPlan:
    winning_prediction: bool
    distributable_cents: int
    payout_per_winner_cents: int = 0
    payouts: Dict[str, int] = field(default_factory=dict)
    refunds: Dict[str, int] = field(default_factory=dict)
    losers: List[str] = field(default_factory=list)
    dust_cents: int = 0

    @property
    def has_winners(self) -> bool:
        return bool(self.payouts)


def split_fee(wager_cents: int, fee_percent: float) -> Tuple[int, int]:
    """Return (fee, net) for a single wager."""
    fee = int(round(wager_cents * fee_percent))
    fee = min(max(fee, 0), wager_cents)
    return fee, wager_cents - fee


def plan_settlement(stakes: List[Stake], distributable_cents: int, winning_prediction: bool) -> SettlementPlan:
    """
    Work out who gets what once an event's outcome is known.

    Winners split the distributable pool (both sides, net of fees) equally,
    rounded down; the remainder is dust kept by the platform. When nobody
    picked the winning side, every participant gets their net stake back.
    """
    plan = SettlementPlan(
        winning_prediction=winning_prediction,
        distributable_cents=distributable_cents
    )
    winners = [s for s in stakes if s.prediction == winning_prediction]

    if winners:
        per_winner = distributable_cents // len(winners)
        plan.payout_per_winner_cents = per_winner
        plan.payouts = {s.user_id: per_winner for s in winners}
        plan.losers = [s.user_id for s in stakes if s.prediction != winning_prediction]
        plan.dust_cents = distributable_cents - per_winner * len(winners)
    else:
        plan.refunds = {s.user_id: s.net_cents for s in stakes}
        plan.dust_cents = distributable_cents - sum(plan.refunds.values())

    return plan
