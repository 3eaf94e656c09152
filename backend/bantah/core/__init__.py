"""Core business logic services for Bantah wagering."""

from .wallet_service import WalletService
from .pool_service import PoolService
from .event_service import EventService
from .join_service import JoinRequestService
from .challenge_service import ChallengeService
from .chat_service import ChatService
from .notification_service import NotificationService, NotificationType
from .payment_service import PaymentService
from .platform_service import PlatformService
from .stats_service import StatsService
from .leaderboard_service import LeaderboardService
from .referral_service import ReferralService
from .report_service import ReportService
from .support_service import SupportService
from .user_service import UserService

__all__ = [
    "WalletService",
    "PoolService",
    "EventService",
    "JoinRequestService",
    "ChallengeService",
    "ChatService",
    "NotificationService",
    "NotificationType",
    "PaymentService",
    "PlatformService",
    "StatsService",
    "LeaderboardService",
    "ReferralService",
    "ReportService",
    "SupportService",
    "UserService",
]
