"""Repository layer to abstract MongoDB access patterns."""

from .match import MatchRepository
from .message import MessageRepository
from .subscription import PushSubscriptionRepository, SubscriptionRepository
from .swipe import SwipeRepository
from .user_profile import UserProfileRepository

__all__ = [
    "MatchRepository",
    "MessageRepository",
    "PushSubscriptionRepository",
    "SubscriptionRepository",
    "SwipeRepository",
    "UserProfileRepository",
]
