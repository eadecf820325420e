"""ORM models for the local store.

Importing the package registers every table on ``Base.metadata``.
"""

from order_bridge.models.user import Base, User
from order_bridge.models.draft_order import DraftOrder, DraftOrderItem
from order_bridge.models.reminder import Reminder
from order_bridge.models.preferences import AdminNotificationPreference, LikedProduct

__all__ = [
    "AdminNotificationPreference",
    "Base",
    "DraftOrder",
    "DraftOrderItem",
    "LikedProduct",
    "Reminder",
    "User",
]
