"""Importing this package registers every table with ``Base.metadata``."""

from __future__ import annotations

from .activity import ActivityLog
from .checkin import Checkin
from .gear import Gear
from .maintenance import GearMaintenance
from .notification import Notification, PushNotificationQueue
from .profile import Profile
from .request import GearRequest, GearRequestGear, RequestStatusHistory

__all__ = [
    "ActivityLog",
    "Checkin",
    "Gear",
    "GearMaintenance",
    "GearRequest",
    "GearRequestGear",
    "Notification",
    "Profile",
    "PushNotificationQueue",
    "RequestStatusHistory",
]
