"""Collapsing near-duplicate pending notifications into batch deliveries.

Notifications sharing (user, type, sorted channel list) form a group. A group
with more than one member becomes a single summary delivery; singletons pass
through unchanged.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from modules.notifications.constants import BATCH_JOB_PREFIX, JOB_PRIORITY
from modules.notifications.domain.models import Notification
from modules.notifications.domain.types import DeliveryChannel, NotificationType

BatchKey = Tuple[str, NotificationType, Tuple[str, ...]]


@dataclass
class DeliveryUnit:
    """What a set of per-channel jobs is built from.

    Fields:
        id: Source notification id, or a ``batch_`` id for batches
        user_id: Recipient
        notification_type: Shared notification type
        channels: Channels to deliver on
        notification_ids: Every source notification
        priority: Numeric job priority
        payload: Title, content and data for the channel handler
        scheduled_at: Earliest delivery time, None for immediate
    """

    id: str
    user_id: str
    notification_type: NotificationType
    channels: List[DeliveryChannel]
    notification_ids: List[str]
    priority: int
    payload: Dict
    scheduled_at: Optional[datetime] = None

    @property
    def is_batch(self) -> bool:
        return len(self.notification_ids) > 1


def batch_key(notification: Notification) -> BatchKey:
    return (
        notification.user_id,
        notification.type,
        tuple(sorted(c.value for c in notification.channels)),
    )


def group_notifications(notifications: List[Notification]) -> List[List[Notification]]:
    """Group by batch key, keeping first-appearance order of groups and members."""
    groups: Dict[BatchKey, List[Notification]] = {}
    for notification in notifications:
        groups.setdefault(batch_key(notification), []).append(notification)
    return list(groups.values())


def single_unit(notification: Notification) -> DeliveryUnit:
    return DeliveryUnit(
        id=notification.id,
        user_id=notification.user_id,
        notification_type=notification.type,
        channels=list(notification.channels),
        notification_ids=[notification.id],
        priority=JOB_PRIORITY[notification.priority],
        payload={
            "title": notification.title,
            "content": notification.content,
            "data": dict(notification.data),
        },
        scheduled_at=notification.scheduled_at,
    )


def batch_unit(group: List[Notification]) -> DeliveryUnit:
    """Summarize a group of notifications as one delivery.

    The batch takes the highest member priority. It is delayed only when
    every member is scheduled, until the earliest of them.
    """
    first = group[0]
    count = len(group)
    schedules = [n.scheduled_at for n in group]
    scheduled_at = min(schedules) if all(schedules) else None
    return DeliveryUnit(
        id=f"{BATCH_JOB_PREFIX}{uuid.uuid4()}",
        user_id=first.user_id,
        notification_type=first.type,
        channels=list(first.channels),
        notification_ids=[n.id for n in group],
        priority=max(JOB_PRIORITY[n.priority] for n in group),
        payload={
            "title": f"{count} notifications",
            "content": f"You have {count} new notifications",
            "data": {
                "batched_notifications": [
                    {"id": n.id, "title": n.title, "content": n.content}
                    for n in group
                ],
                "notification_ids": [n.id for n in group],
                "batch_size": count,
            },
        },
        scheduled_at=scheduled_at,
    )


def build_delivery_units(notifications: List[Notification]) -> List[DeliveryUnit]:
    """Turn pending notifications into delivery units, batching where possible."""
    units = []
    for group in group_notifications(notifications):
        units.append(batch_unit(group) if len(group) > 1 else single_unit(group[0]))
    return units
