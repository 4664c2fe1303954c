"""In-app channel: the stored record is the delivery."""

from typing import List

from infrastructure.operations import OperationResult
from modules.notifications.channels.base import ChannelHandler
from modules.notifications.domain.models import Notification
from modules.notifications.domain.types import DeliveryChannel
from modules.notifications.queue.models import Job


class InAppChannelHandler(ChannelHandler):
    """Marks in-app jobs delivered; clients read the stored notifications."""

    @property
    def channel(self) -> DeliveryChannel:
        return DeliveryChannel.IN_APP

    def deliver(self, job: Job, notifications: List[Notification]) -> OperationResult:
        return OperationResult.success(
            data={"notification_ids": [n.id for n in notifications]},
            message="stored for in-app display",
        )
