"""Channel handler abstract base class.

All delivery channels (in-app, push, email, SMS) implement this interface.
Channel workers call ``deliver`` for every job fetched from the channel's
queue and branch on the returned ``OperationResult``.
"""

from abc import ABC, abstractmethod
from typing import List

from infrastructure.operations import OperationResult
from modules.notifications.domain.models import Notification
from modules.notifications.domain.types import DeliveryChannel
from modules.notifications.queue.models import Job


class ChannelHandler(ABC):
    """Abstract base class for channel handlers.

    Handlers must not raise for delivery problems. Return:
    - OperationResult.success() when the transport accepted the message
    - OperationResult.transient_error() to retry with backoff
    - OperationResult.permanent_error() to fail the job immediately

    Example Implementation:
        class PushChannelHandler(ChannelHandler):

            @property
            def channel(self) -> DeliveryChannel:
                return DeliveryChannel.PUSH

            def deliver(self, job, notifications) -> OperationResult:
                response = gateway.send(job.user_id, job.payload["title"])
                if response.ok:
                    return OperationResult.success(data=response.id)
                return OperationResult.transient_error(response.reason)
    """

    @property
    @abstractmethod
    def channel(self) -> DeliveryChannel:
        """Channel this handler delivers on."""
        pass

    @abstractmethod
    def deliver(self, job: Job, notifications: List[Notification]) -> OperationResult:
        """Deliver one job.

        Args:
            job: Job fetched from the channel queue
            notifications: Source notifications still deliverable on this
                channel (several for batch jobs)

        Returns:
            OperationResult describing the delivery outcome
        """
        pass

    def health_check(self) -> OperationResult:
        """Check that the channel can currently deliver.

        Returns:
            OperationResult with SUCCESS if healthy
        """
        return OperationResult.success(message=f"{self.channel.value} healthy")
