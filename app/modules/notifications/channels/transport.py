"""Channel handler that delegates to an external transport callable.

Push gateways, mail relays and SMS providers are external integrations. They
are injected as callables so that the queue and worker machinery stays the
same for every channel.
"""

from typing import Callable, List, Optional

from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_transport_error
from modules.notifications.channels.base import ChannelHandler
from modules.notifications.domain.models import Notification
from modules.notifications.domain.types import DeliveryChannel
from modules.notifications.queue.models import Job

logger = get_module_logger()

Transport = Callable[[Job, List[Notification]], Optional[OperationResult]]


class TransportChannelHandler(ChannelHandler):
    """Delivers through an injected transport.

    The transport may return an OperationResult, return None for success,
    or raise; exceptions are classified into transient or permanent errors.

    Attributes:
        transport: Callable performing the actual send
    """

    def __init__(self, channel: DeliveryChannel, transport: Transport) -> None:
        self._channel = channel
        self.transport = transport

    @property
    def channel(self) -> DeliveryChannel:
        return self._channel

    def deliver(self, job: Job, notifications: List[Notification]) -> OperationResult:
        try:
            result = self.transport(job, notifications)
        except Exception as exc:
            logger.warning(
                "transport_error",
                channel=self._channel.value,
                job_id=job.id,
                error=str(exc),
            )
            return classify_transport_error(exc)
        return result if result is not None else OperationResult.success()
