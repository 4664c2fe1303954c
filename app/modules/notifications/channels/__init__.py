"""Delivery channel handlers."""

from modules.notifications.channels.base import ChannelHandler
from modules.notifications.channels.in_app import InAppChannelHandler
from modules.notifications.channels.transport import (
    Transport,
    TransportChannelHandler,
)

__all__ = [
    "ChannelHandler",
    "InAppChannelHandler",
    "Transport",
    "TransportChannelHandler",
]
