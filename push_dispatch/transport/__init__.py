"""Push transports — multicast senders."""

from push_dispatch.transport.base import MulticastMessage, PushTransport, SendOutcome
from push_dispatch.transport.fcm import FcmTransport

__all__ = ["MulticastMessage", "PushTransport", "SendOutcome", "FcmTransport"]
