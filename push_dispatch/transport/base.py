"""Push transport protocol and the multicast message/outcome types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from push_dispatch.payload import DisplayText


@dataclass(frozen=True)
class MulticastMessage:
    tokens: list[str]
    data: dict[str, str] = field(default_factory=dict)
    notification: DisplayText | None = None


@dataclass(frozen=True)
class SendOutcome:
    """Delivery result for one token."""

    success: bool
    error_code: str | None = None
    message_id: str | None = None


class PushTransport(Protocol):
    async def send_multicast(self, message: MulticastMessage) -> list[SendOutcome]:
        """Send one message to every token; one outcome per token, same order.

        Raises PushTransportError when the call fails as a whole.
        """
        ...
