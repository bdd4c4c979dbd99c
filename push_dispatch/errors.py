"""Exception types raised by push_dispatch components."""

from __future__ import annotations


class PushDispatchError(Exception):
    """Base class for push_dispatch errors."""


class PushTransportError(PushDispatchError):
    """The multicast call as a whole failed (network, auth, misconfiguration).

    Per-token failures are reported as outcomes, not raised.
    """


class RegistrationStoreError(PushDispatchError):
    """A registration store read or write failed."""
