"""Dispatcher — delivers one notification record to every device a user has registered."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable, Protocol

import structlog

from push_dispatch.classification import is_permanent
from push_dispatch.errors import PushTransportError
from push_dispatch.payload import build_data_payload, compose
from push_dispatch.records import DeviceRegistration, NotificationRecord
from push_dispatch.transport.base import MulticastMessage, PushTransport, SendOutcome

logger = structlog.get_logger(__name__)

DEFAULT_SEND_TIMEOUT_S = 30.0
DEFAULT_STORE_TIMEOUT_S = 10.0


class RegistrationStore(Protocol):
    async def list_tokens(self, user_id: str) -> list[DeviceRegistration]: ...

    async def delete_tokens(self, user_id: str, tokens: Iterable[str]) -> int: ...


@dataclass(frozen=True)
class DispatchResult:
    sent: int = 0
    transient_failures: int = 0
    pruned: int = 0
    skipped: bool = False
    # Load or send failed; nothing was pruned
    failed: bool = False
    error: str | None = None
    # Pruning failed after a completed send; delivery counts still stand
    prune_error: str | None = None


def _short(token: str) -> str:
    return f"{token[:20]}..." if len(token) > 20 else token


class Dispatcher:
    def __init__(
        self,
        store: RegistrationStore,
        transport: PushTransport,
        *,
        send_timeout_s: float = DEFAULT_SEND_TIMEOUT_S,
        store_timeout_s: float = DEFAULT_STORE_TIMEOUT_S,
        compose_display: bool = False,
    ) -> None:
        self._store = store
        self._transport = transport
        self._send_timeout_s = send_timeout_s
        self._store_timeout_s = store_timeout_s
        self._compose_display = compose_display

    def build_message(self, tokens: list[str], record: NotificationRecord) -> MulticastMessage:
        notification = compose(record.type_tag, record.args) if self._compose_display else None
        return MulticastMessage(tokens=list(tokens), data=build_data_payload(record), notification=notification)

    async def dispatch(self, user_id: str, record: NotificationRecord) -> DispatchResult:
        log = logger.bind(user_id=user_id, notification_id=record.id, type=record.type_tag)

        try:
            registrations = await asyncio.wait_for(self._store.list_tokens(user_id), timeout=self._store_timeout_s)
        except asyncio.TimeoutError:
            log.error("loading registrations timed out", timeout_s=self._store_timeout_s)
            return DispatchResult(failed=True, error="registration lookup timed out")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log.exception("loading registrations failed")
            return DispatchResult(failed=True, error=str(exc) or exc.__class__.__name__)

        if not registrations:
            log.info("user has no registered devices; skipping")
            return DispatchResult(skipped=True)

        tokens = [registration.token for registration in registrations]
        message = self.build_message(tokens, record)
        log.debug("sending multicast", tokens=len(tokens))

        try:
            outcomes = await asyncio.wait_for(self._transport.send_multicast(message), timeout=self._send_timeout_s)
        except asyncio.TimeoutError:
            log.error("multicast send timed out", timeout_s=self._send_timeout_s, tokens=len(tokens))
            return DispatchResult(transient_failures=len(tokens), failed=True, error="multicast send timed out")
        except PushTransportError as exc:
            log.error("multicast send failed", error=str(exc))
            return DispatchResult(transient_failures=len(tokens), failed=True, error=str(exc))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log.exception("multicast send failed unexpectedly")
            return DispatchResult(transient_failures=len(tokens), failed=True, error=str(exc))

        if len(outcomes) != len(tokens):
            log.error("transport returned misaligned outcomes", tokens=len(tokens), outcomes=len(outcomes))
            return DispatchResult(
                transient_failures=len(tokens),
                failed=True,
                error=f"expected {len(tokens)} outcomes, got {len(outcomes)}",
            )

        sent, transient, prune_set = self._classify(tokens, outcomes, log)
        log.info("push sent", devices=len(tokens), success=sent, transient=transient, invalid=len(prune_set))

        if not prune_set:
            return DispatchResult(sent=sent, transient_failures=transient)

        prune_error: str | None = None
        try:
            await asyncio.wait_for(self._store.delete_tokens(user_id, prune_set), timeout=self._store_timeout_s)
            log.info("pruned invalid tokens", count=len(prune_set))
        except asyncio.TimeoutError:
            prune_error = "token pruning timed out"
            log.warning("token pruning timed out", count=len(prune_set))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            prune_error = str(exc) or exc.__class__.__name__
            log.warning("token pruning failed", count=len(prune_set), error=prune_error)

        return DispatchResult(
            sent=sent,
            transient_failures=transient,
            pruned=len(prune_set),
            prune_error=prune_error,
        )

    @staticmethod
    def _classify(
        tokens: list[str],
        outcomes: list[SendOutcome],
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[int, int, set[str]]:
        sent = 0
        transient = 0
        prune_set: set[str] = set()
        for token, outcome in zip(tokens, outcomes):
            if outcome.success:
                sent += 1
            elif is_permanent(outcome.error_code):
                prune_set.add(token)
                log.info("invalid token detected", token=_short(token), code=outcome.error_code)
            else:
                transient += 1
                log.debug("transient delivery failure", token=_short(token), code=outcome.error_code)
        return sent, transient, prune_set
