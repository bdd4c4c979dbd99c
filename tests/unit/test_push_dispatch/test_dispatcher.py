"""Tests for the Dispatcher: build, send, classify, prune."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from push_dispatch.db import PushDB
from push_dispatch.dispatcher import Dispatcher, DispatchResult
from push_dispatch.errors import PushTransportError, RegistrationStoreError
from push_dispatch.payload import DisplayText
from push_dispatch.records import DeviceRegistration, NotificationRecord
from push_dispatch.transport.base import MulticastMessage, SendOutcome
from push_dispatch.transport.fcm import FcmTransport
from tests.unit.test_push_dispatch.conftest import RecordingTransport

NOT_REGISTERED = "registration-token-not-registered"


def _make_record(type: str = "LIKE", args: list[str] | None = None) -> NotificationRecord:
    return NotificationRecord(
        id="n1",
        type=type,
        args=["Ana", "My Post"] if args is None else args,
        target_route="blog_post_detail/b1",
        target_id="b1",
    )


def _store_with(*tokens: str) -> AsyncMock:
    store = AsyncMock()
    store.list_tokens.return_value = [DeviceRegistration(user_id="u1", token=t) for t in tokens]
    store.delete_tokens.return_value = 0
    return store


async def _seed(db: PushDB, user_id: str, *tokens: str) -> None:
    for token in tokens:
        await db.register_token(user_id, token)


async def _tokens(db: PushDB, user_id: str) -> list[str]:
    return [r.token for r in await db.list_tokens(user_id)]


@pytest.mark.asyncio
async def test_permanent_failure_prunes_token(db: PushDB, transport: RecordingTransport) -> None:
    await _seed(db, "u1", "tA", "tB")
    transport.errors = {"tB": NOT_REGISTERED}
    dispatcher = Dispatcher(db, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result == DispatchResult(sent=1, transient_failures=0, pruned=1)
    assert await _tokens(db, "u1") == ["tA"]


@pytest.mark.asyncio
async def test_transient_failure_keeps_token(db: PushDB, transport: RecordingTransport) -> None:
    await _seed(db, "u1", "tA", "tB")
    transport.errors = {"tB": "network-error"}
    dispatcher = Dispatcher(db, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result == DispatchResult(sent=1, transient_failures=1, pruned=0)
    assert await _tokens(db, "u1") == ["tA", "tB"]


@pytest.mark.asyncio
async def test_user_without_devices_is_skipped(db: PushDB, transport: RecordingTransport) -> None:
    dispatcher = Dispatcher(db, transport)

    result = await dispatcher.dispatch("u2", _make_record())

    assert result.skipped is True
    assert result.sent == 0
    assert result.failed is False
    assert transport.calls == []


@pytest.mark.asyncio
async def test_multicast_carries_exactly_the_listed_tokens(db: PushDB, transport: RecordingTransport) -> None:
    await _seed(db, "u1", "t1", "t2", "t3")
    dispatcher = Dispatcher(db, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert len(transport.calls) == 1
    assert transport.calls[0].tokens == ["t1", "t2", "t3"]
    assert result.sent == 3


@pytest.mark.asyncio
async def test_unknown_error_codes_never_prune(db: PushDB, transport: RecordingTransport) -> None:
    await _seed(db, "u1", "t1", "t2", "t3")
    transport.errors = {"t1": "brand-new-code", "t2": "messaging/server-unavailable", "t3": ""}
    dispatcher = Dispatcher(db, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result == DispatchResult(sent=0, transient_failures=3, pruned=0)
    assert await _tokens(db, "u1") == ["t1", "t2", "t3"]


@pytest.mark.asyncio
async def test_misconfigured_fcm_project_keeps_every_token(db: PushDB, monkeypatch: pytest.MonkeyPatch) -> None:
    await _seed(db, "u1", "tA", "tB")
    monkeypatch.setenv("FCM_ACCESS_TOKEN", "secret-token")
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(404, text="<html>Not Found</html>"))
    )
    async with client:
        dispatcher = Dispatcher(db, FcmTransport("wrong-project", client))
        result = await dispatcher.dispatch("u1", _make_record())

    assert result == DispatchResult(sent=0, transient_failures=2, pruned=0)
    assert await _tokens(db, "u1") == ["tA", "tB"]


@pytest.mark.asyncio
async def test_prunes_in_one_batch_call() -> None:
    store = _store_with("t1", "t2", "t3", "t4")
    transport = RecordingTransport(
        {"t1": NOT_REGISTERED, "t3": "messaging/invalid-registration-token", "t4": "quota-exceeded"}
    )
    dispatcher = Dispatcher(store, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result == DispatchResult(sent=1, transient_failures=1, pruned=2)
    store.delete_tokens.assert_awaited_once()
    user_id, tokens = store.delete_tokens.call_args.args
    assert user_id == "u1"
    assert set(tokens) == {"t1", "t3"}


@pytest.mark.asyncio
async def test_data_only_payload_by_default(transport: RecordingTransport) -> None:
    dispatcher = Dispatcher(_store_with("t1"), transport)

    await dispatcher.dispatch("u1", _make_record())

    message = transport.calls[0]
    assert message.notification is None
    assert message.data["type"] == "LIKE"
    assert message.data["notificationId"] == "n1"
    assert message.data["arg0"] == "Ana"


@pytest.mark.asyncio
async def test_compose_display_attaches_title_and_body(transport: RecordingTransport) -> None:
    dispatcher = Dispatcher(_store_with("t1"), transport, compose_display=True)

    await dispatcher.dispatch("u1", _make_record(type="COMMENT", args=["Ana", "Great read"]))

    assert transport.calls[0].notification == DisplayText(title="Ana commented on your post", body="Great read")


@pytest.mark.asyncio
async def test_load_failure_fails_dispatch(transport: RecordingTransport) -> None:
    store = AsyncMock()
    store.list_tokens.side_effect = RegistrationStoreError("db locked")
    dispatcher = Dispatcher(store, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result.failed is True
    assert "db locked" in (result.error or "")
    assert transport.calls == []


@pytest.mark.asyncio
async def test_transport_error_fails_dispatch_without_pruning() -> None:
    store = _store_with("t1", "t2")
    transport = AsyncMock()
    transport.send_multicast.side_effect = PushTransportError("auth failed")
    dispatcher = Dispatcher(store, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result.failed is True
    assert result.transient_failures == 2
    assert result.sent == 0
    store.delete_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_timeout_treats_all_tokens_as_transient() -> None:
    store = _store_with("t1", "t2")

    class SlowTransport:
        async def send_multicast(self, message: MulticastMessage) -> list[SendOutcome]:
            await asyncio.sleep(5)
            return []

    dispatcher = Dispatcher(store, SlowTransport(), send_timeout_s=0.05)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result.failed is True
    assert result.transient_failures == 2
    assert result.pruned == 0
    store.delete_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_load_timeout_fails_dispatch(transport: RecordingTransport) -> None:
    store = AsyncMock()

    async def _slow_list(user_id: str) -> list[DeviceRegistration]:
        await asyncio.sleep(5)
        return []

    store.list_tokens.side_effect = _slow_list
    dispatcher = Dispatcher(store, transport, store_timeout_s=0.05)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result.failed is True
    assert transport.calls == []


@pytest.mark.asyncio
async def test_misaligned_outcomes_fail_dispatch() -> None:
    store = _store_with("t1", "t2")
    transport = AsyncMock()
    transport.send_multicast.return_value = [SendOutcome(success=False, error_code=NOT_REGISTERED)]
    dispatcher = Dispatcher(store, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result.failed is True
    store.delete_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_prune_failure_is_soft() -> None:
    store = _store_with("t1", "t2")
    store.delete_tokens.side_effect = RegistrationStoreError("disk full")
    transport = RecordingTransport({"t2": NOT_REGISTERED})
    dispatcher = Dispatcher(store, transport)

    result = await dispatcher.dispatch("u1", _make_record())

    assert result.failed is False
    assert result.sent == 1
    assert result.pruned == 1
    assert "disk full" in (result.prune_error or "")


@pytest.mark.asyncio
async def test_cancel_during_send_never_prunes() -> None:
    store = _store_with("t1")
    started = asyncio.Event()

    class HangingTransport:
        async def send_multicast(self, message: MulticastMessage) -> list[SendOutcome]:
            started.set()
            await asyncio.sleep(5)
            return [SendOutcome(success=False, error_code=NOT_REGISTERED)]

    dispatcher = Dispatcher(store, HangingTransport())
    task = asyncio.create_task(dispatcher.dispatch("u1", _make_record()))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    store.delete_tokens.assert_not_awaited()
