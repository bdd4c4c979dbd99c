"""Shared fixtures for push_dispatch tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from push_dispatch.db import PushDB
from push_dispatch.transport.base import MulticastMessage, SendOutcome


class RecordingTransport:
    """PushTransport that records every multicast and answers from a per-token error map."""

    def __init__(self, errors: dict[str, str] | None = None) -> None:
        self.errors = errors or {}
        self.calls: list[MulticastMessage] = []

    async def send_multicast(self, message: MulticastMessage) -> list[SendOutcome]:
        self.calls.append(message)
        outcomes = []
        for token in message.tokens:
            code = self.errors.get(token)
            if code is None:
                outcomes.append(SendOutcome(success=True, message_id=f"msg-{token}"))
            else:
                outcomes.append(SendOutcome(success=False, error_code=code))
        return outcomes


@pytest.fixture
async def db(tmp_path: Path) -> PushDB:  # type: ignore[misc]
    push_db = PushDB(db_path=tmp_path / "test_push.db")
    await push_db.init()
    yield push_db  # type: ignore[misc]
    await push_db.close()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
