"""Process-wide runtime — one-time setup of the HTTP client, database, transport and dispatcher.

``initialize`` is idempotent: the first call builds the runtime, later calls
return the same instance. Components receive their collaborators from here and
never initialize clients themselves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import structlog

from push_dispatch.config import PushDispatchConfig, load_config
from push_dispatch.db import PushDB
from push_dispatch.dispatcher import Dispatcher
from push_dispatch.handler import NotificationPushHandler
from push_dispatch.producer import ContentLookup, NotificationProducer
from push_dispatch.transport.base import PushTransport
from push_dispatch.transport.fcm import FcmTransport

logger = structlog.get_logger(__name__)

# Module-level singleton runtime — configured once per process
_runtime: "PushRuntime | None" = None
_init_lock = asyncio.Lock()


@dataclass
class PushRuntime:
    config: PushDispatchConfig
    http: httpx.AsyncClient
    db: PushDB
    transport: PushTransport
    dispatcher: Dispatcher
    handler: NotificationPushHandler
    producer: NotificationProducer | None = None

    async def close(self) -> None:
        await self.http.aclose()
        await self.db.close()


async def initialize(
    config: PushDispatchConfig | None = None,
    *,
    lookup: ContentLookup | None = None,
    transport: PushTransport | None = None,
) -> PushRuntime:
    global _runtime
    async with _init_lock:
        if _runtime is not None:
            return _runtime

        config = config or load_config()
        http = httpx.AsyncClient(timeout=config.fcm.timeout_s)
        db = PushDB(db_path=config.database.path)
        try:
            await db.init()
        except Exception:
            await db.close()
            await http.aclose()
            raise

        if transport is None:
            transport = FcmTransport(
                config.fcm.project_id,
                http,
                access_token_env=config.fcm.access_token_env,
                timeout_s=config.fcm.timeout_s,
            )
        dispatcher = Dispatcher(
            db,
            transport,
            send_timeout_s=config.dispatch.send_timeout_s,
            store_timeout_s=config.dispatch.store_timeout_s,
            compose_display=config.dispatch.compose_display,
        )
        _runtime = PushRuntime(
            config=config,
            http=http,
            db=db,
            transport=transport,
            dispatcher=dispatcher,
            handler=NotificationPushHandler(db, dispatcher, lock_ttl_s=config.dispatch.lock_ttl_s),
            producer=NotificationProducer(lookup, db) if lookup is not None else None,
        )
        logger.info("push runtime initialized", db_path=config.database.path, project_id=config.fcm.project_id)
        return _runtime


def get_runtime() -> PushRuntime:
    if _runtime is None:
        raise RuntimeError("Push runtime not initialized. Call initialize() first.")
    return _runtime


async def shutdown() -> None:
    global _runtime
    async with _init_lock:
        if _runtime is None:
            return
        runtime, _runtime = _runtime, None
        await runtime.close()
        logger.info("push runtime shut down")
