"""Firebase Cloud Messaging transport (HTTP v1 API).

FCM v1 has no batch endpoint, so a multicast is fanned out as one request per
token, sent concurrently. Per-token failures come back as outcomes carrying a
code from ``push_dispatch.classification``; only failures that prevent the
whole call (missing credentials or project) raise ``PushTransportError``.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

import httpx
import structlog

from push_dispatch.errors import PushTransportError
from push_dispatch.transport.base import MulticastMessage, SendOutcome

logger = structlog.get_logger(__name__)

FCM_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"

# FcmError.errorCode -> transport error vocabulary
FCM_ERROR_CODES: dict[str, str] = {
    "UNREGISTERED": "registration-token-not-registered",
    "INVALID_ARGUMENT": "invalid-argument",
    "SENDER_ID_MISMATCH": "mismatched-credential",
    "QUOTA_EXCEEDED": "message-rate-exceeded",
    "UNAVAILABLE": "server-unavailable",
    "INTERNAL": "internal-error",
    "THIRD_PARTY_AUTH_ERROR": "third-party-auth-error",
    "APNS_AUTH_ERROR": "third-party-auth-error",
}

HTTP_STATUS_CODES: dict[int, str] = {
    400: "invalid-argument",
    401: "authentication-error",
    403: "authentication-error",
    429: "message-rate-exceeded",
}


def _error_code_from_response(response: httpx.Response) -> str:
    try:
        payload: Any = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error") or {}
        for detail in error.get("details") or []:
            if isinstance(detail, dict) and detail.get("@type") == FCM_ERROR_TYPE:
                mapped = FCM_ERROR_CODES.get(str(detail.get("errorCode", "")))
                if mapped:
                    return mapped

    if response.status_code in HTTP_STATUS_CODES:
        return HTTP_STATUS_CODES[response.status_code]
    if response.status_code >= 500:
        return "server-unavailable"
    return "unknown-error"


class FcmTransport:
    """PushTransport backed by the FCM HTTP v1 API."""

    def __init__(
        self,
        project_id: str,
        client: httpx.AsyncClient | None = None,
        *,
        access_token_env: str = "FCM_ACCESS_TOKEN",
        timeout_s: float = 10.0,
    ) -> None:
        self._project_id = project_id
        self._client = client
        self._access_token_env = access_token_env
        self._timeout_s = timeout_s

    def _build_request(self, token: str, message: MulticastMessage) -> dict[str, Any]:
        body: dict[str, Any] = {"token": token, "data": dict(message.data)}
        if message.notification is not None:
            body["notification"] = {
                "title": message.notification.title,
                "body": message.notification.body,
            }
        return {"message": body}

    async def send_multicast(self, message: MulticastMessage) -> list[SendOutcome]:
        if not self._project_id:
            raise PushTransportError("Missing FCM project id")
        access_token = os.getenv(self._access_token_env)
        if not access_token:
            raise PushTransportError(f"Missing FCM access token ({self._access_token_env})")
        if not message.tokens:
            return []

        url = FCM_ENDPOINT.format(project_id=self._project_id)
        headers = {"Authorization": f"Bearer {access_token}"}

        if self._client is not None:
            return await self._fan_out(self._client, url, headers, message)
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            return await self._fan_out(client, url, headers, message)

    async def _fan_out(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        message: MulticastMessage,
    ) -> list[SendOutcome]:
        # gather preserves input order, which keeps outcomes aligned with tokens
        return list(
            await asyncio.gather(*(self._send_one(client, url, headers, token, message) for token in message.tokens))
        )

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        token: str,
        message: MulticastMessage,
    ) -> SendOutcome:
        try:
            response = await client.post(url, json=self._build_request(token, message), headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("fcm request timed out", token=token[:20], error=str(exc))
            return SendOutcome(success=False, error_code="timeout")
        except httpx.HTTPError as exc:
            logger.warning("fcm request failed", token=token[:20], error=str(exc))
            return SendOutcome(success=False, error_code="network-error")

        if response.status_code >= 400:
            code = _error_code_from_response(response)
            logger.debug("fcm rejected message", token=token[:20], status=response.status_code, code=code)
            return SendOutcome(success=False, error_code=code)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        name = payload.get("name") if isinstance(payload, dict) else None
        return SendOutcome(success=True, message_id=str(name) if name else None)
