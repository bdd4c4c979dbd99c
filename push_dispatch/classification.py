"""Delivery error classification — which transport error codes mean a token is dead."""

from __future__ import annotations

from enum import Enum


class ErrorClass(str, Enum):
    PERMANENT = "permanent"
    TRANSIENT = "transient"


ERROR_CODE_PREFIX = "messaging/"

# Every code the transport can report. Only the first two prove the token will never work again.
ERROR_CLASSIFICATION: dict[str, ErrorClass] = {
    "invalid-registration-token": ErrorClass.PERMANENT,
    "registration-token-not-registered": ErrorClass.PERMANENT,
    "invalid-argument": ErrorClass.TRANSIENT,
    "invalid-recipient": ErrorClass.TRANSIENT,
    "invalid-payload": ErrorClass.TRANSIENT,
    "invalid-data-payload-key": ErrorClass.TRANSIENT,
    "payload-size-limit-exceeded": ErrorClass.TRANSIENT,
    "invalid-options": ErrorClass.TRANSIENT,
    "invalid-package-name": ErrorClass.TRANSIENT,
    "message-rate-exceeded": ErrorClass.TRANSIENT,
    "device-message-rate-exceeded": ErrorClass.TRANSIENT,
    "topics-message-rate-exceeded": ErrorClass.TRANSIENT,
    "too-many-topics": ErrorClass.TRANSIENT,
    "invalid-apns-credentials": ErrorClass.TRANSIENT,
    "mismatched-credential": ErrorClass.TRANSIENT,
    "authentication-error": ErrorClass.TRANSIENT,
    "server-unavailable": ErrorClass.TRANSIENT,
    "internal-error": ErrorClass.TRANSIENT,
    "unknown-error": ErrorClass.TRANSIENT,
    "third-party-auth-error": ErrorClass.TRANSIENT,
    "quota-exceeded": ErrorClass.TRANSIENT,
    "network-error": ErrorClass.TRANSIENT,
    "timeout": ErrorClass.TRANSIENT,
}


def normalize_error_code(code: str | None) -> str:
    """Strip the optional ``messaging/`` namespace and surrounding whitespace."""
    if not code:
        return ""
    code = code.strip()
    if code.startswith(ERROR_CODE_PREFIX):
        code = code[len(ERROR_CODE_PREFIX) :]
    return code


def classify_error(code: str | None) -> ErrorClass:
    """Classify a per-token error code. Unknown codes are transient."""
    return ERROR_CLASSIFICATION.get(normalize_error_code(code), ErrorClass.TRANSIENT)


def is_permanent(code: str | None) -> bool:
    return classify_error(code) is ErrorClass.PERMANENT
