"""push_dispatch — notification push dispatch and device registration lifecycle."""

from push_dispatch.classification import ErrorClass, classify_error, is_permanent
from push_dispatch.db import PushDB
from push_dispatch.dispatcher import Dispatcher, DispatchResult, RegistrationStore
from push_dispatch.errors import PushDispatchError, PushTransportError, RegistrationStoreError
from push_dispatch.handler import NotificationPushHandler
from push_dispatch.payload import DisplayText, build_data_payload, compose
from push_dispatch.producer import (
    BlogPost,
    Comment,
    NotificationProducer,
    ProduceResult,
    ProducerOutcome,
    comment_notification,
    like_notification,
)
from push_dispatch.records import DeviceRegistration, NotificationRecord, NotificationStatus, NotificationType
from push_dispatch.runtime import PushRuntime, get_runtime, initialize, shutdown

__all__ = [
    "NotificationRecord",
    "NotificationStatus",
    "NotificationType",
    "DeviceRegistration",
    "DisplayText",
    "build_data_payload",
    "compose",
    "ErrorClass",
    "classify_error",
    "is_permanent",
    "PushDB",
    "RegistrationStore",
    "Dispatcher",
    "DispatchResult",
    "NotificationPushHandler",
    "BlogPost",
    "Comment",
    "NotificationProducer",
    "ProduceResult",
    "ProducerOutcome",
    "like_notification",
    "comment_notification",
    "PushDispatchError",
    "PushTransportError",
    "RegistrationStoreError",
    "PushRuntime",
    "initialize",
    "get_runtime",
    "shutdown",
]
