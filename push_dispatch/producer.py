"""Notification producers — turn likes and comments into notification records for the post author.

The builders are pure: they take already-loaded content and return a
``ProduceResult``. Missing content and self-actions are valid terminal states
reported through ``ProducerOutcome``, never raised.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog

from push_dispatch.records import NotificationRecord, NotificationType

logger = structlog.get_logger(__name__)

DEFAULT_ACTOR_NAME = "Someone"
DEFAULT_POST_TITLE = "your post"
POST_ROUTE = "blog_post_detail/{post_id}"


class ProducerOutcome(str, Enum):
    CREATED = "created"
    POST_NOT_FOUND = "post_not_found"
    MISSING_AUTHOR = "missing_author"
    MISSING_ACTOR = "missing_actor"
    SELF_ACTION = "self_action"


@dataclass(frozen=True)
class BlogPost:
    id: str
    author_uid: str | None
    title: str | None = None


@dataclass(frozen=True)
class Comment:
    author_uid: str | None
    author_name: str | None = None
    text: str | None = None


@dataclass(frozen=True)
class ProduceResult:
    outcome: ProducerOutcome
    user_id: str | None = None
    record: NotificationRecord | None = None


class ContentLookup(Protocol):
    async def get_post(self, post_id: str) -> BlogPost | None: ...

    async def get_user_name(self, user_id: str) -> str | None: ...


class NotificationSink(Protocol):
    async def insert_notification(self, user_id: str, record: NotificationRecord) -> NotificationRecord: ...


def _new_id() -> str:
    return uuid.uuid4().hex


def _record(type_: NotificationType, args: list[str], post_id: str) -> NotificationRecord:
    return NotificationRecord(
        id=_new_id(),
        type=type_.value,
        args=args,
        target_route=POST_ROUTE.format(post_id=post_id),
        target_id=post_id,
    )


def like_notification(post: BlogPost | None, liker_id: str, liker_name: str | None) -> ProduceResult:
    if post is None:
        return ProduceResult(ProducerOutcome.POST_NOT_FOUND)
    if not post.author_uid:
        return ProduceResult(ProducerOutcome.MISSING_AUTHOR)
    if post.author_uid == liker_id:
        return ProduceResult(ProducerOutcome.SELF_ACTION, user_id=post.author_uid)

    args = [liker_name or DEFAULT_ACTOR_NAME, post.title or DEFAULT_POST_TITLE]
    return ProduceResult(
        ProducerOutcome.CREATED,
        user_id=post.author_uid,
        record=_record(NotificationType.LIKE, args, post.id),
    )


def comment_notification(post: BlogPost | None, comment: Comment) -> ProduceResult:
    if not comment.author_uid:
        return ProduceResult(ProducerOutcome.MISSING_ACTOR)
    if post is None:
        return ProduceResult(ProducerOutcome.POST_NOT_FOUND)
    if not post.author_uid:
        return ProduceResult(ProducerOutcome.MISSING_AUTHOR)
    if post.author_uid == comment.author_uid:
        return ProduceResult(ProducerOutcome.SELF_ACTION, user_id=post.author_uid)

    args = [comment.author_name or DEFAULT_ACTOR_NAME, comment.text or ""]
    return ProduceResult(
        ProducerOutcome.CREATED,
        user_id=post.author_uid,
        record=_record(NotificationType.COMMENT, args, post.id),
    )


class NotificationProducer:
    """Loads content for like/comment events and persists the resulting records."""

    def __init__(self, lookup: ContentLookup, sink: NotificationSink) -> None:
        self._lookup = lookup
        self._sink = sink

    async def on_new_like(self, post_id: str, liker_id: str) -> ProduceResult:
        post = await self._lookup.get_post(post_id)
        liker_name = await self._lookup.get_user_name(liker_id) if post is not None else None
        result = like_notification(post, liker_id, liker_name)
        return await self._persist(result, event="like", post_id=post_id, actor_id=liker_id)

    async def on_new_comment(self, post_id: str, comment: Comment) -> ProduceResult:
        post = await self._lookup.get_post(post_id) if comment.author_uid else None
        result = comment_notification(post, comment)
        return await self._persist(result, event="comment", post_id=post_id, actor_id=comment.author_uid)

    async def _persist(self, result: ProduceResult, *, event: str, post_id: str, actor_id: str | None) -> ProduceResult:
        if result.outcome is not ProducerOutcome.CREATED or result.user_id is None or result.record is None:
            if result.outcome is ProducerOutcome.SELF_ACTION:
                logger.info("author acted on own post; not notifying", event=event, post_id=post_id)
            else:
                logger.error("cannot produce notification", event=event, post_id=post_id, reason=result.outcome.value)
            return result

        await self._sink.insert_notification(result.user_id, result.record)
        logger.info(
            "notification created",
            event=event,
            user_id=result.user_id,
            actor_id=actor_id,
            notification_id=result.record.id,
        )
        return result
