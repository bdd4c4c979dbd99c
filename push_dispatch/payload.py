"""Push payload construction.

The data payload is the contract with clients: a flat string-to-string map
fully derived from the notification record, with keys in a fixed order:

    type, notificationId, targetRoute, targetId, arg0 .. argN-1

Clients render text from ``type`` and the positional ``arg{i}`` values. The
optional display pair produced by ``compose`` is only attached when the
dispatcher is configured with ``compose_display``; it never replaces the data
payload.
"""

from __future__ import annotations

from dataclasses import dataclass

from push_dispatch.records import NotificationRecord, NotificationType

DEFAULT_ACTOR = "Someone"
DEFAULT_TITLE = "You have a new notification"


@dataclass(frozen=True)
class DisplayText:
    title: str
    body: str


def build_data_payload(record: NotificationRecord) -> dict[str, str]:
    data: dict[str, str] = {
        "type": record.type_tag,
        "notificationId": record.id,
        "targetRoute": record.target_route or "",
        "targetId": record.target_id or "",
    }
    for index, value in enumerate(record.args):
        data[f"arg{index}"] = value
    return data


def _arg(args: list[str], index: int, default: str) -> str:
    if index < len(args) and args[index]:
        return args[index]
    return default


def compose(type_: str, args: list[str]) -> DisplayText:
    """Render a title/body pair for a notification type.

    Total over all inputs: unrecognized types get a generic title and an empty body.
    """
    if type_ == NotificationType.LIKE.value:
        actor = _arg(args, 0, DEFAULT_ACTOR)
        return DisplayText(title=f"{actor} liked your post", body=f"Post: {_arg(args, 1, '')}")
    if type_ == NotificationType.COMMENT.value:
        actor = _arg(args, 0, DEFAULT_ACTOR)
        return DisplayText(title=f"{actor} commented on your post", body=_arg(args, 1, ""))
    return DisplayText(title=DEFAULT_TITLE, body="")
