"""Wire messages sent to clients, and the checks that decide what may be sent."""

from __future__ import annotations

import json
from typing import Any

from relaycore.subscription import Event

# Direct-message kinds that are only delivered to an authenticated party.
PRIVATE_KINDS = frozenset({4, 44, 1059})


class MessageTooLargeError(ValueError):
    """Raised when a client message is larger than the configured limit."""

    def __init__(self, size: int, max_size: int) -> None:
        super().__init__(f"message of {size} bytes exceeds limit of {max_size} bytes")
        self.size = size
        self.max_size = max_size


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _parse_event(event_str: str) -> Event | None:
    """Decode an event's JSON text, or return ``None`` if it is not one."""
    try:
        data = json.loads(event_str)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    strings = ("id", "pubkey", "content", "sig")
    if not all(isinstance(data.get(key), str) for key in strings):
        return None
    if not _is_int(data.get("created_at")) or not _is_int(data.get("kind")):
        return None
    tags = data.get("tags")
    if not isinstance(tags, list) or not all(
        isinstance(tag, list) and all(isinstance(v, str) for v in tag) for tag in tags
    ):
        return None
    return Event(
        id=data["id"],
        pubkey=data["pubkey"],
        created_at=data["created_at"],
        kind=data["kind"],
        tags=tags,
        content=data["content"],
        sig=data["sig"],
    )


def allowed_to_send(event_str: str, auth_pubkey: str | None, nip42_dms: bool) -> bool:
    """Whether an event may be delivered to a client authenticated as ``auth_pubkey``.

    With ``nip42_dms`` off everything may be sent.  Otherwise private
    messages go only to their first ``p`` recipient or their author, and
    text that is not an event is never sent.
    """
    if not nip42_dms:
        return True
    event = _parse_event(event_str)
    if event is None:
        return False
    if event.kind not in PRIVATE_KINDS:
        return True
    recipients = event.tag_values_by_name("p")
    if auth_pubkey is None or not recipients:
        return False
    return recipients[0] == auth_pubkey or event.pubkey == auth_pubkey


def eose_message(sub_id: str) -> str:
    """The end-of-stored-events message for a subscription."""
    subesc = sub_id.replace('"', "")
    return f'["EOSE","{subesc}"]'


def event_message(sub_id: str, event_str: str) -> str:
    """An ``EVENT`` message carrying already serialised event JSON."""
    subesc = sub_id.replace('"', "")
    return f'["EVENT","{subesc}",{event_str}]'


def notice_message(msg: str) -> str:
    """A ``NOTICE`` message."""
    return _dumps(["NOTICE", msg])


def ok_message(event_id: str, accepted: bool, msg: str) -> str:
    """An ``OK`` result for a submitted event."""
    return _dumps(["OK", event_id, bool(accepted), msg])


def auth_challenge_message(challenge: str) -> str:
    """An ``AUTH`` challenge message."""
    return _dumps(["AUTH", challenge])


def check_message_size(msg: str, max_bytes: int | None) -> int:
    """Return the UTF-8 size of ``msg``, raising if it exceeds ``max_bytes``.

    A limit of ``None`` or ``0`` means no limit.
    """
    size = len(msg.encode("utf-8"))
    if max_bytes is not None and max_bytes > 0 and size > max_bytes:
        raise MessageTooLargeError(size, max_bytes)
    return size