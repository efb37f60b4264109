"""Inbound events, as handed over by a transport.

The set is closed: a transport produces exactly one of ``MessageEvent``,
``CommandEvent`` or ``ReactionEvent`` per update it wants relayed.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Sender:
    user_id: int
    is_bot: bool = False
    display_name: str = ""


@dataclass(frozen=True)
class ForwardOrigin:
    """Where a forwarded message originally came from.

    ``kind`` is one of ``user``, ``hidden_user``, ``chat``, ``channel``.
    """

    kind: str
    name: Optional[str] = None


@dataclass(frozen=True)
class ReplyTarget:
    """The message an inbound message replies to."""

    message_id: int
    forward_origin: Optional[ForwardOrigin] = None


@dataclass(frozen=True)
class MessageEvent:
    """A plain (non-command) message."""

    event_id: int
    chat_id: int
    is_private: bool
    sender: Optional[Sender] = None
    reply_to: Optional[ReplyTarget] = None


@dataclass(frozen=True)
class CommandEvent:
    """A message starting with a bot command, e.g. ``/start``."""

    event_id: int
    chat_id: int
    is_private: bool
    command: str
    sender: Optional[Sender] = None
    reply_to: Optional[ReplyTarget] = None


@dataclass(frozen=True)
class ReactionEvent:
    """The reactions on a message changed.

    ``reaction`` is the new reaction list, passed through untouched to the
    outbound side.
    """

    chat_id: int
    message_id: int
    reaction: tuple[Any, ...] = ()


InboundEvent = Union[MessageEvent, CommandEvent, ReactionEvent]


def normalize_command(text: str) -> Optional[str]:
    """Extract the command name from message text.

    ``"/Start@ParleyBot hello"`` -> ``"/start"``. Returns None when the
    text does not start with a command.
    """
    if not text or not text.startswith("/"):
        return None
    head = text.split(maxsplit=1)[0]
    name = head.split("@", 1)[0].lower()
    if len(name) < 2:
        return None
    return name
