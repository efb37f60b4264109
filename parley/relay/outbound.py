"""Outbound action interface the dispatcher talks to."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence


@dataclass(frozen=True)
class TextSpan:
    """A bold span, measured in UTF-16 code units like Telegram entities."""

    offset: int
    length: int


class RelayOutbound(Protocol):
    async def send_text(self, chat_id: int, text: str, bold: Optional[TextSpan] = None) -> int:
        """Send a text message, return its message id."""
        ...

    async def copy_message(
        self,
        chat_id: int,
        from_chat_id: int,
        message_id: int,
        reply_to_message_id: Optional[int] = None,
    ) -> int:
        """Copy a message without the forward header, return the new message id."""
        ...

    async def forward_message(self, chat_id: int, from_chat_id: int, message_id: int) -> int:
        """Forward a message, return the id of the forwarded copy in ``chat_id``."""
        ...

    async def set_reaction(self, chat_id: int, message_id: int, reaction: Sequence[Any]) -> None:
        ...
