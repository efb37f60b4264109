"""User- and admin-facing reply texts."""

import math
from typing import Optional

from ..db.models import CorrelationRecord
from .events import ForwardOrigin
from .outbound import TextSpan


def utf16_len(text: str) -> int:
    """Length of ``text`` in UTF-16 code units (Telegram entity units)."""
    return len(text.encode("utf-16-le")) // 2


def start_text(display_name: str) -> tuple[str, Optional[TextSpan]]:
    """Greeting with the user's name in bold."""
    prefix = "Hi! "
    suffix = ", with this bot you can talk to our admins."
    if not display_name:
        return "Hi! With this bot you can talk to our admins.", None
    text = f"{prefix}{display_name}{suffix}"
    return text, TextSpan(offset=utf16_len(prefix), length=utf16_len(display_name))


def help_text(chat_id: int) -> str:
    return f"Help! {chat_id}"


def banned_text() -> str:
    return "You are banned from using this bot"


def rate_limited_text(retry_after: float) -> str:
    seconds = max(1, math.ceil(retry_after))
    return f"You have been timed out from sending any more messages for {seconds}s"


def ban_unknown_target_text() -> str:
    return "Failed to ban this user because it does not exist in the database"


def ban_display_name(record: CorrelationRecord, forward_origin: Optional[ForwardOrigin]) -> str:
    """Name to show in a ban confirmation.

    User and hidden-user forward origins carry a visible name; anything
    else falls back to the numeric user id.
    """
    if forward_origin and forward_origin.kind in ("user", "hidden_user") and forward_origin.name:
        return forward_origin.name
    return str(record.user_id)


def banned_confirmation_text(name: str) -> str:
    return f"Banned user {name}"
