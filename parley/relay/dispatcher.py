"""Relay dispatcher.

Classifies each inbound event into exactly one route and runs the
matching relay action. Holds no state between events; everything it
needs is injected at construction.

Routes, checked in this order:

1. reaction in the group       -> mirror the reaction onto the user's message
2. known command               -> /start, /help anywhere; /ban only in the group
3. reply in the group          -> copy the reply back to the mapped user
4. message in a private chat   -> ban check, rate limit, forward, record
5. anything else               -> ignore
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from ..db.models import CorrelationRecord
from ..errors import RelayError, UnknownTargetError
from ..ratelimit import RateLimiter
from . import texts
from .events import CommandEvent, InboundEvent, MessageEvent, ReactionEvent
from .outbound import RelayOutbound

logger = logging.getLogger("parley.relay")

COMMANDS = ("/start", "/help")
GROUP_COMMANDS = ("/ban",)


class MappingStore(Protocol):
    async def record(self, group_message_id: int, user_id: int, user_message_id: int) -> None: ...

    async def lookup(self, group_message_id: int) -> Optional[CorrelationRecord]: ...


class BanRegistry(Protocol):
    async def is_banned(self, user_id: int) -> bool: ...

    async def ban(self, user_id: int) -> None: ...


# ── Routes ───────────────────────────────────────────────

@dataclass(frozen=True)
class RelayReaction:
    event: ReactionEvent


@dataclass(frozen=True)
class RunCommand:
    event: CommandEvent


@dataclass(frozen=True)
class RelayToUser:
    event: MessageEvent


@dataclass(frozen=True)
class RelayToGroup:
    event: MessageEvent


@dataclass(frozen=True)
class Ignore:
    reason: str


Route = Union[RelayReaction, RunCommand, RelayToUser, RelayToGroup, Ignore]


class RelayDispatcher:
    """Routes inbound events between private chats and the staff group."""

    def __init__(
        self,
        group_id: int,
        outbound: RelayOutbound,
        mappings: MappingStore,
        bans: BanRegistry,
        limiter: RateLimiter,
    ):
        self.group_id = group_id
        self.outbound = outbound
        self.mappings = mappings
        self.bans = bans
        self.limiter = limiter

    # ── Classification ───────────────────────────────────

    def classify(self, event: InboundEvent) -> Route:
        if isinstance(event, ReactionEvent):
            if event.chat_id != self.group_id:
                # Private-chat message ids live in another id space than the
                # group's; looking them up could hit some other user's row.
                return Ignore("reaction outside group")
            return RelayReaction(event)

        if isinstance(event, CommandEvent):
            in_group = event.chat_id == self.group_id
            if event.command in COMMANDS or (event.command in GROUP_COMMANDS and in_group):
                return RunCommand(event)
            return Ignore(f"unhandled command {event.command}")

        if isinstance(event, MessageEvent):
            if event.chat_id == self.group_id:
                if event.reply_to is None:
                    return Ignore("group message without reply")
                return RelayToUser(event)
            if event.is_private:
                return RelayToGroup(event)
            return Ignore("message from unrelated chat")

        return Ignore(f"unknown event type {type(event).__name__}")

    # ── Dispatch ─────────────────────────────────────────

    async def dispatch(self, event: InboundEvent):
        """Handle one event. Store, relay and transport errors propagate."""
        route = self.classify(event)
        if isinstance(route, RelayReaction):
            await self._relay_reaction(route.event)
        elif isinstance(route, RunCommand):
            await self._run_command(route.event)
        elif isinstance(route, RelayToUser):
            await self._relay_to_user(route.event)
        elif isinstance(route, RelayToGroup):
            await self._relay_to_group(route.event)
        else:
            logger.debug(f"Ignored event: {route.reason}")

    async def handle(self, event: InboundEvent):
        """Per-event boundary: dispatch, log failures, never raise."""
        try:
            await self.dispatch(event)
        except RelayError as e:
            logger.warning(f"Relay failed: {e}")
        except Exception as e:
            logger.error(f"Error handling {type(event).__name__}: {type(e).__name__}: {e}", exc_info=True)

    # ── Actions ──────────────────────────────────────────

    async def _relay_reaction(self, event: ReactionEvent):
        record = await self.mappings.lookup(event.message_id)
        if record is None:
            logger.debug(f"Reaction on unmapped group message {event.message_id}, dropped")
            return
        await self.outbound.set_reaction(record.user_id, record.user_message_id, event.reaction)
        logger.info(f"Relayed reaction on {event.message_id} to user {record.user_id}")

    async def _run_command(self, event: CommandEvent):
        if event.command == "/start":
            name = event.sender.display_name if event.sender else ""
            text, bold = texts.start_text(name)
            await self.outbound.send_text(event.chat_id, text, bold=bold)
        elif event.command == "/help":
            await self.outbound.send_text(event.chat_id, texts.help_text(event.chat_id))
        elif event.command == "/ban":
            await self._ban(event)

    async def _ban(self, event: CommandEvent):
        if event.reply_to is None:
            logger.debug("/ban without a reply target, ignored")
            return
        record = await self.mappings.lookup(event.reply_to.message_id)
        if record is None:
            await self.outbound.send_text(event.chat_id, texts.ban_unknown_target_text())
            raise UnknownTargetError(event.reply_to.message_id)
        await self.bans.ban(record.user_id)
        name = texts.ban_display_name(record, event.reply_to.forward_origin)
        await self.outbound.send_text(event.chat_id, texts.banned_confirmation_text(name))

    async def _relay_to_user(self, event: MessageEvent):
        if event.sender is not None and event.sender.is_bot:
            logger.debug(f"Group reply {event.event_id} from bot {event.sender.user_id}, dropped")
            return
        record = await self.mappings.lookup(event.reply_to.message_id)
        if record is None:
            logger.debug(f"Reply to unmapped group message {event.reply_to.message_id}, dropped")
            return
        await self.outbound.copy_message(
            record.user_id,
            self.group_id,
            event.event_id,
            reply_to_message_id=record.user_message_id,
        )
        logger.info(f"Relayed group reply {event.event_id} to user {record.user_id}")

    async def _relay_to_group(self, event: MessageEvent):
        user_id = event.chat_id

        if await self.bans.is_banned(user_id):
            await self.outbound.send_text(user_id, texts.banned_text())
            logger.info(f"Blocked message {event.event_id} from banned user {user_id}")
            return

        retry_after = self.limiter.admit(user_id)
        if retry_after is not None:
            await self.outbound.send_text(user_id, texts.rate_limited_text(retry_after))
            return

        group_message_id = await self.outbound.forward_message(self.group_id, user_id, event.event_id)
        await self.mappings.record(group_message_id, user_id, event.event_id)
        logger.info(f"Relayed message {event.event_id} from user {user_id} as group message {group_message_id}")
