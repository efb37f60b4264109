"""Telegram channel adapter.

Turns python-telegram-bot updates into relay events, and implements the
relay's outbound actions on top of ``telegram.Bot``. Updates arrive either
by long polling or by webhook; the relay core does not care which.
"""

import asyncio
import logging
from typing import Any, Optional, Sequence

from telegram import (
    Bot,
    BotCommand,
    Message,
    MessageEntity,
    MessageOrigin,
    ReplyParameters,
    Update,
)
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    ContextTypes,
    MessageHandler,
    MessageReactionHandler,
    filters,
)

from ..config import ParleySettings
from ..ratelimit import RateLimiter
from ..relay.dispatcher import BanRegistry, MappingStore, RelayDispatcher
from ..relay.events import (
    CommandEvent,
    ForwardOrigin,
    InboundEvent,
    MessageEvent,
    ReactionEvent,
    ReplyTarget,
    Sender,
    normalize_command,
)
from ..relay.outbound import TextSpan

logger = logging.getLogger("parley.telegram")

ALLOWED_UPDATES = ["message", "message_reaction"]


# ── Update -> event ──────────────────────────────────────

def _display_name(user) -> str:
    """Get a display name for a Telegram user."""
    if user.first_name and user.last_name:
        return f"{user.first_name} {user.last_name}"
    return user.first_name or user.username or str(user.id)


def _forward_origin(origin: Optional[MessageOrigin]) -> Optional[ForwardOrigin]:
    if origin is None:
        return None
    if origin.type == MessageOrigin.USER:
        return ForwardOrigin(kind="user", name=origin.sender_user.first_name)
    if origin.type == MessageOrigin.HIDDEN_USER:
        return ForwardOrigin(kind="hidden_user", name=origin.sender_user_name)
    if origin.type == MessageOrigin.CHAT:
        return ForwardOrigin(kind="chat", name=origin.sender_chat.title)
    if origin.type == MessageOrigin.CHANNEL:
        return ForwardOrigin(kind="channel", name=origin.chat.title)
    return ForwardOrigin(kind=str(origin.type))


def _command_name(message: Message) -> Optional[str]:
    """Command name if the message text starts with a bot command entity."""
    if not message.text:
        return None
    for entity in message.entities or ():
        if entity.type == MessageEntity.BOT_COMMAND and entity.offset == 0:
            return normalize_command(message.text)
    return None


def _sender(message: Message) -> Optional[Sender]:
    """Who sent the message, as the relay sees it.

    Anonymous group admins and linked channels post with ``sender_chat`` set,
    and ``from_user`` is then a Telegram placeholder bot. The chat is the
    sender in that case, and it is never a bot.
    """
    if message.sender_chat is not None:
        chat = message.sender_chat
        return Sender(user_id=chat.id, is_bot=False, display_name=chat.title or str(chat.id))
    user = message.from_user
    if user is None:
        return None
    return Sender(user_id=user.id, is_bot=user.is_bot, display_name=_display_name(user))


def message_to_event(message: Message) -> InboundEvent:
    chat = message.chat
    sender = _sender(message)
    reply_to = None
    if message.reply_to_message:
        reply = message.reply_to_message
        reply_to = ReplyTarget(message_id=reply.message_id, forward_origin=_forward_origin(reply.forward_origin))

    is_private = chat.type == ChatType.PRIVATE
    command = _command_name(message)
    if command:
        return CommandEvent(
            event_id=message.message_id,
            chat_id=chat.id,
            is_private=is_private,
            command=command,
            sender=sender,
            reply_to=reply_to,
        )
    return MessageEvent(
        event_id=message.message_id,
        chat_id=chat.id,
        is_private=is_private,
        sender=sender,
        reply_to=reply_to,
    )


def update_to_event(update: Update) -> Optional[InboundEvent]:
    """Map a Telegram update to a relay event, or None if it is not relayed.

    Only new messages and reaction updates are relayed; edits, channel
    posts and service updates are not.
    """
    if update.message_reaction is not None:
        reaction = update.message_reaction
        return ReactionEvent(
            chat_id=reaction.chat.id,
            message_id=reaction.message_id,
            reaction=tuple(reaction.new_reaction or ()),
        )
    if update.message is not None:
        return message_to_event(update.message)
    return None


# ── Outbound ─────────────────────────────────────────────

class TelegramOutbound:
    """Relay outbound actions over the Bot API."""

    def __init__(self, bot: Bot):
        self._bot = bot

    async def send_text(self, chat_id: int, text: str, bold: Optional[TextSpan] = None) -> int:
        entities = None
        if bold is not None:
            entities = [MessageEntity(type=MessageEntity.BOLD, offset=bold.offset, length=bold.length)]
        sent = await self._bot.send_message(chat_id=chat_id, text=text, entities=entities)
        return sent.message_id

    async def copy_message(
        self,
        chat_id: int,
        from_chat_id: int,
        message_id: int,
        reply_to_message_id: Optional[int] = None,
    ) -> int:
        reply_parameters = None
        if reply_to_message_id is not None:
            # The user may have deleted their original; deliver anyway.
            reply_parameters = ReplyParameters(
                message_id=reply_to_message_id, allow_sending_without_reply=True,
            )
        copied = await self._bot.copy_message(
            chat_id=chat_id,
            from_chat_id=from_chat_id,
            message_id=message_id,
            reply_parameters=reply_parameters,
        )
        return copied.message_id

    async def forward_message(self, chat_id: int, from_chat_id: int, message_id: int) -> int:
        forwarded = await self._bot.forward_message(
            chat_id=chat_id, from_chat_id=from_chat_id, message_id=message_id,
        )
        return forwarded.message_id

    async def set_reaction(self, chat_id: int, message_id: int, reaction: Sequence[Any]) -> None:
        await self._bot.set_message_reaction(
            chat_id=chat_id, message_id=message_id, reaction=list(reaction),
        )


# ── Channel ──────────────────────────────────────────────

class TelegramChannel:
    """Telegram bot adapter for the relay."""

    def __init__(
        self,
        settings: ParleySettings,
        mappings: MappingStore,
        bans: BanRegistry,
        limiter: RateLimiter,
    ):
        self.settings = settings
        self.mappings = mappings
        self.bans = bans
        self.limiter = limiter
        self.app: Optional[Application] = None
        self.dispatcher: Optional[RelayDispatcher] = None

    def _register_handlers(self):
        """Register all Telegram handlers on self.app."""
        # Commands go through the same handler; the dispatcher classifies them.
        self.app.add_handler(MessageHandler(filters.UpdateType.MESSAGE, self._handle_update))
        self.app.add_handler(MessageReactionHandler(self._handle_update))
        self.app.add_error_handler(self._handle_error)

    async def start(self):
        """Start the Telegram bot."""
        self.app = (
            Application.builder()
            .token(self.settings.bot_token)
            .concurrent_updates(256)
            .build()
        )
        self.dispatcher = RelayDispatcher(
            group_id=self.settings.group_id,
            outbound=TelegramOutbound(self.app.bot),
            mappings=self.mappings,
            bans=self.bans,
            limiter=self.limiter,
        )
        self._register_handlers()

        logger.info("Starting Telegram bot...")
        # Retry initialization (getMe); transient network timeouts shouldn't kill the bot
        for attempt in range(5):
            try:
                await self.app.initialize()
                break
            except Exception as e:
                if attempt < 4:
                    delay = [2, 5, 10, 15][attempt]
                    logger.warning(f"Telegram init failed (attempt {attempt + 1}/5): {type(e).__name__}: {e}. Retrying in {delay}s...")
                    await asyncio.sleep(delay)
                else:
                    raise
        await self.app.start()

        if self.settings.transport == "webhook":
            await self._start_webhook()
        else:
            await self.app.updater.start_polling(
                drop_pending_updates=True,
                allowed_updates=ALLOWED_UPDATES,
            )

        # Register bot commands menu (the "/" button in Telegram)
        await self.app.bot.set_my_commands([
            BotCommand("start", "Welcome message"),
            BotCommand("help", "Show this chat's ID"),
        ])

        logger.info(f"Telegram bot started ({self.settings.transport}), relaying to group {self.settings.group_id}.")

    async def _start_webhook(self):
        secret = self.settings.webhook_secret
        webhook_url = f"{self.settings.webhook_url.rstrip('/')}/{secret}"
        await self.app.updater.start_webhook(
            listen=self.settings.webhook_listen,
            port=self.settings.webhook_port,
            url_path=secret,
            webhook_url=webhook_url,
            secret_token=secret,
            cert=self.settings.tls_cert,
            ip_address=self.settings.webhook_ip,
            allowed_updates=ALLOWED_UPDATES,
            drop_pending_updates=True,
        )
        logger.info(f"Webhook listening on [{self.settings.webhook_listen}]:{self.settings.webhook_port}")

    async def stop(self):
        """Stop the Telegram bot."""
        if self.app:
            if self.app.updater and self.app.updater.running:
                await self.app.updater.stop()
            await self.app.stop()
            await self.app.shutdown()
            logger.info("Telegram bot stopped.")

    # ── Handlers ─────────────────────────────────────────

    async def _handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Hand one update to the dispatcher."""
        event = update_to_event(update)
        if event is None:
            return
        await self.dispatcher.handle(event)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Handle errors in update processing."""
        error = context.error
        if update:
            logger.error(f"Telegram error processing update {type(update).__name__}: {type(error).__name__}: {error}", exc_info=error)
        else:
            logger.error(f"Telegram error (no update): {type(error).__name__}: {error}", exc_info=error)
        if self.app and self.app.updater and not self.app.updater.running:
            logger.critical("UPDATER STOPPED after error; bot will not receive new messages!")
