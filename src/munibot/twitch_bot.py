from __future__ import annotations

from typing import Any

from twitchio.ext import commands as twitch_commands

from munibot.config import Settings
from munibot.handlers.base import TwitchChatMessage, TwitchMessageHandler, dispatch_twitch_message
from munibot.handlers.twitch_chat import AutoBanHandler, default_twitch_handlers
from munibot.services.logger_service import LoggerService
from munibot.services.quote_service import QuoteService
from munibot.services.twitch_api_service import TwitchApiService
from munibot.storage import DocumentStore


class JoinedChannelChat:
    """Sends chat lines through a bot's joined channels."""

    def __init__(self, bot: "MuniTwitchBot") -> None:
        self.bot = bot

    async def send(self, channel_login: str, text: str) -> None:
        channel = self.bot.get_channel(channel_login)
        if channel is None:
            self.bot.logger.warning("twitch.channel_not_joined", channel=channel_login)
            return
        await channel.send(text)


class MuniTwitchBot(twitch_commands.Bot):
    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        logger: LoggerService,
        handlers: list[TwitchMessageHandler] | None = None,
    ) -> None:
        settings.require_twitch()
        channels = list(dict.fromkeys([*settings.twitch_channels, settings.twitch_user]))
        super().__init__(token=settings.twitch_token, prefix="!", initial_channels=channels)
        self.settings = settings
        self.store = store
        self.logger = logger
        self.twitch_api = TwitchApiService(settings, logger)
        self.quotes = QuoteService(store, logger)
        self.handlers = handlers if handlers is not None else default_twitch_handlers(settings, self.quotes, self.twitch_api)
        self.autoban = AutoBanHandler(settings, self.twitch_api, logger)
        self.chat = JoinedChannelChat(self)

    async def event_ready(self) -> None:
        self.logger.log("twitch.ready", nick=self.nick, channels=len(self.connected_channels))

    async def event_message(self, message: Any) -> None:
        if message.echo or message.author is None:
            return
        chat_message = TwitchChatMessage(
            channel_login=message.channel.name,
            channel_id=str((message.tags or {}).get("room-id", "")),
            sender_login=message.author.name,
            sender_display_name=message.author.display_name or message.author.name,
            sender_id=str(message.author.id or ""),
            text=message.content or "",
        )
        handled_by = await dispatch_twitch_message(self.handlers, self.chat, chat_message, self.logger)
        if handled_by:
            self.logger.log("twitch.handled", handler=handled_by, channel=chat_message.channel_login)

    async def event_join(self, channel: Any, user: Any) -> None:
        try:
            await self.autoban.handle_join(channel.name, user.name)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("handler.failed", handler=self.autoban.name, error=str(exc)[:300])

    async def event_error(self, error: Exception, data: str | None = None) -> None:
        self.logger.error("twitch.error", error=str(error)[:300])
