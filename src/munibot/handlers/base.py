from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from munibot.services.logger_service import LoggerService


class EventKind(str, Enum):
    MESSAGE = "message"
    MESSAGE_EDIT = "message_edit"
    MESSAGE_DELETE = "message_delete"
    MESSAGE_DELETE_BULK = "message_delete_bulk"
    MEMBER_JOIN = "member_join"
    MEMBER_REMOVE = "member_remove"
    MEMBER_BAN = "member_ban"
    MEMBER_UNBAN = "member_unban"
    CHANNEL_CREATE = "channel_create"
    CHANNEL_DELETE = "channel_delete"
    ROLE_CREATE = "role_create"
    ROLE_DELETE = "role_delete"
    VOICE_STATE_UPDATE = "voice_state_update"


@dataclass(frozen=True)
class DiscordEvent:
    """A gateway event flattened to ids and display strings.

    `message` carries the live `discord.Message` for MESSAGE and MESSAGE_EDIT, everything
    else a handler needs lives in `data`.
    """

    kind: EventKind
    guild_id: int | None = None
    channel_id: int | None = None
    message: Any = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TwitchChatMessage:
    channel_login: str
    channel_id: str
    sender_login: str
    sender_display_name: str
    sender_id: str
    text: str


class TwitchChat(Protocol):
    async def send(self, channel_login: str, text: str) -> None: ...


class HandlerError(Exception):
    def __init__(self, handler_name: str, message: str) -> None:
        super().__init__(f"{handler_name}: {message}")
        self.handler_name = handler_name
        self.message = message


class DiscordEventHandler:
    name = "discord-handler"

    async def handle_discord_event(self, event: DiscordEvent) -> None:
        raise NotImplementedError


class TwitchMessageHandler:
    name = "twitch-handler"

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        """Return True when the message was handled and later handlers should be skipped."""
        raise NotImplementedError


async def dispatch_discord_event(
    handlers: Sequence[DiscordEventHandler],
    event: DiscordEvent,
    logger: LoggerService,
) -> None:
    for handler in handlers:
        try:
            await handler.handle_discord_event(event)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "handler.failed",
                handler=getattr(exc, "handler_name", handler.name),
                kind=event.kind.value,
                guild_id=event.guild_id,
                error=str(exc)[:300],
            )


async def dispatch_twitch_message(
    handlers: Sequence[TwitchMessageHandler],
    chat: TwitchChat,
    message: TwitchChatMessage,
    logger: LoggerService,
) -> str | None:
    """Run handlers in order until one reports the message handled; returns that handler's name."""
    for handler in handlers:
        try:
            if await handler.handle_twitch_message(chat, message):
                return handler.name
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "handler.failed",
                handler=getattr(exc, "handler_name", handler.name),
                channel=message.channel_login,
                error=str(exc)[:300],
            )
    return None
