from __future__ import annotations

import random
import re
import time

from munibot.config import Settings
from munibot.handlers.base import TwitchChat, TwitchChatMessage, TwitchMessageHandler
from munibot.handlers.magical import MagicalHandler
from munibot.services.logger_service import LoggerService
from munibot.services.quote_service import QuoteService
from munibot.services.twitch_api_service import TwitchApiService


TWITCH_MESSAGE_LIMIT = 500
LIFT_COOLDOWN_SEC = 300

BONK_TEMPLATES = (
    "{target}, stop being naughty BOP",
    "sorry about this, {target} BOP",
    "{target} >:( BOP",
    "*sigh* this will only hurt a little, {target} BOP",
    "{target} needs a bonk?? BOP",
    "surely you saw this coming, {target}? BOP",
    "here you go, {target} BOP",
    "don't move, {target} BOP",
    "bad {target}, bad! BOP",
    "sounds like you've been naughty, {target} BOP",
)
HELLO_TEMPLATES = (
    "hi, {name}!<3",
    "hello, {name}! happy to see you!",
    "hey {name}:)",
    "hi {name}!! how are you?",
    "{name}!! how are you doing?",
    "heyyy {name} uwu",
    "hi {name}! it's good to see you!",
    "{name} helloooooo:)",
    "hiiiii {name}",
    "hi {name}<3",
)
AFFECTION_TEMPLATES = {
    "!hug": "{target} gets the biggest huggle from {sender}!",
    "!glomp": "{target} tackle hugs {sender}! o.o",
    "!nuzzle": "{sender} nuzzle wuzzles {target}~",
    "!boop": "{target} has been booped by {sender}!",
}
HI_RE = re.compile(r"(?i)(?:hi+|hey+|hello+|howdy|sup).*muni.*bot")


def _command_argument(text: str, *commands: str) -> str | None:
    """Argument after the first matching `!command`, or None when the message isn't that command."""
    stripped = text.strip()
    for command in commands:
        if stripped == command:
            return ""
        if stripped.startswith(command + " "):
            return stripped[len(command) + 1 :].strip()
    return None


def split_for_twitch(header: str, items: list[str], limit: int = TWITCH_MESSAGE_LIMIT) -> list[str]:
    messages: list[str] = []
    current = header
    for item in items:
        if current and len(current) + 1 + len(item) >= limit:
            messages.append(current)
            current = item
        else:
            current = f"{current} {item}" if current else item
    if current:
        messages.append(current)
    return messages


class QuotesHandler(TwitchMessageHandler):
    name = "quotes"

    def __init__(self, quotes: QuoteService, twitch_api: TwitchApiService) -> None:
        self.quotes = quotes
        self.twitch_api = twitch_api

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        content = _command_argument(message.text, "!addquote")
        if content is not None:
            if not content:
                await chat.send(message.channel_login, "i can't add an empty quote!")
                return True
            info = await self.twitch_api.get_channel_info(message.channel_id) if message.channel_id else None
            quote = await self.quotes.add(
                message.channel_login,
                content,
                message.sender_id,
                stream_category=info.game_name if info else "",
                stream_title=info.title if info else "",
            )
            await chat.send(message.channel_login, f"quote #{quote.number} is in! recorded in the muni history books forever")
            return True

        content = _command_argument(message.text, "!quote")
        if content is None:
            return False
        if content:
            try:
                number = int(content)
            except ValueError:
                await chat.send(message.channel_login, "that's not a quote number! try `!quote 3` or just `!quote`")
                return True
            quote = await self.quotes.get(message.channel_login, number)
            if quote is None:
                await chat.send(message.channel_login, f"quote #{number} not found :(")
            else:
                await chat.send(message.channel_login, f"here's quote #{number}: \"{quote.quote}\"")
            return True
        quote = await self.quotes.get(message.channel_login)
        if quote is None:
            await chat.send(message.channel_login, "no quotes found :(")
        else:
            await chat.send(message.channel_login, f"random quote: \"{quote.quote}\"")
        return True


class BonkHandler(TwitchMessageHandler):
    name = "bonk"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        target = _command_argument(message.text, "!bonk")
        if not target:
            return False
        await chat.send(message.channel_login, self._rng.choice(BONK_TEMPLATES).format(target=target))
        return True


class SocialsHandler(TwitchMessageHandler):
    name = "socials"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        if _command_argument(message.text, "!discord") is None:
            return False
        link = self.settings.discord_invite_link
        if not link:
            await chat.send(message.channel_login, "there's no discord link set up yet, sorry!")
        else:
            await chat.send(message.channel_login, f"join the herd's discord server here! {link} we have treats:)")
        return True


class LurkHandler(TwitchMessageHandler):
    name = "lurk"

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        text = message.text.strip()
        if text.startswith("!lurk"):
            await chat.send(message.channel_login, f"{message.sender_display_name} cast an invisibility spell!")
            return True
        if text.startswith("!unlurk"):
            await chat.send(
                message.channel_login,
                f"{message.sender_display_name}'s invisibility spell wore off. we can see you!",
            )
            return True
        return False


class GreetingHandler(TwitchMessageHandler):
    name = "greeting"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        if not HI_RE.search(message.text):
            return False
        greeting = self._rng.choice(HELLO_TEMPLATES).format(name=message.sender_display_name)
        await chat.send(message.channel_login, greeting)
        return True


class ShoutoutHandler(TwitchMessageHandler):
    name = "shoutout"

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        target = _command_argument(message.text, "!so", "!shoutout")
        if target:
            target = target.split()[0].lstrip("@")
            await chat.send(
                message.channel_login,
                f"this is a PSA that you NEED to go check out {target} at https://twitch.tv/{target} ! :3 "
                "clearly they deserve the shoutout, so go follow them now >:c",
            )
            return True
        targets = _command_argument(message.text, "!mso")
        if not targets:
            return False
        links = [f"https://twitch.tv/{name.lstrip('@')}" for name in targets.split()]
        for chunk in split_for_twitch("go check out these cuties! :3", links):
            await chat.send(message.channel_login, chunk)
        return True


class RaidMsgHandler(TwitchMessageHandler):
    name = "raid-msg"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        if not message.text.strip().startswith("!rmsg"):
            return False
        templates = [text for text in (self.settings.raid_msg_all, self.settings.raid_msg_subs) if text]
        if not templates:
            await chat.send(
                message.channel_login,
                "the raid message command is enabled, but no raid messages have been configured >.>",
            )
            return True
        for text in templates:
            await chat.send(message.channel_login, text)
        return True


class LiftHandler(TwitchMessageHandler):
    name = "lift"

    def __init__(self, cooldown_sec: float = LIFT_COOLDOWN_SEC) -> None:
        self.cooldown_sec = cooldown_sec
        self._last_call = time.monotonic() - cooldown_sec

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        if not message.text.startswith("!liftmuni"):
            return False
        if time.monotonic() - self._last_call < self.cooldown_sec:
            return False
        self._last_call = time.monotonic()
        await chat.send(
            message.channel_login,
            "nuh uh. not here. muni is streaming right now. you can't do that while he's streaming.",
        )
        return True


class AffectionHandler(TwitchMessageHandler):
    name = "affection"

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        for command, template in AFFECTION_TEMPLATES.items():
            target = _command_argument(message.text, command)
            if target:
                await chat.send(
                    message.channel_login,
                    template.format(target=target, sender=message.sender_display_name),
                )
                return True
        return False


class AutoBanHandler:
    """Bans joining users whose login starts with a configured prefix."""

    name = "autoban"

    def __init__(self, settings: Settings, twitch_api: TwitchApiService, logger: LoggerService) -> None:
        self.settings = settings
        self.twitch_api = twitch_api
        self.logger = logger

    def matches(self, user_login: str) -> bool:
        login = user_login.lower()
        return any(login.startswith(prefix) for prefix in self.settings.twitch_autoban_prefixes)

    async def handle_join(self, channel_login: str, user_login: str) -> bool:
        if not self.matches(user_login):
            return False
        broadcaster_id = await self.twitch_api.get_user_id(channel_login)
        user_id = await self.twitch_api.get_user_id(user_login)
        if not broadcaster_id or not user_id:
            self.logger.warning("twitch.autoban_lookup_failed", channel=channel_login, user=user_login)
            return False
        return await self.twitch_api.ban_user(
            broadcaster_id,
            user_id,
            f"login matches an autoban prefix ({user_login})",
        )


def default_twitch_handlers(
    settings: Settings,
    quotes: QuoteService,
    twitch_api: TwitchApiService,
) -> list[TwitchMessageHandler]:
    return [
        QuotesHandler(quotes, twitch_api),
        BonkHandler(),
        SocialsHandler(settings),
        LurkHandler(),
        GreetingHandler(),
        ShoutoutHandler(),
        RaidMsgHandler(settings),
        LiftHandler(),
        AffectionHandler(),
        MagicalHandler(),
    ]
