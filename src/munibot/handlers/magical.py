from __future__ import annotations

import hashlib
from datetime import date

from munibot.handlers.base import TwitchChat, TwitchChatMessage, TwitchMessageHandler


def magic_amount(user_id: str, today: date | None = None) -> int:
    """Daily 1-100 score; stable for a user for the whole local day."""
    today = today or date.today()
    digest = hashlib.blake2b(f"{today.isoformat()}{user_id}".encode("utf-8"), digest_size=8).digest()
    hashed = int.from_bytes(digest, "big")
    x = 1.0 - (hashed % 100 + 1) / 100.0
    return int((1.0 - x * x * x) * 100.0)


def magical_message(user_id: str, name: str, today: date | None = None) -> str:
    amount = magic_amount(user_id, today)
    if amount == 1:
        suffix = ". ouch. lol."
    elif amount == 100:
        suffix = "!! wow :3"
    elif amount < 25:
        suffix = ". sounds like a good day for some self care. <3"
    else:
        suffix = "!"
    return f"{name} is {amount}% magical today{suffix}"


class MagicalHandler(TwitchMessageHandler):
    name = "magical"

    async def handle_twitch_message(self, chat: TwitchChat, message: TwitchChatMessage) -> bool:
        if not message.text.startswith("!magical"):
            return False
        await chat.send(message.channel_login, magical_message(message.sender_id, message.sender_display_name))
        return True
