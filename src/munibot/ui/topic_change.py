from __future__ import annotations

import discord

from munibot.services.logger_service import LoggerService


TOPIC_CHANGE_TIMEOUT_SEC = 60
TOPIC_CHANGE_TITLE = "please read this before continuing"
TOPIC_CHANGE_PROMPT = (
    "if this conversation is making you uncomfortable, this will submit an anonymous request to this channel "
    "to change the topic. please only proceed if you genuinely want to change topics and acknowledge that you "
    "are not using this feature as a joke. continue?"
)
TOPIC_CHANGE_THANKS = (
    "thanks! i'll send the message. sorry you felt uncomfortable<3 i hope i can help make things more comfy!"
)
TOPIC_CHANGE_DECLINED = "no problem! send in a request any time."
TOPIC_CHANGE_ANNOUNCEMENT = (
    "this conversation is uncomfortable and a topic change has been requested. let's talk about something else."
)


def topic_change_embed() -> discord.Embed:
    return discord.Embed(title=TOPIC_CHANGE_TITLE, description=TOPIC_CHANGE_PROMPT, color=discord.Color.red())


class TopicChangeView(discord.ui.View):
    def __init__(self, channel: discord.abc.Messageable, logger: LoggerService):
        super().__init__(timeout=TOPIC_CHANGE_TIMEOUT_SEC)
        self.channel = channel
        self.logger = logger
        self.answered = False

    @discord.ui.button(label="no, don't request", style=discord.ButtonStyle.secondary)
    async def deny_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.deny(interaction)

    @discord.ui.button(label="yes, request topic change", style=discord.ButtonStyle.primary)
    async def approve_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.approve(interaction)

    async def deny(self, interaction: discord.Interaction) -> None:
        if self.answered:
            return
        self.answered = True
        self.stop()
        await interaction.response.send_message(TOPIC_CHANGE_DECLINED, ephemeral=True)

    async def approve(self, interaction: discord.Interaction) -> None:
        if self.answered:
            return
        self.answered = True
        self.stop()
        await interaction.response.send_message(TOPIC_CHANGE_THANKS, ephemeral=True)
        try:
            await self.channel.send(TOPIC_CHANGE_ANNOUNCEMENT)
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.logger.warning("topic_change.announce_failed", error=str(exc)[:300])
            return
        self.logger.log("topic_change.requested", channel_id=getattr(self.channel, "id", None))
