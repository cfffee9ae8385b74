from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from munibot.cogs.admin import AdminCog
from munibot.cogs.affection import AffectionCog
from munibot.cogs.autodelete import AutoDeleteCog
from munibot.cogs.economy import GUILD_ONLY_REPLY, EconomyCog
from munibot.cogs.fun import FunCog
from munibot.cogs.topic_change import TopicChangeCog
from munibot.cogs.ventriloquize import VentriloquizeCog
from munibot.config import Settings
from munibot.handlers.base import DiscordEvent, DiscordEventHandler, EventKind, dispatch_discord_event
from munibot.handlers.discord_logging import LoggingEventHandler
from munibot.handlers.vc_greeter import VoiceChannelGreeter
from munibot.services.autodelete_service import AutoDeleteService
from munibot.services.economy_service import EconomyService, SalaryHandler
from munibot.services.logger_service import LoggerService
from munibot.services.logging_channel_service import LoggingChannelService
from munibot.services.wallet_service import WalletService
from munibot.storage import DocumentStore
from munibot.twitch_bot import MuniTwitchBot
from munibot.utils.discord_utils import display_name


class MuniBot(commands.Bot):
    def __init__(
        self,
        settings: Settings,
        store: DocumentStore | None = None,
        logger: LoggerService | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True
        intents.voice_states = True
        super().__init__(
            command_prefix=commands.when_mentioned_or(*settings.command_prefixes),
            intents=intents,
        )
        self.settings = settings
        self._owns_store = store is None
        self.store = store or DocumentStore(settings.store_path, settings.store_namespace)
        self.logger = logger or LoggerService(self.store)
        self.wallets = WalletService(self.store)
        self.economy = EconomyService(self.wallets, self.logger)
        self.logging_channels = LoggingChannelService(self, self.store, self.logger)
        self.autodelete = AutoDeleteService(self, self.store, self.logger, self.logging_channels)
        self.event_handlers: list[DiscordEventHandler] = [
            SalaryHandler(self.economy),
            LoggingEventHandler(self.logging_channels),
            VoiceChannelGreeter(self, self.logger),
        ]
        self._autosave_task: asyncio.Task | None = None
        self._ready_once = False

    async def setup_hook(self) -> None:
        if not self.store.loaded:
            await self.store.load()
        if self._owns_store:
            self._autosave_task = asyncio.create_task(self.store.autosave_loop(), name="msgpack-autosave")
        await self.autodelete.load()
        for cog in (
            EconomyCog(self),
            AdminCog(self),
            AutoDeleteCog(self),
            FunCog(self),
            AffectionCog(self),
            TopicChangeCog(self),
            VentriloquizeCog(self),
        ):
            await self.add_cog(cog)

    async def on_ready(self) -> None:
        if self._ready_once:
            return
        self._ready_once = True
        self.logger.log("bot.ready", user_id=self.user.id if self.user else None, guilds=len(self.guilds))
        self.autodelete.start()
        print(f"Connected as {self.user} ({self.user.id if self.user else '?'})")

    async def close(self) -> None:
        await self.autodelete.stop()
        if self._autosave_task is not None:
            self._autosave_task.cancel()
            self._autosave_task = None
        if self._owns_store and self.store.loaded:
            await self.store.save()
        await super().close()

    async def on_command_error(self, ctx: commands.Context, exception: Exception) -> None:
        if isinstance(exception, commands.CommandNotFound):
            return
        if isinstance(exception, commands.NoPrivateMessage):
            await ctx.send(GUILD_ONLY_REPLY)
            return
        if isinstance(exception, commands.CheckFailure):
            await ctx.send("Not authorized.")
            return
        if isinstance(exception, commands.UserInputError):
            usage = f"{ctx.clean_prefix}{ctx.command.qualified_name} {ctx.command.signature}" if ctx.command else ""
            await ctx.send(f"{exception}\nusage: `{usage.strip()}`")
            return
        self.logger.error(
            "command.error",
            error=str(exception)[:300],
            command=ctx.command.qualified_name if ctx.command else "unknown",
            guild_id=ctx.guild.id if ctx.guild else None,
        )
        await ctx.send("something went wrong! the error has been logged.")

    async def _dispatch_event(self, event: DiscordEvent) -> None:
        await dispatch_discord_event(self.event_handlers, event, self.logger)

    async def on_message(self, message: discord.Message) -> None:
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.MESSAGE,
                guild_id=message.guild.id if message.guild else None,
                channel_id=message.channel.id,
                message=message,
            )
        )
        if message.author.bot:
            return
        await self.process_commands(message)

    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        if after.author.bot or after.guild is None:
            return
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.MESSAGE_EDIT,
                guild_id=after.guild.id,
                channel_id=after.channel.id,
                message=after,
                data={
                    "author": str(after.author),
                    "before": before.content,
                    "after": after.content,
                    "jump_url": after.jump_url,
                },
            )
        )

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        cached = payload.cached_message
        data: dict[str, object] = {"message_id": payload.message_id}
        if cached is not None:
            if cached.author.bot:
                return
            data.update(
                author=str(cached.author),
                content=cached.content,
                attachments=[attachment.url for attachment in cached.attachments],
            )
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.MESSAGE_DELETE,
                guild_id=payload.guild_id,
                channel_id=payload.channel_id,
                data=data,
            )
        )

    async def on_raw_bulk_message_delete(self, payload: discord.RawBulkMessageDeleteEvent) -> None:
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.MESSAGE_DELETE_BULK,
                guild_id=payload.guild_id,
                channel_id=payload.channel_id,
                data={"count": len(payload.message_ids)},
            )
        )

    async def _dispatch_member_event(self, kind: EventKind, guild: discord.Guild, user: discord.abc.User) -> None:
        await self._dispatch_event(
            DiscordEvent(kind=kind, guild_id=guild.id, data={"user": str(user), "user_id": user.id})
        )

    async def on_member_join(self, member: discord.Member) -> None:
        await self._dispatch_member_event(EventKind.MEMBER_JOIN, member.guild, member)

    async def on_member_remove(self, member: discord.Member) -> None:
        await self._dispatch_member_event(EventKind.MEMBER_REMOVE, member.guild, member)

    async def on_member_ban(self, guild: discord.Guild, user: discord.User | discord.Member) -> None:
        await self._dispatch_member_event(EventKind.MEMBER_BAN, guild, user)

    async def on_member_unban(self, guild: discord.Guild, user: discord.User) -> None:
        await self._dispatch_member_event(EventKind.MEMBER_UNBAN, guild, user)

    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel) -> None:
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.CHANNEL_CREATE,
                guild_id=channel.guild.id,
                channel_id=channel.id,
                data={"name": channel.name},
            )
        )

    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.CHANNEL_DELETE,
                guild_id=channel.guild.id,
                channel_id=channel.id,
                data={"name": channel.name},
            )
        )
        await self.autodelete.clear_autodelete(channel.guild.id, channel.id)

    async def on_guild_role_create(self, role: discord.Role) -> None:
        await self._dispatch_event(
            DiscordEvent(kind=EventKind.ROLE_CREATE, guild_id=role.guild.id, data={"name": role.name})
        )

    async def on_guild_role_delete(self, role: discord.Role) -> None:
        await self._dispatch_event(
            DiscordEvent(kind=EventKind.ROLE_DELETE, guild_id=role.guild.id, data={"name": role.name})
        )

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        await self._dispatch_event(
            DiscordEvent(
                kind=EventKind.VOICE_STATE_UPDATE,
                guild_id=member.guild.id,
                data={
                    "user_id": member.id,
                    "display_name": display_name(member),
                    "is_bot": member.bot,
                    "before_channel_id": before.channel.id if before.channel else None,
                    "after_channel_id": after.channel.id if after.channel else None,
                },
            )
        )


async def run_discord(settings: Settings, store: DocumentStore, logger: LoggerService) -> None:
    try:
        settings.require_discord()
    except RuntimeError as exc:
        logger.error("discord.disabled", error=str(exc))
        return
    bot = MuniBot(settings, store=store, logger=logger)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    except discord.LoginFailure as exc:
        logger.error("discord.login_failed", error=str(exc)[:300])


async def run_twitch(settings: Settings, store: DocumentStore, logger: LoggerService) -> None:
    try:
        bot = MuniTwitchBot(settings, store, logger)
    except RuntimeError as exc:
        logger.error("twitch.disabled", error=str(exc))
        return
    try:
        await bot.start()
    except Exception as exc:  # noqa: BLE001
        logger.error("twitch.failed", error=str(exc)[:300])
    finally:
        await bot.close()


async def run(settings: Settings) -> None:
    store = DocumentStore(settings.store_path, settings.store_namespace)
    await store.load()
    logger = LoggerService(store)
    autosave = asyncio.create_task(store.autosave_loop(), name="msgpack-autosave")
    try:
        await asyncio.gather(
            run_discord(settings, store, logger),
            run_twitch(settings, store, logger),
        )
    finally:
        autosave.cancel()
        await store.save()


def main() -> None:
    settings = Settings.load()
    asyncio.run(run(settings))
