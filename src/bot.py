from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional

import discord
import discord.abc
from discord import app_commands
from discord.ext import commands

from .config import BotConfig, load_config
from .models import init_db
from .reconcile import ReconciliationEngine
from .snapshots import InviteSnapshotCache
from .store import (
    AttributionStore,
    SettingsStore,
    import_legacy_documents,
    load_json_document,
    parse_snowflake,
)

# Default to INFO until the configured level is applied at startup
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
LOGGER = logging.getLogger(__name__)

CHECK_INVITES_CUSTOM_ID = "check_invites"
PANEL_TITLE = "📨 Invite Tracker"
PANEL_DESCRIPTION = "Click the button below to check how many people you've invited!"

_MENTION_PATTERN = re.compile(r"^<(?:@!?|#)(\d+)>$")


def parse_mention_or_id(raw: Optional[str]) -> Optional[int]:
    text = (raw or "").strip()
    match = _MENTION_PATTERN.match(text)
    if match:
        text = match.group(1)
    return parse_snowflake(text)


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def invite_count_message(store: AttributionStore, user_id: int, own: bool) -> str:
    count = store.count(user_id)
    if own:
        return f"You have invited **{count}** {_plural(count, 'user')}!"
    return f"<@{user_id}> has **{count}** {_plural(count, 'invite')}."


def is_text_channel(channel: Any) -> bool:
    return isinstance(channel, discord.abc.Messageable)


def build_panel_embed() -> discord.Embed:
    return discord.Embed(
        title=PANEL_TITLE,
        description=PANEL_DESCRIPTION,
        color=discord.Color.purple(),
    )


async def respond_with_own_count(
    store: AttributionStore, interaction: discord.Interaction
):
    await interaction.response.send_message(
        invite_count_message(store, interaction.user.id, own=True), ephemeral=True
    )


class InvitePanelView(discord.ui.View):
    def __init__(self, store: AttributionStore):
        super().__init__(timeout=None)
        self.store = store

    @discord.ui.button(
        label="Check Invites",
        style=discord.ButtonStyle.primary,
        custom_id=CHECK_INVITES_CUSTOM_ID,
    )
    async def check_invites(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ):
        await respond_with_own_count(self.store, interaction)


class InviteBot(commands.Bot):
    def __init__(self, config: BotConfig):
        intents = discord.Intents.default()
        intents.members = True
        intents.guilds = True
        intents.invites = True
        intents.message_content = True
        super().__init__(command_prefix=config.command_prefix, intents=intents)
        self.config = config
        self.models = init_db(config.database_path)
        self.attribution = AttributionStore(self.models)
        self.settings = SettingsStore(self.models)
        self.snapshots = InviteSnapshotCache()
        self.engine = ReconciliationEngine(
            self.attribution, self.settings, self.snapshots
        )
        self.import_legacy_data()

    def import_legacy_data(self):
        config_path = self.config.legacy_config_path
        invite_data_path = self.config.legacy_invite_data_path
        if not config_path and not invite_data_path:
            return
        config_doc = load_json_document(config_path) if config_path else {}
        invite_doc = load_json_document(invite_data_path) if invite_data_path else {}
        import_legacy_documents(self.models, config_doc, invite_doc)

    def is_tracked_guild(self, guild: Any) -> bool:
        return guild is not None and guild.id == self.config.guild_id

    async def close(self) -> None:
        await super().close()
        self.models.db.close()

    async def setup_hook(self) -> None:
        # Panels posted before a restart keep answering.
        self.add_view(InvitePanelView(self.attribution))

    async def _sync_commands_for_guild(self, guild: discord.abc.Snowflake):
        try:
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            LOGGER.info("Synced application commands for guild %s", guild.id)
        except Exception as exc:
            LOGGER.warning(
                "Failed to sync commands for guild %s: %s",
                guild.id,
                exc,
            )

    async def on_ready(self):
        LOGGER.info("Bot ready as %s", self.user)
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            try:
                guild = await self.fetch_guild(self.config.guild_id)
            except Exception as exc:
                LOGGER.error(
                    "Configured guild %s is unavailable: %s", self.config.guild_id, exc
                )
                return
        await self.engine.refresh_snapshot(guild)
        await self._sync_commands_for_guild(guild)

    async def on_member_join(self, member: discord.Member):
        if not self.is_tracked_guild(member.guild):
            return
        try:
            await self.engine.handle_join(member)
        except Exception as exc:
            LOGGER.exception("Error handling join of %s: %s", member.id, exc)

    async def on_member_remove(self, member: discord.Member):
        if not self.is_tracked_guild(member.guild):
            return
        try:
            await self.engine.handle_leave(member)
        except Exception as exc:
            LOGGER.exception("Error handling leave of %s: %s", member.id, exc)

    async def on_invite_create(self, invite: discord.Invite):
        if not self.is_tracked_guild(invite.guild):
            return
        self.snapshots.update_code(invite.guild.id, invite.code, invite.uses)
        LOGGER.debug("Invite %s created in guild %s", invite.code, invite.guild.id)

    async def on_invite_delete(self, invite: discord.Invite):
        if not self.is_tracked_guild(invite.guild):
            return
        self.snapshots.discard_code(invite.guild.id, invite.code)
        LOGGER.debug("Invite %s deleted in guild %s", invite.code, invite.guild.id)

    async def on_command_error(self, ctx: commands.Context, error: Exception):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.CheckFailure):
            await ctx.reply("You do not have permission to use this command.")
            return
        LOGGER.exception("Prefix command error: %s", error)
        try:
            await ctx.reply(f"Command failed: {error}")
        except Exception as exc:
            LOGGER.warning("Failed sending error response for command: %s", exc)


# Command registrations
async def setup_commands(bot: InviteBot):
    tree = bot.tree

    async def require_tracked_guild(interaction: discord.Interaction) -> bool:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message(
                "Commands must be used inside a guild.", ephemeral=True
            )
            return False
        if not bot.is_tracked_guild(guild):
            await interaction.response.send_message(
                "Invites are not tracked in this guild.", ephemeral=True
            )
            return False
        return True

    @bot.listen("on_interaction")
    async def log_app_command(interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.application_command:
            return
        cmd = interaction.command
        guild = interaction.guild
        LOGGER.info(
            "Slash command %s by %s in %s",
            cmd.qualified_name if cmd else "unknown",
            interaction.user.id,
            guild.id if guild else "unknown-guild",
        )

    @tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError
    ):
        if isinstance(error, app_commands.CheckFailure):
            if not interaction.response.is_done():
                await interaction.response.send_message(
                    "You do not have permission to use this command.",
                    ephemeral=True,
                )
            return
        LOGGER.exception("App command error: %s", error)
        message = f"Command failed: {error}"
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except Exception as exc:
            LOGGER.warning("Failed sending error response for command: %s", exc)

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(name="invite-panel", description="Sends the invite checker panel")
    async def invite_panel(interaction: discord.Interaction):
        if not await require_tracked_guild(interaction):
            return
        await interaction.response.send_message(
            embed=build_panel_embed(), view=InvitePanelView(bot.attribution)
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(
        name="set-invite-channel",
        description="Set the channel where invite join messages are sent",
    )
    @app_commands.describe(channel="Text channel for invite messages")
    async def set_invite_channel(
        interaction: discord.Interaction, channel: discord.abc.GuildChannel
    ):
        if not await require_tracked_guild(interaction):
            return
        resolved = interaction.guild.get_channel(channel.id) or channel
        if not is_text_channel(resolved):
            await interaction.response.send_message(
                "Please select a text channel!", ephemeral=True
            )
            return
        bot.settings.set_invite_channel_id(resolved.id)
        LOGGER.info(
            "Invite channel updated guild=%s actor=%s channel=%s",
            interaction.guild.id,
            interaction.user.id,
            resolved.id,
        )
        await interaction.response.send_message(
            f"Invite join messages will now be sent in <#{resolved.id}>.",
            ephemeral=True,
        )

    @app_commands.default_permissions(manage_guild=True)
    @tree.command(
        name="checkinvites",
        description="Check how many invites a user has (by user ID)",
    )
    @app_commands.describe(userid="The user ID to check invites for")
    async def checkinvites(interaction: discord.Interaction, userid: str):
        if not await require_tracked_guild(interaction):
            return
        user_id = parse_mention_or_id(userid)
        if user_id is None:
            await interaction.response.send_message(
                f"`{userid}` is not a valid user ID.", ephemeral=True
            )
            return
        await interaction.response.send_message(
            invite_count_message(bot.attribution, user_id, own=False),
            ephemeral=True,
        )

    @bot.command(name="invite-panel")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_guild=True)
    async def invite_panel_prefix(ctx: commands.Context):
        if not bot.is_tracked_guild(ctx.guild):
            return
        await ctx.send(embed=build_panel_embed(), view=InvitePanelView(bot.attribution))

    @bot.command(name="set-invite-channel")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_guild=True)
    async def set_invite_channel_prefix(
        ctx: commands.Context, channel_ref: Optional[str] = None
    ):
        if not bot.is_tracked_guild(ctx.guild):
            return
        if not channel_ref:
            await ctx.reply("Please specify a channel (mention or ID).")
            return
        channel_id = parse_mention_or_id(channel_ref)
        channel = ctx.guild.get_channel(channel_id) if channel_id is not None else None
        if channel is None or not is_text_channel(channel):
            await ctx.reply("Please provide a valid text channel.")
            return
        bot.settings.set_invite_channel_id(channel.id)
        LOGGER.info(
            "Invite channel updated guild=%s actor=%s channel=%s",
            ctx.guild.id,
            ctx.author.id,
            channel.id,
        )
        await ctx.reply(f"Invite join messages will now be sent in <#{channel.id}>.")


async def main():
    bot_config = load_config()
    logging.getLogger().setLevel(bot_config.log_level)
    LOGGER.setLevel(bot_config.log_level)
    bot = InviteBot(bot_config)
    await setup_commands(bot)
    await bot.start(bot_config.token)


if __name__ == "__main__":
    asyncio.run(main())
