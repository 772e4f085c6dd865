from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from .snapshots import (
    InviteLike,
    InviteSnapshotCache,
    find_consumed_invite,
    snapshot_from_invites,
)
from .store import AttributionStore, SettingsStore

LOGGER = logging.getLogger(__name__)


class SupportsGuild(Protocol):
    id: int
    me: Any
    system_channel: Any | None
    text_channels: Iterable[Any]

    def get_channel(self, channel_id: int) -> Any | None: ...

    async def invites(self) -> list[InviteLike]: ...


class SupportsMember(Protocol):
    id: int
    guild: SupportsGuild


@dataclass
class JoinAttribution:
    member_id: int
    inviter_id: int
    previous_inviter_id: Optional[int]
    invite_code: str
    inviter_total: int
    channel_id: Optional[int] = None


def inviter_label(inviter: Any) -> str:
    return str(getattr(inviter, "name", None) or inviter.id)


def join_message(member_id: int, inviter: Any, total: int) -> str:
    return (
        f"👋 <@{member_id}> has been invited by **{inviter_label(inviter)}** "
        f"and now has **{total} invites**!"
    )


def resolve_notification_channel(
    guild: SupportsGuild, configured_channel_id: Optional[int]
) -> Any | None:
    if configured_channel_id is not None:
        channel = guild.get_channel(configured_channel_id)
        if channel is not None:
            return channel
        LOGGER.warning(
            "Configured invite channel %s no longer exists in guild %s",
            configured_channel_id,
            guild.id,
        )
    if guild.system_channel is not None:
        return guild.system_channel
    for channel in guild.text_channels:
        try:
            if channel.permissions_for(guild.me).send_messages:
                return channel
        except Exception as exc:
            LOGGER.debug("Skipping channel %s: %s", getattr(channel, "id", "?"), exc)
    return None


class ReconciliationEngine:
    def __init__(
        self,
        store: AttributionStore,
        settings: SettingsStore,
        snapshots: InviteSnapshotCache,
    ):
        self.store = store
        self.settings = settings
        self.snapshots = snapshots

    async def refresh_snapshot(self, guild: SupportsGuild) -> bool:
        async with self.snapshots.lock(guild.id):
            try:
                invites = await guild.invites()
            except Exception as exc:
                LOGGER.warning("Failed to cache invites for guild %s: %s", guild.id, exc)
                return False
            self.snapshots.set(guild.id, snapshot_from_invites(invites))
        LOGGER.info("Cached %s invites for guild %s", len(invites), guild.id)
        return True

    async def handle_join(self, member: SupportsMember) -> Optional[JoinAttribution]:
        guild = member.guild
        async with self.snapshots.lock(guild.id):
            try:
                invites = list(await guild.invites())
            except Exception as exc:
                LOGGER.warning(
                    "Failed fetching invites for join of %s in guild %s: %s",
                    member.id,
                    guild.id,
                    exc,
                )
                return None

            previous = self.snapshots.get(guild.id)
            if previous is None:
                LOGGER.info(
                    "No invite baseline for guild %s; treating all invites as unused",
                    guild.id,
                )
                previous = {}
            self.snapshots.set(guild.id, snapshot_from_invites(invites))

            used = find_consumed_invite(previous, invites)
            if used is None or used.inviter is None:
                LOGGER.debug(
                    "No attributable invite for member %s in guild %s",
                    member.id,
                    guild.id,
                )
                return None

            change = self.store.record_join(member.id, used.inviter.id)
        if change is None:
            LOGGER.debug(
                "Member %s already attributed to %s; counters unchanged",
                member.id,
                used.inviter.id,
            )
            return None

        LOGGER.info(
            "Member %s joined via %s from %s (previous inviter %s); total now %s",
            member.id,
            used.code,
            change.inviter_id,
            change.previous_inviter_id,
            change.inviter_total,
        )
        result = JoinAttribution(
            member_id=member.id,
            inviter_id=change.inviter_id,
            previous_inviter_id=change.previous_inviter_id,
            invite_code=used.code,
            inviter_total=change.inviter_total,
        )
        result.channel_id = await self._announce(
            guild, join_message(member.id, used.inviter, change.inviter_total)
        )
        return result

    async def _announce(self, guild: SupportsGuild, message: str) -> Optional[int]:
        try:
            channel = resolve_notification_channel(
                guild, self.settings.get_invite_channel_id()
            )
        except Exception as exc:
            LOGGER.warning("Failed resolving invite channel in guild %s: %s", guild.id, exc)
            return None
        if channel is None:
            LOGGER.warning("No channel available for invite messages in guild %s", guild.id)
            return None
        try:
            await channel.send(message)
        except Exception as exc:
            LOGGER.warning(
                "Failed sending invite message to channel %s in guild %s: %s",
                channel.id,
                guild.id,
                exc,
            )
            return None
        return channel.id

    async def handle_leave(self, member: SupportsMember) -> Optional[int]:
        async with self.snapshots.lock(member.guild.id):
            inviter_id = self.store.record_leave(member.id)
        if inviter_id is None:
            return None
        LOGGER.info(
            "Member %s left guild %s; decremented inviter %s to %s",
            member.id,
            member.guild.id,
            inviter_id,
            self.store.count(inviter_id),
        )
        return inviter_id
