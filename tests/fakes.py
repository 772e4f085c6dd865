import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Dict, List, Optional

import discord.abc


@dataclass
class FakeUser:
    id: int
    name: str = ""


@dataclass
class FakeInvite:
    code: str
    uses: Optional[int]
    inviter: Optional[FakeUser]
    guild: Optional["FakeGuild"] = None


@dataclass
class FakeChannel(discord.abc.Messageable):
    id: int
    can_send: bool = True
    fail_send: bool = False
    sent: List[str] = field(default_factory=list)
    sent_embeds: List[object] = field(default_factory=list)

    def permissions_for(self, member):
        return SimpleNamespace(send_messages=self.can_send)

    async def send(self, content=None, embed=None, **kwargs):
        if self.fail_send:
            raise RuntimeError("simulated send failure")
        if content is not None:
            self.sent.append(content)
        if embed is not None:
            self.sent_embeds.append(embed)


@dataclass
class FakeCategory:
    id: int


@dataclass
class FakeGuild:
    id: int
    invite_list: List[FakeInvite] = field(default_factory=list)
    channels: Dict[int, object] = field(default_factory=dict)
    system_channel: Optional[FakeChannel] = None
    me: object = field(default_factory=lambda: SimpleNamespace(id=0))
    name: str = "TestGuild"
    fail_invites: bool = False
    invite_fetches: int = 0

    @property
    def text_channels(self) -> List[FakeChannel]:
        return [c for c in self.channels.values() if isinstance(c, FakeChannel)]

    def get_channel(self, channel_id: int):
        return self.channels.get(channel_id)

    async def invites(self) -> List[FakeInvite]:
        self.invite_fetches += 1
        await asyncio.sleep(0)
        if self.fail_invites:
            raise RuntimeError("simulated invite fetch failure")
        return list(self.invite_list)

    def add_invite(self, code: str, inviter: Optional[FakeUser], uses: int = 0):
        invite = FakeInvite(code=code, uses=uses, inviter=inviter, guild=self)
        self.invite_list.append(invite)
        return invite

    def use_invite(self, code: str):
        for invite in self.invite_list:
            if invite.code == code:
                invite.uses = (invite.uses or 0) + 1
                return invite
        raise KeyError(code)


@dataclass
class FakeMember:
    id: int
    guild: FakeGuild
    display_name: str = ""
