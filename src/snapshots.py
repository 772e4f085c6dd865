from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol


class InviteLike(Protocol):
    code: str
    uses: Optional[int]
    inviter: Any


def snapshot_from_invites(invites: Iterable[InviteLike]) -> Dict[str, int]:
    return {invite.code: int(invite.uses or 0) for invite in invites}


def find_consumed_invite(
    previous: Mapping[str, int], invites: Iterable[InviteLike]
) -> Optional[InviteLike]:
    """Return the first invite whose use count went up since ``previous``.

    Codes missing from ``previous`` count as 0 uses, so a brand-new invite
    that already has a use qualifies. When several invites moved at once the
    first in iteration order wins; the platform gives no way to tell them
    apart.
    """
    for invite in invites:
        uses = int(invite.uses or 0)
        if uses > previous.get(invite.code, 0):
            return invite
    return None


class InviteSnapshotCache:
    """Last-observed invite use counts per guild, held for the process lifetime."""

    def __init__(self):
        self._snapshots: Dict[int, Dict[str, int]] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, guild_id: int) -> Optional[Dict[str, int]]:
        snapshot = self._snapshots.get(guild_id)
        return dict(snapshot) if snapshot is not None else None

    def set(self, guild_id: int, snapshot: Mapping[str, int]):
        self._snapshots[guild_id] = dict(snapshot)

    def update_code(self, guild_id: int, code: str, uses: Optional[int]):
        snapshot = self._snapshots.get(guild_id)
        if snapshot is None:
            return
        snapshot[code] = int(uses or 0)

    def discard_code(self, guild_id: int, code: str):
        snapshot = self._snapshots.get(guild_id)
        if snapshot is not None:
            snapshot.pop(code, None)

    def lock(self, guild_id: int) -> asyncio.Lock:
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[guild_id] = lock
        return lock
