from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from peewee import fn

from .models import SETTINGS_ROW_ID, InviteModels, utcnow_naive

LOGGER = logging.getLogger(__name__)

MAX_SNOWFLAKE = 2**63 - 1
_SNOWFLAKE_PATTERN = re.compile(r"\d{1,20}", re.ASCII)


@dataclass
class AttributionChange:
    member_id: int
    inviter_id: int
    previous_inviter_id: Optional[int]
    inviter_total: int


def parse_snowflake(value: Any) -> Optional[int]:
    text = str(value).strip() if value is not None else ""
    if not _SNOWFLAKE_PATTERN.fullmatch(text):
        return None
    snowflake = int(text)
    # SQLite INTEGER is a signed 64-bit value.
    return snowflake if snowflake <= MAX_SNOWFLAKE else None


class AttributionStore:
    """Who invited whom, and how many members each inviter currently holds.

    Every mutation runs inside a single transaction so the attribution table
    and the counter table move together.
    """

    def __init__(self, models: InviteModels):
        self.models = models

    def count(self, member_id: int) -> int:
        row = self.models.InviteCounter.get_or_none(
            self.models.InviteCounter.inviter_id == member_id
        )
        if not row:
            return 0
        return max(int(row.total), 0)

    def inviter_of(self, member_id: int) -> Optional[int]:
        record = self.models.Attribution.get_or_none(
            self.models.Attribution.member_id == member_id
        )
        return int(record.inviter_id) if record else None

    def _increment(self, inviter_id: int):
        counter = self.models.InviteCounter
        counter.insert(inviter_id=inviter_id, total=1).on_conflict(
            conflict_target=[counter.inviter_id],
            update={
                counter.total: counter.total + 1,
                counter.updated_at: utcnow_naive(),
            },
        ).execute()

    def _decrement(self, inviter_id: int):
        # Clamp at zero; drift is tolerated rather than recomputed.
        counter = self.models.InviteCounter
        counter.update(
            total=fn.MAX(counter.total - 1, 0),
            updated_at=utcnow_naive(),
        ).where(counter.inviter_id == inviter_id).execute()

    def record_join(
        self, member_id: int, inviter_id: int
    ) -> Optional[AttributionChange]:
        """Attribute ``member_id`` to ``inviter_id``.

        Returns ``None`` when the member is already attributed to the same
        inviter, so duplicate join events leave the counters alone.
        """
        attribution = self.models.Attribution
        with self.models.db.atomic():
            previous = self.inviter_of(member_id)
            if previous == inviter_id:
                return None
            if previous is not None:
                self._decrement(previous)
            self._increment(inviter_id)
            attribution.insert(member_id=member_id, inviter_id=inviter_id).on_conflict(
                conflict_target=[attribution.member_id],
                update={
                    attribution.inviter_id: inviter_id,
                    attribution.updated_at: utcnow_naive(),
                },
            ).execute()
            total = self.count(inviter_id)
        return AttributionChange(
            member_id=member_id,
            inviter_id=inviter_id,
            previous_inviter_id=previous,
            inviter_total=total,
        )

    def record_leave(self, member_id: int) -> Optional[int]:
        attribution = self.models.Attribution
        with self.models.db.atomic():
            inviter_id = self.inviter_of(member_id)
            if inviter_id is None:
                return None
            self._decrement(inviter_id)
            attribution.delete().where(attribution.member_id == member_id).execute()
        return inviter_id

    def is_empty(self) -> bool:
        return (
            self.models.InviteCounter.select().count() == 0
            and self.models.Attribution.select().count() == 0
        )


class SettingsStore:
    def __init__(self, models: InviteModels):
        self.models = models

    def _settings(self):
        return self.models.Settings.get_by_id(SETTINGS_ROW_ID)

    def get_invite_channel_id(self) -> Optional[int]:
        value = self._settings().invite_message_channel_id
        return int(value) if value is not None else None

    def set_invite_channel_id(self, channel_id: int):
        settings = self._settings()
        settings.invite_message_channel_id = channel_id
        settings.save()


def load_json_document(path: str | Path) -> dict[str, Any]:
    """Read one of the legacy JSON documents; missing or blank files are ``{}``."""
    doc_path = Path(path)
    if not doc_path.exists():
        return {}
    text = doc_path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {doc_path}")
    return data


def import_legacy_documents(
    models: InviteModels,
    config_doc: dict[str, Any] | None = None,
    invite_doc: dict[str, Any] | None = None,
) -> tuple[int, int]:
    """Seed the database from the old ``config.json``/``inviteData.json`` layout.

    Invite data is imported only into an empty store, and the channel only
    when none is configured yet. Returns (counters imported, attributions
    imported).
    """
    settings = SettingsStore(models)
    channel_id = parse_snowflake((config_doc or {}).get("inviteMessageChannelId"))
    if channel_id is not None and settings.get_invite_channel_id() is None:
        settings.set_invite_channel_id(channel_id)
        LOGGER.info("Imported legacy invite channel %s", channel_id)

    invite_doc = invite_doc or {}
    if not invite_doc or not AttributionStore(models).is_empty():
        return 0, 0

    counters = 0
    attributions = 0
    seen_inviters: set[int] = set()
    seen_members: set[int] = set()
    with models.db.atomic():
        for raw_inviter, raw_total in (invite_doc.get("invites") or {}).items():
            inviter_id = parse_snowflake(raw_inviter)
            try:
                total = min(max(int(raw_total), 0), MAX_SNOWFLAKE)
            except (TypeError, ValueError):
                total = None
            if inviter_id is None or total is None:
                LOGGER.warning(
                    "Skipping legacy invite count %r -> %r", raw_inviter, raw_total
                )
                continue
            if inviter_id in seen_inviters:
                LOGGER.warning("Skipping duplicate legacy invite count for %s", raw_inviter)
                continue
            seen_inviters.add(inviter_id)
            models.InviteCounter.create(inviter_id=inviter_id, total=total)
            counters += 1
        for raw_member, raw_inviter in (invite_doc.get("invitedBy") or {}).items():
            member_id = parse_snowflake(raw_member)
            inviter_id = parse_snowflake(raw_inviter)
            if member_id is None or inviter_id is None:
                LOGGER.warning(
                    "Skipping legacy attribution %r -> %r", raw_member, raw_inviter
                )
                continue
            if member_id in seen_members:
                LOGGER.warning("Skipping duplicate legacy attribution for %s", raw_member)
                continue
            seen_members.add(member_id)
            models.Attribution.create(member_id=member_id, inviter_id=inviter_id)
            attributions += 1
    LOGGER.info(
        "Imported %s legacy invite counters and %s attributions",
        counters,
        attributions,
    )
    return counters, attributions
