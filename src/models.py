from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from peewee import (
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
)

SETTINGS_ROW_ID = 1


def utcnow_naive() -> datetime:
    """Return current UTC time without tzinfo for SQLite storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class InviteModels:
    db: SqliteDatabase
    InviteCounter: type
    Attribution: type
    Settings: type


def _create_models(db: SqliteDatabase) -> InviteModels:
    class BaseModel(Model):
        created_at = DateTimeField(default=utcnow_naive)
        updated_at = DateTimeField(default=utcnow_naive)

        def save(self, *args, **kwargs):  # type: ignore[override]
            self.updated_at = utcnow_naive()
            return super().save(*args, **kwargs)

        class Meta:
            database = db

    class InviteCounter(BaseModel):
        inviter_id = IntegerField(primary_key=True)
        total = IntegerField(default=0)

    class Attribution(BaseModel):
        member_id = IntegerField(primary_key=True)
        inviter_id = IntegerField(index=True)

    class Settings(BaseModel):
        id = IntegerField(primary_key=True)
        invite_message_channel_id = IntegerField(null=True)

    return InviteModels(
        db=db,
        InviteCounter=InviteCounter,
        Attribution=Attribution,
        Settings=Settings,
    )


def init_db(path: str) -> InviteModels:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    db = SqliteDatabase(path, pragmas={"journal_mode": "wal"})
    models = _create_models(db)
    db.connect(reuse_if_open=True)
    db.create_tables([models.InviteCounter, models.Attribution, models.Settings])

    if models.Settings.select().where(models.Settings.id == SETTINGS_ROW_ID).count() == 0:
        models.Settings.create(id=SETTINGS_ROW_ID)

    return models
