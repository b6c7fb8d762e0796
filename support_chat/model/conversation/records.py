from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator

from support_chat.db.models import Sender


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values for CURRENT_TIMESTAMP, which is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StoredConversation(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class StoredMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    conversation_id: str
    sender: Sender
    text: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def timestamp(self) -> int:
        return int(self.created_at.timestamp())
