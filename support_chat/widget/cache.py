import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class Chat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    session_id: str = Field(..., alias="sessionId")
    last_message: Optional[str] = Field(default=None, alias="lastMessage")
    last_message_time: Optional[int] = Field(default=None, alias="lastMessageTime")
    created_at: int = Field(..., alias="createdAt")


class ChatListCache:
    """Chat list and active selection kept in a local JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> tuple[list[Chat], Optional[str]]:
        if not self.path.exists():
            return [], None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            chats = [Chat.model_validate(item) for item in data.get("chats", [])]
        except (json.JSONDecodeError, ValueError, AttributeError, TypeError):
            logger.warning("ignoring unreadable chat cache %s", self.path)
            return [], None

        active_id = data.get("activeChatId")
        if not any(chat.id == active_id for chat in chats):
            active_id = chats[0].id if chats else None
        return chats, active_id

    def save(self, chats: list[Chat], active_chat_id: Optional[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "chats": [chat.model_dump(by_alias=True) for chat in chats],
            "activeChatId": active_chat_id,
        }
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
