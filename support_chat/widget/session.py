import logging
import time
import uuid
from typing import Callable, Optional

import support_chat.config.config as configs
from support_chat.widget.api import ChatApiClient, ChatApiError
from support_chat.widget.cache import Chat, ChatListCache

logger = logging.getLogger(__name__)

NEW_CHAT_TITLE = "New Chat"
TITLE_CHARS = 30


def _now() -> int:
    return int(time.time())


def make_title(text: str) -> str:
    return text[:TITLE_CHARS] + "..." if len(text) > TITLE_CHARS else text


class ChatSessionManager:
    """Client-side list of chats, the active selection and the send loop."""

    def __init__(self, api: ChatApiClient, cache: Optional[ChatListCache] = None):
        self.api = api
        self.cache = cache
        self.chats: list[Chat] = []
        self.active_chat_id: Optional[str] = None
        if cache is not None:
            self.chats, self.active_chat_id = cache.load()

    @property
    def active_chat(self) -> Optional[Chat]:
        return self._find(self.active_chat_id)

    def new_chat(self) -> Chat:
        untouched = next(
            (chat for chat in self.chats if chat.title == NEW_CHAT_TITLE and not chat.last_message),
            None,
        )
        if untouched is None:
            untouched = Chat(
                id=str(uuid.uuid4()),
                title=NEW_CHAT_TITLE,
                session_id=str(uuid.uuid4()),
                created_at=_now(),
            )
            self.chats.insert(0, untouched)
        self.active_chat_id = untouched.id
        self._persist()
        return untouched

    def select_chat(self, chat_id: str) -> Chat:
        chat = self._find(chat_id)
        if chat is None:
            raise KeyError(chat_id)
        self.active_chat_id = chat_id
        self._persist()
        return chat

    def delete_chat(self, chat_id: str) -> None:
        self.chats = [chat for chat in self.chats if chat.id != chat_id]
        if not self.chats:
            self.active_chat_id = None
            if self.cache is not None:
                self.cache.clear()
            return
        if self.active_chat_id == chat_id:
            self.active_chat_id = self.chats[0].id
        self._persist()

    def update_chat(self, chat_id: str, **changes) -> Chat:
        for index, chat in enumerate(self.chats):
            if chat.id == chat_id:
                self.chats[index] = chat.model_copy(update=changes)
                self._persist()
                return self.chats[index]
        raise KeyError(chat_id)

    async def send(self, text: str, on_chunk: Optional[Callable[[str], None]] = None) -> str:
        chat = self.active_chat or self.new_chat()
        message = text.strip()
        if not message:
            raise ValueError("Message cannot be empty.")
        if len(message) > configs.MAX_MESSAGE_CHARS:
            raise ValueError(f"Message is too long. Please keep it under {configs.MAX_MESSAGE_CHARS} characters.")

        reply = ""
        async for event in self.api.send_message(message, chat.session_id):
            if event.error:
                raise ChatApiError(event.error)
            if event.chunk:
                reply += event.chunk
                if on_chunk is not None:
                    on_chunk(reply)
            if event.done:
                changes = {"last_message": reply or message, "last_message_time": _now()}
                if event.session_id and event.session_id != chat.session_id:
                    changes["session_id"] = event.session_id
                if chat.title == NEW_CHAT_TITLE:
                    changes["title"] = make_title(message)
                self.update_chat(chat.id, **changes)
                return reply

        raise ChatApiError("Connection closed before the reply finished.")

    async def load_history(self):
        chat = self.active_chat
        if chat is None:
            return []
        history = await self.api.get_history(chat.session_id)
        if chat.title == NEW_CHAT_TITLE:
            first = next((m for m in history.messages if m.sender == "user"), None)
            if first is not None:
                self.update_chat(chat.id, title=make_title(first.text))
        return history.messages

    def _find(self, chat_id: Optional[str]) -> Optional[Chat]:
        return next((chat for chat in self.chats if chat.id == chat_id), None)

    def _persist(self) -> None:
        if self.cache is not None:
            self.cache.save(self.chats, self.active_chat_id)
