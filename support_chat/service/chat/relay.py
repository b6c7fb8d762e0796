"""Drives one exchange from raw user text to a persisted, delivered reply.

``prepare`` does everything that must succeed before the HTTP response is
committed to streaming (so its failures can still become a status code).
``stream`` talks to the model and yields the events the transport writes.
Both halves hold the session's lock, so exchanges on one session never
interleave their writes.
"""
import asyncio
import enum
import logging
import uuid
from collections import defaultdict
from contextlib import aclosing
from typing import AsyncIterator, Optional

import support_chat.config.config as configs
from support_chat.client.llm.chatgpt import CompletionClient
from support_chat.db.models import Sender
from support_chat.errors import StoreError, UpstreamError
from support_chat.model.chat.chat_event import ChatEvent, ChunkEvent, DoneEvent, ErrorEvent
from support_chat.model.conversation.records import StoredMessage
from support_chat.service.chat.prompt import build_messages
from support_chat.service.store.conversation_store import ConversationStore

logger = logging.getLogger(__name__)

STORE_FAILURE_MESSAGE = "Failed to save the reply. Please try again."


class ExchangeState(str, enum.Enum):
    IDLE = "idle"
    HISTORY_LOADED = "history_loaded"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionLocks:
    """Keyed mutex; a key is forgotten once nobody holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: defaultdict[str, int] = defaultdict(int)

    async def acquire(self, key: str) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget(key)
            raise

    def release(self, key: str) -> None:
        self._locks[key].release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] <= 0:
            del self._users[key]
            self._locks.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._locks


class Exchange:
    def __init__(self, session_id: str, locks: SessionLocks):
        self.session_id = session_id
        self.state = ExchangeState.IDLE
        self.user_message: Optional[StoredMessage] = None
        self.history: list[StoredMessage] = []
        self.truncated = False
        self._locks = locks
        self._held = False

    async def acquire(self) -> None:
        await self._locks.acquire(self.session_id)
        self._held = True

    def release(self) -> None:
        if self._held:
            self._held = False
            self._locks.release(self.session_id)

    async def close(self) -> None:
        self.release()


class StreamingRelay:
    def __init__(
        self,
        store: ConversationStore,
        completion_client: CompletionClient,
        locks: Optional[SessionLocks] = None,
        max_message_chars: int = configs.MAX_MESSAGE_CHARS,
    ):
        self.store = store
        self.completion_client = completion_client
        self.locks = locks or SessionLocks()
        self.max_message_chars = max_message_chars

    async def prepare(self, text: str, session_id: Optional[str] = None) -> Exchange:
        exchange = Exchange(session_id or str(uuid.uuid4()), self.locks)
        await exchange.acquire()
        try:
            await self.store.get_or_create(exchange.session_id)

            exchange.truncated = len(text) > self.max_message_chars
            user_text = text[: self.max_message_chars]
            # Must be durable before generation starts.
            exchange.user_message = await self.store.append_message(exchange.session_id, Sender.USER, user_text)
            exchange.history = await self.store.list_messages(exchange.session_id)
        except BaseException:
            exchange.state = ExchangeState.FAILED
            exchange.release()
            raise

        exchange.state = ExchangeState.HISTORY_LOADED
        logger.info(
            "exchange started session=%s chars=%s truncated=%s history=%s",
            exchange.session_id,
            len(user_text),
            exchange.truncated,
            len(exchange.history),
        )
        return exchange

    async def stream(self, exchange: Exchange) -> AsyncIterator[ChatEvent]:
        try:
            async with aclosing(self._run(exchange)) as events:
                async for event in events:
                    yield event
        finally:
            if exchange.state is ExchangeState.STREAMING:
                # Consumer went away mid-stream; the partial reply is dropped.
                exchange.state = ExchangeState.FAILED
                logger.warning("stream abandoned session=%s, reply not saved", exchange.session_id)
            exchange.release()

    async def _run(self, exchange: Exchange) -> AsyncIterator[ChatEvent]:
        if exchange.state is not ExchangeState.HISTORY_LOADED:
            raise RuntimeError(f"exchange {exchange.session_id} is {exchange.state.value}, expected history_loaded")

        user_message = exchange.user_message
        earlier = [message for message in exchange.history if message.id != user_message.id]
        prompt = build_messages(earlier, user_message.text)

        exchange.state = ExchangeState.STREAMING
        parts: list[str] = []
        try:
            async with aclosing(self.completion_client.stream_reply(prompt)) as fragments:
                async for fragment in fragments:
                    parts.append(fragment)
                    yield ChunkEvent(chunk=fragment)
        except UpstreamError as exc:
            exchange.state = ExchangeState.FAILED
            logger.warning("upstream failed session=%s: %s", exchange.session_id, exc)
            yield ErrorEvent(error=exc.user_message)
            return
        except Exception:
            exchange.state = ExchangeState.FAILED
            logger.exception("unexpected relay failure session=%s", exchange.session_id)
            yield ErrorEvent(error=UpstreamError.user_message)
            return

        reply = "".join(parts)
        try:
            await self.store.append_message(exchange.session_id, Sender.ASSISTANT, reply)
        except StoreError:
            exchange.state = ExchangeState.FAILED
            logger.exception("failed to save reply session=%s", exchange.session_id)
            yield ErrorEvent(error=STORE_FAILURE_MESSAGE)
            return

        exchange.state = ExchangeState.COMPLETED
        logger.info("exchange completed session=%s reply_chars=%s", exchange.session_id, len(reply))
        yield DoneEvent(session_id=exchange.session_id)
