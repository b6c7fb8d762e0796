"""Durable mapping from session id to its ordered message list.

The SQLAlchemy work is blocking, so every public coroutine hands its unit of
work to a worker thread. Each unit of work runs in its own ``session_scope``.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from support_chat.client.db.sql import session_scope
from support_chat.db.models import Conversation, Message, Sender
from support_chat.db.session import Base, SessionLocal
from support_chat.errors import NotFoundError, StoreError
from support_chat.model.conversation.records import StoredConversation, StoredMessage

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    async def get_or_create(self, session_id: str) -> StoredConversation:
        return await asyncio.to_thread(self._get_or_create, session_id)

    async def get_conversation(self, session_id: str) -> Optional[StoredConversation]:
        return await asyncio.to_thread(self._get_conversation, session_id)

    async def append_message(self, conversation_id: str, sender: Sender, text: str) -> StoredMessage:
        return await asyncio.to_thread(self._append_message, conversation_id, sender, text)

    async def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        return await asyncio.to_thread(self._list_messages, conversation_id)

    def create_tables(self) -> None:
        try:
            with session_scope(self._session_factory) as db:
                Base.metadata.create_all(bind=db.get_bind())
        except SQLAlchemyError as exc:
            logger.exception("failed to create tables")
            raise StoreError("failed to create tables") from exc

    def _get_or_create(self, session_id: str) -> StoredConversation:
        try:
            return self._insert_if_missing(session_id)
        except IntegrityError:
            # Another request created the row between our read and insert.
            logger.info("conversation %s created concurrently, re-reading", session_id)
            existing = self._get_conversation(session_id)
            if existing is None:
                raise StoreError(f"conversation {session_id} vanished after insert conflict")
            return existing
        except SQLAlchemyError as exc:
            logger.exception("get_or_create failed session=%s", session_id)
            raise StoreError("failed to load conversation") from exc

    def _insert_if_missing(self, session_id: str) -> StoredConversation:
        with session_scope(self._session_factory) as db:
            conversation = db.get(Conversation, session_id)
            if conversation is None:
                conversation = Conversation(id=session_id)
                db.add(conversation)
                db.flush()
                db.refresh(conversation)
                logger.info("created conversation %s", session_id)
            return StoredConversation.model_validate(conversation)

    def _get_conversation(self, session_id: str) -> Optional[StoredConversation]:
        try:
            with session_scope(self._session_factory) as db:
                conversation = db.get(Conversation, session_id)
                return None if conversation is None else StoredConversation.model_validate(conversation)
        except SQLAlchemyError as exc:
            logger.exception("get_conversation failed session=%s", session_id)
            raise StoreError("failed to load conversation") from exc

    def _append_message(self, conversation_id: str, sender: Sender, text: str) -> StoredMessage:
        try:
            with session_scope(self._session_factory) as db:
                if db.get(Conversation, conversation_id) is None:
                    raise StoreError(f"conversation {conversation_id} does not exist")
                message = Message(conversation_id=conversation_id, sender=Sender(sender), text=text)
                db.add(message)
                db.flush()
                db.refresh(message)
                return StoredMessage.model_validate(message)
        except SQLAlchemyError as exc:
            logger.exception("append_message failed session=%s sender=%s", conversation_id, sender)
            raise StoreError("failed to save message") from exc

    def _list_messages(self, conversation_id: str) -> list[StoredMessage]:
        try:
            with session_scope(self._session_factory) as db:
                if db.get(Conversation, conversation_id) is None:
                    raise NotFoundError(f"conversation {conversation_id} not found")
                rows = db.execute(
                    select(Message)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(Message.created_at, Message.id)
                ).scalars().all()
                return [StoredMessage.model_validate(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.exception("list_messages failed session=%s", conversation_id)
            raise StoreError("failed to load messages") from exc
