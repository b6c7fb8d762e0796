from fastapi import Request

from support_chat.service.chat.relay import StreamingRelay
from support_chat.service.store.conversation_store import ConversationStore


def get_store(request: Request) -> ConversationStore:
    return request.app.state.store


def get_relay(request: Request) -> StreamingRelay:
    return request.app.state.relay
