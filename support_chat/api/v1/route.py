from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from support_chat.api.deps import get_relay, get_store
from support_chat.model.chat.chat_event import to_sse
from support_chat.model.chat.chat_request import MessageRequest
from support_chat.model.chat.chat_response import HistoryMessage, HistoryResponse
from support_chat.service.chat.relay import Exchange, StreamingRelay
from support_chat.service.store.conversation_store import ConversationStore

api_router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _event_stream(relay: StreamingRelay, exchange: Exchange):
    async for event in relay.stream(exchange):
        yield to_sse(event)


@api_router.post("/message")
async def submit_message(req: MessageRequest, relay: StreamingRelay = Depends(get_relay)):
    # Store errors raised here still become a plain HTTP 500.
    exchange = await relay.prepare(req.message, req.session_id)
    return StreamingResponse(
        _event_stream(relay, exchange),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        # Frees the session lock even if the body is never iterated.
        background=BackgroundTask(exchange.close),
    )


@api_router.get("/history/{session_id}", response_model=HistoryResponse)
async def fetch_history(session_id: str, store: ConversationStore = Depends(get_store)):
    messages = await store.list_messages(session_id)
    return HistoryResponse(
        session_id=session_id,
        messages=[
            HistoryMessage(
                id=str(message.id),
                sender=message.sender.value,
                text=message.text,
                timestamp=message.timestamp,
            )
            for message in messages
        ],
    )
