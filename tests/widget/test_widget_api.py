import json

import httpx
import pytest

from support_chat.widget.api import ChatApiClient, ChatApiError, StreamEvent, parse_event_line


def _sse(*events):
    return "".join(f"data: {json.dumps(event)}\n\n" for event in events).encode()


def _api(handler):
    transport = httpx.MockTransport(handler)
    return ChatApiClient(http_client=httpx.AsyncClient(transport=transport, base_url="http://test"))


def test_parse_event_line():
    assert parse_event_line('data: {"chunk": "hi", "done": false}') == StreamEvent(chunk="hi")
    assert parse_event_line('data: {"chunk": "", "done": true, "sessionId": "s"}').session_id == "s"
    assert parse_event_line("data: not json") is None
    assert parse_event_line(": keep-alive") is None
    assert parse_event_line("") is None


@pytest.mark.asyncio
async def test_send_message_yields_events():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        body = _sse({"chunk": "Hel", "done": False}, {"chunk": "lo!", "done": False}) + b"data: {broken\n\n"
        body += _sse({"chunk": "", "done": True, "sessionId": "s-1"})
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    api = _api(handler)
    events = [event async for event in api.send_message("hello", "s-1")]
    await api.aclose()

    assert seen == {"path": "/chat/message", "body": {"message": "hello", "sessionId": "s-1"}}
    assert [e.chunk for e in events] == ["Hel", "lo!", ""]
    assert events[-1].done is True
    assert events[-1].session_id == "s-1"


@pytest.mark.asyncio
async def test_send_message_raises_on_http_error():
    def handler(request):
        return httpx.Response(400, json={"error": "Invalid input", "details": []})

    api = _api(handler)
    with pytest.raises(ChatApiError, match="Invalid input"):
        [event async for event in api.send_message("")]


@pytest.mark.asyncio
async def test_get_history_missing_session_is_empty():
    def handler(request):
        return httpx.Response(404, json={"error": "Conversation not found"})

    history = await _api(handler).get_history("unknown")

    assert history.session_id == "unknown"
    assert history.messages == []


@pytest.mark.asyncio
async def test_get_history_parses_messages():
    def handler(request):
        assert request.url.path == "/chat/history/s-1"
        return httpx.Response(
            200,
            json={
                "sessionId": "s-1",
                "messages": [{"id": "1", "sender": "user", "text": "hi", "timestamp": 1700000000}],
            },
        )

    history = await _api(handler).get_history("s-1")

    assert history.messages[0].text == "hi"
    assert history.messages[0].timestamp == 1700000000


@pytest.mark.asyncio
async def test_get_history_server_error():
    def handler(request):
        return httpx.Response(500, json={"error": "Internal server error"})

    with pytest.raises(ChatApiError, match="Internal server error"):
        await _api(handler).get_history("s-1")
