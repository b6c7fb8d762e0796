import json

import httpx
import pytest

from support_chat.widget.api import ChatApiClient, ChatApiError
from support_chat.widget.cache import ChatListCache
from support_chat.widget.session import NEW_CHAT_TITLE, ChatSessionManager, make_title


def _reply_handler(*events, status_code=200):
    body = "".join(f"data: {json.dumps(event)}\n\n" for event in events).encode()
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(status_code, content=body, headers={"content-type": "text/event-stream"})

    handler.sent = sent
    return handler


def _manager(handler, cache=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return ChatSessionManager(ChatApiClient(http_client=http_client), cache)


def test_make_title():
    assert make_title("short") == "short"
    assert make_title("a" * 31) == "a" * 30 + "..."


def test_new_chat_reuses_untouched_chat():
    manager = _manager(_reply_handler())

    first = manager.new_chat()
    second = manager.new_chat()

    assert first.id == second.id
    assert len(manager.chats) == 1
    assert manager.active_chat.title == NEW_CHAT_TITLE
    assert first.id != first.session_id


def test_delete_chat_selects_first_remaining(tmp_path):
    cache = ChatListCache(tmp_path / "chats.json")
    manager = _manager(_reply_handler(), cache)
    older = manager.new_chat()
    manager.update_chat(older.id, title="Older", last_message="hi")
    newer = manager.new_chat()

    manager.delete_chat(newer.id)

    assert manager.active_chat_id == older.id
    manager.delete_chat(older.id)
    assert manager.active_chat_id is None
    assert not cache.path.exists()


@pytest.mark.asyncio
async def test_send_streams_and_updates_chat(tmp_path):
    handler = _reply_handler(
        {"chunk": "Hel", "done": False},
        {"chunk": "lo!", "done": False},
        {"chunk": "", "done": True, "sessionId": "server-session"},
    )
    cache = ChatListCache(tmp_path / "chats.json")
    manager = _manager(handler, cache)
    chat = manager.new_chat()
    partials = []

    reply = await manager.send("  where is my order placed last tuesday?  ", on_chunk=partials.append)

    assert reply == "Hello!"
    assert partials == ["Hel", "Hello!"]
    assert handler.sent == [{"message": "where is my order placed last tuesday?", "sessionId": chat.session_id}]

    updated = manager.active_chat
    assert updated.title == "where is my order placed last ..."
    assert updated.last_message == "Hello!"
    assert updated.last_message_time
    assert updated.session_id == "server-session"

    reloaded, active_id = cache.load()
    assert active_id == chat.id
    assert reloaded[0].session_id == "server-session"


@pytest.mark.asyncio
async def test_send_error_event_raises_and_keeps_chat():
    manager = _manager(_reply_handler({"error": "Rate limit exceeded.", "done": True}))
    chat = manager.new_chat()

    with pytest.raises(ChatApiError, match="Rate limit exceeded"):
        await manager.send("hello")

    assert manager.active_chat.title == NEW_CHAT_TITLE
    assert manager.active_chat.last_message is None
    assert manager.active_chat.session_id == chat.session_id


@pytest.mark.asyncio
async def test_send_rejects_bad_input():
    manager = _manager(_reply_handler())

    with pytest.raises(ValueError):
        await manager.send("   ")
    with pytest.raises(ValueError):
        await manager.send("x" * 5001)


@pytest.mark.asyncio
async def test_send_without_terminal_event_fails():
    manager = _manager(_reply_handler({"chunk": "partial", "done": False}))

    with pytest.raises(ChatApiError):
        await manager.send("hello")


@pytest.mark.asyncio
async def test_load_history_titles_new_chat():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "sessionId": "s",
                "messages": [
                    {"id": "1", "sender": "user", "text": "Do you ship to Canada?", "timestamp": 1},
                    {"id": "2", "sender": "ai", "text": "Yes.", "timestamp": 2},
                ],
            },
        )

    manager = _manager(handler)
    manager.new_chat()

    messages = await manager.load_history()

    assert len(messages) == 2
    assert manager.active_chat.title == "Do you ship to Canada?"


def test_cache_recovers_from_corrupt_file(tmp_path):
    path = tmp_path / "chats.json"
    path.write_text("{not json", encoding="utf-8")

    assert ChatListCache(path).load() == ([], None)


def test_select_chat_and_reload_from_cache(tmp_path):
    cache = ChatListCache(tmp_path / "chats.json")
    manager = _manager(_reply_handler(), cache)
    first = manager.new_chat()
    manager.update_chat(first.id, title="Returns", last_message="30 days")
    second = manager.new_chat()

    manager.select_chat(first.id)

    restored = _manager(_reply_handler(), cache)
    assert [chat.id for chat in restored.chats] == [second.id, first.id]
    assert restored.active_chat_id == first.id
    assert restored.active_chat.title == "Returns"
    with pytest.raises(KeyError):
        restored.select_chat("missing")


@pytest.mark.parametrize("content", ["[]", "5", '{"chats": 5}'])
def test_cache_ignores_unexpected_json_shape(tmp_path, content):
    cache = ChatListCache(tmp_path / "chats.json")
    cache.path.write_text(content, encoding="utf-8")

    manager = _manager(_reply_handler(), cache)

    assert manager.chats == []
    assert manager.active_chat_id is None
