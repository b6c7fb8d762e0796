import json
import logging
from typing import AsyncIterator, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

import support_chat.config.config as configs
from support_chat.model.chat.chat_response import HistoryResponse

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class ChatApiError(Exception):
    pass


class StreamEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chunk: str = ""
    done: bool = False
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    error: Optional[str] = None


def parse_event_line(line: str) -> Optional[StreamEvent]:
    if not line.startswith(DATA_PREFIX):
        return None
    try:
        return StreamEvent.model_validate(json.loads(line[len(DATA_PREFIX):]))
    except (json.JSONDecodeError, ValueError):
        logger.debug("skipping malformed event line: %r", line)
        return None


class ChatApiClient:
    def __init__(self, base_url: str = configs.API_BASE_URL, http_client: Optional[httpx.AsyncClient] = None):
        # No read timeout: replies arrive as a slow trickle of events.
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(10.0, read=None))

    async def send_message(self, message: str, session_id: Optional[str] = None) -> AsyncIterator[StreamEvent]:
        payload = {"message": message}
        if session_id:
            payload["sessionId"] = session_id

        async with self._client.stream("POST", "/chat/message", json=payload) as response:
            if response.status_code != 200:
                await response.aread()
                raise ChatApiError(_error_text(response, "Failed to send message"))
            async for line in response.aiter_lines():
                event = parse_event_line(line)
                if event is not None:
                    yield event

    async def get_history(self, session_id: str) -> HistoryResponse:
        response = await self._client.get(f"/chat/history/{session_id}")
        if response.status_code == 404:
            # The chat exists locally but its first message never reached the server.
            return HistoryResponse(session_id=session_id, messages=[])
        if response.status_code != 200:
            raise ChatApiError(_error_text(response, "Failed to fetch chat history"))
        return HistoryResponse.model_validate(response.json())

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_text(response: httpx.Response, default: str) -> str:
    try:
        return response.json().get("error") or default
    except (json.JSONDecodeError, AttributeError):
        return default
