from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ChunkEvent(BaseModel):
    chunk: str = Field(..., description="Next fragment of the assistant reply")
    done: Literal[False] = False


class DoneEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chunk: Literal[""] = ""
    done: Literal[True] = True
    session_id: str = Field(..., alias="sessionId", description="Session the exchange was stored under")


class ErrorEvent(BaseModel):
    error: str = Field(..., description="User-facing failure message")
    done: Literal[True] = True


ChatEvent = Union[ChunkEvent, DoneEvent, ErrorEvent]


def to_sse(event: ChatEvent) -> str:
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"
