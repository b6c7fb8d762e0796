from typing import List

from pydantic import BaseModel, ConfigDict, Field


class HistoryMessage(BaseModel):
    id: str
    sender: str = Field(..., description="user | ai")
    text: str
    timestamp: int = Field(..., description="Creation time in whole epoch seconds")


class HistoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    messages: List[HistoryMessage]


class HealthResponse(BaseModel):
    status: str
    timestamp: str
