from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import support_chat.config.config as configs


class MessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(
        ...,
        min_length=1,
        max_length=configs.MESSAGE_HARD_LIMIT,
        description="User's message to the support assistant",
    )
    session_id: Optional[str] = Field(
        default=None,
        alias="sessionId",
        description="Existing chat session; a new one is created when omitted or empty",
    )

    @field_validator("session_id")
    @classmethod
    def empty_as_missing(cls, value: Optional[str]) -> Optional[str]:
        return value or None
