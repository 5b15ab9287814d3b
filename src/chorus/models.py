"""Data models and schemas for the Chorus gateway."""

from typing import Dict, List, Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Inbound fan-out request as posted by the client."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    base_url: str = Field("", alias="baseUrl")
    api_key: str = Field("", alias="apiKey")
    organization: Optional[str] = None
    request_body: Any = Field(..., alias="requestBody")
    concurrent_count: Optional[int] = Field(1, alias="concurrentCount")
    headers: Optional[Dict[str, str]] = None
    user_message_id: Optional[str] = Field(None, alias="userMessageId")
    request_timeout: Optional[float] = Field(30, alias="requestTimeout")

    def normalized(self, default_timeout: float = 30) -> "ChatRequest":
        """Return a copy with concurrency and timeout defaults applied."""
        update: Dict[str, Any] = {}
        if not self.concurrent_count or self.concurrent_count <= 0:
            update["concurrent_count"] = 1
        if not self.request_timeout or self.request_timeout <= 0:
            update["request_timeout"] = default_timeout
        return self.model_copy(update=update) if update else self


class RequestOutcome(BaseModel):
    """Result of one upstream call."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    content: Optional[str] = None
    error: Optional[str] = None
    request_index: int = Field(0, alias="requestIndex")
    usage: Optional[Any] = None
    is_pending: bool = Field(False, alias="isPending")


class AggregateResponse(BaseModel):
    """Caller-facing envelope for both the single and the fan-out path."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    content: Optional[str] = None
    error: Optional[str] = None
    usage: Optional[Any] = None
    request_index: int = Field(0, alias="requestIndex")
    concurrent_results: Optional[List[RequestOutcome]] = Field(
        None, alias="concurrentResults"
    )
    success_count: Optional[int] = Field(None, alias="successCount")
    total_count: Optional[int] = Field(None, alias="totalCount")
    user_message_id: Optional[str] = Field(None, alias="userMessageId")
    is_final_result: Optional[bool] = Field(None, alias="isFinalResult")

    @classmethod
    def from_outcome(
        cls, outcome: RequestOutcome, user_message_id: Optional[str] = None
    ) -> "AggregateResponse":
        return cls(
            success=outcome.success,
            content=outcome.content,
            error=outcome.error,
            usage=outcome.usage,
            request_index=outcome.request_index,
            user_message_id=user_message_id,
        )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using wire names, with unset fields left out."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Message(BaseModel):
    """Chat message model."""
    role: Optional[str] = None
    content: Optional[str] = None
    name: Optional[str] = None


class Choice(BaseModel):
    """Choice model for chat completions."""
    index: int = 0
    message: Optional[Message] = None
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """Upstream chat completion payload; usage is forwarded untouched."""
    id: Optional[str] = None
    object: Optional[str] = None
    created: Optional[int] = None
    model: Optional[str] = None
    choices: List[Choice] = []
    usage: Optional[Any] = None
