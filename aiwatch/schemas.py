from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from aiwatch.errors import InvalidRequest


class Message(BaseModel):
    role: str = ""
    content: str = ""


class ChatRequest(BaseModel):
    messages: list[Message] = Field(default_factory=list)
    message: str = ""
    format: str | None = None
    model: str | None = None

    @model_validator(mode="after")
    def _require_content(self) -> "ChatRequest":
        if not self.messages and not self.message.strip():
            raise ValueError("request carries neither messages nor message")
        return self


class MetricLog(BaseModel):
    message_id: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    response_time_ms: float = 0.0
    time_to_first_token_ms: float = 0.0


class ErrorLog(BaseModel):
    error_type: str = ""
    status_code: int = 0
    input_length: int = 0
    timestamp: str = ""


class LlamaCppMetrics(BaseModel):
    context_size: int = 0
    prompt_eval_time_ms: float = 0.0
    tokens_per_second: float = 0.0
    memory_per_token_bytes: float = 0.0
    threads_used: int = 0
    batch_size: int = 0
    model_type: str = ""


class MetricsSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_requests: float = Field(0.0, alias="totalRequests")
    average_response_time: float = Field(0.0, alias="averageResponseTime")
    tokens_generated: float = Field(0.0, alias="tokensGenerated")
    tokens_processed: float = Field(0.0, alias="tokensProcessed")
    active_users: float = Field(0.0, alias="activeUsers")
    error_rate: float = Field(0.0, alias="errorRate")
    llamacpp_metrics: LlamaCppMetrics | None = Field(None, alias="llamaCppMetrics")


Body = TypeVar("Body", bound=BaseModel)


def parse_body(raw: bytes, model: type[Body]) -> Body:
    try:
        return model.model_validate_json(raw or b"")
    except ValidationError as e:
        raise InvalidRequest() from e
