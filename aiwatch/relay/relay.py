import asyncio
import time
from functools import partial
from typing import AsyncIterator, Callable, Protocol

import structlog
from opentelemetry.trace import Span, Status, StatusCode

from aiwatch.errors import UpstreamStreamError
from aiwatch.metrics.series import AIWatchMetrics
from aiwatch.relay.pipeline import DeltaPipeline, StreamObservation
from aiwatch.relay.policies import (
    LLAMACPP_POLICY,
    MARKDOWN_INSTRUCTION,
    MARKDOWN_POLICY,
    TextClassifier,
    estimate_input_tokens,
    is_llamacpp,
    wants_markdown,
)
from aiwatch.schemas import ChatRequest
from aiwatch.tracing import get_tracer

logger = structlog.get_logger()

FORWARDED_ROLES = ("system", "user", "assistant")
UPSTREAM_ERROR_TYPE = "upstream_stream"


class ChatBackend(Protocol):
    def stream_chat(self, model: str, messages: list[dict[str, str]]) -> AsyncIterator[str]: ...


class RelayStream:
    """Response body for one relayed chat: UTF-8 deltas in upstream order."""

    def __init__(self, pipeline: DeltaPipeline, first: str | None):
        self.pipeline = pipeline
        self._first = first

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._forward()

    async def _forward(self) -> AsyncIterator[bytes]:
        error = None
        try:
            delta = self._first
            while delta is not None:
                yield delta.encode("utf-8")
                delta = await self.pipeline.next()
        except UpstreamStreamError as e:
            # bytes are already out; end the body with what was sent
            error = e
        except (asyncio.CancelledError, GeneratorExit):
            logger.info(
                "Client disconnected mid-stream",
                model=self.pipeline.observation.model,
                output_tokens=self.pipeline.observation.output_tokens,
            )
            raise
        finally:
            self.pipeline.close(error)

    def close(self) -> None:
        self.pipeline.close()


class ChatRelay:
    def __init__(
        self,
        metrics: AIWatchMetrics,
        client: ChatBackend,
        default_model: str,
        base_url: str = "",
        markdown_policy: TextClassifier = MARKDOWN_POLICY,
        llamacpp_policy: TextClassifier = LLAMACPP_POLICY,
        write_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.metrics = metrics
        self.client = client
        self.default_model = default_model
        self.base_url = base_url
        self.markdown_policy = markdown_policy
        self.llamacpp_policy = llamacpp_policy
        self.write_timeout = write_timeout
        self._clock = clock
        self._tracer = get_tracer()

    def resolve_model(self, request: ChatRequest) -> str:
        if request.model:
            logger.info("Using user-selected model", model=request.model)
            return request.model
        return self.default_model

    def build_messages(self, request: ChatRequest) -> list[dict[str, str]]:
        messages = []
        for message in request.messages:
            if message.role not in FORWARDED_ROLES:
                logger.debug("Dropping message with unsupported role", role=message.role)
                continue
            messages.append({"role": message.role, "content": message.content})

        if wants_markdown(request, self.markdown_policy):
            messages.insert(0, {"role": "system", "content": MARKDOWN_INSTRUCTION})

        if request.message:
            messages.append({"role": "user", "content": request.message})
        return messages

    async def open(self, request: ChatRequest) -> RelayStream:
        """Start relaying ``request`` and wait for the first upstream item.

        Raises UpstreamStreamError when the backend fails before producing
        any content, so the caller can still answer with an error status.
        """
        model = self.resolve_model(request)
        messages = self.build_messages(request)

        input_tokens = estimate_input_tokens(request)
        self.metrics.registry.increment(self.metrics.chat_tokens, ("input", model), input_tokens)

        observation = StreamObservation(
            model=model,
            started_at=self._clock(),
            input_tokens=input_tokens,
            llamacpp=is_llamacpp(model, self.base_url, self.llamacpp_policy),
        )
        span = self._tracer.start_span(
            "chat.completion",
            attributes={"llm.model": model, "llm.input_tokens": input_tokens},
        )
        pipeline = DeltaPipeline(
            self.client.stream_chat(model, messages),
            observation,
            partial(self._finalize, span=span),
            deadline_seconds=self.write_timeout,
            clock=self._clock,
        )
        pipeline.start()

        try:
            first = await pipeline.next()
        except UpstreamStreamError as e:
            pipeline.close(e)
            raise
        except asyncio.CancelledError:
            pipeline.close()
            raise
        return RelayStream(pipeline, first)

    def _finalize(
        self, observation: StreamObservation, error: BaseException | None, span: Span
    ) -> None:
        registry = self.metrics.registry
        model = observation.model
        now = self._clock()

        registry.increment(self.metrics.chat_tokens, ("output", model), observation.output_tokens)
        registry.observe(
            self.metrics.model_latency, (model, "inference"), now - observation.started_at
        )

        if observation.first_token_at is not None:
            ttft = observation.first_token_at - observation.started_at
            logger.info("Time to first token", seconds=ttft, model=model)
            registry.observe(self.metrics.first_token_latency, (model,), ttft)

            if observation.llamacpp:
                registry.observe(self.metrics.llamacpp_prompt_eval, (model,), ttft)
                generation_time = now - observation.first_token_at
                if generation_time > 0 and observation.output_tokens > 0:
                    registry.set(
                        self.metrics.llamacpp_tokens_per_second,
                        (model,),
                        observation.output_tokens / generation_time,
                    )

        span.set_attribute("llm.output_tokens", observation.output_tokens)
        if error is not None:
            registry.increment(self.metrics.errors, (UPSTREAM_ERROR_TYPE,))
            logger.error(
                "Error in stream",
                model=model,
                error=str(error),
                output_tokens=observation.output_tokens,
            )
            span.record_exception(error)
            span.set_status(Status(StatusCode.ERROR, str(error)))
        span.end()
