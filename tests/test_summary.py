import pytest

from aiwatch.metrics.readers import (
    PLACEHOLDER_AVERAGE_RESPONSE_TIME,
    average_response_time,
    error_rate,
)
from aiwatch.metrics.summary import build_summary, llamacpp_metrics
from tests.helpers import LLAMA_MODEL


def record_snapshot(metrics, model=LLAMA_MODEL):
    metrics.record_llamacpp_snapshot(
        model,
        context_size=2048,
        prompt_eval_time_ms=250.0,
        tokens_per_second=42.5,
        memory_per_token_bytes=1024.0,
        threads_used=8,
        batch_size=512,
    )


class TestReaders:
    def test_error_rate_without_requests(self, metrics):
        metrics.registry.increment(metrics.errors, ("network",))
        assert error_rate(metrics) == 0.0

    def test_error_rate(self, metrics):
        registry = metrics.registry
        for status in ("200", "200", "200", "500"):
            registry.increment(metrics.http_requests, ("POST", "/chat", status))
        registry.increment(metrics.errors, ("network",))
        registry.increment(metrics.errors, ("timeout",))

        assert error_rate(metrics) == 0.5

    def test_average_response_time_is_placeholder(self, metrics):
        metrics.registry.observe(metrics.http_request_duration, ("POST", "/chat"), 3.0)
        assert average_response_time(metrics) == PLACEHOLDER_AVERAGE_RESPONSE_TIME

    def test_average_response_time_from_histogram(self, metrics):
        registry = metrics.registry
        registry.observe(metrics.http_request_duration, ("POST", "/chat"), 3.0)
        registry.observe(metrics.http_request_duration, ("GET", "/models"), 1.0)

        assert average_response_time(metrics, from_histogram=True) == pytest.approx(2.0)


class TestBuildSummary:
    def test_fresh_process(self, metrics, settings):
        summary = build_summary(metrics, settings)

        assert summary.total_requests == 0
        assert summary.tokens_generated == 0
        assert summary.tokens_processed == 0
        assert summary.active_users == 0
        assert summary.error_rate == 0
        assert summary.average_response_time == PLACEHOLDER_AVERAGE_RESPONSE_TIME
        assert summary.llamacpp_metrics is None

    def test_serializes_camel_case_with_null_llamacpp(self, metrics, settings):
        payload = build_summary(metrics, settings).model_dump(by_alias=True)

        assert set(payload) == {
            "totalRequests",
            "averageResponseTime",
            "tokensGenerated",
            "tokensProcessed",
            "activeUsers",
            "errorRate",
            "llamaCppMetrics",
        }
        assert payload["llamaCppMetrics"] is None

    def test_token_totals_use_default_model(self, metrics, settings):
        registry = metrics.registry
        registry.increment(metrics.chat_tokens, ("input", LLAMA_MODEL), 12)
        registry.increment(metrics.chat_tokens, ("output", LLAMA_MODEL), 30)
        registry.increment(metrics.chat_tokens, ("output", "ai/qwen3"), 99)

        summary = build_summary(metrics, settings)

        assert summary.tokens_processed == 12
        assert summary.tokens_generated == 30

    def test_llamacpp_block_after_snapshot(self, metrics, settings):
        record_snapshot(metrics)

        llama = build_summary(metrics, settings).llamacpp_metrics

        assert llama is not None
        assert llama.context_size == 2048
        assert llama.prompt_eval_time_ms == pytest.approx(250.0)
        assert llama.tokens_per_second == 42.5
        assert llama.memory_per_token_bytes == 1024.0
        assert llama.threads_used == 8
        assert llama.batch_size == 512
        assert llama.model_type == "llama.cpp"

    def test_llamacpp_block_hidden_for_other_backends(self, metrics, plain_settings):
        record_snapshot(metrics, model=plain_settings.model)

        assert build_summary(metrics, plain_settings).llamacpp_metrics is None

    def test_llamacpp_metrics_require_context_size(self, metrics):
        metrics.registry.set(metrics.llamacpp_tokens_per_second, (LLAMA_MODEL,), 10.0)

        assert llamacpp_metrics(metrics, LLAMA_MODEL) is None
