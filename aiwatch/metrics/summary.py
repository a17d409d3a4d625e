from aiwatch.config import Settings
from aiwatch.metrics.readers import (
    average_response_time,
    counter_value,
    error_rate,
    gauge_value,
    histogram_mean,
)
from aiwatch.metrics.series import AIWatchMetrics
from aiwatch.relay.policies import LLAMACPP_POLICY, TextClassifier, is_llamacpp
from aiwatch.schemas import LlamaCppMetrics, MetricsSummary

LLAMACPP_MODEL_TYPE = "llama.cpp"


def llamacpp_metrics(metrics: AIWatchMetrics, model: str) -> LlamaCppMetrics | None:
    """llama.cpp figures for ``model``, or None until a context size was reported."""
    registry = metrics.registry
    context_size = int(gauge_value(registry, metrics.llamacpp_context_size, model))
    if context_size == 0:
        return None

    return LlamaCppMetrics(
        context_size=context_size,
        prompt_eval_time_ms=histogram_mean(registry, metrics.llamacpp_prompt_eval, model) * 1000,
        tokens_per_second=gauge_value(registry, metrics.llamacpp_tokens_per_second, model),
        memory_per_token_bytes=gauge_value(registry, metrics.llamacpp_memory_per_token, model),
        threads_used=int(gauge_value(registry, metrics.llamacpp_threads_used, model)),
        batch_size=int(gauge_value(registry, metrics.llamacpp_batch_size, model)),
        model_type=LLAMACPP_MODEL_TYPE,
    )


def build_summary(
    metrics: AIWatchMetrics,
    settings: Settings,
    llamacpp_policy: TextClassifier = LLAMACPP_POLICY,
) -> MetricsSummary:
    registry = metrics.registry
    model = settings.model

    llama = None
    if is_llamacpp(model, settings.base_url, llamacpp_policy):
        llama = llamacpp_metrics(metrics, model)

    return MetricsSummary(
        total_requests=counter_value(registry, metrics.http_requests),
        average_response_time=average_response_time(
            metrics, from_histogram=settings.summary_average_from_histogram
        ),
        tokens_generated=counter_value(registry, metrics.chat_tokens, "output", model),
        tokens_processed=counter_value(registry, metrics.chat_tokens, "input", model),
        active_users=gauge_value(registry, metrics.active_requests),
        error_rate=error_rate(metrics),
        llamacpp_metrics=llama,
    )
