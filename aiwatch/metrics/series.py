from aiwatch.metrics.registry import MetricKind, MetricRegistry

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
MODEL_LATENCY_BUCKETS = (0.1, 0.5, 1, 2, 5, 10, 20, 30, 60)
FIRST_TOKEN_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1, 2, 5)
PROMPT_EVAL_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10)


class AIWatchMetrics:
    def __init__(self, registry: MetricRegistry):
        self.registry = registry

        self.http_requests = registry.declare(
            "aiwatch_http_requests_total",
            MetricKind.COUNTER,
            ["method", "endpoint", "status"],
            help="Total number of HTTP requests",
        )
        self.http_request_duration = registry.declare(
            "aiwatch_http_request_duration_seconds",
            MetricKind.HISTOGRAM,
            ["method", "endpoint"],
            help="HTTP request duration in seconds",
            buckets=DEFAULT_BUCKETS,
        )
        self.chat_tokens = registry.declare(
            "aiwatch_chat_tokens_total",
            MetricKind.COUNTER,
            ["direction", "model"],
            help="Total number of tokens processed in chat",
        )
        self.model_latency = registry.declare(
            "aiwatch_model_latency_seconds",
            MetricKind.HISTOGRAM,
            ["model", "operation"],
            help="Model response time in seconds",
            buckets=MODEL_LATENCY_BUCKETS,
        )
        self.active_requests = registry.declare(
            "aiwatch_active_requests",
            MetricKind.GAUGE,
            help="Number of currently active requests",
        )
        self.errors = registry.declare(
            "aiwatch_errors_total",
            MetricKind.COUNTER,
            ["type"],
            help="Total number of errors",
        )
        self.first_token_latency = registry.declare(
            "aiwatch_first_token_latency_seconds",
            MetricKind.HISTOGRAM,
            ["model"],
            help="Time to first token in seconds",
            buckets=FIRST_TOKEN_BUCKETS,
        )

        self.llamacpp_context_size = registry.declare(
            "aiwatch_llamacpp_context_size",
            MetricKind.GAUGE,
            ["model"],
            help="Context window size in tokens for llama.cpp models",
        )
        self.llamacpp_prompt_eval = registry.declare(
            "aiwatch_llamacpp_prompt_eval_seconds",
            MetricKind.HISTOGRAM,
            ["model"],
            help="Time spent evaluating the prompt in seconds",
            buckets=PROMPT_EVAL_BUCKETS,
        )
        self.llamacpp_tokens_per_second = registry.declare(
            "aiwatch_llamacpp_tokens_per_second",
            MetricKind.GAUGE,
            ["model"],
            help="Tokens generated per second",
        )
        self.llamacpp_memory_per_token = registry.declare(
            "aiwatch_llamacpp_memory_per_token_bytes",
            MetricKind.GAUGE,
            ["model"],
            help="Memory usage per token in bytes",
        )
        self.llamacpp_threads_used = registry.declare(
            "aiwatch_llamacpp_threads_used",
            MetricKind.GAUGE,
            ["model"],
            help="Number of threads used for inference",
        )
        self.llamacpp_batch_size = registry.declare(
            "aiwatch_llamacpp_batch_size",
            MetricKind.GAUGE,
            ["model"],
            help="Batch size used for inference",
        )

    def record_llamacpp_snapshot(
        self,
        model: str,
        context_size: int,
        prompt_eval_time_ms: float,
        tokens_per_second: float,
        memory_per_token_bytes: float,
        threads_used: int,
        batch_size: int,
    ) -> None:
        labels = (model,)
        self.registry.set(self.llamacpp_context_size, labels, context_size)
        self.registry.observe(self.llamacpp_prompt_eval, labels, prompt_eval_time_ms / 1000.0)
        self.registry.set(self.llamacpp_tokens_per_second, labels, tokens_per_second)
        self.registry.set(self.llamacpp_memory_per_token, labels, memory_per_token_bytes)
        self.registry.set(self.llamacpp_threads_used, labels, threads_used)
        self.registry.set(self.llamacpp_batch_size, labels, batch_size)
