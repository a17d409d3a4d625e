from aiwatch.metrics.registry import MetricRegistry, SeriesHandle
from aiwatch.metrics.series import AIWatchMetrics

# Reported in place of a measured mean; see average_response_time.
PLACEHOLDER_AVERAGE_RESPONSE_TIME = 0.5


def counter_value(registry: MetricRegistry, handle: SeriesHandle, *label_values: str) -> float:
    """Value of one counter series, or the sum of every series without labels."""
    samples = registry.samples(handle, "_total", label_values or None)
    return sum(sample.value for sample in samples)


def gauge_value(registry: MetricRegistry, handle: SeriesHandle, *label_values: str) -> float:
    if handle.label_names and not label_values:
        return 0.0
    samples = registry.samples(handle, "", label_values or None)
    return samples[0].value if samples else 0.0


def histogram_mean(registry: MetricRegistry, handle: SeriesHandle, *label_values: str) -> float:
    """sum / count for one series, or across all series without labels."""
    wanted = label_values or None
    total = sum(s.value for s in registry.samples(handle, "_sum", wanted))
    count = sum(s.value for s in registry.samples(handle, "_count", wanted))
    if count <= 0:
        return 0.0
    return total / count


def error_rate(metrics: AIWatchMetrics) -> float:
    total_requests = counter_value(metrics.registry, metrics.http_requests)
    if total_requests == 0:
        return 0.0
    return counter_value(metrics.registry, metrics.errors) / total_requests


def average_response_time(metrics: AIWatchMetrics, from_histogram: bool = False) -> float:
    """Average HTTP response time in seconds.

    By default this is the fixed placeholder the dashboard has always shown,
    not a measurement. ``from_histogram`` switches to the real mean of the
    request duration histogram.
    """
    if not from_histogram:
        return PLACEHOLDER_AVERAGE_RESPONSE_TIME
    return histogram_mean(metrics.registry, metrics.http_request_duration)
