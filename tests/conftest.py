import pytest

from aiwatch.config import Settings
from aiwatch.metrics.registry import MetricRegistry
from aiwatch.metrics.series import AIWatchMetrics
from tests.helpers import LLAMA_MODEL, LLAMACPP_BASE_URL, FakeClock


@pytest.fixture
def metrics():
    return AIWatchMetrics(MetricRegistry())


@pytest.fixture
def settings():
    return Settings(model=LLAMA_MODEL, base_url=LLAMACPP_BASE_URL)


@pytest.fixture
def plain_settings():
    return Settings(model="ai/qwen3", base_url="http://localhost:8000/v1")


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mock_sse_stream():
    return (
        ": keep-alive\n\n"
        'data: {"choices":[{"index":0,"delta":{"role":"assistant"}}]}\n\n'
        'data: {"choices":[{"index":0,"delta":{"content":"Hello"}}]}\n\n'
        "data: not json\n\n"
        'data: {"choices":[{"index":0,"delta":{"content":", world"}}]}\n\n'
        'data: {"choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}\n\n'
        "data: [DONE]\n\n"
        'data: {"choices":[{"index":0,"delta":{"content":"ignored"}}]}\n\n'
    )


@pytest.fixture
def mock_docker_model_ls():
    return (
        "ai/llama3.2:1B-Q8_0\t1.24 B\tQ8_0\tllama\ta15c3117eeeb\t5 weeks ago\t1.22 GiB\n"
        "ai/smollm2\t361.82 M\tIQ2_XXS/Q4_K_M\tllama\t354bf30d0aa3\t2 months ago\t256.35 MiB\n"
        "broken line\twith\tfew fields\n"
        "\n"
    )
