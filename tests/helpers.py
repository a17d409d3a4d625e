import asyncio

from aiwatch.errors import UpstreamStreamError

LLAMA_MODEL = "ai/llama3.2:1B-Q8_0"
LLAMACPP_BASE_URL = "http://model-runner.docker.internal/engines/llama.cpp/v1"


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """Stands in for InferenceClient: yields canned deltas, optionally failing."""

    def __init__(
        self,
        deltas: list[str],
        clock: FakeClock | None = None,
        step: float = 0.0,
        fail_after: int | None = None,
        hang: bool = False,
    ):
        self.deltas = deltas
        self.clock = clock
        self.step = step
        self.fail_after = fail_after
        self.hang = hang
        self.calls: list[tuple[str, list[dict[str, str]]]] = []

    async def stream_chat(self, model, messages):
        self.calls.append((model, messages))
        for index, delta in enumerate(self.deltas):
            if self.fail_after is not None and index == self.fail_after:
                raise UpstreamStreamError("backend went away")
            if self.clock is not None:
                self.clock.advance(self.step)
            await asyncio.sleep(0)
            yield delta
        if self.fail_after is not None and self.fail_after >= len(self.deltas):
            raise UpstreamStreamError("backend went away")
        if self.hang:
            await asyncio.Event().wait()
