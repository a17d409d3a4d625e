import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from aiwatch.errors import StreamTimeout, UpstreamStreamError

_EOF = object()


@dataclass
class _Failure:
    error: UpstreamStreamError


@dataclass
class StreamObservation:
    model: str
    started_at: float
    input_tokens: int = 0
    llamacpp: bool = False
    first_token_at: float | None = None
    # one per delta event, not per real token
    output_tokens: int = 0

    def record_delta(self, now: float) -> None:
        if self.first_token_at is None:
            self.first_token_at = now
        self.output_tokens += 1


CloseCallback = Callable[[StreamObservation, BaseException | None], None]


class DeltaPipeline:
    def __init__(
        self,
        source: AsyncIterator[str],
        observation: StreamObservation,
        on_close: CloseCallback,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.observation = observation
        self._source = source
        self._on_close = on_close
        self._clock = clock
        self._deadline_seconds = deadline_seconds
        self._deadline = None
        if deadline_seconds is not None:
            self._deadline = observation.started_at + deadline_seconds
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._producer: asyncio.Task | None = None
        self.closed = False

    def start(self) -> None:
        self._producer = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        try:
            async for delta in self._source:
                if not delta:
                    continue
                await self._queue.put((delta, self._clock()))
        except UpstreamStreamError as e:
            await self._queue.put(_Failure(e))
            return
        except Exception as e:
            wrapped = UpstreamStreamError(str(e) or type(e).__name__)
            wrapped.__cause__ = e
            await self._queue.put(_Failure(wrapped))
            return
        await self._queue.put(_EOF)

    async def next(self) -> str | None:
        """Next delta in upstream order; None once the stream has ended."""
        if self.closed:
            return None

        timeout = None
        if self._deadline is not None:
            timeout = self._deadline - self._clock()
            if timeout <= 0:
                raise StreamTimeout(f"response exceeded {self._deadline_seconds}s")

        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            raise StreamTimeout(f"response exceeded {self._deadline_seconds}s") from None

        if item is _EOF:
            return None
        if isinstance(item, _Failure):
            raise item.error
        # counted when handed over, stamped with its upstream arrival time
        delta, arrived_at = item
        self.observation.record_delta(arrived_at)
        return delta

    def close(self, error: BaseException | None = None) -> None:
        if self.closed:
            return
        self.closed = True
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
        self._on_close(self.observation, error)
