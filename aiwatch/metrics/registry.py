import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from prometheus_client.metrics import MetricWrapperBase
from prometheus_client.samples import Sample


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class SeriesHandle:
    name: str
    kind: MetricKind
    label_names: tuple[str, ...]
    collector: MetricWrapperBase

    @property
    def base_name(self) -> str:
        # prometheus_client drops the _total suffix from counter names
        if self.kind is MetricKind.COUNTER and self.name.endswith("_total"):
            return self.name[: -len("_total")]
        return self.name


class MetricRegistry:
    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self._series: dict[str, SeriesHandle] = {}
        self._lock = threading.Lock()

    def declare(
        self,
        name: str,
        kind: MetricKind,
        label_names: Sequence[str] = (),
        help: str = "",
        buckets: Iterable[float] | None = None,
    ) -> SeriesHandle:
        label_names = tuple(label_names)
        with self._lock:
            existing = self._series.get(name)
            if existing is not None:
                if existing.kind is not kind or existing.label_names != label_names:
                    raise ValueError(
                        f"metric {name} already declared as {existing.kind.value}"
                        f" with labels {existing.label_names}"
                    )
                return existing

            documentation = help or name
            if kind is MetricKind.COUNTER:
                collector = Counter(name, documentation, label_names, registry=self.registry)
            elif kind is MetricKind.GAUGE:
                collector = Gauge(name, documentation, label_names, registry=self.registry)
            elif buckets is not None:
                collector = Histogram(
                    name, documentation, label_names, buckets=list(buckets), registry=self.registry
                )
            else:
                collector = Histogram(name, documentation, label_names, registry=self.registry)

            handle = SeriesHandle(name, kind, label_names, collector)
            self._series[name] = handle
            return handle

    def _child(self, handle: SeriesHandle, label_values: Sequence[str]):
        if not handle.label_names:
            return handle.collector
        return handle.collector.labels(*[str(v) for v in label_values])

    def increment(
        self, handle: SeriesHandle, label_values: Sequence[str] = (), delta: float = 1.0
    ) -> None:
        if handle.kind is MetricKind.HISTOGRAM:
            raise TypeError(f"cannot increment histogram {handle.name}")
        self._child(handle, label_values).inc(delta)

    def set(self, handle: SeriesHandle, label_values: Sequence[str], value: float) -> None:
        if handle.kind is not MetricKind.GAUGE:
            raise TypeError(f"cannot set {handle.kind.value} {handle.name}")
        self._child(handle, label_values).set(value)

    def observe(self, handle: SeriesHandle, label_values: Sequence[str], value: float) -> None:
        if handle.kind is not MetricKind.HISTOGRAM:
            raise TypeError(f"cannot observe {handle.kind.value} {handle.name}")
        self._child(handle, label_values).observe(value)

    def samples(
        self,
        handle: SeriesHandle,
        suffix: str = "",
        label_values: Sequence[str] | None = None,
    ) -> list[Sample]:
        """Current samples named ``<base><suffix>``, optionally for one label tuple.

        Reading never creates a series: a tuple that was never written simply
        has no samples.
        """
        wanted_name = handle.base_name + suffix
        wanted_labels = None
        if label_values is not None:
            wanted_labels = dict(zip(handle.label_names, [str(v) for v in label_values]))

        found = []
        for family in handle.collector.collect():
            for sample in family.samples:
                if sample.name != wanted_name:
                    continue
                if wanted_labels is not None:
                    own = {k: v for k, v in sample.labels.items() if k in handle.label_names}
                    if own != wanted_labels:
                        continue
                found.append(sample)
        return found

    def exposition(self) -> bytes:
        return generate_latest(self.registry)
