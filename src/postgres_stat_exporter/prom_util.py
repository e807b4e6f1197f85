from collections.abc import Iterable

from prometheus_client.core import (
    CollectorRegistry,
    CounterMetricFamily,
    GaugeMetricFamily,
    Metric,
)
from prometheus_client.exposition import generate_latest
from prometheus_client.registry import Collector

from .collector import ConstMetric, Desc, ValueType


class CollectorHelper(Collector):
    metrics: dict[str, Metric]
    # Keyed by the descriptor's fq_name, which keeps the _total suffix that
    # CounterMetricFamily strips from its own name.
    _families: dict[str, tuple[Desc, ValueType, Metric]]

    def __init__(self) -> None:
        self.metrics = {}
        self._families = {}

        self.registry = CollectorRegistry(auto_describe=True)
        self.registry.register(self)

    def add_metric(self, metric: Metric) -> None:
        if metric.name in self.metrics:
            raise ValueError(f"{metric.name} metric was already added")

        self.metrics[metric.name] = metric

    def emit(self, metric: ConstMetric) -> None:
        desc = metric.desc
        if desc.fq_name in self._families:
            known_desc, known_type, family = self._families[desc.fq_name]
            if known_desc != desc or known_type != metric.value_type:
                raise ValueError(
                    f"{desc.fq_name} metric was already added with a different"
                    " description or type",
                )
        else:
            family = _new_family(desc, metric.value_type)
            self.add_metric(family)
            self._families[desc.fq_name] = (desc, metric.value_type, family)

        family.add_metric(metric.label_values, metric.value)

    def collect(self) -> Iterable[Metric]:
        yield from self.metrics.values()

    def generate(self) -> bytes:
        return generate_latest(self.registry)


def _new_family(desc: Desc, value_type: ValueType) -> Metric:
    if value_type is ValueType.COUNTER:
        return CounterMetricFamily(desc.fq_name, desc.help, labels=desc.label_names)
    return GaugeMetricFamily(desc.fq_name, desc.help, labels=desc.label_names)
