import enum
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple, Protocol

NAMESPACE = "postgres"


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


class ValueType(enum.Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class Desc:
    fq_name: str
    help: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConstMetric:
    desc: Desc
    value_type: ValueType
    value: float
    label_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.label_values) != len(self.desc.label_names):
            raise ValueError(
                f"{self.desc.fq_name} expects {len(self.desc.label_names)} label"
                f" values, got {len(self.label_values)}",
            )


class MetricSink(Protocol):
    def emit(self, metric: ConstMetric) -> None: ...


class Collector(Protocol):
    def describe(self) -> Iterable[Desc]: ...

    async def update(
        self,
        pool: Any,
        sink: MetricSink,
        *,
        timeout: float | None = None,
    ) -> None: ...


CollectorFactory = Callable[[], Collector]


class RegisteredCollector(NamedTuple):
    factory: CollectorFactory
    default_enabled: bool


class CollectorRegistry:
    """Maps collector keys to factories.

    Collectors add themselves through an explicit ``register(registry)`` call
    made by the exporter's startup routine.
    """

    _collectors: dict[str, RegisteredCollector]

    def __init__(self) -> None:
        self._collectors = {}

    def register(
        self,
        name: str,
        factory: CollectorFactory,
        *,
        default_enabled: bool = True,
    ) -> None:
        if name in self._collectors:
            raise ValueError(f"{name} collector was already registered")

        self._collectors[name] = RegisteredCollector(factory, default_enabled)

    def names(self) -> list[str]:
        return sorted(self._collectors)

    def default_enabled(self, name: str) -> bool:
        return self._get(name).default_enabled

    def build(
        self,
        enabled: Mapping[str, bool] | None = None,
    ) -> dict[str, Collector]:
        # Overrides for keys that were never registered are configuration errors
        overrides = enabled or {}
        for name in overrides:
            self._get(name)

        return {
            name: registered.factory()
            for name, registered in sorted(self._collectors.items())
            if overrides.get(name, registered.default_enabled)
        }

    def _get(self, name: str) -> RegisteredCollector:
        try:
            return self._collectors[name]
        except KeyError:
            raise ValueError(f"unknown collector {name!r}") from None
