import pytest

from postgres_stat_exporter.collector import (
    CollectorRegistry,
    ConstMetric,
    Desc,
    ValueType,
    build_fq_name,
)


class Dummy:
    def describe(self) -> list[Desc]:
        return []

    async def update(
        self,
        pool: object,
        sink: object,
        *,
        timeout: float | None = None,
    ) -> None:
        pass


@pytest.mark.parametrize(
    ("parts", "expected"),
    [
        (
            ("postgres", "stat_database", "numbackends"),
            "postgres_stat_database_numbackends",
        ),
        (("postgres", "", "up"), "postgres_up"),
        (("", "", "up"), "up"),
    ],
)
def test_build_fq_name(parts: tuple[str, str, str], expected: str) -> None:
    assert build_fq_name(*parts) == expected


def test_const_metric_rejects_wrong_label_count() -> None:
    desc = Desc("postgres_x", "x", ("datname",))

    with pytest.raises(ValueError, match="expects 1 label values, got 2"):
        ConstMetric(desc, ValueType.GAUGE, 1.0, ("a", "b"))


class TestCollectorRegistry:
    def test_duplicate_name_raises(self) -> None:
        registry = CollectorRegistry()
        registry.register("dummy", Dummy)

        with pytest.raises(ValueError, match="already registered"):
            registry.register("dummy", Dummy)

    def test_build_uses_defaults(self) -> None:
        registry = CollectorRegistry()
        registry.register("on", Dummy)
        registry.register("off", Dummy, default_enabled=False)

        assert list(registry.build()) == ["on"]

    def test_build_applies_overrides(self) -> None:
        registry = CollectorRegistry()
        registry.register("on", Dummy)
        registry.register("off", Dummy, default_enabled=False)

        assert list(registry.build({"on": False, "off": True})) == ["off"]

    def test_build_creates_fresh_instances(self) -> None:
        registry = CollectorRegistry()
        registry.register("dummy", Dummy)

        assert registry.build()["dummy"] is not registry.build()["dummy"]

    def test_unknown_override_raises(self) -> None:
        registry = CollectorRegistry()
        registry.register("dummy", Dummy)

        with pytest.raises(ValueError, match="unknown collector 'missing'"):
            registry.build({"missing": True})

    def test_names_are_sorted(self) -> None:
        registry = CollectorRegistry()
        registry.register("b", Dummy)
        registry.register("a", Dummy)

        assert registry.names() == ["a", "b"]
