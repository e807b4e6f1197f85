import asyncio
import logging
import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import aiohttp.web
import asyncpg
from prometheus_client.core import GaugeMetricFamily

from . import stat_database
from .collector import NAMESPACE, Collector, CollectorRegistry, build_fq_name
from .config import Settings
from .prom_util import CollectorHelper

# Setup sharable aiohttp data
pg_pool = aiohttp.web.AppKey("pg_pool", asyncpg.Pool)
enabled_collectors = aiohttp.web.AppKey("enabled_collectors", dict[str, Collector])
settings = aiohttp.web.AppKey("settings", Settings)

logger = logging.getLogger(__name__)


def build_registry() -> CollectorRegistry:
    registry = CollectorRegistry()
    stat_database.register(registry)
    return registry


async def scrape_collector(
    name: str,
    collector: Collector,
    pool: Any,
    c: CollectorHelper,
    timeout: float,
) -> tuple[float, bool]:
    start = time.monotonic()
    try:
        await collector.update(pool, c, timeout=timeout)
    except Exception:
        # Samples emitted before the failure stay in the helper
        logger.exception("[%s] collector failed", name)
        success = False
    else:
        success = True

    duration = time.monotonic() - start
    logger.debug("[%s] collector finished in %.3fs", name, duration)
    return duration, success


async def metrics(request: aiohttp.web.Request) -> aiohttp.web.Response:
    c = CollectorHelper()

    label_keys = ("collector",)

    duration_metric = GaugeMetricFamily(
        build_fq_name(NAMESPACE, "exporter", "scrape_collector_duration_seconds"),
        "Duration of a collector scrape",
        labels=label_keys,
    )
    c.add_metric(duration_metric)
    success_metric = GaugeMetricFamily(
        build_fq_name(NAMESPACE, "exporter", "scrape_collector_success"),
        "Whether a collector succeeded",
        labels=label_keys,
    )
    c.add_metric(success_metric)

    collectors = request.app[enabled_collectors]
    timeout = request.app[settings].scrape_timeout

    # Each collector acquires its own pool connection
    results = await asyncio.gather(
        *(
            scrape_collector(name, collector, request.app[pg_pool], c, timeout)
            for name, collector in collectors.items()
        ),
    )

    for name, (duration, success) in zip(collectors, results, strict=True):
        duration_metric.add_metric((name,), duration)
        success_metric.add_metric((name,), 1 if success else 0)

    metrics_result = c.generate().decode()
    return aiohttp.web.Response(text=metrics_result)


async def init_pg_pool(app: aiohttp.web.Application) -> AsyncIterator[None]:
    s = app[settings]
    app[pg_pool] = await asyncpg.create_pool(
        dsn=s.data_source_name,
        min_size=s.pool_min_size,
        max_size=s.pool_max_size,
    )
    logger.info("Database connection pool created")

    yield

    await app[pg_pool].close()
    logger.info("Database connection pool closed")


def create_app(
    s: Settings,
    registry: CollectorRegistry,
) -> aiohttp.web.Application:
    app = aiohttp.web.Application()
    app[settings] = s
    app[enabled_collectors] = registry.build(s.collectors)
    logger.info("Enabled collectors: %s", ", ".join(app[enabled_collectors]))

    app.cleanup_ctx.append(init_pg_pool)

    app.add_routes(
        [
            aiohttp.web.get("/metrics", metrics),
        ],
    )

    return app


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)8s - %(name)s:%(funcName)s - %(message)s",
    )

    logging.Formatter.formatTime = (  # type: ignore[method-assign]
        lambda self, record, datefmt: datetime.fromtimestamp(record.created, UTC)  # type: ignore[assignment,misc] # noqa: ARG005
        .astimezone()
        .isoformat()
    )


def main() -> None:
    registry = build_registry()
    s = Settings.from_env(registry.names())
    configure_logging(s.log_level)

    aiohttp.web.run_app(
        create_app(s, registry),
        host=s.listen_host,
        port=s.listen_port,
    )


if __name__ == "__main__":
    main()
