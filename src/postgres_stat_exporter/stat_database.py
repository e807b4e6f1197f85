import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .collector import (
    NAMESPACE,
    CollectorRegistry,
    ConstMetric,
    Desc,
    MetricSink,
    ValueType,
    build_fq_name,
)

SUBSYSTEM = "stat_database"
LABEL_NAMES = ("datname",)


class ScanError(ValueError):
    """A pg_stat_database record does not have the expected shape."""


@dataclass(frozen=True)
class Column:
    name: str
    metric_name: str
    value_type: ValueType
    help: str


# Column order here is the order of the SELECT list after datname.
# The postgres docs define numbackends as the only column reflecting current
# state, every other column accumulates since the last statistics reset.
COLUMNS: tuple[Column, ...] = (
    Column(
        "numbackends",
        "numbackends",
        ValueType.GAUGE,
        "Number of backends currently connected to this database. This is the only"
        " column in this view that returns a value reflecting current state; all"
        " other columns return the accumulated values since the last reset.",
    ),
    Column(
        "tup_returned",
        "tup_returned_total",
        ValueType.COUNTER,
        "Number of rows returned by queries in this database",
    ),
    Column(
        "tup_fetched",
        "tup_fetched_total",
        ValueType.COUNTER,
        "Number of rows fetched by queries in this database",
    ),
    Column(
        "tup_inserted",
        "tup_inserted_total",
        ValueType.COUNTER,
        "Number of rows inserted by queries in this database",
    ),
    Column(
        "tup_updated",
        "tup_updated_total",
        ValueType.COUNTER,
        "Number of rows updated by queries in this database",
    ),
    Column(
        "tup_deleted",
        "tup_deleted_total",
        ValueType.COUNTER,
        "Number of rows deleted by queries in this database",
    ),
    Column(
        "xact_commit",
        "xact_commit_total",
        ValueType.COUNTER,
        "Number of transactions in this database that have been committed",
    ),
    Column(
        "xact_rollback",
        "xact_rollback_total",
        ValueType.COUNTER,
        "Number of transactions in this database that have been rolled back",
    ),
    Column(
        "blks_read",
        "blks_read_total",
        ValueType.COUNTER,
        "Number of disk blocks read in this database",
    ),
    Column(
        "blks_hit",
        "blks_hit_total",
        ValueType.COUNTER,
        "Number of times disk blocks were found already in the buffer cache, so that"
        " a read was not necessary (this only includes hits in the PostgreSQL buffer"
        " cache, not the operating system's file system cache)",
    ),
    Column(
        "conflicts",
        "conflicts_total",
        ValueType.COUNTER,
        "Number of queries canceled due to conflicts with recovery in this database."
        " (Conflicts occur only on standby servers; see pg_stat_database_conflicts"
        " for details.)",
    ),
    Column(
        "deadlocks",
        "deadlocks_total",
        ValueType.COUNTER,
        "Number of deadlocks detected in this database",
    ),
    Column(
        "temp_files",
        "temp_files_total",
        ValueType.COUNTER,
        "Number of temporary files created by queries in this database. All"
        " temporary files are counted, regardless of why the temporary file was"
        " created (e.g., sorting or hashing), and regardless of the log_temp_files"
        " setting.",
    ),
    Column(
        "temp_bytes",
        "temp_bytes_total",
        ValueType.COUNTER,
        "Total amount of data written to temporary files by queries in this"
        " database. All temporary files are counted, regardless of why the"
        " temporary file was created, and regardless of the log_temp_files setting.",
    ),
)

# The shared-objects row (datname NULL, postgres 12+) is not a database.
QUERY = (
    f"SELECT datname, {', '.join(c.name for c in COLUMNS)}"
    " FROM pg_stat_database WHERE datname IS NOT NULL"
)


def _scan(record: Sequence[Any]) -> tuple[str, list[float]]:
    if len(record) != len(COLUMNS) + 1:
        raise ScanError(
            f"expected {len(COLUMNS) + 1} columns, got {len(record)}",
        )

    datname = record[0]
    if not isinstance(datname, str):
        raise ScanError(f"datname: expected str, got {type(datname).__name__}")

    values = []
    for column, raw in zip(COLUMNS, record[1:], strict=True):
        # bool is an int subclass but never a valid statistic
        if isinstance(raw, bool) or not isinstance(raw, int | float):
            raise ScanError(
                f"{column.name}: expected number, got {type(raw).__name__}",
            )
        values.append(float(raw))

    return datname, values


class StatDatabaseCollector:
    """Exposes the pg_stat_database view.

    PostgreSQL's statistics collector counts accesses to tables and indexes in
    both disk-block and individual-row terms. This view holds one row per
    database with server-side aggregates, which are relayed as-is.

    https://www.postgresql.org/docs/current/monitoring-stats.html#MONITORING-PG-STAT-DATABASE-VIEW
    """

    _metrics: tuple[tuple[Desc, ValueType], ...]

    def __init__(self) -> None:
        self._metrics = tuple(
            (
                Desc(
                    build_fq_name(NAMESPACE, SUBSYSTEM, column.metric_name),
                    column.help,
                    LABEL_NAMES,
                ),
                column.value_type,
            )
            for column in COLUMNS
        )

    def describe(self) -> list[Desc]:
        return [desc for desc, _ in self._metrics]

    async def update(
        self,
        pool: Any,
        sink: MetricSink,
        *,
        timeout: float | None = None,
    ) -> None:
        # One deadline covers acquire, BEGIN and every fetch batch. Driver
        # errors, including timeouts, propagate unchanged.
        async with (
            asyncio.timeout(timeout),
            pool.acquire(timeout=timeout) as conn,
            conn.transaction(readonly=True),
        ):
            async for record in conn.cursor(QUERY, timeout=timeout):
                datname, values = _scan(record)
                for (desc, value_type), value in zip(
                    self._metrics,
                    values,
                    strict=True,
                ):
                    sink.emit(ConstMetric(desc, value_type, value, (datname,)))


def register(registry: CollectorRegistry) -> None:
    registry.register(SUBSYSTEM, StatDatabaseCollector, default_enabled=True)
