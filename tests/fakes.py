"""asyncpg stand-ins used across the test suite."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from postgres_stat_exporter.collector import ConstMetric

Row = tuple[Any, ...]


class ListSink:
    def __init__(self) -> None:
        self.metrics: list[ConstMetric] = []

    def emit(self, metric: ConstMetric) -> None:
        self.metrics.append(metric)


class FakeTransaction:
    def __init__(self, conn: "FakeConnection", *, readonly: bool) -> None:
        self.conn = conn
        self.readonly = readonly

    async def __aenter__(self) -> "FakeTransaction":
        if self.conn.begin_delay:
            await asyncio.sleep(self.conn.begin_delay)
        self.conn.transaction_open = True
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.conn.transaction_open = False
        self.conn.transactions_closed += 1


class FakeConnection:
    """Streams ``rows`` through ``cursor()``, optionally failing.

    ``query_error`` is raised before the first row, ``error_after`` once all rows
    were yielded. ``delay`` is awaited before each fetch and bounded by the
    cursor timeout the way asyncpg bounds its fetches. ``begin_delay`` stalls
    the transaction start.
    """

    def __init__(
        self,
        rows: Sequence[Row] = (),
        *,
        query_error: BaseException | None = None,
        error_after: BaseException | None = None,
        delay: float = 0,
        begin_delay: float = 0,
    ) -> None:
        self.rows = list(rows)
        self.query_error = query_error
        self.error_after = error_after
        self.delay = delay
        self.begin_delay = begin_delay

        self.queries: list[str] = []
        self.timeouts: list[float | None] = []
        self.transaction_kwargs: list[dict[str, Any]] = []
        self.transaction_open = False
        self.transactions_closed = 0

    def transaction(self, **kwargs: Any) -> FakeTransaction:
        self.transaction_kwargs.append(kwargs)
        return FakeTransaction(self, readonly=kwargs.get("readonly", False))

    def cursor(self, query: str, *, timeout: float | None = None) -> AsyncIterator[Row]:
        self.queries.append(query)
        self.timeouts.append(timeout)
        return self._iterate(timeout)

    async def _iterate(self, timeout: float | None) -> AsyncIterator[Row]:
        assert self.transaction_open, "cursor used outside of a transaction"

        if self.query_error is not None:
            raise self.query_error

        for row in self.rows:
            if self.delay:
                async with asyncio.timeout(timeout):
                    await asyncio.sleep(self.delay)
            yield row

        if self.error_after is not None:
            raise self.error_after


class FakePool:
    def __init__(self, conn: FakeConnection, *, acquire_delay: float = 0) -> None:
        self.conn = conn
        self.acquire_delay = acquire_delay
        self.acquire_timeouts: list[float | None] = []
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def acquire(
        self,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[FakeConnection]:
        self.acquire_timeouts.append(timeout)
        # Stands in for waiting on an exhausted pool or a reconnect
        if self.acquire_delay:
            await asyncio.sleep(self.acquire_delay)
        self.acquired += 1
        try:
            yield self.conn
        finally:
            self.released += 1


def stat_row(datname: str, base: int) -> Row:
    """A pg_stat_database row whose 14 numeric columns are base, base+1, ..."""
    return (datname, *range(base, base + 14))
