"""Shared fixtures."""

import pytest
from fakes import ListSink, Row, stat_row


@pytest.fixture
def sink() -> ListSink:
    return ListSink()


@pytest.fixture
def two_rows() -> list[Row]:
    return [stat_row("app", 0), stat_row("analytics", 100)]
