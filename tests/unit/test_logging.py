"""Tests for structlog configuration and stdlib log routing."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from kubetopo import __version__
from kubetopo.observability.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _events(err: str) -> list[dict]:
    return [json.loads(line) for line in err.splitlines() if line.strip()]


class TestSetupLogging:
    def test_events_carry_component_and_service(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info")
        log = get_logger("topology.resolver")
        log.info("dependencies_resolved", context="prod")
        log.debug("hidden")

        events = _events(capsys.readouterr().err)
        assert len(events) == 1
        event = events[0]
        assert event["event"] == "dependencies_resolved"
        assert event["component"] == "topology.resolver"
        assert event["level"] == "info"
        assert (event["service"], event["version"]) == ("kubetopo", __version__)
        assert event["ts"].endswith("Z")

    def test_stdlib_records_use_the_same_format(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("warning")
        logging.getLogger("kubernetes_asyncio.config").warning("token refresh failed")
        logging.getLogger("kubernetes_asyncio.config").info("suppressed")

        events = _events(capsys.readouterr().err)
        assert [(e["logger"], e["event"], e["level"]) for e in events] == [
            ("kubernetes_asyncio.config", "token refresh failed", "warning")
        ]
        assert events[0]["service"] == "kubetopo"

    def test_transport_loggers_are_quieted(self) -> None:
        setup_logging("debug")
        assert logging.getLogger("kubernetes_asyncio.client.rest").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG
