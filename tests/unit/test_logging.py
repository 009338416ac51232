# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for logging setup and context binding."""

import json
import logging
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from tenantops.core.config.settings import Settings
from tenantops.utils.datetime import ensure_utc, utc_now
from tenantops.utils.logging import bind_context, clear_context, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    """Undo handler and level changes made by setup_logging."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    root_logger.handlers = handlers
    root_logger.setLevel(level)
    clear_context()
    structlog.reset_defaults()


def production_settings() -> Settings:
    return Settings.model_construct(environment="production", debug=False, log_level="INFO")


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_sets_package_level(self) -> None:
        setup_logging(Settings(log_level="DEBUG"))

        assert logging.getLogger("tenantops").level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_production_renders_json(self) -> None:
        setup_logging(production_settings())

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_stdlib_records_carry_bound_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(production_settings())
        bind_context(workspace_id="ws-1", operation="create")

        logging.getLogger("tenantops.domains.workspace.service").info(
            "Registered workspace %s (%s)", "acme", "ws-1"
        )

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "Registered workspace acme (ws-1)"
        assert record["workspace_id"] == "ws-1"
        assert record["operation"] == "create"
        assert record["logger"] == "tenantops.domains.workspace.service"
        assert record["level"] == "info"

    def test_repeated_setup_keeps_one_handler(self) -> None:
        setup_logging(production_settings())
        setup_logging(production_settings())

        formatters = [
            handler.formatter
            for handler in logging.getLogger().handlers
            if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)
        ]
        assert len(formatters) == 1

    def test_get_logger(self) -> None:
        assert get_logger(__name__) is not None


class TestContext:
    """Tests for lifecycle log context."""

    def test_bind_and_clear(self) -> None:
        bind_context(workspace_id="ws-1", operation="destroy")
        try:
            assert structlog.contextvars.get_contextvars() == {
                "workspace_id": "ws-1",
                "operation": "destroy",
            }
        finally:
            clear_context()

        assert structlog.contextvars.get_contextvars() == {}


class TestDatetime:
    """Tests for UTC helpers."""

    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo is timezone.utc

    def test_ensure_utc_naive(self) -> None:
        value = ensure_utc(datetime(2025, 1, 1, 12, 0))
        assert value == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        value = ensure_utc(datetime(2025, 1, 1, 14, 0, tzinfo=plus_two))
        assert value.hour == 12
        assert value.tzinfo is timezone.utc

    def test_ensure_utc_none(self) -> None:
        assert ensure_utc(None) is None
