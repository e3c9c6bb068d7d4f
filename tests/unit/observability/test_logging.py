"""
dataplane-config — unit tests for observability logging

File: tests/unit/observability/test_logging.py
Last updated: 2026-10-19

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed reliability.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation, including fields bound by structlog calls.
- Multi-threaded logging stability.
- Queue drain/shutdown behavior.

Functional requirements
- Offline operation.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from types import SimpleNamespace
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from dataplane_config.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_correlation_context,
    is_sensitive_key,
    setup_structured_logging,
    severity_listener,
    severity_to_level,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()
    structlog.reset_defaults()


def _logger_name() -> str:
    return f"dataplane_config.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_preserves_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            agent_id="node-a",
            log_dir=tmp_path,
            logger_name=logger_name,
            configure_structlog=False,
        )
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(pass_id=7, source_id="config-file"):
        logger.info(
            "loaded psk=s3cr3t-FAKE and token=tok-FAKE",
            extra={"overrides": {"PrometheusReporterKeyFile": "/etc/keys/k.pem", "HealthPort": "9100"}},
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "dataplane-config.jsonl"
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["agent_id"] == "node-a"
    assert first["pass_id"] == "7"
    assert first["source_id"] == "config-file"
    assert first["fields"] == {
        "overrides": {"PrometheusReporterKeyFile": "***REDACTED***", "HealthPort": "9100"}
    }

    line = handle.log_path.read_text(encoding="utf-8")
    assert "s3cr3t-FAKE" not in line
    assert "tok-FAKE" not in line
    assert "/etc/keys/k.pem" not in line


def test_structlog_events_land_in_the_json_sink(tmp_path: Path) -> None:
    handle = setup_structured_logging(LoggingConfig(agent_id="node-b", log_dir=tmp_path))

    log = structlog.get_logger("dataplane_config.resolution.resolver")
    log.info("config.resolution.committed", pass_id=3, generation=2, changed=["HealthPort"])
    log.debug("config.resolution.diagnostics", count=0)

    shutdown_logging(handle)

    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    entry = parsed[0]
    assert entry["message"] == "config.resolution.committed"
    assert entry["logger"] == "dataplane_config.resolution.resolver"
    assert entry["pass_id"] == "3"
    assert entry["generation"] == "2"
    assert entry["fields"] == {"changed": ["HealthPort"]}


def test_correlation_scope_nests_and_restores() -> None:
    assert get_correlation_context() == {}
    with correlation_scope(pass_id=1):
        with correlation_scope(source_id="environment"):
            assert get_correlation_context() == {"pass_id": "1", "source_id": "environment"}
        with correlation_scope(pass_id=None):
            assert get_correlation_context() == {}
        assert get_correlation_context() == {"pass_id": "1"}
    assert get_correlation_context() == {}


@pytest.mark.parametrize(
    ("key", "sensitive"),
    [
        ("IPSecPSKFile", True),
        ("PrometheusMetricsKeyFile", True),
        ("DatastorePassword", True),
        ("HealthPort", False),
        ("LogSeverityScreen", False),
    ],
)
def test_sensitive_key_detection(key: str, sensitive: bool) -> None:
    assert is_sensitive_key(key) is sensitive


@pytest.mark.parametrize(
    ("severity", "level"),
    [
        ("Debug", logging.DEBUG),
        ("info", logging.INFO),
        ("Warning", logging.WARNING),
        ("Fatal", logging.CRITICAL),
        ("ERROR", logging.ERROR),
        (15, 15),
    ],
)
def test_agent_severities_map_to_stdlib_levels(severity: str | int, level: int) -> None:
    assert severity_to_level(severity) == level


def test_severity_none_silences_everything() -> None:
    assert severity_to_level("None") > logging.CRITICAL
    with pytest.raises(ValueError):
        severity_to_level("Loud")


def test_severity_listener_follows_live_changes(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(agent_id="node-c", log_dir=tmp_path, logger_name=_logger_name(), configure_structlog=False)
    )
    listener = severity_listener(handle, "LogSeverityFile")

    def update(field: str, value: str) -> SimpleNamespace:
        return SimpleNamespace(
            changes=(SimpleNamespace(field=field),),
            snapshot=SimpleNamespace(value=lambda name: value),
        )

    listener(update("HealthPort", "Debug"))
    assert handle.level == logging.INFO

    listener(update("LogSeverityFile", "Debug"))
    handle.logger.debug("now visible")
    handle.flush()
    listener(update("LogSeverityFile", "Error"))
    handle.logger.warning("filtered out")
    shutdown_logging(handle)

    messages = [entry["message"] for entry in _read_json_lines(handle.log_path)]
    assert messages == ["now visible"]
    assert handle.level == logging.ERROR


def test_invalid_config_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(agent_id=" ", log_dir=tmp_path))
    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(agent_id="node", log_dir=tmp_path, queue_size=0))


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            agent_id="node-threaded",
            log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=4096,
            configure_structlog=False,
        )
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        with correlation_scope(source_id=f"source-{thread_idx}"):
            for i in range(per_thread):
                logger.info(
                    f"thread={thread_idx} index={i} password=pw-secret-{thread_idx}-{i}",
                    extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
                )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        parsed = json.loads(line)
        assert isinstance(parsed, dict)
        assert "message" in parsed
        assert str(parsed["source_id"]).startswith("source-")
        assert "pw-secret" not in line
        assert "sk-FAKE" not in line


def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            agent_id="node-flush",
            log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=10_000,
            configure_structlog=False,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == expected
