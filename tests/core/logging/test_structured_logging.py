"""Tests for structured logging with trace propagation."""

from __future__ import annotations

import io
import json
from pathlib import Path

from marketnorm.core.logging import LogConfig, StructuredLogger, current_trace_id, get_logger, log_context
from marketnorm.core.logging.logger import stage_from_name


def _read_records(stream: io.StringIO) -> list[dict[str, object]]:
    stream.seek(0)
    lines = [line for line in stream.getvalue().splitlines() if line.strip()]
    return [json.loads(line) for line in lines]


def test_structured_log_contains_trace_and_context() -> None:
    buffer = io.StringIO()
    config = LogConfig(console_stream=buffer, console_output=True, file_output=False)
    logger = StructuredLogger(config)

    with logger.context(trace_id="trace-123", source="alpha_vantage", error_code="DATA_QUALITY_ERROR", run="r-42"):
        logger.logger.info("normalization complete", symbol="AAPL")

    records = _read_records(buffer)
    assert len(records) == 1
    record = records[0]
    assert record["trace_id"] == "trace-123"
    assert record["source"] == "alpha_vantage"
    assert record["symbol"] == "AAPL"
    assert record["stage"] is None
    assert record["context"] == {"error_code": "DATA_QUALITY_ERROR", "run": "r-42"}


def test_trace_id_propagates_within_context() -> None:
    buffer = io.StringIO()
    logger = StructuredLogger(LogConfig(console_stream=buffer, console_output=True, file_output=False))

    with logger.context() as trace_id:
        logger.logger.info("first event")
        logger.logger.info("second event")

    logger.logger.info("outside context")

    records = _read_records(buffer)
    assert len(records) == 3
    assert records[0]["trace_id"] == records[1]["trace_id"]
    assert records[0]["trace_id"] == trace_id
    assert records[2]["trace_id"] != records[0]["trace_id"]


def test_trace_id_generated_when_missing() -> None:
    buffer = io.StringIO()
    logger = StructuredLogger(LogConfig(console_stream=buffer, console_output=True, file_output=False))

    logger.logger.info("single message")

    records = _read_records(buffer)
    assert len(records) == 1
    trace_id = records[0]["trace_id"]
    assert isinstance(trace_id, str)
    assert len(trace_id) == 32
    assert all(character in "0123456789abcdef" for character in trace_id)


def test_level_filters_lower_priority_events() -> None:
    buffer = io.StringIO()
    logger = StructuredLogger(LogConfig(level="WARNING", console_stream=buffer))

    logger.logger.info("hidden")
    logger.logger.warning("shown")

    records = _read_records(buffer)
    assert [record["message"] for record in records] == ["shown"]
    assert records[0]["level"] == "WARNING"


def test_log_context_restores_previous_trace() -> None:
    with log_context(trace_id="outer"):
        with log_context(trace_id="inner"):
            assert current_trace_id() == "inner"
        assert current_trace_id() == "outer"


def test_module_loggers_report_their_stage() -> None:
    buffer = io.StringIO()
    StructuredLogger(LogConfig(console_stream=buffer))

    with log_context(source="polygon", symbol="MSFT"):
        get_logger("marketnorm.core.services.splits").info("Applied 1 split event(s)")

    record = _read_records(buffer)[0]
    assert (record["source"], record["symbol"], record["stage"]) == ("polygon", "MSFT", "splits")
    assert "context" not in record


def test_stage_from_name() -> None:
    assert stage_from_name("marketnorm.core.parsing.parser") == "parser"
    assert stage_from_name("thirdparty.module") is None
    assert stage_from_name(None) is None


def test_file_sink_writes_json_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "marketnorm.jsonl"
    logger = StructuredLogger(LogConfig(console_output=False, file_output=True, file_path=str(log_file)))

    logger.logger.warning("written to disk")
    logger.configure(file_output=False)

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["message"] for line in lines] == ["written to disk"]
