"""Entry point for parsing heterogeneous provider payloads."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from marketnorm.core.config.models import ParserConfig
from marketnorm.core.exceptions import MarketNormError, PayloadStructureError
from marketnorm.core.logging import get_logger
from marketnorm.core.models.market import DataSource, Severity
from marketnorm.core.models.records import ParsedRecord
from marketnorm.core.parsing.base import ParseReport, ParsingIssue, ParsingIssueType
from marketnorm.core.parsing.registry import ParserRegistry, create_default_registry

logger = get_logger(__name__)

PREVIEW_SIZE = 3


@dataclass(slots=True)
class ParsingDiagnostics:
    """Result of a dry-run parse used for troubleshooting payloads."""

    can_parse: bool
    structure: dict[str, Any]
    preview: list[ParsedRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def describe_structure(payload: Any) -> dict[str, Any]:
    """Summarise the top-level shape of ``payload``."""

    if payload is None:
        return {"type": "null"}
    if isinstance(payload, list):
        return {"type": "array", "length": len(payload), "sample": payload[0] if payload else None}
    if isinstance(payload, Mapping):
        return {"type": "object", "keys": list(payload.keys())[:10]}
    return {"type": type(payload).__name__, "value": payload}


class ResponseParser:
    """Dispatches payloads to the registered provider parser."""

    def __init__(self, registry: ParserRegistry | None = None, config: ParserConfig | None = None) -> None:
        self.registry = registry or create_default_registry()
        self.config = config or ParserConfig()

    def parse_with_report(self, payload: Any, source: str | DataSource, config: ParserConfig | None = None) -> ParseReport:
        """Parse ``payload`` and return records with every issue found.

        Structural problems are reported on the result instead of raised.

        Raises:
            UnsupportedSourceError: 数据源未注册
        """
        parser = self.registry.get(source)
        started = time.perf_counter()
        try:
            report = parser.parse(payload, config or self.config)
        except PayloadStructureError as exc:
            report = ParseReport(source=parser.source)
            report.errors.append(
                ParsingIssue(
                    type=ParsingIssueType.STRUCTURE_ERROR,
                    message=exc.message,
                    severity=Severity.CRITICAL,
                )
            )
            report.errors.extend(
                ParsingIssue(type=ParsingIssueType.STRUCTURE_ERROR, message=issue, severity=Severity.CRITICAL)
                for issue in exc.issues
            )
        report.stats.parsing_time_ms = (time.perf_counter() - started) * 1000
        logger.bind(source=parser.source).debug(
            f"Parsed {report.stats.records_parsed} records, skipped {report.stats.records_skipped}"
        )
        return report

    def parse(self, payload: Any, source: str | DataSource, config: ParserConfig | None = None) -> list[ParsedRecord]:
        """Parse ``payload`` into loosely typed OHLCV records.

        Raises:
            UnsupportedSourceError: 数据源未注册
            PayloadStructureError: 负载中没有任何有效记录
        """
        report = self.parse_with_report(payload, source, config)
        if not report.success:
            messages = [issue.message for issue in report.errors[:5]]
            raise PayloadStructureError(
                f"No valid records found in {report.source} payload",
                report.source,
                issues=messages,
            )
        return report.records

    def test_parsing(self, payload: Any, source: str | DataSource) -> ParsingDiagnostics:
        structure = describe_structure(payload)
        try:
            records = self.parse(payload, source)
        except MarketNormError as exc:
            return ParsingDiagnostics(can_parse=False, structure=structure, errors=[exc.message, *exc.details.get("issues", [])])
        return ParsingDiagnostics(can_parse=True, structure=structure, preview=records[:PREVIEW_SIZE])

    def supported_sources(self) -> list[str]:
        return self.registry.sources()
