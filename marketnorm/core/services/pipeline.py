"""End-to-end transformation of provider payloads into canonical OHLCV series."""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from marketnorm.core.config.models import TransformationConfig
from marketnorm.core.exceptions import MarketNormError
from marketnorm.core.logging import get_logger, log_context
from marketnorm.core.models.market import DataSource, ErrorType, Severity, TimeFrame, resolve_timeframe
from marketnorm.core.models.records import CanonicalRecord, QualityFlags, Record
from marketnorm.core.models.response import (
    PerformanceStats,
    ResponseMetadata,
    StandardFinancialResponse,
    TransformationError,
)
from marketnorm.core.models.splits import SplitEvent
from marketnorm.core.models.volume import VolumeAnomalyType
from marketnorm.core.monitoring import MetricsCollector, get_metrics_collector
from marketnorm.core.parsing import ParseReport, ParsingIssue, ParsingIssueType, ResponseParser
from marketnorm.core.services.dates import Clock, DateNormalizer, normalize_timezone
from marketnorm.core.services.quality import QualityValidator
from marketnorm.core.services.split_cache import InMemorySplitEventCache, SplitEventCache
from marketnorm.core.services.splits import SplitAdjuster
from marketnorm.core.services.volume import VolumeNormalizer, parse_volume_value

logger = get_logger(__name__)

_ISSUE_TYPES: dict[str, ErrorType] = {
    ParsingIssueType.STRUCTURE_ERROR.value: ErrorType.PARSING_ERROR,
    ParsingIssueType.VALUE_ERROR.value: ErrorType.VALIDATION_ERROR,
    ParsingIssueType.MISSING_FIELD.value: ErrorType.FORMAT_ERROR,
}


class TransformationAborted(Exception):
    """Internal signal for a structural failure that empties the response."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass
class _RunState:
    """Errors, warnings and counters accumulated across the stages of one run."""

    errors: list[TransformationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    records_processed: int = 0
    records_skipped: int = 0
    cache_hit: bool = False
    last_refreshed: str | None = None
    source_timezone: str | None = None

    def error(
        self,
        error_type: ErrorType,
        message: str,
        severity: Severity = Severity.MEDIUM,
        field_name: str | None = None,
        original_value: Any = None,
    ) -> None:
        self.errors.append(
            TransformationError(
                type=error_type,
                message=message,
                field=field_name,
                original_value=original_value,
                severity=severity,
            )
        )


def _issue_to_error(issue: ParsingIssue) -> TransformationError:
    issue_type = issue.type.value if isinstance(issue.type, ParsingIssueType) else str(issue.type)
    prefix = f"Record {issue.record}: " if issue.record is not None else ""
    return TransformationError(
        type=_ISSUE_TYPES.get(issue_type, ErrorType.PARSING_ERROR),
        message=f"{prefix}{issue.message}",
        field=issue.field,
        original_value=issue.original_value,
        severity=issue.severity,
    )


def _timeframe_label(timeframe: str | TimeFrame) -> str:
    resolved = resolve_timeframe(timeframe)
    if resolved is not None:
        return resolved.value
    return timeframe.value if isinstance(timeframe, TimeFrame) else str(timeframe)


def _source_label(source: str | DataSource) -> str:
    return source.value if isinstance(source, DataSource) else str(source)


class TransformationPipeline:
    """Runs parsing, date, split, volume and quality stages over one payload.

    ``transform`` never raises: structural problems and unexpected exceptions
    become an unsuccessful response carrying a single critical parsing error.
    The split cache is the only state shared between calls.
    """

    def __init__(
        self,
        config: TransformationConfig | Mapping[str, Any] | None = None,
        *,
        parser: ResponseParser | None = None,
        split_cache: SplitEventCache | None = None,
        metrics: MetricsCollector | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = TransformationConfig().merged(config)
        self.parser = parser or ResponseParser()
        self.split_cache: SplitEventCache = split_cache if split_cache is not None else InMemorySplitEventCache()
        self.metrics = metrics
        self.clock = clock

    @property
    def _collector(self) -> MetricsCollector:
        return self.metrics or get_metrics_collector()

    def transform(
        self,
        raw_data: Any,
        source: str | DataSource,
        symbol: str,
        timeframe: str | TimeFrame = TimeFrame.DAILY,
        config: TransformationConfig | Mapping[str, Any] | None = None,
        known_splits: Iterable[SplitEvent] | None = None,
    ) -> StandardFinancialResponse:
        """Transform ``raw_data`` from ``source`` into a canonical response."""

        started = time.perf_counter()
        source_label = _source_label(source)
        timeframe_label = _timeframe_label(timeframe)
        state = _RunState()

        with log_context(source=source_label, symbol=symbol):
            try:
                effective = self.config.merged(config)
                response = self._run(raw_data, source, symbol, timeframe_label, effective, known_splits, state)
            except TransformationAborted as exc:
                logger.bind(source=source_label, symbol=symbol).warning(f"Transformation aborted: {exc.message}")
                response = self._failure(exc.message, source_label, symbol, timeframe_label, state)
            except MarketNormError as exc:
                logger.bind(source=source_label, symbol=symbol).warning(f"Transformation rejected: {exc.message}")
                response = self._failure(exc.message, source_label, symbol, timeframe_label, state)
            except Exception as exc:
                logger.bind(source=source_label, symbol=symbol).exception(f"Transformation failed: {exc}")
                response = self._failure(f"Transformation failed: {exc}", source_label, symbol, timeframe_label, state)

        elapsed = time.perf_counter() - started
        response.performance.processing_time_ms = round(elapsed * 1000, 3)
        self._collector.observe_pipeline(source_label, elapsed, success=response.success)
        return response

    # ----------------------------------------------------------------- stages

    def _parse(self, raw_data: Any, source: str | DataSource, config: TransformationConfig, state: _RunState) -> list[Record]:
        report: ParseReport = self.parser.parse_with_report(raw_data, source, config.parser)
        state.records_processed = report.stats.records_parsed + report.stats.records_skipped
        state.warnings.extend(report.warnings)
        self._collector.record_skipped("parsing", report.stats.records_skipped)

        if not report.success:
            structural = [issue.message for issue in report.errors if issue.type == ParsingIssueType.STRUCTURE_ERROR]
            detail = "; ".join(structural[:3]) if structural else f"no valid records in {report.source} payload"
            raise TransformationAborted(f"Unable to parse {report.source} payload: {detail}")

        state.errors.extend(_issue_to_error(issue) for issue in report.errors)
        state.records_skipped += report.stats.records_skipped
        if report.metadata is not None:
            state.last_refreshed = report.metadata.last_refreshed
            state.source_timezone = report.metadata.timezone
        return [dict(record) for record in report.records]

    def _normalize_dates(
        self, records: list[Record], timeframe: str, config: TransformationConfig, state: _RunState
    ) -> list[Record]:
        date_config = config.dates
        if state.source_timezone:
            zone_name = normalize_timezone(state.source_timezone)
            try:
                ZoneInfo(zone_name)
            except (ZoneInfoNotFoundError, ValueError):
                message = (
                    f"Unknown provider timezone {state.source_timezone}; "
                    f"using {date_config.default_timezone}"
                )
                logger.warning(message)
                state.warnings.append(message)
            else:
                date_config = date_config.model_copy(update={"default_timezone": zone_name})
        normalizer = DateNormalizer(date_config, clock=self.clock)
        result = normalizer.normalize_with_report(records, timeframe)
        state.warnings.extend(result.warnings)
        state.records_skipped += result.skipped
        self._collector.record_skipped("dates", result.skipped)
        return [dict(record) for record in result.records]

    @staticmethod
    def _passthrough_dates(records: list[Record]) -> list[Record]:
        passthrough: list[Record] = []
        for record in records:
            day = str(record.get("date", ""))[:10]
            passthrough.append(
                {
                    **record,
                    "date": day,
                    "timestamp": record.get("timestamp") or f"{day}T00:00:00.000Z",
                    "original_date": record.get("date"),
                    "date_format": None,
                    "date_confidence": 1.0,
                }
            )
        return passthrough

    def _adjust_splits(
        self,
        records: list[Record],
        symbol: str,
        config: TransformationConfig,
        known_splits: Iterable[SplitEvent] | None,
        state: _RunState,
    ) -> list[Record]:
        adjuster = SplitAdjuster(config.splits, cache=self.split_cache)
        result = adjuster.adjust_with_report(records, symbol, known_splits)
        state.warnings.extend(result.warnings)
        state.cache_hit = result.cache_hit
        for split in result.applied_splits:
            state.warnings.append(
                f"Applied {split.split_to:g}:{split.split_from:g} split on {split.date} "
                f"(confidence {split.confidence:.2f}, source {split.source})"
            )
        return result.records

    def _normalize_volume(
        self, records: list[Record], config: TransformationConfig, state: _RunState
    ) -> tuple[list[Record], set[str]]:
        result = VolumeNormalizer(config.volume).process_volume_data(records)
        for anomaly in result.anomalies:
            if anomaly.type == VolumeAnomalyType.INCONSISTENT_FORMAT:
                state.error(
                    ErrorType.DATA_QUALITY_ERROR,
                    f"Record {anomaly.record}: {anomaly.description}",
                    severity=Severity(anomaly.severity),
                    field_name="volume",
                    original_value=anomaly.original_value,
                )
            else:
                state.warnings.append(f"Record {anomaly.record}: {anomaly.description}")

        suspicious = {records[index]["timestamp"] for index in result.suspicious_indices if index < len(records)}
        removed = len(records) - len(result.normalized_data)
        state.records_skipped += removed
        self._collector.record_skipped("volume", removed)
        return result.normalized_data, suspicious

    @staticmethod
    def _passthrough_volume(records: list[Record]) -> list[Record]:
        passthrough: list[Record] = []
        for record in records:
            conversion = parse_volume_value(record.get("volume"))
            volume = conversion.normalized_value if conversion is not None else 0
            passthrough.append({**record, "volume": volume, "volume_normalized": volume})
        return passthrough

    def _run(
        self,
        raw_data: Any,
        source: str | DataSource,
        symbol: str,
        timeframe: str,
        config: TransformationConfig,
        known_splits: Iterable[SplitEvent] | None,
        state: _RunState,
    ) -> StandardFinancialResponse:
        records = self._parse(raw_data, source, config, state)
        source_label = _source_label(source)

        if config.enable_date_normalization:
            records = self._normalize_dates(records, timeframe, config, state)
        else:
            records = self._passthrough_dates(records)
        records.sort(key=lambda record: record["timestamp"])

        if config.enable_split_adjustment:
            records = self._adjust_splits(records, symbol, config, known_splits, state)

        suspicious: set[str] = set()
        if config.enable_volume_normalization:
            records, suspicious = self._normalize_volume(records, config, state)
        else:
            records = self._passthrough_volume(records)

        validator = QualityValidator(config.quality)
        if config.enable_quality_validation:
            valid = validator.validate(records)
            dropped = len(records) - len(valid)
            if dropped:
                state.warnings.append(f"{dropped} record(s) failed OHLC validation and were removed")
            state.records_skipped += dropped
            self._collector.record_skipped("validation", dropped)
            records = valid

        positions = {index for index, record in enumerate(records) if record["timestamp"] in suspicious}
        flags = validator.annotate(
            records, timeframe, positions, validated=config.enable_quality_validation
        )
        score = validator.quality_score(flags)
        data = [
            self._canonical(record, flag, source_label, symbol, timeframe) for record, flag in zip(records, flags)
        ]

        if not data:
            state.error(
                ErrorType.DATA_QUALITY_ERROR,
                "No records survived transformation",
                severity=Severity.CRITICAL,
            )
        elif score < config.quality_threshold * 100:
            state.error(
                ErrorType.DATA_QUALITY_ERROR,
                f"Data quality score {score:.1f} is below threshold {config.quality_threshold * 100:.1f}",
            )

        metadata = ResponseMetadata(
            symbol=symbol,
            source=source_label,
            timeframe=timeframe,
            start_date=data[0].date if data else "",
            end_date=data[-1].date if data else "",
            timezone=config.timezone,
            last_refreshed=state.last_refreshed,
            data_count=len(data),
            split_adjusted=any(record.data_quality.adjusted_for_splits for record in data),
            dividend_adjusted=False,
            quality_score=score,
        )
        logger.bind(source=source_label, symbol=symbol).info(
            f"Transformed {len(data)} record(s), skipped {state.records_skipped}, quality {score:.1f}"
        )
        return StandardFinancialResponse(
            data=data,
            metadata=metadata,
            success=bool(data),
            errors=state.errors,
            warnings=state.warnings,
            performance=PerformanceStats(
                records_processed=state.records_processed,
                records_skipped=state.records_skipped,
                cache_hit=state.cache_hit,
            ),
        )

    @staticmethod
    def _canonical(record: Record, flags: QualityFlags, source: str, symbol: str, timeframe: str) -> CanonicalRecord:
        close = float(record["close"])
        volume = float(record.get("volume_normalized", record.get("volume", 0)) or 0)
        return CanonicalRecord(
            date=record["date"],
            timestamp=record["timestamp"],
            open=float(record["open"]),
            high=float(record["high"]),
            low=float(record["low"]),
            close=close,
            adjusted_close=float(record.get("adjusted_close") or close),
            volume=volume,
            volume_normalized=volume,
            source=source,
            symbol=symbol,
            timeframe=timeframe,
            date_format=record.get("date_format"),
            date_confidence=float(record.get("date_confidence", 1.0)),
            split_adjustment_factor=float(record.get("split_adjustment_factor", 1.0)),
            data_quality=flags,
        )

    def _failure(
        self, message: str, source: str, symbol: str, timeframe: str, state: _RunState
    ) -> StandardFinancialResponse:
        return StandardFinancialResponse(
            data=[],
            metadata=ResponseMetadata(symbol=symbol, source=source, timeframe=timeframe),
            success=False,
            errors=[
                *state.errors,
                TransformationError(type=ErrorType.PARSING_ERROR, message=message, severity=Severity.CRITICAL),
            ],
            warnings=state.warnings,
            performance=PerformanceStats(),
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "config": self.config.model_dump(mode="json"),
            "supported_sources": self.parser.supported_sources(),
            "supported_timeframes": [timeframe.value for timeframe in TimeFrame],
        }
