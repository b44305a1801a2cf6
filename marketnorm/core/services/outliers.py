"""Outlier detection over canonical OHLCV series.

Five independent passes run over a date-ordered series:

* price jumps - large close-to-close moves, optionally confirmed by volume
* volume spikes - volume far above its trailing average
* statistical outliers - returns beyond ``sigma_threshold`` rolling deviations
* gap moves - large moves between the previous close and the next open
* volatility spikes - short-window return volatility far above the rolling one

Events are de-duplicated on ``(date, symbol, type)`` and aggregated into an
:class:`AnalysisReport` carrying risk and quality scores.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, ValidationError

from marketnorm.core.config.models import DetectionConfig
from marketnorm.core.exceptions import ConfigurationError, DataValidationError, InsufficientDataError
from marketnorm.core.logging import get_logger
from marketnorm.core.models.outliers import (
    AnalysisReport,
    DetectionPerformance,
    OutlierEvent,
    OutlierSeverity,
    OutlierSummary,
    OutlierType,
)
from marketnorm.core.models.response import utc_now_iso
from marketnorm.core.monitoring import MetricsCollector, get_metrics_collector

logger = get_logger(__name__)

UNKNOWN_SYMBOL = "UNKNOWN"

# rolling deviations below this are treated as a flat window
_FLAT_EPSILON = 1e-12


def _band(value: float, critical: float, high: float, medium: float) -> OutlierSeverity:
    if value >= critical:
        return OutlierSeverity.CRITICAL
    if value >= high:
        return OutlierSeverity.HIGH
    if value >= medium:
        return OutlierSeverity.MEDIUM
    return OutlierSeverity.LOW


def _finite(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


@dataclass
class DetectorPerformance:
    """Cumulative timing across every analysis run by one detector."""

    total_analyses: int = 0
    total_processing_time: float = 0.0
    average_processing_time: float = 0.0
    last_analysis_time: float = 0.0

    def record(self, elapsed_ms: float) -> None:
        self.total_analyses += 1
        self.total_processing_time += elapsed_ms
        self.last_analysis_time = elapsed_ms
        self.average_processing_time = self.total_processing_time / self.total_analyses


class OutlierDetector:
    """Detects unusual price, gap, volume and volatility behaviour."""

    def __init__(
        self,
        config: DetectionConfig | Mapping[str, Any] | None = None,
        *,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = self._coerce_config(config)
        self.metrics = metrics
        self._performance = DetectorPerformance()

    @staticmethod
    def _coerce_config(config: DetectionConfig | Mapping[str, Any] | None) -> DetectionConfig:
        if config is None:
            return DetectionConfig()
        if isinstance(config, DetectionConfig):
            return config
        try:
            return DetectionConfig.model_validate(dict(config))
        except ValidationError as exc:
            raise ConfigurationError("Invalid detection configuration", {"errors": exc.errors()}) from exc

    # ------------------------------------------------------------------ input

    def _frame(self, series: Sequence[Any], symbol: str | None) -> tuple[pd.DataFrame, str]:
        rows: list[dict[str, Any]] = []
        problems: dict[str, str] = {}
        for index, point in enumerate(series):
            data = point.model_dump() if isinstance(point, BaseModel) else point
            if not isinstance(data, Mapping):
                problems[str(index)] = "data point is not a mapping"
                continue
            open_, close, volume = (_finite(data.get(name)) for name in ("open", "close", "volume"))
            if open_ is None or open_ <= 0 or close is None or close <= 0:
                problems[str(index)] = "open and close must be positive numbers"
                continue
            if volume is None or volume < 0:
                problems[str(index)] = "volume must be a non-negative number"
                continue
            if not data.get("date"):
                problems[str(index)] = "missing date"
                continue
            rows.append(
                {
                    "date": str(data["date"]),
                    "symbol": data.get("symbol") or None,
                    "open": open_,
                    "close": close,
                    "volume": volume,
                }
            )

        if problems:
            raise DataValidationError(
                f"{len(problems)} malformed data point(s) in outlier analysis input",
                validation_errors=problems,
            )

        frame = pd.DataFrame(rows)
        frame["instant"] = pd.to_datetime(frame["date"], format="mixed", errors="coerce", utc=True)
        unparsed = frame.index[frame["instant"].isna()].tolist()
        if unparsed:
            raise DataValidationError(
                "Unparseable dates in outlier analysis input",
                validation_errors={str(index): frame.at[index, "date"] for index in unparsed},
            )

        resolved = symbol or frame.at[0, "symbol"] or UNKNOWN_SYMBOL
        frame["symbol"] = frame["symbol"].fillna(resolved) if symbol is None else symbol
        frame = frame.sort_values("instant", kind="stable").reset_index(drop=True)
        return frame, resolved

    # ----------------------------------------------------------------- passes

    def _trailing_volume(self, volumes: np.ndarray, index: int) -> float:
        window = volumes[max(0, index - self.config.volume_window_size) : index]
        return float(window.mean()) if window.size else 0.0

    def _detect_price_jumps(self, frame: pd.DataFrame) -> list[OutlierEvent]:
        cfg = self.config
        closes = frame["close"].to_numpy()
        volumes = frame["volume"].to_numpy()
        events: list[OutlierEvent] = []

        for i in range(1, len(frame)):
            change = closes[i] - closes[i - 1]
            percent = abs(change / closes[i - 1])
            if percent < cfg.price_jump_threshold:
                continue

            volume_ratio = 1.0
            if cfg.require_volume_confirmation:
                average = self._trailing_volume(volumes, i)
                volume_ratio = volumes[i] / average if average > 0 else 0.0
                if volume_ratio < cfg.volume_confirmation_multiplier:
                    continue

            severity = _band(percent + (volume_ratio - 1) * 0.1, 0.5, 0.35, 0.25)
            confidence = min(min(percent / 0.5, 1.0) + min((volume_ratio - 1) * 0.1, 0.3), 1.0)
            rising = change > 0
            volume_clause = (
                f" with {volume_ratio:.1f}x normal volume" if volume_ratio > cfg.volume_confirmation_multiplier else ""
            )
            events.append(
                self._event(
                    frame,
                    i,
                    OutlierType.PRICE_JUMP,
                    severity=severity,
                    confidence=confidence,
                    value=closes[i],
                    expected=closes[i - 1],
                    magnitude=percent,
                    description=f"Price {'jump' if rising else 'drop'} of {percent * 100:.1f}%",
                    explanation=(
                        f"Detected significant price {'increase' if rising else 'decrease'} of "
                        f"{percent * 100:.1f}% in a single trading day{volume_clause}."
                    ),
                    recommendation=self._price_jump_recommendation(rising, percent, volume_ratio),
                    metadata={
                        "priceChange": float(change),
                        "priceChangePercent": float(percent),
                        "volumeRatio": float(volume_ratio),
                        "threshold": cfg.price_jump_threshold,
                    },
                )
            )
        return events

    def _detect_volume_spikes(self, frame: pd.DataFrame) -> list[OutlierEvent]:
        cfg = self.config
        volumes = frame["volume"].to_numpy()
        events: list[OutlierEvent] = []

        for i in range(cfg.volume_window_size, len(frame)):
            average = self._trailing_volume(volumes, i)
            if average <= 0:
                continue
            ratio = volumes[i] / average
            if ratio < cfg.volume_spike_threshold:
                continue
            confidence = min(min(ratio / 10, 1.0) + (0.1 if average > 1000 else 0.0), 1.0)
            events.append(
                self._event(
                    frame,
                    i,
                    OutlierType.VOLUME_SPIKE,
                    severity=_band(ratio, 10, 6, 4),
                    confidence=confidence,
                    value=volumes[i],
                    expected=average,
                    magnitude=ratio,
                    description=f"Volume spike: {ratio:.1f}x normal volume",
                    explanation=(
                        f"Detected unusual trading activity with volume {ratio:.1f} times higher than the "
                        f"{cfg.volume_window_size}-day average."
                    ),
                    recommendation=self._volume_spike_recommendation(ratio),
                    metadata={
                        "volumeRatio": float(ratio),
                        "historicalMean": average,
                        "threshold": cfg.volume_spike_threshold,
                    },
                )
            )
        return events

    def _detect_statistical_outliers(self, frame: pd.DataFrame) -> list[OutlierEvent]:
        cfg = self.config
        returns = frame["close"].pct_change().to_numpy()[1:]
        window_size = cfg.rolling_window_size
        events: list[OutlierEvent] = []

        for i in range(window_size, len(returns)):
            window = returns[i - window_size : i]
            mean = float(window.mean())
            std = float(window.std())
            if std < _FLAT_EPSILON:
                continue
            current = float(returns[i])
            z_score = abs(current - mean) / std
            if z_score < cfg.sigma_threshold:
                continue
            confidence = min(min(z_score / 5, 1.0) + min(window.size / 100, 0.2), 1.0)
            events.append(
                self._event(
                    frame,
                    i + 1,
                    OutlierType.STATISTICAL_OUTLIER,
                    severity=_band(z_score, 5, 4, 3.5),
                    confidence=confidence,
                    value=current,
                    expected=mean,
                    magnitude=z_score,
                    description=f"Statistical outlier: {z_score:.1f}σ from mean",
                    explanation=(
                        f"Detected return of {current * 100:.2f}% that is {z_score:.1f} standard deviations "
                        f"from the rolling {window_size}-day mean."
                    ),
                    recommendation=self._statistical_recommendation(z_score, current),
                    metadata={
                        "zScore": z_score,
                        "historicalMean": mean,
                        "historicalStd": std,
                        "threshold": cfg.sigma_threshold,
                    },
                )
            )
        return events

    def _detect_gaps(self, frame: pd.DataFrame) -> list[OutlierEvent]:
        cfg = self.config
        opens = frame["open"].to_numpy()
        closes = frame["close"].to_numpy()
        events: list[OutlierEvent] = []

        for i in range(1, len(frame)):
            gap = abs(opens[i] - closes[i - 1]) / closes[i - 1]
            if gap < cfg.price_jump_threshold:
                continue
            events.append(
                self._event(
                    frame,
                    i,
                    OutlierType.GAP_MOVE,
                    severity=_band(gap, 0.4, 0.3, 0.25),
                    confidence=min(gap / 0.5, 1.0),
                    value=opens[i],
                    expected=closes[i - 1],
                    magnitude=gap,
                    description=f"Overnight gap: {gap * 100:.1f}%",
                    explanation=(
                        f"Detected significant overnight price gap of {gap * 100:.1f}% between previous close "
                        "and current open."
                    ),
                    recommendation=self._gap_recommendation(gap, opens[i] > closes[i - 1]),
                    metadata={"priceChangePercent": float(gap), "threshold": cfg.price_jump_threshold},
                )
            )
        return events

    def _detect_volatility_spikes(self, frame: pd.DataFrame) -> list[OutlierEvent]:
        cfg = self.config
        returns = frame["close"].pct_change().to_numpy()[1:]
        short_size = cfg.volatility_window_size
        long_size = max(cfg.rolling_window_size, short_size)
        events: list[OutlierEvent] = []

        for i in range(long_size, len(returns)):
            baseline = float(returns[i - long_size : i].std())
            if baseline < _FLAT_EPSILON:
                continue
            recent = float(returns[i - short_size + 1 : i + 1].std())
            ratio = recent / baseline
            if ratio < cfg.volatility_spike_threshold:
                continue
            confidence = min(min(ratio / 5, 1.0) + min(long_size / 100, 0.2), 1.0)
            events.append(
                self._event(
                    frame,
                    i + 1,
                    OutlierType.VOLATILITY_SPIKE,
                    severity=_band(ratio, 5, 4, 3),
                    confidence=confidence,
                    value=recent,
                    expected=baseline,
                    magnitude=ratio,
                    description=f"Volatility spike: {ratio:.1f}x rolling volatility",
                    explanation=(
                        f"Detected {short_size}-day return volatility of {recent * 100:.2f}%, {ratio:.1f} times "
                        f"the rolling {long_size}-day volatility."
                    ),
                    recommendation=self._volatility_recommendation(ratio),
                    metadata={
                        "shortVolatility": recent,
                        "rollingVolatility": baseline,
                        "volatilityRatio": ratio,
                        "threshold": cfg.volatility_spike_threshold,
                    },
                )
            )
        return events

    @staticmethod
    def _event(
        frame: pd.DataFrame,
        index: int,
        kind: OutlierType,
        *,
        severity: OutlierSeverity,
        confidence: float,
        value: float,
        expected: float,
        magnitude: float,
        description: str,
        explanation: str,
        recommendation: str,
        metadata: dict[str, Any],
    ) -> OutlierEvent:
        date = frame.at[index, "date"]
        symbol = frame.at[index, "symbol"]
        return OutlierEvent(
            id=f"{kind.value}_{symbol}_{date}",
            date=date,
            symbol=symbol,
            type=kind,
            severity=severity,
            confidence=confidence,
            value=float(value),
            expected_value=float(expected),
            deviation_magnitude=float(magnitude),
            description=description,
            explanation=explanation,
            recommendation=recommendation,
            metadata=metadata,
        )

    # ---------------------------------------------------------- recommendations

    @staticmethod
    def _price_jump_recommendation(rising: bool, percent: float, volume_ratio: float) -> str:
        direction = "upward" if rising else "downward"
        note = " with high volume confirmation" if volume_ratio > 2 else ""
        if percent > 0.3:
            return (
                f"CRITICAL: Investigate immediately. This {direction} move{note} may indicate significant news "
                "or events affecting the asset."
            )
        if percent > 0.25:
            return (
                f"HIGH: Monitor closely. This {direction} movement{note} requires attention and potential "
                "position adjustment."
            )
        return f"MEDIUM: Review fundamentals. This {direction} move{note} may present trading opportunities."

    @staticmethod
    def _volume_spike_recommendation(ratio: float) -> str:
        if ratio > 8:
            return "CRITICAL: Exceptional trading activity detected. Check for news, earnings, or major corporate events."
        if ratio > 5:
            return "HIGH: Significant trading interest. Monitor for potential breakout or news-driven moves."
        return "MEDIUM: Increased trading activity. Consider investigating underlying reasons for volume increase."

    @staticmethod
    def _statistical_recommendation(z_score: float, value: float) -> str:
        direction = "positive" if value > 0 else "negative"
        if z_score > 4:
            return (
                f"CRITICAL: Extremely unusual {direction} return detected. This is statistically very rare and "
                "requires immediate investigation."
            )
        if z_score > 3.5:
            return (
                f"HIGH: Highly unusual {direction} return. Consider if this represents a new trend or temporary "
                "anomaly."
            )
        return f"MEDIUM: Unusual {direction} return detected. Monitor for continuation or reversion to mean."

    @staticmethod
    def _gap_recommendation(gap: float, upward: bool) -> str:
        direction = "up" if upward else "down"
        if gap > 0.3:
            return f"CRITICAL: Large overnight gap {direction}. Check for after-hours news, earnings, or significant events."
        if gap > 0.25:
            return f"HIGH: Significant gap {direction}. Monitor for gap fill or continuation of move."
        return f"MEDIUM: Notable gap {direction}. Consider trading opportunities around gap levels."

    @staticmethod
    def _volatility_recommendation(ratio: float) -> str:
        if ratio > 4:
            return "CRITICAL: Volatility regime shift detected. Reassess position sizing and risk limits."
        if ratio > 3:
            return "HIGH: Elevated short-term volatility. Tighten stops and monitor for continuation."
        return "MEDIUM: Volatility rising above its recent norm. Monitor for a sustained regime change."

    # ---------------------------------------------------------------- scoring

    def _passes(self) -> list[tuple[str, Callable[[pd.DataFrame], list[OutlierEvent]]]]:
        cfg = self.config
        candidates = [
            (cfg.enable_price_jump_detection, "price_jump", self._detect_price_jumps),
            (cfg.enable_volume_spike_detection, "volume_spike", self._detect_volume_spikes),
            (cfg.enable_statistical_outlier_detection, "statistical_outlier", self._detect_statistical_outliers),
            (cfg.enable_gap_detection, "gap_move", self._detect_gaps),
            (cfg.enable_volatility_spike_detection, "volatility_spike", self._detect_volatility_spikes),
        ]
        return [(name, detector) for enabled, name, detector in candidates if enabled]

    @staticmethod
    def _deduplicate(events: list[OutlierEvent]) -> list[OutlierEvent]:
        seen: set[tuple[str, str, str]] = set()
        unique: list[OutlierEvent] = []
        for event in events:
            key = (event.date, event.symbol, event.type)
            if key not in seen:
                seen.add(key)
                unique.append(event)
        return unique

    @staticmethod
    def _summary(events: list[OutlierEvent]) -> OutlierSummary:
        def count(kind: OutlierType) -> int:
            return sum(1 for event in events if event.type == kind)

        return OutlierSummary(
            price_jumps=count(OutlierType.PRICE_JUMP),
            volume_spikes=count(OutlierType.VOLUME_SPIKE),
            statistical_outliers=count(OutlierType.STATISTICAL_OUTLIER),
            gap_moves=count(OutlierType.GAP_MOVE),
            volatility_spikes=count(OutlierType.VOLATILITY_SPIKE),
            critical_events=sum(1 for event in events if event.severity == OutlierSeverity.CRITICAL),
            avg_confidence=sum(event.confidence for event in events) / len(events) if events else 0.0,
        )

    @staticmethod
    def _risk_score(events: list[OutlierEvent], total: int) -> int:
        if not events:
            return 0
        rate = len(events) / total
        critical = sum(1 for event in events if event.severity == OutlierSeverity.CRITICAL)
        average_confidence = sum(event.confidence for event in events) / len(events)
        return min(round(rate * 100 + critical / len(events) * 30 + average_confidence * 20), 100)

    def _quality_score(self, events: list[OutlierEvent], total: int) -> int:
        rate = len(events) / total
        error_events = sum(
            1
            for event in events
            if event.confidence < self.config.confidence_threshold or event.severity == OutlierSeverity.CRITICAL
        )
        return max(0, round(100 - rate * 100 - error_events / total * 200))

    # ----------------------------------------------------------------- public

    def analyze_outliers(self, series: Sequence[Any], symbol: str | None = None) -> AnalysisReport:
        """Run every enabled pass over ``series`` and aggregate the findings.

        Raises:
            InsufficientDataError: empty series or fewer than ``min_data_points``.
            DataValidationError: a point lacks a usable date, open, close or volume.
        """

        started = time.perf_counter()
        if not series:
            raise InsufficientDataError(
                "No data provided for outlier analysis", required=self.config.min_data_points, received=0
            )
        if len(series) < self.config.min_data_points:
            raise InsufficientDataError(
                f"Insufficient data points. Need at least {self.config.min_data_points}, got {len(series)}",
                required=self.config.min_data_points,
                received=len(series),
            )

        frame, resolved_symbol = self._frame(series, symbol)
        events: list[OutlierEvent] = []
        algorithms: list[str] = []
        for name, detector in self._passes():
            algorithms.append(name)
            events.extend(detector(frame))

        instants = dict(zip(frame["date"], frame["instant"]))
        unique = self._deduplicate(events)
        unique.sort(key=lambda event: instants[event.date])
        total = len(frame)

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._performance.record(elapsed_ms)
        collector = self.metrics or get_metrics_collector()
        for event in unique:
            collector.record_outlier(event.type)

        logger.bind(symbol=resolved_symbol).info(
            f"Outlier analysis found {len(unique)} event(s) across {total} data points"
        )
        return AnalysisReport(
            symbol=resolved_symbol,
            total_data_points=total,
            outliers_detected=len(unique),
            outlier_percentage=len(unique) / total * 100,
            events=unique,
            summary=self._summary(unique),
            risk_score=self._risk_score(unique, total),
            quality_score=self._quality_score(unique, total),
            last_analysis_time=utc_now_iso(),
            performance_metrics=DetectionPerformance(
                processing_time_ms=round(elapsed_ms, 3),
                data_points_analyzed=total,
                algorithms_used=algorithms,
            ),
        )

    def get_performance_metrics(self) -> dict[str, float]:
        perf = self._performance
        return {
            "total_analyses": perf.total_analyses,
            "total_processing_time": perf.total_processing_time,
            "average_processing_time": perf.average_processing_time,
            "last_analysis_time": perf.last_analysis_time,
        }

    def reset(self) -> None:
        self._performance = DetectorPerformance()

    def get_configuration(self) -> DetectionConfig:
        return self.config.model_copy()

    def update_configuration(self, **updates: Any) -> None:
        """Apply field updates; the detector keeps its old config if validation fails."""

        self.config = self._coerce_config({**self.config.model_dump(), **updates})
