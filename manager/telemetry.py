from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class StageOutcome:
    stage: str
    success: bool
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)


class OutcomeMonitor:
    """Record success/failure per generation stage."""

    def __init__(self) -> None:
        self._events: List[StageOutcome] = []

    def log_event(self, stage: str, success: bool, metadata: Optional[Dict[str, Any]] = None) -> None:
        event = StageOutcome(stage=stage, success=success, metadata=metadata or {})
        self._events.append(event)
        if not success:
            logger.warning("Stage failure @%s -> %s", stage, event.metadata)

    def failures(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for event in self._events:
            if not event.success:
                counts[event.stage] = counts.get(event.stage, 0) + 1
        return counts

    def summary(self) -> Dict[str, Any]:
        return {
            "total_events": len(self._events),
            "failures": self.failures(),
            "stages": [{"stage": e.stage, "success": e.success, "metadata": e.metadata} for e in self._events],
        }


class PerformanceMonitor:
    """Record stage durations via context manager usage."""

    class _StageTimer:
        def __init__(self, monitor: PerformanceMonitor, stage: str) -> None:
            self._monitor = monitor
            self._stage = stage
            self._start: float | None = None

        def __enter__(self) -> PerformanceMonitor._StageTimer:
            self._start = time.perf_counter()
            return self

        def __exit__(self, exc_type, exc, exc_tb) -> None:
            end = time.perf_counter()
            duration = end - (self._start or end)
            self._monitor._record(self._stage, duration)
            if exc:
                logger.error("Stage %s failed after %.2fs: %s", self._stage, duration, exc)

    def __init__(self) -> None:
        self._durations: Dict[str, float] = {}

    def track(self, stage: str) -> PerformanceMonitor._StageTimer:
        return PerformanceMonitor._StageTimer(self, stage)

    def _record(self, stage: str, duration: float) -> None:
        self._durations[stage] = duration
        logger.debug("Stage %s duration %.2fs", stage, duration)

    def summary(self) -> Dict[str, float]:
        return {stage: round(seconds, 3) for stage, seconds in self._durations.items()}
