"""
Stage timing for summary assembly and sync runs.

Usage:
    timer = StageTimer("dashboard_summary")
    rows = await timer.measure("phase1_reads", gather_reads())
    timer.mark("aggregate")
    timer.finish(extra={"cache": "miss"})

Emits one "[perf]" log line per operation; never changes behaviour.
"""

import logging
import time
import uuid
from typing import Any, Awaitable, Dict, Optional

logger = logging.getLogger(__name__)


class StageTimer:
    """Monotonic per-stage timings for one request or sync run."""

    def __init__(self, operation: str, run_id: Optional[str] = None):
        self.operation = operation
        self.run_id = run_id or uuid.uuid4().hex[:8]
        self.stages: Dict[str, float] = {}
        self._start = time.monotonic()
        self._last = self._start

    def mark(self, name: str) -> float:
        """Close the stage that started at the previous mark."""
        now = time.monotonic()
        elapsed = now - self._last
        self.stages[name] = round(elapsed, 4)
        self._last = now
        return elapsed

    async def measure(self, name: str, awaitable: Awaitable[Any]) -> Any:
        """Await *awaitable* and record it as stage *name*."""
        self._last = time.monotonic()
        try:
            return await awaitable
        finally:
            self.mark(name)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start

    def finish(self, extra: Optional[dict] = None) -> float:
        total = round(self.elapsed, 4)
        parts = " ".join(f"{k}={v:.4f}s" for k, v in self.stages.items())
        tail = ""
        if extra:
            tail = " " + " ".join(f"{k}={v}" for k, v in extra.items())
        logger.info("[perf][%s] %s total=%.4fs %s%s", self.run_id, self.operation, total, parts, tail)
        return total
