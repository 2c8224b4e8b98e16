"""Structured logging utilities for export runs.

Provides consistent logging format with required fields:
- source
- run_id
- step
- row_count
- duration_ms
- status
"""

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class RunLogContext:
    """Context for run logging with required fields."""

    source: str
    run_id: str
    step: str = ""
    row_count: int = 0
    file_path: Optional[str] = None
    duration_ms: Optional[float] = None
    status: str = "started"
    error: Optional[str] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        data = asdict(self)
        data["logged_at"] = datetime.now(timezone.utc).isoformat()
        return {k: v for k, v in data.items() if v is not None}

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class RunLogger:
    """Structured logger for one export run."""

    def __init__(self, source: str, run_id: str):
        """Initialize run logger.

        Args:
            source: Data source name (e.g., the REDCap project host)
            run_id: Unique run identifier
        """
        self.source = source
        self.run_id = run_id
        self.logger = logging.getLogger(f"ctrdata.run.{source}")
        self._start_time: Optional[float] = None
        self._step_durations: dict[str, float] = {}

    def _log(self, level: int, step: str, **kwargs) -> None:
        ctx = RunLogContext(source=self.source, run_id=self.run_id, step=step, **kwargs)
        self.logger.log(level, ctx.to_json(), extra=ctx.to_dict())

    def _elapsed_ms(self) -> Optional[float]:
        if self._start_time is None:
            return None
        return round((time.time() - self._start_time) * 1000, 2)

    def start(self, step: str) -> None:
        """Log step start."""
        self._start_time = time.time()
        self._log(logging.INFO, step, status="started")

    def success(self, step: str, **kwargs) -> None:
        """Log step success."""
        duration = self._elapsed_ms()
        if duration is not None:
            self._step_durations[step] = duration
        self._log(logging.INFO, step, status="success", duration_ms=duration, **kwargs)

    def error(self, step: str, error: Exception, **kwargs) -> None:
        """Log step error."""
        self._log(
            logging.ERROR,
            step,
            status="error",
            error=str(error),
            duration_ms=self._elapsed_ms(),
            **kwargs
        )

    def log_transform(
        self,
        step: str,
        input_count: int,
        output_count: int,
        duration_ms: float,
    ) -> None:
        """Log a transformation step."""
        self._step_durations[step] = duration_ms
        self._log(
            logging.INFO,
            step=step,
            status="success",
            row_count=output_count,
            duration_ms=round(duration_ms, 2),
            extra={"input_count": input_count, "output_count": output_count},
        )

    def log_file_write(
        self,
        file_path: str,
        row_count: int,
        file_size_bytes: int,
    ) -> None:
        """Log a workbook write."""
        self._log(
            logging.INFO,
            step="file_write",
            status="success",
            file_path=file_path,
            row_count=row_count,
            extra={"file_size_bytes": file_size_bytes},
        )

    def get_metrics(self) -> dict:
        """Get aggregated step timings."""
        return {
            "source": self.source,
            "run_id": self.run_id,
            "steps": dict(self._step_durations),
            "total_step_time_ms": round(sum(self._step_durations.values()), 2),
        }


@contextmanager
def timed_operation(name: str, logger: logging.Logger = None):
    """Context manager to time an operation.

    Usage:
        with timed_operation("reconcile") as timer:
            data = reconcile_timestamps(data)
        print(f"Took {timer.duration_ms}ms")

    Args:
        name: Operation name for logging
        logger: Optional logger instance

    Yields:
        Timer object with duration_ms attribute
    """
    class Timer:
        def __init__(self):
            self.start_time = time.time()
            self.end_time = None
            self.duration_ms = 0

    timer = Timer()

    try:
        yield timer
    finally:
        timer.end_time = time.time()
        timer.duration_ms = (timer.end_time - timer.start_time) * 1000

        if logger:
            logger.debug(
                f"Operation '{name}' completed",
                extra={"operation": name, "duration_ms": timer.duration_ms}
            )
