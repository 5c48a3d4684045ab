"""
Structured event logging for the recovery sweep and the health monitor.

Events go to the standard logger as `[event] key=value` lines and, when enabled,
to a JSON Lines file with one object per event.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import IO, Any


class _JsonlSink:
    """Append-only JSON Lines file, flushed after every event."""

    def __init__(self, log_dir: Path):
        log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.path = log_dir / f"peertrack_{stamp}.jsonl"
        self._file: IO[str] | None = open(self.path, "a", encoding="utf-8")  # noqa: SIM115

    def write(self, entry: dict[str, Any]) -> None:
        if self._file is None:
            return
        try:
            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except (OSError, TypeError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class StructuredLogger:
    """
    Emits named events with keyword context.

    Usage:
        events = StructuredLogger("peertrack.events", log_dir=Path("logs"))
        events.info("checkpoint_resumed", checkpoint_id="c0ffee", target_path="x")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        self.name = name
        self.enable_console = enable_console
        self._logger = logging.getLogger(name)
        self._sink = _JsonlSink(log_dir) if enable_json and log_dir else None
        # Added to every JSON entry
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    @property
    def enable_json(self) -> bool:
        return self._sink is not None

    @property
    def json_path(self) -> Path | None:
        return self._sink.path if self._sink else None

    def set_session_context(self, **kwargs) -> None:
        self._session_context.update(kwargs)

    def emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            fields = " ".join(f"{key}={value}" for key, value in context.items())
            self._logger.log(level, f"[{event}] {fields}".rstrip())
        if self._sink:
            self._sink.write(
                {
                    "timestamp": datetime.now().isoformat(),
                    "level": logging.getLevelName(level),
                    "event": event,
                    **self._session_context,
                    **context,
                }
            )

    def info(self, event: str, **context) -> None:
        self.emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self.emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self.emit(logging.ERROR, event, **context)

    def close(self) -> None:
        if self._sink:
            self._sink.close()


class RecoveryLogger:
    """Specialized logger for crash recovery sweep events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def sweep_started(self, pending: int, pruned: int):
        self.logger.info("recovery_sweep_started", pending=pending, pruned=pruned)

    def checkpoint_resumed(self, checkpoint_id: str, target_path: str, final_path: str):
        self.logger.info(
            "checkpoint_resumed",
            checkpoint_id=checkpoint_id,
            target_path=target_path,
            final_path=final_path,
        )

    def checkpoint_cleaned(self, checkpoint_id: str, target_path: str, reason: str):
        self.logger.info(
            "checkpoint_cleaned",
            checkpoint_id=checkpoint_id,
            target_path=target_path,
            reason=reason,
        )

    def checkpoint_discarded(self, checkpoint_id: str, operation_type: str, reason: str):
        """Logged for checkpoints dropped without a tally (unreadable, unsafe, unknown)."""
        self.logger.warning(
            "checkpoint_discarded",
            checkpoint_id=checkpoint_id,
            operation_type=operation_type,
            reason=reason,
        )

    def checkpoint_dead_lettered(
        self, checkpoint_id: str, operation_type: str, target_path: str, failures: int
    ):
        self.logger.warning(
            "checkpoint_dead_lettered",
            checkpoint_id=checkpoint_id,
            operation_type=operation_type,
            target_path=target_path,
            failure_count=failures,
        )

    def checkpoint_failed(self, checkpoint_id: str, error: str, failures: int):
        self.logger.error(
            "checkpoint_recovery_failed",
            checkpoint_id=checkpoint_id,
            error=error,
            failure_count=failures,
        )

    def sweep_completed(
        self,
        duration_s: float,
        resumed: int,
        cleaned: int,
        failed: int,
        dead_lettered: int,
    ):
        self.logger.info(
            "recovery_sweep_completed",
            duration_s=round(duration_s, 3),
            resumed=resumed,
            cleaned=cleaned,
            failed=failed,
            dead_lettered=dead_lettered,
        )

    def sweep_aborted(self, error: str):
        self.logger.error("recovery_sweep_aborted", error=error)


class HealthLogger:
    """Specialized logger for download health monitor events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def monitor_started(self, interval_s: float):
        self.logger.info("health_monitor_started", interval_s=interval_s)

    def monitor_stopped(self, ticks: int):
        self.logger.info("health_monitor_stopped", ticks=ticks)

    def stall_intervention(
        self, transfer_id: str, stalled_seconds: float, bytes_received: int, total_bytes: int
    ):
        self.logger.warning(
            "stall_intervention",
            transfer_id=transfer_id,
            stalled_seconds=stalled_seconds,
            bytes_received=bytes_received,
            total_bytes=total_bytes,
        )

    def intervention_failed(self, transfer_id: str, error: str):
        self.logger.error(
            "stall_intervention_failed", transfer_id=transfer_id, error=error
        )


def create_structured_logger(
    log_dir: Path | None = None,
    enable_json: bool = False,
    enable_console: bool = False,
) -> tuple[StructuredLogger, RecoveryLogger, HealthLogger]:
    """
    Create all structured loggers.

    Console output is off by default because the services already log
    human-readable messages through the standard logger.

    Returns:
        Tuple of (base_logger, recovery_logger, health_logger)
    """
    base = StructuredLogger(
        "peertrack.events",
        log_dir=log_dir,
        enable_json=enable_json,
        enable_console=enable_console,
    )
    return base, RecoveryLogger(base), HealthLogger(base)
