"""Structured audit logging.

One event is written per inbound request. Events must never contain secret material
(tokens, private key content, the shared API key, installation IDs).
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path


def new_correlation_id() -> str:
    """Generate a random correlation id for traceability."""
    return uuid.uuid4().hex


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """A single audit event."""

    timestamp: str
    correlation_id: str
    operation: str
    target_repo: str
    outcome: str
    reason: str | None
    cache: str | None
    duration_ms: int | None

    def to_json(self) -> str:
        payload = {
            "timestamp": self.timestamp,
            "correlation_id": self.correlation_id,
            "operation": self.operation,
            "target_repo": self.target_repo,
            "outcome": self.outcome,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.cache is not None:
            payload["cache"] = self.cache
        if self.duration_ms is not None:
            payload["duration_ms"] = self.duration_ms
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class AuditLogger:
    """Writes audit events as JSON lines to stderr and optionally to a rotated file."""

    def __init__(
        self,
        *,
        sink_path: Path | None,
        max_bytes: int = 5 * 1024 * 1024,
        max_backups: int = 2,
    ) -> None:
        # Each instance owns its logger so sinks never leak between runtimes.
        self._logger = logging.getLogger(f"{__name__}.{uuid.uuid4().hex[:8]}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter("%(message)s"))
        self._logger.addHandler(stream)

        if sink_path is not None:
            try:
                sink_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = RotatingFileHandler(
                    sink_path,
                    maxBytes=max_bytes,
                    backupCount=max_backups,
                    encoding="utf-8",
                )
            except OSError:
                # The file sink is optional; stderr keeps receiving events.
                logging.getLogger(__name__).warning("Audit file sink unavailable")
            else:
                file_handler.setFormatter(logging.Formatter("%(message)s"))
                self._logger.addHandler(file_handler)

    def write_event(self, event: AuditEvent) -> None:
        """Write an audit event to every configured sink."""
        self._logger.info(event.to_json())

    def measure_start(self) -> float:
        """Return a monotonic start timestamp for duration measurement."""
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        """Convert a monotonic start timestamp into elapsed milliseconds."""
        return int((time.monotonic() - start) * 1000)


def build_event(
    *,
    correlation_id: str,
    operation: str,
    target_repo: str,
    outcome: str,
    reason: str | None = None,
    cache: str | None = None,
    duration_ms: int | None = None,
) -> AuditEvent:
    """Construct an audit event."""
    return AuditEvent(
        timestamp=_now_rfc3339(),
        correlation_id=correlation_id,
        operation=operation,
        target_repo=target_repo,
        outcome=outcome,
        reason=reason,
        cache=cache,
        duration_ms=duration_ms,
    )
