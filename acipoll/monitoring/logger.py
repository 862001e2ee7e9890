"""Structured logging for poller monitoring."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "acipoll", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, controller, node, interface, direction, url,
                      status, error, elapsed_ms, stage, pending
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def fetch_start(self, url: str) -> None:
        self.log("fetch_start", logging.DEBUG, url=url)

    def fetch_success(self, url: str, status: int, elapsed_ms: float) -> None:
        self.log("fetch_success", logging.DEBUG, url=url, status=status, elapsed_ms=elapsed_ms)

    def fetch_error(self, url: str, status: Optional[int], error: str) -> None:
        self.log("fetch_error", logging.WARNING, url=url, status=status, error=error)

    def stage_start(self, stage: str, pending: int) -> None:
        self.log("stage_start", stage=stage, pending=pending)

    def stage_complete(self, stage: str, elapsed_ms: float) -> None:
        self.log("stage_complete", stage=stage, elapsed_ms=elapsed_ms)

    def login_failed(self, controller: str, error: str) -> None:
        self.log("login_failed", logging.ERROR, controller=controller, error=error)

    def job_failed(self, controller: str, node: str, interface: str, direction: str, error: str) -> None:
        self.log(
            "job_failed", logging.WARNING,
            controller=controller, node=node, interface=interface,
            direction=direction, error=error
        )

    def queue_drained(self, controller: str, attempted: int, failed: int, max_in_flight: int) -> None:
        self.log(
            "queue_drained",
            controller=controller, attempted=attempted,
            failed=failed, max_in_flight=max_in_flight
        )

    def event_forwarded(self, controller: str, severity: str) -> None:
        self.log("event_forwarded", logging.DEBUG, controller=controller, severity=severity)

    def event_dropped(self, controller: str, error: str) -> None:
        self.log("event_dropped", logging.WARNING, controller=controller, error=error)

    def output_written(self, controller: str, path: str, entries: int) -> None:
        self.log("output_written", controller=controller, path=path, entries=entries)

    def output_skipped(self, controller: str, path: str, error: str) -> None:
        self.log("output_skipped", logging.ERROR, controller=controller, path=path, error=error)
