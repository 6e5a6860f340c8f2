"""Durable per-endpoint metrics stored as an atomically replaced JSON snapshot."""

import copy
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path

from .models import EndpointMetrics, ProbeOutcome, Status

logger = logging.getLogger(__name__)


class MetricsStoreError(Exception):
    """Raised when the metrics snapshot cannot be written."""

    pass


_COUNTER_FIELDS = ("total_checks", "successful_checks", "failed_checks", "response_time_sum_ms")


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_timestamp(value: object) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp must carry a UTC offset, got {value!r}")
    return parsed


def _metrics_to_dict(metrics: EndpointMetrics) -> dict:
    return {
        "total_checks": metrics.total_checks,
        "successful_checks": metrics.successful_checks,
        "failed_checks": metrics.failed_checks,
        "total_downtime_seconds": metrics.total_downtime_seconds,
        "response_time_sum_ms": metrics.response_time_sum_ms,
        "last_check": _format_timestamp(metrics.last_check),
        "last_status": metrics.last_status.value if metrics.last_status is not None else None,
        "down_since": _format_timestamp(metrics.down_since),
    }


def _metrics_from_dict(endpoint: str, data: dict) -> EndpointMetrics:
    """Rebuild EndpointMetrics from its JSON form.

    Raises:
        ValueError: If the entry is malformed or violates the counter invariant.
    """
    if not isinstance(data, dict):
        raise ValueError("entry must be an object")

    counters: dict[str, int] = {}
    for name in _COUNTER_FIELDS:
        value = data.get(name, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"'{name}' must be a non-negative integer, got {value!r}")
        counters[name] = value

    if counters["total_checks"] != counters["successful_checks"] + counters["failed_checks"]:
        raise ValueError("total_checks does not equal successful_checks + failed_checks")

    downtime = data.get("total_downtime_seconds", 0.0)
    if isinstance(downtime, bool) or not isinstance(downtime, (int, float)) or downtime < 0:
        raise ValueError(f"'total_downtime_seconds' must be a non-negative number, got {downtime!r}")

    last_status = data.get("last_status")
    status = Status(last_status) if last_status is not None else None
    if status is Status.UNKNOWN:
        status = None

    return EndpointMetrics(
        endpoint=endpoint,
        total_checks=counters["total_checks"],
        successful_checks=counters["successful_checks"],
        failed_checks=counters["failed_checks"],
        total_downtime_seconds=float(downtime),
        response_time_sum_ms=counters["response_time_sum_ms"],
        last_check=_parse_timestamp(data.get("last_check")),
        last_status=status,
        down_since=_parse_timestamp(data.get("down_since")),
    )


class MetricsStore:
    """Owns the EndpointMetrics of every endpoint ever seen.

    The in-memory view is updated by ``record`` and persisted by ``flush``,
    which replaces the JSON file atomically so readers never see a partial
    snapshot.

    Example:
        store = MetricsStore("metrics/uptime_metrics.json")
        store.load()
        store.record(outcome)
        store.flush()
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._metrics: dict[str, EndpointMetrics] = {}
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, EndpointMetrics]:
        """Load the snapshot from disk, replacing the in-memory metrics.

        A missing or unreadable file means a fresh start. Malformed entries
        are skipped individually.

        Returns:
            Copy of the loaded metrics keyed by endpoint.
        """
        loaded: dict[str, EndpointMetrics] = {}

        if not self._path.exists():
            logger.info("Metrics file not found at %s, starting fresh", self._path)
        else:
            try:
                with open(self._path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning("Failed to read metrics file %s, starting fresh: %s", self._path, e)
                data = {}

            if not isinstance(data, dict):
                logger.warning("Metrics file %s is not a JSON object, starting fresh", self._path)
                data = {}

            for endpoint, entry in data.items():
                try:
                    loaded[endpoint] = _metrics_from_dict(endpoint, entry)
                except ValueError as e:
                    logger.warning("Skipping corrupt metrics entry for %s: %s", endpoint, e)

            logger.info("Loaded metrics for %d endpoint(s) from %s", len(loaded), self._path)

        with self._lock:
            self._metrics = loaded
        return self.snapshot()

    def record(self, outcome: ProbeOutcome) -> EndpointMetrics:
        """Account one probe outcome in the endpoint's metrics.

        Args:
            outcome: Result of a probe.

        Returns:
            Copy of the updated metrics.
        """
        with self._lock:
            metrics = self._metrics.get(outcome.endpoint)
            if metrics is None:
                metrics = EndpointMetrics(endpoint=outcome.endpoint)
                self._metrics[outcome.endpoint] = metrics

            previous = metrics.last_status
            recovered = 0.0
            if outcome.is_up and previous is Status.DOWN and metrics.down_since is not None:
                recovered = max((outcome.checked_at - metrics.down_since).total_seconds(), 0.0)

            metrics.total_checks += 1
            metrics.last_check = outcome.checked_at
            metrics.last_status = outcome.status

            if outcome.is_up:
                metrics.successful_checks += 1
                metrics.response_time_sum_ms += outcome.response_time_ms
                metrics.total_downtime_seconds += recovered
                metrics.down_since = None
            else:
                metrics.failed_checks += 1
                if previous is not Status.DOWN or metrics.down_since is None:
                    metrics.down_since = outcome.checked_at

            return copy.copy(metrics)

    def get(self, endpoint: str) -> EndpointMetrics | None:
        with self._lock:
            metrics = self._metrics.get(endpoint)
            return copy.copy(metrics) if metrics is not None else None

    def endpoints(self) -> list[str]:
        with self._lock:
            return list(self._metrics)

    def snapshot(self) -> dict[str, EndpointMetrics]:
        """Return copies of all metrics keyed by endpoint."""
        with self._lock:
            return {endpoint: copy.copy(metrics) for endpoint, metrics in self._metrics.items()}

    def flush(self) -> None:
        """Write all metrics to disk atomically.

        The snapshot is written to a temporary file in the same directory,
        synced, then renamed over the previous file.

        Raises:
            MetricsStoreError: If the snapshot could not be written. The
                previous file is left untouched.
        """
        with self._lock:
            data = {endpoint: _metrics_to_dict(metrics) for endpoint, metrics in self._metrics.items()}

        tmp_path: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=self._path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise MetricsStoreError(f"Failed to write metrics to {self._path}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.debug("Could not remove temporary metrics file %s", tmp_path)

        logger.debug("Flushed metrics for %d endpoint(s) to %s", len(data), self._path)
