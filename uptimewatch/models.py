"""Data models for endpoint probing, status tracking and metrics."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Status(str, Enum):
    """Coarse reachability verdict of an endpoint."""

    UNKNOWN = "unknown"
    UP = "up"
    DOWN = "down"


class FailureKind(str, Enum):
    """Why a probe classified an endpoint as unreachable."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP_STATUS = "http_status"
    REQUEST = "request"


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single endpoint probe.

    Attributes:
        endpoint: URL that was probed.
        is_up: Whether the endpoint answered with a 2xx status code.
        response_time_ms: End-to-end latency in milliseconds.
        checked_at: Timestamp when the probe was dispatched (UTC).
        status_code: HTTP status code, or None if no response was received.
        failure: Diagnostic class when the endpoint is unreachable, None otherwise.
        error_message: Human-readable diagnostic, None when the endpoint is up.
    """

    endpoint: str
    is_up: bool
    response_time_ms: int
    checked_at: datetime
    status_code: int | None = None
    failure: FailureKind | None = None
    error_message: str | None = None

    @property
    def status(self) -> Status:
        return Status.UP if self.is_up else Status.DOWN


@dataclass
class EndpointState:
    """Runtime status of one endpoint, owned by the status tracker.

    Attributes:
        endpoint: URL being tracked.
        status: Current coarse status, UNKNOWN until the first probe.
        last_checked_at: Timestamp of the most recent probe.
        last_response_time_ms: Latency of the most recent probe.
        status_since: When the current status began.
    """

    endpoint: str
    status: Status = Status.UNKNOWN
    last_checked_at: datetime | None = None
    last_response_time_ms: int | None = None
    status_since: datetime | None = None


@dataclass
class EndpointMetrics:
    """Durable reliability counters for one endpoint.

    Counters accumulate across restarts. ``total_checks`` always equals
    ``successful_checks + failed_checks``.

    Attributes:
        endpoint: URL the counters belong to.
        total_checks: Number of probes recorded.
        successful_checks: Number of probes that found the endpoint up.
        failed_checks: Number of probes that found the endpoint down.
        total_downtime_seconds: Sum of completed outage durations.
        response_time_sum_ms: Sum of latencies of successful probes.
        last_check: Timestamp of the most recent probe.
        last_status: Status of the most recent probe, None if never probed.
        down_since: Start of the ongoing outage, None while up.
    """

    endpoint: str
    total_checks: int = 0
    successful_checks: int = 0
    failed_checks: int = 0
    total_downtime_seconds: float = 0.0
    response_time_sum_ms: int = 0
    last_check: datetime | None = None
    last_status: Status | None = None
    down_since: datetime | None = None

    @property
    def average_response_time_ms(self) -> float:
        """Mean latency of successful probes, 0.0 when there are none."""
        if self.successful_checks == 0:
            return 0.0
        return self.response_time_sum_ms / self.successful_checks

    @property
    def uptime_percent(self) -> float:
        """Share of successful probes (0.0-100.0)."""
        if self.total_checks == 0:
            return 0.0
        return self.successful_checks / self.total_checks * 100.0


@dataclass(frozen=True)
class TransitionEvent:
    """A change in an endpoint's coarse up/down verdict.

    Attributes:
        endpoint: URL whose status changed.
        previous: Status before the change.
        current: Status after the change.
        timestamp: When the probe that observed the change was dispatched.
        response_time_ms: Latency of the recovering probe, None unless current is UP.
        downtime_seconds: Length of the outage that just ended, None unless current is UP.
    """

    endpoint: str
    previous: Status
    current: Status
    timestamp: datetime
    response_time_ms: int | None = None
    downtime_seconds: float | None = None
