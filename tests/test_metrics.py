"""Tests for the metrics store."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from uptimewatch.metrics import MetricsStore, MetricsStoreError
from uptimewatch.models import EndpointMetrics, FailureKind, ProbeOutcome, Status

ENDPOINT = "https://example.com"
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def outcome(is_up: bool, seconds: int = 0, latency: int = 100, endpoint: str = ENDPOINT) -> ProbeOutcome:
    return ProbeOutcome(
        endpoint=endpoint,
        is_up=is_up,
        response_time_ms=latency,
        checked_at=T0 + timedelta(seconds=seconds),
        status_code=200 if is_up else None,
        failure=None if is_up else FailureKind.TIMEOUT,
    )


@pytest.fixture
def metrics_path(tmp_path: Path) -> Path:
    return tmp_path / "metrics" / "uptime_metrics.json"


@pytest.fixture
def store(metrics_path: Path) -> MetricsStore:
    store = MetricsStore(metrics_path)
    store.load()
    return store


class TestEndpointMetrics:
    """Tests for derived EndpointMetrics values."""

    def test_average_is_zero_without_successes(self) -> None:
        """Average response time is 0 when nothing succeeded."""
        metrics = EndpointMetrics(endpoint=ENDPOINT, total_checks=2, failed_checks=2)
        assert metrics.average_response_time_ms == 0.0

    def test_average_response_time(self) -> None:
        """Average is sum divided by successful checks."""
        metrics = EndpointMetrics(
            endpoint=ENDPOINT, total_checks=3, successful_checks=2, failed_checks=1, response_time_sum_ms=300
        )
        assert metrics.average_response_time_ms == 150.0

    def test_uptime_percent(self) -> None:
        """Uptime is successful over total."""
        metrics = EndpointMetrics(endpoint=ENDPOINT, total_checks=4, successful_checks=3, failed_checks=1)
        assert metrics.uptime_percent == 75.0


class TestRecord:
    """Tests for MetricsStore.record."""

    def test_success_updates_counters(self, store: MetricsStore) -> None:
        """A successful probe increments total and successful and sums latency."""
        metrics = store.record(outcome(True, latency=120))

        assert metrics.total_checks == 1
        assert metrics.successful_checks == 1
        assert metrics.failed_checks == 0
        assert metrics.response_time_sum_ms == 120
        assert metrics.last_status is Status.UP
        assert metrics.last_check == T0

    def test_failure_does_not_add_latency(self, store: MetricsStore) -> None:
        """Failed probes are counted but excluded from the latency sum."""
        metrics = store.record(outcome(False, latency=10000))

        assert metrics.failed_checks == 1
        assert metrics.response_time_sum_ms == 0
        assert metrics.last_status is Status.DOWN
        assert metrics.down_since == T0

    def test_total_equals_successful_plus_failed(self, store: MetricsStore) -> None:
        """The counter invariant holds after every record."""
        for i, is_up in enumerate([True, False, False, True, True, False, True]):
            metrics = store.record(outcome(is_up, seconds=i * 60))
            assert metrics.total_checks == metrics.successful_checks + metrics.failed_checks

    def test_downtime_spans_whole_outage(self, store: MetricsStore) -> None:
        """Up(t0), Down(t1), Down(t2), Up(t3) accumulates t3 - t1."""
        store.record(outcome(True, seconds=0))
        store.record(outcome(False, seconds=60))
        store.record(outcome(False, seconds=120))
        metrics = store.record(outcome(True, seconds=180))

        assert metrics.total_downtime_seconds == 120.0
        assert metrics.down_since is None

    def test_downtime_accumulates_over_outages(self, store: MetricsStore) -> None:
        """Multiple outages add up."""
        store.record(outcome(False, seconds=0))
        store.record(outcome(True, seconds=30))
        store.record(outcome(False, seconds=100))
        metrics = store.record(outcome(True, seconds=110))

        assert metrics.total_downtime_seconds == 40.0

    def test_ongoing_outage_not_counted(self, store: MetricsStore) -> None:
        """Downtime is only added when the endpoint recovers."""
        store.record(outcome(True, seconds=0))
        metrics = store.record(outcome(False, seconds=60))

        assert metrics.total_downtime_seconds == 0.0
        assert metrics.down_since == T0 + timedelta(seconds=60)

    def test_endpoints_are_independent(self, store: MetricsStore) -> None:
        """Recording for one endpoint leaves others untouched."""
        store.record(outcome(True))
        store.record(outcome(False, endpoint="https://other.example.com"))

        assert store.get(ENDPOINT).failed_checks == 0
        assert store.get("https://other.example.com").successful_checks == 0

    def test_record_returns_copy(self, store: MetricsStore) -> None:
        """Callers cannot mutate the stored metrics through the return value."""
        metrics = store.record(outcome(True))
        metrics.total_checks = 99

        assert store.get(ENDPOINT).total_checks == 1


class TestLoad:
    """Tests for MetricsStore.load."""

    def test_missing_file_is_fresh_start(self, metrics_path: Path) -> None:
        """No file means empty metrics."""
        assert MetricsStore(metrics_path).load() == {}

    def test_corrupt_json_is_fresh_start(self, metrics_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Unparsable file is treated as empty, not fatal."""
        metrics_path.parent.mkdir(parents=True)
        metrics_path.write_text("{not json")

        assert MetricsStore(metrics_path).load() == {}
        assert "starting fresh" in caplog.text

    def test_non_object_is_fresh_start(self, metrics_path: Path) -> None:
        """A JSON list is not a valid snapshot."""
        metrics_path.parent.mkdir(parents=True)
        metrics_path.write_text("[1, 2, 3]")

        assert MetricsStore(metrics_path).load() == {}

    def test_skips_malformed_entries(self, metrics_path: Path) -> None:
        """Bad entries are dropped while good ones survive."""
        metrics_path.parent.mkdir(parents=True)
        metrics_path.write_text(
            json.dumps(
                {
                    "https://good.example.com": {
                        "total_checks": 2,
                        "successful_checks": 1,
                        "failed_checks": 1,
                        "total_downtime_seconds": 5.5,
                        "response_time_sum_ms": 80,
                        "last_check": "2024-01-01T12:00:00+00:00",
                        "last_status": "up",
                        "down_since": None,
                    },
                    "https://mismatch.example.com": {"total_checks": 5, "successful_checks": 1, "failed_checks": 1},
                    "https://negative.example.com": {"total_checks": -1},
                    "https://status.example.com": {"last_status": "sideways"},
                    "https://timestamp.example.com": {"last_check": "yesterday"},
                    "https://naive.example.com": {
                        "total_checks": 1,
                        "successful_checks": 0,
                        "failed_checks": 1,
                        "last_status": "down",
                        "down_since": "2024-01-01T00:00:00",
                    },
                    "https://notadict.example.com": 42,
                }
            )
        )

        loaded = MetricsStore(metrics_path).load()

        assert list(loaded) == ["https://good.example.com"]
        good = loaded["https://good.example.com"]
        assert good.total_checks == 2
        assert good.total_downtime_seconds == 5.5
        assert good.last_status is Status.UP
        assert good.last_check == T0

    def test_loaded_counters_keep_accumulating(self, metrics_path: Path, store: MetricsStore) -> None:
        """Counters resume from persisted values after a restart."""
        store.record(outcome(True))
        store.record(outcome(False, seconds=60))
        store.flush()

        restarted = MetricsStore(metrics_path)
        restarted.load()
        metrics = restarted.record(outcome(True, seconds=120))

        assert metrics.total_checks == 3
        assert metrics.successful_checks == 2
        assert metrics.failed_checks == 1
        assert metrics.total_downtime_seconds == 60.0


class TestFlush:
    """Tests for MetricsStore.flush."""

    def test_round_trip(self, metrics_path: Path, store: MetricsStore) -> None:
        """flush() then load() in a new store reproduces identical metrics."""
        store.record(outcome(True, latency=90))
        store.record(outcome(False, seconds=60))
        store.record(outcome(True, seconds=90, endpoint="https://other.example.com"))
        store.flush()

        loaded = MetricsStore(metrics_path).load()

        assert loaded == store.snapshot()

    def test_creates_parent_directory(self, metrics_path: Path, store: MetricsStore) -> None:
        """The metrics directory is created on demand."""
        store.record(outcome(True))
        store.flush()

        assert metrics_path.exists()

    def test_file_format(self, metrics_path: Path, store: MetricsStore) -> None:
        """The snapshot is keyed by endpoint URL with plain JSON values."""
        store.record(outcome(True, latency=90))
        store.flush()

        data = json.loads(metrics_path.read_text())

        assert data == {
            ENDPOINT: {
                "total_checks": 1,
                "successful_checks": 1,
                "failed_checks": 0,
                "total_downtime_seconds": 0.0,
                "response_time_sum_ms": 90,
                "last_check": "2024-01-01T12:00:00+00:00",
                "last_status": "up",
                "down_since": None,
            }
        }

    def test_keeps_previously_seen_endpoints(self, metrics_path: Path, store: MetricsStore) -> None:
        """Endpoints loaded from disk are written back even if not probed again."""
        store.record(outcome(True, endpoint="https://retired.example.com"))
        store.flush()

        restarted = MetricsStore(metrics_path)
        restarted.load()
        restarted.record(outcome(True))
        restarted.flush()

        data = json.loads(metrics_path.read_text())
        assert set(data) == {ENDPOINT, "https://retired.example.com"}

    def test_no_temp_files_left(self, metrics_path: Path, store: MetricsStore) -> None:
        """Only the snapshot file remains after a flush."""
        store.record(outcome(True))
        store.flush()
        store.flush()

        assert [p.name for p in metrics_path.parent.iterdir()] == [metrics_path.name]

    def test_failed_write_keeps_previous_snapshot(self, metrics_path: Path, store: MetricsStore) -> None:
        """A failed flush raises and leaves the old file intact."""
        store.record(outcome(True))
        store.flush()
        before = metrics_path.read_text()

        store.record(outcome(False, seconds=60))
        with patch("uptimewatch.metrics.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(MetricsStoreError, match="disk full"):
                store.flush()

        assert metrics_path.read_text() == before
        assert [p.name for p in metrics_path.parent.iterdir()] == [metrics_path.name]
        assert store.get(ENDPOINT).total_checks == 2

    def test_failed_flush_retried_successfully(self, metrics_path: Path, store: MetricsStore) -> None:
        """In-memory metrics survive a failed flush and are written next time."""
        store.record(outcome(True))
        with patch("uptimewatch.metrics.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(MetricsStoreError):
                store.flush()

        store.flush()

        assert MetricsStore(metrics_path).load()[ENDPOINT].total_checks == 1
