"""Periodic, concurrent probing of all endpoints with change notifications."""

import functools
import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from threading import Event, Lock, Thread

from .config import Config
from .metrics import MetricsStore, MetricsStoreError
from .models import FailureKind, ProbeOutcome, TransitionEvent
from .notifier import STATUS_ICONS, Notifier
from .prober import check_endpoint
from .tracker import StatusTracker

logger = logging.getLogger(__name__)

# Extra seconds granted on top of the probe timeout before a probe that has
# not returned is recorded as timed out. requests bounds each socket
# operation separately, so a slow-drip response can outlive its timeout.
TICK_DEADLINE_GRACE = 2.0

ProbeFunc = Callable[[str, float, str, str], ProbeOutcome]


class Monitor:
    """Threaded scheduler that probes every endpoint once per interval.

    On start every endpoint is probed once and its initial status announced.
    After that a tick runs every ``interval`` seconds, measured from the end
    of the previous tick. Within a tick all endpoints are probed concurrently;
    outcomes feed the status tracker and the metrics store as they arrive, and
    the metrics are flushed once when the tick is complete.

    Example:
        monitor = Monitor(config, store, notifier)
        monitor.start()
        # ... later ...
        monitor.stop()
    """

    def __init__(
        self,
        config: Config,
        store: MetricsStore,
        notifier: Notifier,
        tracker: StatusTracker | None = None,
        probe: ProbeFunc = check_endpoint,
        deadline_grace: float = TICK_DEADLINE_GRACE,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Application configuration with endpoints to monitor.
            store: Metrics store, already loaded.
            notifier: Notifier for initial and transition announcements.
            tracker: Status tracker, a fresh one for the configured endpoints if None.
            probe: Function performing one probe, ``probe(endpoint, timeout, method, user_agent)``.
            deadline_grace: Seconds added to the probe timeout to form the per-tick deadline.
        """
        self._config = config
        self._store = store
        self._notifier = notifier
        self._tracker = tracker if tracker is not None else StatusTracker(config.endpoints)
        self._probe = probe
        self._deadline = config.monitor.timeout + deadline_grace

        self._stop_event = Event()
        self._thread: Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._in_flight: set[str] = set()
        self._in_flight_lock = Lock()
        self._tick_count = 0

    @property
    def tracker(self) -> StatusTracker:
        return self._tracker

    @property
    def tick_count(self) -> int:
        """Number of periodic ticks completed (the startup round is not counted)."""
        return self._tick_count

    def start(self) -> None:
        """Start the monitor loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Monitor already running")
            return

        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, daemon=True, name="monitor-loop")
        self._thread.start()
        logger.info(
            "Monitor started for %d endpoint(s), interval %ds, timeout %ds",
            len(self._config.endpoints),
            self._config.monitor.interval,
            self._config.monitor.timeout,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop the monitor loop gracefully.

        The tick in progress is allowed to finish (each probe completes or
        reaches its deadline) and the metrics are flushed one last time.
        Probe workers are not daemon threads: one still hung past its
        deadline keeps the process alive until its request times out.

        Args:
            timeout: Maximum seconds to wait for the loop to stop. Defaults to
                the per-tick deadline plus a few seconds.
        """
        if self._thread is None or not self._thread.is_alive():
            self._shutdown_executor()
            return

        logger.info("Stopping monitor...")
        self._stop_event.set()
        self._thread.join(timeout=timeout if timeout is not None else self._deadline + 5.0)

        if self._thread.is_alive():
            logger.warning("Monitor thread did not stop within timeout")
        else:
            logger.info("Monitor stopped")
        self._shutdown_executor()

    def is_running(self) -> bool:
        """Check if the monitor loop is currently running."""
        return self._thread is not None and self._thread.is_alive()

    def run_initial(self) -> list[TransitionEvent]:
        """Probe every endpoint once and announce its starting status."""
        logger.info("Performing initial status check of %d endpoint(s)", len(self._config.endpoints))
        return self._run_round()

    def run_tick(self) -> list[TransitionEvent]:
        """Run one tick: probe all endpoints, process outcomes, flush metrics.

        Returns:
            Transition events detected during the tick.
        """
        events = self._run_round()
        self._tick_count += 1
        return events

    def _run_loop(self) -> None:
        """Main monitor loop - runs in background thread."""
        logger.debug("Monitor loop started")

        try:
            try:
                self.run_initial()
            except Exception as e:
                logger.error("Initial status check failed: %s", e)

            # Use wait() so we can be interrupted by stop_event
            while not self._stop_event.wait(timeout=self._config.monitor.interval):
                try:
                    self.run_tick()
                except Exception as e:
                    logger.error("Tick failed: %s", e)
        finally:
            self._flush()
            logger.debug("Monitor loop exited")

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(len(self._config.endpoints), 1),
                thread_name_prefix="probe",
            )
        return self._executor

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            with self._in_flight_lock:
                hung = sorted(self._in_flight)
            if hung:
                logger.warning(
                    "Probes still running at shutdown (%s); exit waits for their request timeout",
                    ", ".join(hung),
                )
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _release(self, endpoint: str, future: Future) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(endpoint)

    def _dispatch(self) -> dict[Future, str]:
        """Submit one probe per endpoint that has no probe in flight."""
        executor = self._get_executor()
        monitor_config = self._config.monitor
        futures: dict[Future, str] = {}

        for endpoint in self._config.endpoints:
            with self._in_flight_lock:
                if endpoint in self._in_flight:
                    logger.warning("Previous probe of %s still in flight, skipping it this tick", endpoint)
                    continue
                self._in_flight.add(endpoint)

            future = executor.submit(
                self._probe,
                endpoint,
                monitor_config.timeout,
                monitor_config.method,
                monitor_config.user_agent,
            )
            future.add_done_callback(functools.partial(self._release, endpoint))
            futures[future] = endpoint

        return futures

    def _run_round(self) -> list[TransitionEvent]:
        """Probe all endpoints concurrently and process each outcome as it completes."""
        started_at = datetime.now(UTC)
        futures = self._dispatch()
        events: list[TransitionEvent] = []
        pending = set(futures)

        try:
            for future in as_completed(futures, timeout=self._deadline):
                pending.discard(future)
                outcome = self._outcome_from_future(future, futures[future], started_at)
                event = self._process(outcome)
                if event is not None:
                    events.append(event)
        except TimeoutError:
            pass

        for future in pending:
            endpoint = futures[future]
            logger.warning("Probe of %s did not finish within %.1fs", endpoint, self._deadline)
            event = self._process(self._deadline_outcome(endpoint, started_at))
            if event is not None:
                events.append(event)

        self._flush()
        return events

    def _outcome_from_future(self, future: Future, endpoint: str, started_at: datetime) -> ProbeOutcome:
        try:
            return future.result()
        except Exception as e:
            logger.error("Failed to check %s: %s", endpoint, e)
            return ProbeOutcome(
                endpoint=endpoint,
                is_up=False,
                response_time_ms=int((datetime.now(UTC) - started_at).total_seconds() * 1000),
                checked_at=started_at,
                failure=FailureKind.REQUEST,
                error_message=str(e) or type(e).__name__,
            )

    def _deadline_outcome(self, endpoint: str, started_at: datetime) -> ProbeOutcome:
        return ProbeOutcome(
            endpoint=endpoint,
            is_up=False,
            response_time_ms=int(self._deadline * 1000),
            checked_at=started_at,
            failure=FailureKind.TIMEOUT,
            error_message=f"No response within {self._deadline:.1f}s",
        )

    def _process(self, outcome: ProbeOutcome) -> TransitionEvent | None:
        """Feed one outcome to the tracker, the metrics store and the notifier."""
        try:
            initial = self._tracker.is_initial(outcome.endpoint)
            event = self._tracker.observe(outcome)
        except Exception as e:
            logger.error("Failed to process result for %s: %s", outcome.endpoint, e)
            return None

        # A metrics failure must not drop the tracker's event
        try:
            metrics = self._store.record(outcome)
        except Exception as e:
            logger.error("Failed to record metrics for %s: %s", outcome.endpoint, e)
            metrics = None

        status = outcome.status
        line = "%s %s %s | %.2fs"
        args: tuple = (
            STATUS_ICONS[status],
            outcome.endpoint,
            status.value.upper(),
            outcome.response_time_ms / 1000,
        )
        if metrics is not None:
            line += " | %.2f%% uptime"
            args += (metrics.uptime_percent,)
        if outcome.error_message:
            line += " | %s"
            args += (outcome.error_message,)
        logger.info(line, *args)

        try:
            if initial:
                self._notifier.announce_initial(outcome.endpoint, status, outcome.checked_at)
            elif event is not None:
                self._notifier.announce_transition(event)
        except Exception as e:
            logger.error("Failed to queue notification for %s: %s", outcome.endpoint, e)

        return event

    def _flush(self) -> None:
        try:
            self._store.flush()
        except MetricsStoreError as e:
            logger.error("%s; will retry on next tick", e)
