"""uptimewatch - Unattended HTTPS uptime monitoring with change notifications."""

import argparse
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)

COMMANDS = ("run", "stats", "test-alert")


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _overrides_from_args(args: argparse.Namespace) -> dict:
    """Map command line options onto the configuration document layout."""
    return {
        "endpoints": list(args.urls) if getattr(args, "urls", None) else None,
        "monitor": {
            "interval": getattr(args, "interval", None),
            "timeout": getattr(args, "timeout", None),
        },
        "metrics": {"path": getattr(args, "metrics_file", None)},
    }


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - start the monitoring loop."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("uptimewatch %s starting...", __version__)

    # Import here to allow logging setup first
    from .config import ConfigError, load_config
    from .metrics import MetricsStore
    from .monitor import Monitor
    from .notifier import Notifier

    # 1. Load configuration
    try:
        config = load_config(args.config, _overrides_from_args(args))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    logger.info(
        "Monitoring %d endpoint(s) at %ds interval (timeout %ds)",
        len(config.endpoints),
        config.monitor.interval,
        config.monitor.timeout,
    )

    # 2. Load persisted metrics
    store = MetricsStore(config.metrics.path)
    store.load()

    # 3. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    # 4. Initialize notifier
    notifier = Notifier(config.notifier)
    if notifier.enabled:
        logger.info("Webhook notifications configured")
    else:
        logger.warning("No webhook URL configured - notifications will only be logged")

    # 5. Start monitoring
    monitor = Monitor(config, store, notifier)

    try:
        monitor.start()
        logger.info("Monitor started, waiting for shutdown signal...")

        # 6. Wait for shutdown signal
        _shutdown_event.wait()

    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    finally:
        # 7. Cleanup - let the current tick finish and flush metrics
        logger.info("Shutting down...")
        monitor.stop()
        notifier.close()
        logger.info("Shutdown complete")


def _cmd_stats(args: argparse.Namespace) -> None:
    """Execute the stats command - print the persisted metrics."""
    from pathlib import Path

    from .config import ConfigError, load_config
    from .metrics import MetricsStore

    if args.metrics_file:
        path = args.metrics_file
    else:
        try:
            # Endpoints are irrelevant here, a placeholder keeps validation happy
            overrides = None if args.config else {"endpoints": ["https://localhost"]}
            config = load_config(args.config, overrides)
        except ConfigError as e:
            print(f"Error: {e}")
            sys.exit(1)
        path = config.metrics.path

    if not Path(path).exists():
        print(f"Error: Metrics file not found at {path}")
        sys.exit(1)

    metrics = MetricsStore(path).load()
    if not metrics:
        print(f"No metrics recorded in {path}")
        return

    for endpoint, m in sorted(metrics.items()):
        status = m.last_status.value.upper() if m.last_status else "UNKNOWN"
        last_check = m.last_check.isoformat() if m.last_check else "never"
        print(endpoint)
        print(f"  status:      {status} (last check {last_check})")
        print(f"  uptime:      {m.uptime_percent:.2f}% ({m.successful_checks}/{m.total_checks} checks)")
        print(f"  avg latency: {m.average_response_time_ms:.0f}ms")
        print(f"  downtime:    {m.total_downtime_seconds:.0f}s")


def _cmd_test_alert(args: argparse.Namespace) -> None:
    """Execute the test-alert command - verify webhook configuration."""
    _setup_logging(verbose=False)

    from .config import ConfigError, load_config
    from .notifier import Notifier

    try:
        # Endpoints are irrelevant here, a placeholder keeps validation happy
        overrides = None if args.config else {"endpoints": ["https://localhost"]}
        config = load_config(args.config, overrides)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if config.notifier.webhook_url is None:
        print("Error: No webhook URL configured")
        sys.exit(1)

    notifier = Notifier(config.notifier)
    try:
        success = notifier.send_test()
    finally:
        notifier.close()

    if success:
        print("✓ SUCCESS: test notification delivered")
    else:
        print("✗ FAILED: test notification was not delivered")
        sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="uptimewatch - HTTPS uptime monitoring with change notifications"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"uptimewatch {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Start monitoring (default)",
    )
    run_parser.add_argument(
        "urls",
        nargs="*",
        metavar="URL",
        help="Endpoint URLs to monitor (https only)",
    )
    run_parser.add_argument(
        "-c", "--config",
        help="Path to a YAML configuration file",
    )
    run_parser.add_argument(
        "-i", "--interval",
        type=int,
        help="Check interval in seconds (default: 60)",
    )
    run_parser.add_argument(
        "-t", "--timeout",
        type=int,
        help="Request timeout in seconds (default: 10)",
    )
    run_parser.add_argument(
        "--metrics-file",
        help="Path of the metrics JSON file (default: metrics/uptime_metrics.json)",
    )
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Stats subcommand
    stats_parser = subparsers.add_parser(
        "stats",
        help="Print the persisted metrics",
    )
    stats_parser.add_argument(
        "-c", "--config",
        help="Path to a YAML configuration file",
    )
    stats_parser.add_argument(
        "--metrics-file",
        help="Path of the metrics JSON file (overrides config)",
    )
    stats_parser.set_defaults(func=_cmd_stats)

    # Test-alert subcommand
    test_alert_parser = subparsers.add_parser(
        "test-alert",
        help="Send a test notification to the configured webhook",
    )
    test_alert_parser.add_argument(
        "-c", "--config",
        help="Path to a YAML configuration file",
    )
    test_alert_parser.set_defaults(func=_cmd_test_alert)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the uptimewatch package."""
    argv = list(sys.argv[1:] if argv is None else argv)

    # Bare URLs and run options imply the 'run' command
    if not argv or (argv[0] not in COMMANDS and argv[0] not in ("-h", "--help", "--version")):
        argv = ["run", *argv]

    parser = _build_parser()
    args = parser.parse_args(argv)
    args.func(args)
