#!/usr/bin/env python3
"""
Main entry point for CoreDNS Probe
Discovers the cluster DNS endpoints and probes them until terminated
"""

import argparse
import logging
import logging.handlers
import os
import signal
import sys

from coredns_probe.constants import (
    DEFAULT_CONFIG_PATH,
    LOG_BACKUP_COUNT,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    MAX_PORT_NUMBER,
    MIN_PORT_NUMBER,
)


def setup_logging(log_file=None, log_level="INFO", syslog=False):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Add file handler if specified
    if log_file and log_file.lower() != "none":
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, mode=0o755)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        except OSError as e:
            print(f"Warning: Could not setup file logging to {log_file}: {e}")

    # Add syslog handler if enabled
    if syslog:
        try:
            syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
            syslog_formatter = logging.Formatter(
                "coredns-probe[%(process)d]: %(levelname)s - %(message)s"
            )
            syslog_handler.setFormatter(syslog_formatter)
            root_logger.addHandler(syslog_handler)
        except OSError as e:
            print(f"Warning: Could not setup syslog: {e}")


def _setup_signal_handlers(logger):
    """Setup signal handlers for shutdown"""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        from twisted.internet import reactor

        reactor.callFromThread(reactor.stop)  # type: ignore[attr-defined]  # Twisted reactor

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def _validate_port(value):
    """Validate port number is in valid range"""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")
    if port < MIN_PORT_NUMBER or port > MAX_PORT_NUMBER:
        raise argparse.ArgumentTypeError(
            f"Port must be between {MIN_PORT_NUMBER} and {MAX_PORT_NUMBER}"
        )
    return port


def _positive_float(value):
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be positive: {value}")
    return number


def _parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Probe every CoreDNS endpoint of a cluster in parallel and "
        "report per-endpoint success rate and latency.",
        epilog="Outside a cluster, use --targets to probe a fixed list: "
        "--targets 10.96.0.10,10.96.0.11",
    )
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path")
    parser.add_argument("-l", "--logfile", help="Log file path (overrides config)")
    parser.add_argument(
        "-L", "--loglevel", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level"
    )
    parser.add_argument("-d", "--domain", help="Domain name resolved by every probe")
    parser.add_argument(
        "-t", "--timeout", type=_positive_float, help="Per-query timeout in seconds"
    )
    parser.add_argument(
        "-i", "--interval", type=_positive_float, help="Seconds between probe ticks"
    )
    parser.add_argument(
        "-s", "--summary-interval", type=_positive_float, help="Seconds between console summaries"
    )
    parser.add_argument("-n", "--namespace", help="Namespace of the DNS service")
    parser.add_argument("--service", help="Name of the DNS service")
    parser.add_argument(
        "--targets",
        help="Comma-separated endpoint IPs to probe instead of discovering them",
    )
    parser.add_argument(
        "--refresh-interval",
        type=float,
        help="Seconds between endpoint re-discovery (0 disables)",
    )
    parser.add_argument(
        "-p", "--metrics-port", type=lambda x: _validate_port(x), help="Metrics listen port"
    )
    parser.add_argument("-a", "--metrics-address", help="Metrics listen address")
    parser.add_argument("--no-metrics", action="store_true", help="Disable the metrics endpoint")
    parser.add_argument("-v", "--version", action="store_true", help="Show version")

    return parser.parse_args(argv)


def _handle_version_check(args):
    """Handle version check and exit if requested"""
    if args.version:
        from coredns_probe import __version__

        print(f"CoreDNS Probe version {__version__}")
        sys.exit(0)


def _load_configuration(config_path):
    """Load configuration from file"""
    from coredns_probe.config import ProbeConfig

    return ProbeConfig(config_path)


def _get_logging_config(config, args):
    """Get logging configuration from config and args"""
    log_file = args.logfile or config.get("log-file", "log-file")
    log_level = args.loglevel or config.get("log-file", "debug-level", "INFO")
    syslog = config.getboolean("log-file", "syslog", False)

    return log_file, log_level, syslog


def _pick(arg_value, config_value):
    return config_value if arg_value is None else arg_value


def _get_probe_settings(config, args):
    """Merge configuration and command line into validated probe settings"""
    from coredns_probe.config import validate_settings

    settings = {
        "query_domain": args.domain or config.get("probe", "query-domain"),
        "query_timeout": _pick(args.timeout, config.getfloat("probe", "query-timeout", None)),
        "loop_interval": _pick(args.interval, config.getfloat("probe", "loop-interval", None)),
        "summary_interval": _pick(
            args.summary_interval, config.getfloat("probe", "summary-interval", None)
        ),
        "namespace": args.namespace or config.get("discovery", "namespace"),
        "service_name": args.service or config.get("discovery", "service-name"),
        "static_targets": _pick(args.targets, config.get("discovery", "targets", "")),
        "refresh_interval": _pick(
            args.refresh_interval, config.getfloat("discovery", "refresh-interval", None)
        ),
        "metrics_enabled": not args.no_metrics and config.getboolean("metrics", "enabled", True),
        "metrics_address": args.metrics_address or config.get("metrics", "listen-address"),
        "metrics_port": _pick(args.metrics_port, config.getint("metrics", "listen-port", None)),
    }

    validate_settings(settings)
    return settings


def _log_settings(settings, logger):
    logger.info("Configuration loaded:")
    logger.info(f"  Query: {settings['query_domain']} (timeout {settings['query_timeout']}s)")
    logger.info(f"  Probe interval: {settings['loop_interval']}s")
    logger.info(f"  Summary interval: {settings['summary_interval']}s")
    if settings["static_targets"]:
        logger.info(f"  Static targets: {settings['static_targets']}")
    else:
        logger.info(f"  Service: {settings['namespace']}/{settings['service_name']}")
    if settings["metrics_enabled"]:
        logger.info(f"  Metrics: {settings['metrics_address']}:{settings['metrics_port']}")
    else:
        logger.info("  Metrics: disabled")


def _make_discover(settings):
    """Callable returning the current endpoint list"""
    from coredns_probe.discovery import discover_targets, parse_static_targets

    if settings["static_targets"]:
        targets = parse_static_targets(settings["static_targets"])
        return lambda: list(targets)

    return lambda: discover_targets(settings["namespace"], settings["service_name"])


def _discover_initial_targets(settings, logger):
    """Discover endpoints once; no endpoints is fatal"""
    from coredns_probe.discovery import DiscoveryError, load_kubernetes_config

    try:
        if not settings["static_targets"]:
            load_kubernetes_config()
        discover = _make_discover(settings)
        targets = discover()
        if not targets:
            raise DiscoveryError("no endpoints to probe")
    except DiscoveryError as e:
        logger.error(f"Endpoint discovery failed: {e}")
        sys.exit(1)

    return targets, discover


def _build_components(settings, targets, discover, reactor):
    """Wire statistics, transport, metrics, scheduler and reporter together"""
    from coredns_probe.metrics import MetricsServer, ProbeMetrics
    from coredns_probe.reporter import SummaryReporter
    from coredns_probe.scheduler import ProbeScheduler, TargetRefresher
    from coredns_probe.stats import EndpointStatsTable
    from coredns_probe.transport import ResolverTransport

    metrics = ProbeMetrics(enabled=settings["metrics_enabled"])
    transport = ResolverTransport(
        query_domain=settings["query_domain"],
        query_timeout=settings["query_timeout"],
        clock=reactor,
    )
    scheduler = ProbeScheduler(
        EndpointStatsTable(targets),
        transport,
        metrics=metrics,
        interval=settings["loop_interval"],
        clock=reactor,
    )

    return {
        "metrics": metrics,
        "metrics_server": MetricsServer(
            metrics,
            listen_address=settings["metrics_address"],
            listen_port=settings["metrics_port"],
            reactor=reactor,
        ),
        "scheduler": scheduler,
        "reporter": SummaryReporter(scheduler, interval=settings["summary_interval"], clock=reactor),
        "refresher": TargetRefresher(
            scheduler, discover, interval=settings["refresh_interval"], clock=reactor
        ),
    }


def _start_metrics_server(metrics_server, logger):
    """Bind the metrics endpoint, exiting with a clear message when the port is taken"""
    from twisted.internet.error import CannotListenError

    try:
        metrics_server.start()
    except CannotListenError as e:
        logger.error(
            f"Failed to bind metrics endpoint to "
            f"{metrics_server.listen_address}:{metrics_server.listen_port}: {e.socketError}"
        )
        sys.exit(1)


def run_probe(components, logger):
    """Start every loop and run the reactor until a signal stops it"""
    from twisted.internet import reactor

    scheduler = components["scheduler"]
    reporter = components["reporter"]
    refresher = components["refresher"]
    metrics_server = components["metrics_server"]

    _setup_signal_handlers(logger)
    _start_metrics_server(metrics_server, logger)

    def shutdown():
        # No new ticks after this point; in-flight probes end on their own deadline
        scheduler.stop()
        reporter.stop()
        refresher.stop()
        return metrics_server.stop()

    reactor.callWhenRunning(scheduler.start)  # type: ignore[attr-defined]  # Twisted reactor
    reactor.callWhenRunning(reporter.start)  # type: ignore[attr-defined]  # Twisted reactor
    reactor.callWhenRunning(refresher.start)  # type: ignore[attr-defined]  # Twisted reactor
    reactor.addSystemEventTrigger("before", "shutdown", shutdown)  # type: ignore[attr-defined]

    logger.info("CoreDNS Probe started successfully")
    reactor.run()  # type: ignore[attr-defined]  # Twisted reactor
    logger.info(f"CoreDNS Probe stopped after {scheduler.ticks} ticks")


def main(argv=None):
    """Main entry point"""
    from coredns_probe.config import ConfigError

    args = _parse_arguments(argv)
    _handle_version_check(args)

    config = _load_configuration(args.config)

    log_file, log_level, syslog = _get_logging_config(config, args)
    setup_logging(log_file, log_level, syslog)
    logger = logging.getLogger("coredns_probe")

    logger.info("Starting CoreDNS Probe")

    try:
        settings = _get_probe_settings(config, args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    _log_settings(settings, logger)

    targets, discover = _discover_initial_targets(settings, logger)

    from twisted.internet import reactor

    components = _build_components(settings, targets, discover, reactor)
    run_probe(components, logger)


if __name__ == "__main__":
    main()
