# coredns_probe/metrics.py
# Version: 1.0.0
# Metrics collection for probe results

"""
CoreDNS Probe Metrics Module

Provides a Prometheus histogram of probe round-trip times labelled by
endpoint and outcome, and a Twisted Web resource serving it.
"""

import logging

from prometheus_client import CollectorRegistry, Histogram, generate_latest
from prometheus_client.twisted import MetricsResource
from twisted.web import resource, server

from .constants import (
    METRICS_LISTEN_ADDRESS,
    METRICS_LISTEN_PORT,
    METRICS_PATH,
    RTT_BUCKETS_MS,
    RTT_METRIC_NAME,
)
from .stats import ProbeOutcome, ProbeResult

logger = logging.getLogger(__name__)

STATUS_LABELS = tuple(outcome.value for outcome in ProbeOutcome)


class ProbeMetrics:
    """
    Per-instance probe metrics.

    Each instance owns its registry, so several probes (or tests) can run in
    one process without clashing on metric names.
    """

    def __init__(self, enabled: bool = True, registry: CollectorRegistry = None):
        self.enabled = enabled
        self.registry = registry if registry is not None else CollectorRegistry()

        if not self.enabled:
            logger.info("Metrics collection disabled")
            return

        self.rtt_histogram = Histogram(
            RTT_METRIC_NAME,
            "Histogram of round-trip time for DNS queries in milliseconds",
            ["endpoint", "status"],
            buckets=RTT_BUCKETS_MS,
            registry=self.registry,
        )

        logger.info("Probe metrics initialized")

    def observe(self, target: str, status: str, latency_ms: float):
        """Record one probe latency under its endpoint and status labels"""
        if not self.enabled:
            return
        if status not in STATUS_LABELS:
            raise ValueError(f"Unknown probe status: {status}")
        self.rtt_histogram.labels(endpoint=target, status=status).observe(latency_ms)

    def record_probe(self, result: ProbeResult):
        """Record a probe result; the elapsed time is kept for every outcome"""
        self.observe(result.target, result.outcome.value, result.elapsed_ms)

    def render(self) -> bytes:
        """Text exposition of the current samples"""
        return generate_latest(self.registry)


class MetricsServer:
    """HTTP server for the Prometheus metrics endpoint"""

    def __init__(
        self,
        metrics: ProbeMetrics,
        listen_address: str = METRICS_LISTEN_ADDRESS,
        listen_port: int = METRICS_LISTEN_PORT,
        reactor=None,
    ):
        if reactor is None:
            from twisted.internet import reactor
        self.metrics = metrics
        self.listen_address = listen_address
        self.listen_port = listen_port
        self.reactor = reactor
        self.port = None

    def build_site(self) -> server.Site:
        root = resource.Resource()
        root.putChild(METRICS_PATH, MetricsResource(registry=self.metrics.registry))
        return server.Site(root)

    def start(self):
        """Start metrics HTTP server"""
        if not self.metrics.enabled:
            logger.info("Metrics server not started (metrics disabled)")
            return

        self.port = self.reactor.listenTCP(
            self.listen_port, self.build_site(), interface=self.listen_address
        )

        logger.info(
            f"Metrics server listening on {self.listen_address}:{self.listen_port}"
            f"/{METRICS_PATH.decode()}"
        )

    def stop(self):
        """Stop metrics HTTP server"""
        if self.port:
            d = self.port.stopListening()
            self.port = None
            logger.info("Metrics server stopped")
            return d
