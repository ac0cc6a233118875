# coredns_probe/scheduler.py
"""Periodic fan-out of probes to every known endpoint"""

import logging
from enum import Enum

from twisted.internet import defer, task, threads

from .constants import DISCOVERY_REFRESH_INTERVAL, PROBE_LOOP_INTERVAL
from .stats import EndpointStatsTable, ProbeResult

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    TICKING = "ticking"
    STOPPED = "stopped"


class ProbeScheduler:
    """
    Probes every endpoint once per tick, all endpoints concurrently.

    The tick loop is a ``LoopingCall`` and ``tick`` returns a Deferred that
    fires only when every probe of the tick has finished, so the next tick
    can never start while probes of the previous one are still in flight.
    """

    def __init__(
        self,
        stats_table: EndpointStatsTable,
        transport,
        metrics=None,
        interval: float = PROBE_LOOP_INTERVAL,
        clock=None,
    ):
        if clock is None:
            from twisted.internet import reactor as clock
        self.stats_table = stats_table
        self.transport = transport
        self.metrics = metrics
        self.interval = interval
        self.clock = clock
        self.state = SchedulerState.IDLE
        self.ticks = 0
        self._loop = None
        self._stopped = False

        logger.info(
            f"Probe scheduler initialized ({len(stats_table)} endpoints, every {interval}s)"
        )

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.running

    def start(self):
        """Start the tick loop; the first tick runs immediately"""
        if self.running:
            logger.warning("Probe scheduler already started")
            return None

        self._stopped = False
        self._loop = task.LoopingCall(self.tick)
        self._loop.clock = self.clock
        d = self._loop.start(self.interval, now=True)
        d.addErrback(self._loop_failed)
        logger.info(f"Started probing {len(self.stats_table)} endpoints every {self.interval}s")
        return d

    def stop(self):
        """Stop scheduling ticks; probes already in flight finish on their own deadline"""
        self._stopped = True
        if self._loop is not None and self._loop.running:
            self._loop.stop()
            logger.info(f"Stopped probing after {self.ticks} ticks")
        self.state = SchedulerState.STOPPED

    def swap_table(self, stats_table: EndpointStatsTable):
        """Replace the endpoint set; ticks in progress keep the table they started with"""
        old = self.stats_table
        self.stats_table = stats_table
        logger.info(f"Endpoint set replaced: {len(old)} -> {len(stats_table)} endpoints")

    def tick(self) -> defer.Deferred:
        """Probe every endpoint once and wait for all of them"""
        if self._stopped:
            return defer.succeed(None)

        table = self.stats_table
        self.state = SchedulerState.TICKING
        probes = [self._probe_one(target, stats) for target, stats in table.items()]

        d = defer.DeferredList(probes, consumeErrors=True)
        d.addCallback(self._tick_done)
        return d

    def _tick_done(self, _results):
        self.ticks += 1
        if self.state is SchedulerState.TICKING:
            self.state = SchedulerState.IDLE

    def _probe_one(self, target, stats) -> defer.Deferred:
        d = defer.maybeDeferred(self.transport.probe, target)
        d.addCallback(self._record, stats)
        d.addErrback(self._probe_failed, target)
        return d

    def _record(self, result: ProbeResult, stats):
        stats.record(result)
        if self.metrics is not None:
            self.metrics.record_probe(result)
        logger.debug(f"{result.target} {result.outcome.value} ({result.elapsed_ms:.2f}ms)")
        return result

    def _probe_failed(self, reason, target):
        # Contained to this endpoint; the other probes of the tick are unaffected
        logger.error(f"Unexpected error probing {target}: {reason.getErrorMessage()}")
        return None

    def _loop_failed(self, reason):
        logger.error(f"Probe loop terminated: {reason.getErrorMessage()}")
        self.state = SchedulerState.STOPPED


class TargetRefresher:
    """Periodically re-discovers endpoints and swaps them into the scheduler"""

    def __init__(
        self,
        scheduler: ProbeScheduler,
        discover,
        interval: float = DISCOVERY_REFRESH_INTERVAL,
        clock=None,
        defer_call=None,
    ):
        if clock is None:
            from twisted.internet import reactor as clock
        self.scheduler = scheduler
        self.discover = discover
        self.interval = interval
        self.clock = clock
        # Discovery blocks on the cluster API, keep it off the reactor thread
        self.defer_call = defer_call or threads.deferToThread
        self._loop = None

    def start(self):
        if self.interval <= 0:
            logger.info("Endpoint re-discovery disabled")
            return
        self._loop = task.LoopingCall(self.refresh)
        self._loop.clock = self.clock
        self._loop.start(self.interval, now=False)
        logger.info(f"Re-discovering endpoints every {self.interval}s")

    def stop(self):
        if self._loop is not None and self._loop.running:
            self._loop.stop()

    def refresh(self) -> defer.Deferred:
        d = self.defer_call(self.discover)
        d.addCallbacks(self._apply, self._refresh_failed)
        return d

    def _apply(self, targets):
        current = self.scheduler.stats_table
        if set(targets) == set(current.targets):
            logger.debug("Endpoint set unchanged")
            return False
        self.scheduler.swap_table(EndpointStatsTable(targets, previous=current))
        return True

    def _refresh_failed(self, reason):
        logger.warning(f"Endpoint re-discovery failed, keeping current set: {reason.getErrorMessage()}")
        return False
