# coredns_probe/reporter.py
"""Periodic console summary of per-endpoint statistics"""

import logging
import sys
import time

from twisted.internet import task

from .constants import SUMMARY_INTERVAL
from .stats import EndpointStatsTable, StatsSnapshot

logger = logging.getLogger(__name__)


def format_line(target: str, snapshot: StatsSnapshot) -> str:
    """One summary line for one endpoint"""
    if snapshot.total == 0:
        return f"  {target} → no queries"

    avg = snapshot.average_rtt_ms
    avg_text = f"{avg:.2f}" if avg is not None else "n/a"
    return (
        f"  {target} → success {snapshot.success_percent:.1f}% "
        f"({snapshot.succeeded}/{snapshot.total})  avgRTT {avg_text} ms"
    )


def render(table: EndpointStatsTable, now: float = None) -> str:
    """Summary block for every endpoint in ``table``"""
    stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now))
    lines = [f"[{stamp}] rolling statistics for {len(table)} endpoints:"]
    for target, snapshot in table.snapshot().items():
        lines.append(format_line(target, snapshot))
    return "\n".join(lines) + "\n"


class SummaryReporter:
    """Writes a summary block every ``interval`` seconds; never touches the counters"""

    def __init__(self, source, interval: float = SUMMARY_INTERVAL, stream=None, clock=None):
        if clock is None:
            from twisted.internet import reactor as clock
        self.source = source
        self.interval = interval
        self.stream = stream
        self.clock = clock
        self._loop = None

    def start(self):
        self._loop = task.LoopingCall(self.report)
        self._loop.clock = self.clock
        # First summary after one full interval, once there is something to show
        self._loop.start(self.interval, now=False)
        logger.info(f"Printing endpoint summary every {self.interval}s")

    def stop(self):
        if self._loop is not None and self._loop.running:
            self._loop.stop()

    def report(self):
        # Resolve the stream late so redirected stdout is honoured
        stream = self.stream or sys.stdout
        stream.write(render(self.source.stats_table, self.clock.seconds()))
        stream.flush()
