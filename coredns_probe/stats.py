# coredns_probe/stats.py
"""Per-endpoint probe statistics"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple


class ProbeOutcome(Enum):
    """Result of a single probe query"""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeResult:
    """One probe attempt against one endpoint"""

    target: str
    outcome: ProbeOutcome
    elapsed: float  # seconds

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000


class AtomicCounter:
    """Monotonic counter safe for concurrent increments"""

    def __init__(self, initial=0):
        self._value = initial
        self._lock = threading.Lock()

    def add(self, amount=1):
        if amount < 0:
            raise ValueError("counters only increase")
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self):
        with self._lock:
            return self._value


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time view of an endpoint's counters"""

    total: int = 0
    failed: int = 0
    success_rtt_sum: float = 0.0  # seconds

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def success_percent(self) -> Optional[float]:
        """Share of successful probes in percent, None before the first probe"""
        if self.total == 0:
            return None
        return self.succeeded / self.total * 100

    @property
    def average_rtt_ms(self) -> Optional[float]:
        """Average latency of successful probes in milliseconds, None without successes"""
        if self.succeeded <= 0:
            return None
        return self.success_rtt_sum / self.succeeded * 1000


class EndpointStats:
    """
    Cumulative counters for one endpoint.

    Each field is its own atomic counter, so concurrent writers never lose
    updates, but a reader may observe the fields of a record that is being
    written at slightly different moments. ``total`` is always incremented
    before ``failed`` and read after it, which keeps ``failed <= total`` in
    every snapshot.
    """

    def __init__(self, target: str):
        self.target = target
        self._total = AtomicCounter()
        self._failed = AtomicCounter()
        self._success_rtt_sum = AtomicCounter(0.0)

    def record_outcome(self, outcome: ProbeOutcome, elapsed: float):
        """Record the outcome of one probe that took ``elapsed`` seconds"""
        self._total.add()
        if outcome is ProbeOutcome.SUCCESS:
            self._success_rtt_sum.add(elapsed)
        else:
            self._failed.add()

    def record(self, result: ProbeResult):
        self.record_outcome(result.outcome, result.elapsed)

    def snapshot(self) -> StatsSnapshot:
        failed = self._failed.value
        success_rtt_sum = self._success_rtt_sum.value
        total = self._total.value
        return StatsSnapshot(total=total, failed=failed, success_rtt_sum=success_rtt_sum)

    @property
    def total(self) -> int:
        return self._total.value

    @property
    def failed(self) -> int:
        return self._failed.value

    @property
    def success_rtt_sum(self) -> float:
        return self._success_rtt_sum.value

    def __repr__(self):
        snap = self.snapshot()
        return f"<EndpointStats {self.target} total={snap.total} failed={snap.failed}>"


class EndpointStatsTable:
    """
    Immutable mapping of endpoint address to its statistics.

    A refreshed target list is represented by a new table; records for
    endpoints present in ``previous`` are carried over so their counters
    keep accumulating.
    """

    def __init__(self, targets: Iterable[str], previous: "Optional[EndpointStatsTable]" = None):
        records: Dict[str, EndpointStats] = {}
        for target in targets:
            if target in records:
                continue
            if previous is not None and target in previous:
                records[target] = previous[target]
            else:
                records[target] = EndpointStats(target)
        self._records = records
        self._targets = tuple(records)

    @property
    def targets(self) -> Tuple[str, ...]:
        return self._targets

    def __getitem__(self, target: str) -> EndpointStats:
        return self._records[target]

    def __contains__(self, target) -> bool:
        return target in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def items(self):
        return [(target, self._records[target]) for target in self._targets]

    def snapshot(self) -> Dict[str, StatsSnapshot]:
        return {target: stats.snapshot() for target, stats in self.items()}
