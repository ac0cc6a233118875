#!/usr/bin/env python3
"""Unit tests for per-endpoint statistics"""

import random
import threading

import pytest

from coredns_probe.stats import (
    AtomicCounter,
    EndpointStats,
    EndpointStatsTable,
    ProbeOutcome,
    ProbeResult,
    StatsSnapshot,
)


class TestAtomicCounter:
    """Test the counter primitive"""

    def test_add_returns_new_value(self):
        counter = AtomicCounter()
        assert counter.add() == 1
        assert counter.add(4) == 5
        assert counter.value == 5

    def test_rejects_decrement(self):
        counter = AtomicCounter()
        with pytest.raises(ValueError):
            counter.add(-1)

    def test_float_counter(self):
        counter = AtomicCounter(0.0)
        counter.add(0.5)
        counter.add(0.25)
        assert counter.value == pytest.approx(0.75)


class TestEndpointStats:
    """Test outcome recording"""

    def test_single_success(self):
        """One 10ms success gives total=1, failed=0, avgRTT=10ms"""
        stats = EndpointStats("10.0.0.1")
        stats.record_outcome(ProbeOutcome.SUCCESS, 0.010)

        snap = stats.snapshot()
        assert snap.total == 1
        assert snap.failed == 0
        assert snap.average_rtt_ms == pytest.approx(10.0)
        assert snap.success_percent == pytest.approx(100.0)

    def test_single_timeout(self):
        """A timeout counts as failed and leaves no average"""
        stats = EndpointStats("10.0.0.2")
        stats.record_outcome(ProbeOutcome.TIMEOUT, 0.100)

        snap = stats.snapshot()
        assert snap.total == 1
        assert snap.failed == 1
        assert snap.success_rtt_sum == 0.0
        assert snap.average_rtt_ms is None
        assert snap.success_percent == pytest.approx(0.0)

    def test_error_does_not_add_latency(self):
        stats = EndpointStats("10.0.0.3")
        stats.record_outcome(ProbeOutcome.ERROR, 0.050)
        assert stats.failed == 1
        assert stats.success_rtt_sum == 0.0

    def test_two_successes_average(self):
        """2.15ms and 2.43ms sum to 4.58ms and average 2.29ms"""
        stats = EndpointStats("10.0.0.4")
        stats.record_outcome(ProbeOutcome.SUCCESS, 0.00215)
        stats.record_outcome(ProbeOutcome.SUCCESS, 0.00243)

        snap = stats.snapshot()
        assert snap.success_rtt_sum * 1000 == pytest.approx(4.58)
        assert snap.average_rtt_ms == pytest.approx(2.29)

    def test_mixed_outcomes(self):
        stats = EndpointStats("10.0.0.5")
        stats.record_outcome(ProbeOutcome.SUCCESS, 0.002)
        stats.record_outcome(ProbeOutcome.TIMEOUT, 0.100)
        stats.record_outcome(ProbeOutcome.ERROR, 0.045)
        stats.record_outcome(ProbeOutcome.SUCCESS, 0.004)

        snap = stats.snapshot()
        assert snap.total == 4
        assert snap.failed == 2
        assert snap.succeeded == 2
        assert snap.success_percent == pytest.approx(50.0)
        assert snap.average_rtt_ms == pytest.approx(3.0)

    def test_record_probe_result(self):
        stats = EndpointStats("10.0.0.6")
        stats.record(ProbeResult("10.0.0.6", ProbeOutcome.SUCCESS, 0.001))
        assert stats.total == 1

    def test_no_queries_snapshot(self):
        """A fresh record reports no rate and no average"""
        snap = EndpointStats("10.0.0.7").snapshot()
        assert snap == StatsSnapshot()
        assert snap.success_percent is None
        assert snap.average_rtt_ms is None

    def test_invariants_over_random_sequence(self):
        """failed never exceeds total, latency sum only grows on success"""
        rng = random.Random(1234)
        stats = EndpointStats("10.0.0.8")
        previous_sum = 0.0

        for _ in range(500):
            outcome = rng.choice(list(ProbeOutcome))
            stats.record_outcome(outcome, rng.uniform(0.0005, 0.1))
            snap = stats.snapshot()

            assert snap.failed <= snap.total
            if outcome is ProbeOutcome.SUCCESS:
                assert snap.success_rtt_sum > previous_sum
            else:
                assert snap.success_rtt_sum == previous_sum
            previous_sum = snap.success_rtt_sum

    def test_concurrent_writers(self):
        """Concurrent record_outcome calls lose no updates"""
        stats = EndpointStats("10.0.0.9")
        threads_count = 16
        per_thread = 500
        barrier = threading.Barrier(threads_count)

        def writer(index):
            barrier.wait()
            for i in range(per_thread):
                if (index + i) % 4 == 0:
                    stats.record_outcome(ProbeOutcome.TIMEOUT, 0.1)
                else:
                    stats.record_outcome(ProbeOutcome.SUCCESS, 0.001)

        workers = [threading.Thread(target=writer, args=(n,)) for n in range(threads_count)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        snap = stats.snapshot()
        assert snap.total == threads_count * per_thread
        assert snap.failed == threads_count * per_thread // 4
        assert snap.success_rtt_sum == pytest.approx(snap.succeeded * 0.001)


class TestEndpointStatsTable:
    """Test the per-endpoint table"""

    def test_one_record_per_target(self):
        table = EndpointStatsTable(["10.0.0.1", "10.0.0.2", "10.0.0.1"])
        assert table.targets == ("10.0.0.1", "10.0.0.2")
        assert len(table) == 2
        assert table["10.0.0.1"] is not table["10.0.0.2"]
        assert "10.0.0.2" in table
        assert "10.0.0.3" not in table

    def test_carries_over_existing_records(self):
        old = EndpointStatsTable(["10.0.0.1", "10.0.0.2"])
        old["10.0.0.1"].record_outcome(ProbeOutcome.SUCCESS, 0.001)

        new = EndpointStatsTable(["10.0.0.1", "10.0.0.3"], previous=old)

        assert new["10.0.0.1"] is old["10.0.0.1"]
        assert new["10.0.0.1"].total == 1
        assert new["10.0.0.3"].total == 0
        assert "10.0.0.2" not in new
        # the old table is left untouched
        assert old.targets == ("10.0.0.1", "10.0.0.2")

    def test_snapshot_keeps_order(self):
        table = EndpointStatsTable(["10.0.0.2", "10.0.0.1"])
        table["10.0.0.1"].record_outcome(ProbeOutcome.ERROR, 0.01)
        snaps = table.snapshot()
        assert list(snaps) == ["10.0.0.2", "10.0.0.1"]
        assert snaps["10.0.0.1"].failed == 1
        assert snaps["10.0.0.2"].total == 0


class TestProbeResult:
    def test_elapsed_ms(self):
        result = ProbeResult("10.0.0.1", ProbeOutcome.TIMEOUT, 0.1)
        assert result.elapsed_ms == pytest.approx(100.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
