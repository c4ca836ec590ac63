"""Unit tests for ProbeScheduler."""

import threading
import time
from collections import Counter
from datetime import datetime

import pytest
from PySide6.QtCore import QThreadPool

from edgeprobe.config import ProbeConfig
from edgeprobe.errors import NoCandidatesError, ProbeConfigurationError
from edgeprobe.fake_prober import FakeProber
from edgeprobe.models import ProbeSample
from edgeprobe.scheduler import ProbeScheduler

POOL = [f"198.51.100.{i}" for i in range(1, 21)]


class RecordingProber:
    """Prober that records every call and answers from a latency table.

    Addresses missing from the table always time out.
    """

    def __init__(self, latencies=None, delay=0.0):
        self.latencies = latencies or {}
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def probe(self, address):
        with self._lock:
            self.calls.append(address)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            latency = self.latencies.get(address)
            return ProbeSample(
                ts=datetime.now(), address=address, latency_ms=latency, loss=latency is None
            )
        finally:
            with self._lock:
                self.in_flight -= 1


class TestProbeScheduler:
    """Test suite for ProbeScheduler class."""

    def test_initial_state(self):
        """Verify scheduler starts idle with validated config."""
        scheduler = ProbeScheduler(FakeProber(seed=1))

        assert not scheduler.is_running
        assert scheduler.config.concurrency == 5
        assert scheduler.probed_addresses() == []
        assert scheduler.progress.percent_complete == 0

    def test_invalid_config_rejected_at_construction(self):
        """Test bad policy values fail before any run."""
        with pytest.raises(ProbeConfigurationError, match="sample_count"):
            ProbeScheduler(FakeProber(), ProbeConfig(sample_count=0))

    def test_empty_pool_fails_fast(self):
        """Test an empty candidate list raises before probing."""
        prober = RecordingProber()
        scheduler = ProbeScheduler(prober)

        with pytest.raises(NoCandidatesError, match="no candidates"):
            scheduler.run([])
        assert prober.calls == []

    @pytest.mark.parametrize("concurrency", [0, -3])
    def test_non_positive_concurrency_fails_fast(self, concurrency):
        """Test concurrency <= 0 raises before probing."""
        prober = RecordingProber()
        scheduler = ProbeScheduler(prober)

        with pytest.raises(ProbeConfigurationError, match="concurrency"):
            scheduler.run(POOL, concurrency=concurrency)
        assert prober.calls == []

    def test_every_candidate_probed_exactly_once(self):
        """Test 20 candidates at concurrency 5: each probed once, none skipped."""
        prober = RecordingProber({address: 20.0 for address in POOL}, delay=0.002)
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        results = scheduler.run(POOL, concurrency=5)

        assert Counter(prober.calls) == Counter(POOL)
        assert Counter(scheduler.probed_addresses()) == Counter(POOL)
        assert sorted(r.address for r in results) == sorted(POOL)

    def test_each_candidate_gets_sample_count_probes(self):
        """Test the fixed sample count is applied per candidate."""
        prober = RecordingProber({address: 20.0 for address in POOL})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=3))

        scheduler.run(POOL, concurrency=4)

        assert Counter(prober.calls) == Counter({address: 3 for address in POOL})

    def test_concurrency_bound_respected(self):
        """Test no more candidates are in flight than the concurrency bound."""
        prober = RecordingProber({address: 20.0 for address in POOL}, delay=0.005)
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        scheduler.run(POOL, concurrency=3)

        assert 1 <= prober.max_in_flight <= 3

    def test_failed_candidates_silently_dropped(self):
        """Test unreachable candidates produce no result and no error."""
        reachable = POOL[:5]
        prober = RecordingProber({address: 30.0 for address in reachable})
        scheduler = ProbeScheduler(prober)

        results = scheduler.run(POOL)

        assert sorted(r.address for r in results) == sorted(reachable)

    def test_all_candidates_failing_is_empty_not_error(self):
        """Test a run where everything times out returns an empty list."""
        scheduler = ProbeScheduler(RecordingProber())

        assert scheduler.run(POOL[:4]) == []

    def test_progress_monotonic_and_complete(self):
        """Test progress is reported twice per candidate and never decreases."""
        events = []
        lock = threading.Lock()

        def on_progress(address, percent):
            with lock:
                events.append((address, percent))

        prober = RecordingProber({address: 10.0 for address in POOL}, delay=0.001)
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        scheduler.run(POOL, concurrency=5, on_progress=on_progress)

        percents = [percent for _, percent in events]
        assert len(events) == 2 * len(POOL)
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert all(0 <= p <= 100 for p in percents)
        assert Counter(address for address, _ in events) == Counter(
            {address: 2 for address in POOL}
        )
        assert scheduler.progress.percent_complete == 100

    def test_failing_progress_callback_does_not_break_run(self):
        """Test a raising progress hook never affects scheduling."""

        def on_progress(address, percent):
            raise RuntimeError("display broke")

        prober = RecordingProber({address: 10.0 for address in POOL})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        results = scheduler.run(POOL, on_progress=on_progress)

        assert len(results) == len(POOL)

    def test_raising_prober_does_not_fail_run(self):
        """Test a prober that raises only costs its own samples."""

        class FlakyProber(RecordingProber):
            def probe(self, address):
                if address == POOL[0]:
                    raise RuntimeError("Simulated prober failure")
                return super().probe(address)

        prober = FlakyProber({address: 10.0 for address in POOL})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        results = scheduler.run(POOL)

        assert POOL[0] not in {r.address for r in results}
        assert len(results) == len(POOL) - 1

    def test_concurrency_larger_than_pool(self):
        """Test more workers than candidates still probes each once."""
        prober = RecordingProber({address: 10.0 for address in POOL[:3]})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        results = scheduler.run(POOL[:3], concurrency=10)

        assert Counter(prober.calls) == Counter(POOL[:3])
        assert len(results) == 3

    def test_duplicate_addresses_probed_as_given(self):
        """Test the probed multiset equals the input multiset."""
        pool = ["198.51.100.1", "198.51.100.1", "198.51.100.2"]
        prober = RecordingProber({address: 10.0 for address in pool})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        scheduler.run(pool, concurrency=2)

        assert Counter(prober.calls) == Counter(pool)

    def test_stats_after_run(self):
        """Test get_stats reflects the last run."""
        reachable = POOL[:2]
        prober = RecordingProber({address: 10.0 for address in reachable})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        scheduler.run(POOL[:6], concurrency=2)
        stats = scheduler.get_stats()

        assert stats == {
            "candidates": 6,
            "finished": 6,
            "accepted": 2,
            "concurrency": 2,
            "running": False,
        }

    def test_thread_pool_reference(self):
        """Test scheduler uses a dedicated thread pool sized to the run."""
        scheduler = ProbeScheduler(RecordingProber({POOL[0]: 1.0}))

        scheduler.run(POOL[:4], concurrency=2)

        assert isinstance(scheduler.thread_pool, QThreadPool)
        assert scheduler.thread_pool is not QThreadPool.globalInstance()
        assert scheduler.thread_pool.maxThreadCount() == 2


class BlockingProber(RecordingProber):
    """RecordingProber that holds every probe until released."""

    def __init__(self, latencies=None):
        super().__init__(latencies)
        self.entered = threading.Event()
        self.release = threading.Event()

    def probe(self, address):
        self.entered.set()
        self.release.wait(5)
        return super().probe(address)


class TestProbeSchedulerReentrancy:
    """Test one scheduler never runs two passes at once."""

    def test_second_run_from_another_thread_rejected(self):
        """Test a run started while another is blocked raises and leaves it intact."""
        prober = BlockingProber({POOL[0]: 10.0})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))
        outcome = {}

        def first_run():
            outcome["results"] = scheduler.run(POOL[:1])

        thread = threading.Thread(target=first_run)
        thread.start()
        try:
            assert prober.entered.wait(5)
            with pytest.raises(RuntimeError, match="already running"):
                scheduler.run(POOL[1:3])
            assert scheduler.is_running
            assert scheduler.get_stats()["candidates"] == 1
        finally:
            prober.release.set()
            thread.join(5)

        assert [r.address for r in outcome["results"]] == [POOL[0]]
        assert scheduler.probed_addresses() == [POOL[0]]
        assert not scheduler.is_running

    def test_simultaneous_runs_admit_exactly_one(self):
        """Test threads racing into run(): one proceeds, the rest are refused."""
        prober = BlockingProber({address: 10.0 for address in POOL})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))
        contenders = 8
        barrier = threading.Barrier(contenders)
        lock = threading.Lock()
        completed = []
        refused = []

        def contender(index):
            barrier.wait(5)
            try:
                results = scheduler.run([POOL[index]])
            except RuntimeError:
                with lock:
                    refused.append(index)
            else:
                with lock:
                    completed.append(results)

        threads = [threading.Thread(target=contender, args=(i,)) for i in range(contenders)]
        for thread in threads:
            thread.start()
        deadline = time.monotonic() + 5
        while len(refused) < contenders - 1 and time.monotonic() < deadline:
            time.sleep(0.01)
        prober.release.set()
        for thread in threads:
            thread.join(5)

        assert len(refused) == contenders - 1
        assert len(completed) == 1
        assert len(prober.calls) == 1
        assert not scheduler.is_running

    def test_runs_again_after_previous_finishes(self):
        scheduler = ProbeScheduler(RecordingProber({POOL[0]: 10.0}), ProbeConfig(sample_count=1))

        scheduler.run(POOL[:1])
        results = scheduler.run(POOL[:1])

        assert [r.address for r in results] == [POOL[0]]

    def test_slow_progress_sink_keeps_order_and_results(self):
        """Test a sluggish sink delays reporting but loses nothing."""
        seen = []

        def slow_sink(address, percent):
            time.sleep(0.002)
            seen.append(percent)

        prober = RecordingProber({address: 10.0 for address in POOL})
        scheduler = ProbeScheduler(prober, ProbeConfig(sample_count=1))

        results = scheduler.run(POOL, concurrency=5, on_progress=slow_sink)

        assert len(results) == len(POOL)
        assert seen == sorted(seen)
        assert len(seen) == 2 * len(POOL)
        assert seen[-1] == 100
