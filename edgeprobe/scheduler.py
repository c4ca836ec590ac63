"""Candidate probing scheduler with bounded concurrency."""

import logging
import time
from typing import Iterable

from PySide6.QtCore import QMutex, QMutexLocker, QThreadPool

from edgeprobe.config import ProbeConfig
from edgeprobe.errors import NoCandidatesError, ProbeConfigurationError
from edgeprobe.models import CandidateResult, RunProgress
from edgeprobe.prober import Prober
from edgeprobe.workers import ProbeWorker, ProgressCallback, SharedRunState

logger = logging.getLogger(__name__)


class ProbeScheduler:
    """Probes a candidate pool with a fixed number of parallel workers.

    Key features:
    - Shared work queue drained by ``concurrency`` ProbeWorker runnables
    - Each candidate is taken exactly once, under a mutex
    - Dedicated QThreadPool per run, joined before results are returned
    - Progress reported before and after every candidate

    A scheduler runs one pass at a time; ``run`` blocks until it is done.
    """

    def __init__(self, prober: Prober, config: ProbeConfig | None = None):
        """Initialize scheduler.

        Args:
            prober: Prober used for every sample
            config: Policy constants; validated here
        """
        self.prober = prober
        self.config = (config if config is not None else ProbeConfig()).validate()
        self.is_running = False
        self._run_mutex = QMutex()
        self._state: SharedRunState | None = None
        self._last_concurrency = self.config.concurrency
        self.thread_pool: QThreadPool | None = None

    def run(
        self,
        candidates: Iterable[str],
        concurrency: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[CandidateResult]:
        """Probe every candidate and return the accepted results, unordered.

        Args:
            candidates: Candidate addresses; every entry is probed once
            concurrency: Parallel workers, defaults to config.concurrency
            on_progress: Optional (address, percent_complete) callback. Calls
                are serialized across workers, so it must return quickly;
                hand slow work to another thread (a queued Qt signal does)

        Returns:
            CandidateResult for each candidate that passed rejection

        Raises:
            NoCandidatesError: candidates is empty
            ProbeConfigurationError: concurrency is not positive
            RuntimeError: another run on this scheduler is in progress
        """
        pool = list(candidates)
        if not pool:
            raise NoCandidatesError()

        if concurrency is None:
            concurrency = self.config.concurrency
        if concurrency <= 0:
            raise ProbeConfigurationError("concurrency must be positive")

        with QMutexLocker(self._run_mutex):
            if self.is_running:
                raise RuntimeError("scheduler is already running")
            self.is_running = True

        try:
            self._last_concurrency = concurrency
            state = SharedRunState(pool, on_progress)
            self._state = state

            worker_count = min(concurrency, len(pool))
            self.thread_pool = QThreadPool()
            self.thread_pool.setMaxThreadCount(worker_count)

            logger.info(
                "Probe run started: candidates=%d, workers=%d, samples=%d, timeout=%dms",
                len(pool),
                worker_count,
                self.config.sample_count,
                self.config.timeout_ms,
            )
            started = time.monotonic()

            workers = []
            for worker_id in range(worker_count):
                worker = ProbeWorker(self.prober, state, self.config, worker_id)
                worker.setAutoDelete(False)  # kept alive by `workers` until joined
                workers.append(worker)
                self.thread_pool.start(worker)
            self.thread_pool.waitForDone()
        finally:
            with QMutexLocker(self._run_mutex):
                self.is_running = False

        results = state.results()
        logger.info(
            "Probe run finished: accepted=%d/%d, elapsed=%.1fs",
            len(results),
            len(pool),
            time.monotonic() - started,
        )
        return results

    @property
    def progress(self) -> RunProgress:
        """Latest progress snapshot of the current or last run."""
        if self._state is None:
            return RunProgress(current_candidate="", percent_complete=0)
        return self._state.progress

    def probed_addresses(self) -> list[str]:
        """Addresses taken by workers during the last run."""
        if self._state is None:
            return []
        return self._state.taken()

    def get_stats(self):
        """Get scheduler statistics.

        Returns:
            Dict with state of the current or last run
        """
        state = self._state
        return {
            "candidates": state.total if state else 0,
            "finished": state.finished if state else 0,
            "accepted": len(state.results()) if state else 0,
            "concurrency": self._last_concurrency,
            "running": self.is_running,
        }
