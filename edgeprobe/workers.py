"""Worker classes for background probing tasks."""

import logging
from collections import deque
from typing import Callable, Iterable

from PySide6.QtCore import QMutex, QMutexLocker, QObject, QRunnable, Signal

from edgeprobe.config import ProbeConfig
from edgeprobe.models import CandidateResult, RunProgress
from edgeprobe.prober import Prober, collect_samples, reduce_samples
from edgeprobe.ranker import rank

logger = logging.getLogger(__name__)

# Called from pool threads, one call at a time. Must not block: a slow sink
# holds up every worker waiting to report.
ProgressCallback = Callable[[str, int], None]


class SharedRunState:
    """Work queue, results and progress shared by the workers of one run.

    The queue, the results list and the finished counter are guarded by one
    mutex. Progress callbacks are serialized by a second mutex so the percent
    values a caller sees never go backwards.
    """

    def __init__(self, candidates: Iterable[str], on_progress: ProgressCallback | None = None):
        self._mutex = QMutex()
        self._progress_mutex = QMutex()
        self._queue = deque(candidates)
        self._results: list[CandidateResult] = []
        self._taken: list[str] = []
        self._finished = 0
        self.total = len(self._queue)
        self.on_progress = on_progress
        self.progress = RunProgress(current_candidate="", percent_complete=0)

    def take(self) -> str | None:
        """Pop the next candidate, or None once the queue is drained."""
        with QMutexLocker(self._mutex):
            if not self._queue:
                return None
            address = self._queue.popleft()
            self._taken.append(address)
            return address

    def complete(self, address: str, result: CandidateResult | None):
        """Record a finished candidate and its result, if it was accepted."""
        with QMutexLocker(self._mutex):
            if result is not None:
                self._results.append(result)
            self._finished += 1

    def report_progress(self, address: str):
        """Emit (address, percent) to the progress callback.

        The count is read and delivered under the progress mutex, so values
        arrive in non-decreasing order. The state mutex is held only for the
        read: take() and complete() never wait on the callback, but a worker
        reporting progress does.
        """
        with QMutexLocker(self._progress_mutex):
            with QMutexLocker(self._mutex):
                finished = self._finished
            percent = round(finished / self.total * 100) if self.total else 100
            self.progress = RunProgress(current_candidate=address, percent_complete=percent)

            if self.on_progress is None:
                return
            try:
                self.on_progress(address, percent)
            except Exception:
                logger.exception("Progress callback failed: address=%s", address)

    @property
    def finished(self) -> int:
        with QMutexLocker(self._mutex):
            return self._finished

    def results(self) -> list[CandidateResult]:
        with QMutexLocker(self._mutex):
            return list(self._results)

    def taken(self) -> list[str]:
        """Addresses in the order workers took them."""
        with QMutexLocker(self._mutex):
            return list(self._taken)


class ProbeWorker(QRunnable):
    """Worker that drains the shared queue, probing one candidate at a time."""

    def __init__(
        self, prober: Prober, state: SharedRunState, config: ProbeConfig, worker_id: int = 0
    ):
        super().__init__()
        self.prober = prober
        self.state = state
        self.config = config
        self.worker_id = worker_id

    def run(self):
        """Take candidates until the queue is empty."""
        logger.debug("Worker starting: worker_id=%d", self.worker_id)
        processed = 0

        while True:
            address = self.state.take()
            if address is None:
                break

            self.state.report_progress(address)

            try:
                samples = collect_samples(self.prober, address, self.config.sample_count)
                result = reduce_samples(
                    address,
                    samples,
                    rejection_threshold=self.config.rejection_threshold,
                    excellent_below_ms=self.config.excellent_below_ms,
                )
            except Exception:
                logger.exception(
                    "Worker exception: worker_id=%d, address=%s", self.worker_id, address
                )
                result = None

            self.state.complete(address, result)
            self.state.report_progress(address)
            processed += 1

        logger.debug("Worker completed: worker_id=%d, processed=%d", self.worker_id, processed)


class RunSignals(QObject):
    """Signals for communicating a background run to the main thread."""

    progress = Signal(str, int)  # (address, percent_complete)
    finished = Signal(object)  # ranked list of CandidateResult
    error = Signal(str)


class ProbeRunWorker(QRunnable):
    """Runs a whole probe-and-rank pass off the UI thread."""

    def __init__(self, scheduler, candidates: list[str], concurrency: int | None = None):
        super().__init__()
        self.scheduler = scheduler
        self.candidates = list(candidates)
        self.concurrency = concurrency
        self.signals = RunSignals()

    def run(self):
        """Execute the run in a background thread."""
        try:
            results = self.scheduler.run(
                self.candidates,
                concurrency=self.concurrency,
                on_progress=self.signals.progress.emit,
            )
            ranked = rank(results, top_n=self.scheduler.config.top_n)
            self.signals.finished.emit(ranked)
        except Exception as e:
            logger.exception("Probe run failed: error=%s", str(e))
            self.signals.error.emit(str(e))
