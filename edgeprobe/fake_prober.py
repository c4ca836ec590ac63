"""Simulated prober for testing and offline use."""

import random
import threading
from datetime import datetime

from edgeprobe.models import ProbeSample


class FakeProber:
    """Generates simulated probe samples.

    Each address gets a stable base latency derived from the address itself,
    unless a profile is supplied for it, so repeated runs rank the same
    candidates near the top.
    """

    def __init__(
        self,
        seed: int | None = None,
        profiles: dict[str, tuple[float, float]] | None = None,
        timeout_ms: int = 1000,
    ):
        """Initialize the fake prober.

        Args:
            seed: Random seed for deterministic output.
            profiles: Optional {address: (base_latency_ms, loss_probability)}.
            timeout_ms: Latencies at or beyond this are reported as lost.
        """
        self._random = random.Random(seed)
        self._lock = threading.Lock()  # probe() is called from pool threads
        self._profiles = dict(profiles or {})
        self.timeout_ms = timeout_ms

        self.min_base_latency = 20.0
        self.max_base_latency = 260.0
        self.latency_variance = 5.0
        self.loss_probability = 0.05

    def _profile(self, address: str) -> tuple[float, float]:
        if address in self._profiles:
            return self._profiles[address]
        span = self.max_base_latency - self.min_base_latency
        base = self.min_base_latency + (sum(address.encode()) * 37 % 1000) / 1000.0 * span
        return base, self.loss_probability

    def probe(self, address: str) -> ProbeSample:
        """Generate a single simulated sample for the given address."""
        if not address or not address.strip():
            raise ValueError("Address cannot be empty")

        timestamp = datetime.now()
        base_latency, loss_probability = self._profile(address)

        with self._lock:
            is_lost = self._random.random() < loss_probability
            jitter = self._random.gauss(0, self.latency_variance)

        if is_lost:
            return ProbeSample(ts=timestamp, address=address, latency_ms=None, loss=True)

        latency = max(0.1, base_latency + jitter)
        if latency >= self.timeout_ms:
            return ProbeSample(ts=timestamp, address=address, latency_ms=None, loss=True)

        return ProbeSample(ts=timestamp, address=address, latency_ms=round(latency, 2), loss=False)
