"""One-call entry point: probe a candidate pool and rank the results."""

import logging
from typing import Iterable

from edgeprobe.config import ProbeConfig
from edgeprobe.errors import ProbeConfigurationError
from edgeprobe.fake_prober import FakeProber
from edgeprobe.models import CandidateResult
from edgeprobe.prober import HttpProber, Prober
from edgeprobe.ranker import rank
from edgeprobe.scheduler import ProbeScheduler
from edgeprobe.workers import ProgressCallback

logger = logging.getLogger(__name__)


def build_prober(config: ProbeConfig) -> Prober:
    """Create the probe backend named by config.prober."""
    if config.prober == "http":
        return HttpProber(
            timeout_ms=config.timeout_ms,
            probe_path=config.probe_path,
            scheme=config.scheme,
            boundary_margin_ms=config.boundary_margin_ms,
        )
    if config.prober == "fake":
        return FakeProber(timeout_ms=config.timeout_ms)
    raise ProbeConfigurationError(f"unknown prober backend: {config.prober!r}")


def probe_and_rank(
    candidates: Iterable[str] | None = None,
    config: ProbeConfig | None = None,
    prober: Prober | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[CandidateResult]:
    """Probe candidates and return the ranked top-N list.

    Args:
        candidates: Addresses to test, defaults to config.candidates
        config: Policy constants, defaults to ProbeConfig.from_env()
        prober: Probe backend, defaults to build_prober(config)
        on_progress: Optional (address, percent_complete) callback

    Returns:
        Best-first list of at most config.top_n results; empty if every
        candidate was rejected
    """
    if config is None:
        config = ProbeConfig.from_env()
    if candidates is None:
        candidates = config.candidates
    if prober is None:
        prober = build_prober(config)

    scheduler = ProbeScheduler(prober, config)
    results = scheduler.run(candidates, on_progress=on_progress)
    ranked = rank(results, top_n=config.top_n)

    if ranked:
        best = ranked[0]
        logger.info(
            "Best candidate: address=%s, latency=%dms, loss=%d%%",
            best.address,
            best.average_latency_ms,
            best.loss_percent,
        )
    else:
        logger.info("No usable candidate found")
    return ranked
