"""Ranking of accepted candidate results."""

from typing import Iterable

from edgeprobe.models import CandidateResult


def rank_key(result: CandidateResult) -> tuple[float, int]:
    """Sort key: lower loss first, then lower latency."""
    return (result.loss_ratio, result.average_latency_ms)


def rank(results: Iterable[CandidateResult], top_n: int = 10) -> list[CandidateResult]:
    """Order results best-first and keep the top_n.

    Loss always outranks latency: a lossless 500 ms candidate places ahead of
    a 30 ms candidate that dropped a probe. Ties on both keys keep their input
    order (stable sort), though callers should not rely on it.

    Args:
        results: Accepted candidate results, in any order
        top_n: Maximum length of the returned list

    Returns:
        New list; the input is not modified
    """
    if top_n <= 0:
        raise ValueError("top_n must be positive")
    return sorted(results, key=rank_key)[:top_n]
