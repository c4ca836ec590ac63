"""Latency probing and per-candidate sample reduction."""

import logging
import math
import socket
import threading
import time
from datetime import datetime
from typing import Callable, Protocol, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3 import PoolManager
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from edgeprobe.config import DEFAULT_PROBE_PATH
from edgeprobe.models import CandidateResult, ProbeSample

logger = logging.getLogger(__name__)

CLASS_EXCELLENT = "excellent"
CLASS_FAIR = "fair"


class Prober(Protocol):
    """Protocol defining the interface for latency probes."""

    def probe(self, address: str) -> ProbeSample:
        """Run one timed attempt against address. Must not raise."""
        ...


class _ConnectionTrackingMixin:
    """Hands every connection a pool opens to ``on_new_conn``."""

    on_new_conn = None

    def _new_conn(self):
        conn = super()._new_conn()
        if self.on_new_conn is not None:
            self.on_new_conn(conn)
        return conn


class _TrackedHTTPConnectionPool(_ConnectionTrackingMixin, HTTPConnectionPool):
    pass


class _TrackedHTTPSConnectionPool(_ConnectionTrackingMixin, HTTPSConnectionPool):
    pass


class _TrackingPoolManager(PoolManager):
    def __init__(self, on_new_conn, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_new_conn = on_new_conn
        self.pool_classes_by_scheme = {
            "http": _TrackedHTTPConnectionPool,
            "https": _TrackedHTTPSConnectionPool,
        }

    def _new_pool(self, scheme, host, port, request_context=None):
        pool = super()._new_pool(scheme, host, port, request_context=request_context)
        pool.on_new_conn = self.on_new_conn
        return pool


class DeadlineAdapter(HTTPAdapter):
    """Transport adapter whose connections can be cut from another thread.

    ``abort()`` shuts down every socket the adapter has opened, which wakes a
    read blocked on a peer that is trickling its response. One adapter serves
    one probe; the probe deadline timer calls ``abort()`` at most once.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections = []
        self.aborted = False
        super().__init__(max_retries=0)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        self._pool_connections = connections
        self._pool_maxsize = maxsize
        self._pool_block = block
        self.poolmanager = _TrackingPoolManager(
            self._track, num_pools=connections, maxsize=maxsize, block=block, **pool_kwargs
        )

    def _track(self, conn):
        with self._lock:
            self._connections.append(conn)

    def abort(self):
        """Shut down all connections opened so far."""
        with self._lock:
            self.aborted = True
            connections = list(self._connections)

        for conn in connections:
            sock = getattr(conn, "sock", None)
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug("Socket already closed on abort: error=%s", e)


class HttpProber:
    """Prober that times one plain HTTP request to a lightweight path.

    The response body and status are irrelevant: any completed round trip
    counts as a success. Each probe arms a one-shot timer for ``timeout_ms``
    that aborts the request's connections when it fires, so a peer that
    trickles its response cannot hold the worker past the deadline. The
    ``requests`` connect/read timeout stays in place underneath it. A sample
    whose elapsed time lands within ``boundary_margin_ms`` of the timeout is
    reported as lost, since it cannot be told apart from an attempt that was
    cut off by the deadline.
    """

    def __init__(
        self,
        timeout_ms: int = 1000,
        probe_path: str = DEFAULT_PROBE_PATH,
        scheme: str = "http",
        boundary_margin_ms: int = 10,
        session_factory: Callable[[], requests.Session] = requests.Session,
        port: int | None = None,
    ):
        """Initialize the prober.

        Args:
            timeout_ms: Per-request deadline in milliseconds.
            probe_path: Path requested on every candidate, e.g. "/cdn-cgi/trace".
            scheme: "http" or "https".
            boundary_margin_ms: Samples slower than timeout_ms minus this
                margin are treated as lost.
            session_factory: Callable returning a fresh requests.Session.
            port: Explicit port; defaults to the scheme's.
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

        self.timeout_ms = timeout_ms
        self.timeout_seconds = timeout_ms / 1000.0
        self.probe_path = probe_path
        self.scheme = scheme
        self.boundary_margin_ms = boundary_margin_ms
        self.port = port
        self._session_factory = session_factory

        logger.debug(
            "HttpProber initialized: timeout_ms=%d, url_template=%s://<ip>%s",
            timeout_ms,
            scheme,
            probe_path,
        )

    def build_url(self, address: str) -> str:
        """Build the probe URL for a candidate address.

        Examples:
            >>> HttpProber().build_url("104.16.0.1")
            'http://104.16.0.1/cdn-cgi/trace'
            >>> HttpProber().build_url("2606:4700::1")
            'http://[2606:4700::1]/cdn-cgi/trace'
        """
        host = f"[{address}]" if ":" in address else address
        if self.port is not None:
            host = f"{host}:{self.port}"
        return f"{self.scheme}://{host}{self.probe_path}"

    def probe(self, address: str) -> ProbeSample:
        """Time a single request against address.

        Returns:
            ProbeSample with latency in ms, or a lost sample on timeout,
            transport error, or a result too close to the deadline.
        """
        if not address or not address.strip():
            return ProbeSample(ts=datetime.now(), address=address, latency_ms=None, loss=True)

        timestamp = datetime.now()
        url = self.build_url(address)
        adapter = DeadlineAdapter()
        deadline = threading.Timer(self.timeout_seconds, adapter.abort)
        deadline.daemon = True
        start = time.perf_counter()

        try:
            with self._session_factory() as session:
                # Straight to the candidate; environment proxies would bypass the adapter.
                session.trust_env = False
                session.mount("http://", adapter)
                session.mount("https://", adapter)
                deadline.start()
                with session.get(
                    url,
                    timeout=self.timeout_seconds,
                    allow_redirects=False,
                    stream=True,
                    headers={"Cache-Control": "no-cache"},
                ):
                    pass
        except requests.RequestException as e:
            if adapter.aborted or isinstance(e, requests.Timeout):
                logger.debug("Probe timeout: address=%s, timeout=%dms", address, self.timeout_ms)
            else:
                logger.debug("Probe failed: address=%s, error=%s", address, e)
            return ProbeSample(ts=timestamp, address=address, latency_ms=None, loss=True)
        except Exception as e:
            logger.warning("Probe error: address=%s, error=%s", address, str(e), exc_info=True)
            return ProbeSample(ts=timestamp, address=address, latency_ms=None, loss=True)
        finally:
            deadline.cancel()

        elapsed_ms = (time.perf_counter() - start) * 1000.0

        if elapsed_ms >= self.timeout_ms - self.boundary_margin_ms:
            logger.debug(
                "Probe settled at deadline: address=%s, elapsed=%.1fms", address, elapsed_ms
            )
            return ProbeSample(ts=timestamp, address=address, latency_ms=None, loss=True)

        logger.debug("Probe completed: address=%s, latency=%.2fms", address, elapsed_ms)
        return ProbeSample(
            ts=timestamp, address=address, latency_ms=round(elapsed_ms, 2), loss=False
        )


def collect_samples(prober: Prober, address: str, sample_count: int) -> list[ProbeSample]:
    """Run sample_count probes against one address, one after another.

    A prober that breaks its contract and raises has that attempt recorded
    as lost.
    """
    samples = []
    for _ in range(sample_count):
        try:
            samples.append(prober.probe(address))
        except Exception:
            logger.exception("Prober raised: address=%s", address)
            samples.append(ProbeSample.lost(address))
    return samples


def classify_latency(average_latency_ms: float, excellent_below_ms: int = 100) -> str:
    """Label a latency for display. Not used for ranking."""
    return CLASS_EXCELLENT if average_latency_ms < excellent_below_ms else CLASS_FAIR


def estimate_throughput_mbps(average_latency_ms: float) -> float:
    """Rough throughput guess derived from latency alone, floored at zero.

    Examples:
        >>> estimate_throughput_mbps(50)
        35.0
        >>> estimate_throughput_mbps(600)
        0.0
    """
    return max(0.0, round(40 - average_latency_ms / 10, 1))


def reduce_samples(
    address: str,
    samples: Sequence[ProbeSample],
    rejection_threshold: float = 0.70,
    excellent_below_ms: int = 100,
) -> CandidateResult | None:
    """Reduce one candidate's samples to a result, or None if rejected.

    Args:
        address: Candidate address the samples belong to
        samples: All samples attempted for the candidate, lost ones included
        rejection_threshold: Loss ratio at or above which the candidate is dropped
        excellent_below_ms: Classification cutoff

    Returns:
        CandidateResult, or None when nothing succeeded or loss is too high
    """
    total = len(samples)
    if total == 0:
        return None

    latencies = [s.latency_ms for s in samples if not s.loss and s.latency_ms is not None]
    if not latencies:
        logger.debug("Candidate rejected: address=%s, no successful samples", address)
        return None

    loss_ratio = (total - len(latencies)) / total
    if loss_ratio >= rejection_threshold:
        logger.debug(
            "Candidate rejected: address=%s, loss_ratio=%.2f >= %.2f",
            address,
            loss_ratio,
            rejection_threshold,
        )
        return None

    # Half-up, so 12.5 ms reports as 13.
    average = math.floor(sum(latencies) / len(latencies) + 0.5)

    return CandidateResult(
        address=address,
        average_latency_ms=average,
        loss_ratio=loss_ratio,
        estimated_throughput_mbps=estimate_throughput_mbps(average),
        classification=classify_latency(average, excellent_below_ms),
        samples_sent=total,
        samples_received=len(latencies),
    )
