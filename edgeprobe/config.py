"""Probe policy configuration.

All tunables of a probe run live in ``ProbeConfig``. Defaults match the
behaviour of the original dashboard; each can be overridden through an
``EDGEPROBE_*`` environment variable.

Environment Variables:
    EDGEPROBE_SAMPLES: Probes per candidate (default 3)
    EDGEPROBE_TIMEOUT_MS: Per-probe timeout in milliseconds (default 1000)
    EDGEPROBE_CONCURRENCY: Candidates probed in parallel (default 5)
    EDGEPROBE_REJECT_LOSS: Loss ratio at which a candidate is dropped (default 0.70)
    EDGEPROBE_TOP_N: Length of the ranked list (default 10)
    EDGEPROBE_PROBE_PATH: HTTP path requested on each candidate
    EDGEPROBE_SCHEME: "http" or "https"
    EDGEPROBE_PROBER: Probe backend, "http" or "fake"
    EDGEPROBE_CANDIDATES: Comma separated candidate addresses
"""

import os
from dataclasses import dataclass, field, replace
from typing import Mapping

from edgeprobe.errors import ProbeConfigurationError

# Cloudflare anycast ranges, one representative address per prefix.
DEFAULT_CANDIDATE_POOL = (
    "104.16.0.1", "104.17.0.1", "104.18.0.1", "104.19.0.1", "104.20.0.1",
    "172.64.0.1", "172.67.0.1", "162.159.0.1", "108.162.192.1", "141.101.112.1",
    "197.234.240.1", "198.41.128.1", "162.158.0.1", "188.114.96.1", "103.21.244.1",
    "103.22.200.1", "103.31.4.1", "141.101.64.1", "190.93.240.1", "190.93.248.1",
)

DEFAULT_PROBE_PATH = "/cdn-cgi/trace"

PROBER_BACKENDS = ("http", "fake")


@dataclass(frozen=True)
class ProbeConfig:
    """Policy constants for one probe run."""

    sample_count: int = 3
    timeout_ms: int = 1000
    concurrency: int = 5
    rejection_threshold: float = 0.70
    top_n: int = 10
    probe_path: str = DEFAULT_PROBE_PATH
    scheme: str = "http"
    boundary_margin_ms: int = 10
    excellent_below_ms: int = 100
    prober: str = "http"
    candidates: tuple[str, ...] = field(default=DEFAULT_CANDIDATE_POOL)

    def validate(self) -> "ProbeConfig":
        """Raise ProbeConfigurationError on the first invalid value.

        Returns self so calls can be chained.
        """
        if self.sample_count <= 0:
            raise ProbeConfigurationError("sample_count must be positive")
        if self.timeout_ms <= 0:
            raise ProbeConfigurationError("timeout_ms must be positive")
        if self.concurrency <= 0:
            raise ProbeConfigurationError("concurrency must be positive")
        if not 0 < self.rejection_threshold <= 1:
            raise ProbeConfigurationError("rejection_threshold must be in (0, 1]")
        if self.top_n <= 0:
            raise ProbeConfigurationError("top_n must be positive")
        if self.boundary_margin_ms < 0 or self.boundary_margin_ms >= self.timeout_ms:
            raise ProbeConfigurationError("boundary_margin_ms must be in [0, timeout_ms)")
        if not self.probe_path.startswith("/"):
            raise ProbeConfigurationError("probe_path must start with '/'")
        if self.scheme not in ("http", "https"):
            raise ProbeConfigurationError(f"unsupported scheme: {self.scheme!r}")
        if self.prober not in PROBER_BACKENDS:
            raise ProbeConfigurationError(f"unknown prober backend: {self.prober!r}")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProbeConfig":
        """Build a config from defaults plus EDGEPROBE_* overrides."""
        if environ is None:
            environ = os.environ

        overrides = {}
        int_vars = {
            "EDGEPROBE_SAMPLES": "sample_count",
            "EDGEPROBE_TIMEOUT_MS": "timeout_ms",
            "EDGEPROBE_CONCURRENCY": "concurrency",
            "EDGEPROBE_TOP_N": "top_n",
        }
        for var, attr in int_vars.items():
            raw = environ.get(var, "").strip()
            if raw:
                try:
                    overrides[attr] = int(raw)
                except ValueError:
                    raise ProbeConfigurationError(f"{var} must be an integer, got {raw!r}") from None

        raw = environ.get("EDGEPROBE_REJECT_LOSS", "").strip()
        if raw:
            try:
                overrides["rejection_threshold"] = float(raw)
            except ValueError:
                raise ProbeConfigurationError(
                    f"EDGEPROBE_REJECT_LOSS must be a number, got {raw!r}"
                ) from None

        probe_path = environ.get("EDGEPROBE_PROBE_PATH", "").strip()
        if probe_path:
            overrides["probe_path"] = probe_path

        scheme = environ.get("EDGEPROBE_SCHEME", "").strip().lower()
        if scheme:
            overrides["scheme"] = scheme

        prober = environ.get("EDGEPROBE_PROBER", "").strip().lower()
        if prober:
            overrides["prober"] = prober

        candidates = parse_candidate_list(environ.get("EDGEPROBE_CANDIDATES", ""))
        if candidates:
            overrides["candidates"] = candidates

        return replace(cls(), **overrides).validate()


def parse_candidate_list(raw: str) -> tuple[str, ...]:
    """Split a comma separated address list, dropping blanks and duplicates.

    Examples:
        >>> parse_candidate_list("1.1.1.1, 1.0.0.1,,1.1.1.1")
        ('1.1.1.1', '1.0.0.1')
    """
    seen = []
    for part in raw.split(","):
        address = part.strip()
        if address and address not in seen:
            seen.append(address)
    return tuple(seen)
