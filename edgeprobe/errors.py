"""Run-level error types.

Network failures never surface as exceptions; they become lost samples.
Only bad input or configuration stops a run, and it does so before any
probe is sent.
"""


class ProbeConfigurationError(ValueError):
    """Invalid run input or policy value."""


class NoCandidatesError(ProbeConfigurationError):
    """The candidate pool is empty."""

    def __init__(self, message: str = "no candidates to probe"):
        super().__init__(message)
