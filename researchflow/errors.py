"""Exception taxonomy for research runs."""

from __future__ import annotations

from typing import Optional


class ResearchFlowError(Exception):
    """Base class for all researchflow errors."""


class TransientError(ResearchFlowError):
    """A failure worth retrying in place (rate limit, timeout, 5xx)."""


class FatalError(ResearchFlowError):
    """A failure that aborts the run without retry."""


class ConfigurationError(FatalError):
    """Required configuration such as a credential is missing."""


class NoProviderAvailable(ConfigurationError):
    """Neither the primary nor the fallback provider could be built."""

    def __init__(self, capability: str, tried: Optional[list[str]] = None) -> None:
        self.capability = capability
        self.tried = tried or []
        names = ", ".join(self.tried) or "none"
        super().__init__(f"No {capability} provider available (tried: {names})")


class InputError(FatalError):
    """There is no data to proceed with."""


class ProviderResponseError(FatalError):
    """A provider returned a response that cannot be recovered from."""


class PollTimeoutExceeded(ResearchFlowError):
    """A polled external job did not finish within the attempt ceiling."""

    def __init__(self, attempts: int, last_status: Optional[str] = None) -> None:
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"External job still '{last_status}' after {attempts} checks; "
            "it can be resumed later"
        )


class RunCancelled(ResearchFlowError):
    """The run was cancelled by a user or operator."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} was cancelled")


class AlreadyRunning(ResearchFlowError):
    """Another non-terminal run exists for the same job id."""

    def __init__(self, job_id: str, active_run_id: str) -> None:
        self.job_id = job_id
        self.active_run_id = active_run_id
        super().__init__(f"Job {job_id} already has an active run ({active_run_id})")


class RunNotFound(ResearchFlowError):
    """No run is stored under the given id."""
