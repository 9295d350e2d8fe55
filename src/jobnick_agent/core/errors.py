"""Exception taxonomy shared by the agent components."""

from typing import Optional


class JobnickError(Exception):
    """Base class for all agent errors."""


class ConfigurationError(JobnickError):
    """Required configuration (credential, model) is missing or invalid."""


class TransportError(JobnickError):
    """The page automation surface could not carry out a request."""

    def __init__(self, message: str, action: Optional[str] = None, tab_id: Optional[str] = None):
        super().__init__(message)
        self.action = action
        self.tab_id = tab_id


class SurfaceNotReadyError(TransportError):
    """The surface inside a tab is not reachable yet. Retryable."""


class SurfaceActionError(TransportError):
    """The surface answered but reported that the action failed."""


class CompletionError(JobnickError):
    """The text completion service failed."""


class CompletionAuthError(CompletionError):
    """Credential missing or rejected."""


class CompletionRateLimitError(CompletionError):
    """The completion service is throttling requests."""


class MalformedCompletionError(CompletionError):
    """The completion service returned an empty or unusable payload."""
