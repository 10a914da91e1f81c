"""
Exception taxonomy for the allotment checker.

Captcha recognition failures are not represented here: the solver reports
them as an unsuccessful SolveResult and the controller retries or escalates.
"""

from typing import Optional


class CheckerError(Exception):
    """Base class for every checker error."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NoTargetsError(CheckerError):
    """A run was requested with an empty BOID list."""

    def __init__(self, message: str = "No targets to check"):
        super().__init__(message)


class InvalidTargetError(CheckerError):
    """A BOID failed validation before reaching the controller."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Invalid BOID {identifier!r}: {reason}")


class BridgeTimeoutError(CheckerError):
    """No correlated message arrived within the wait bound."""

    def __init__(self, expected_type: str, identifier: str, timeout: float):
        self.expected_type = expected_type
        self.identifier = identifier
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for {expected_type} ({identifier})")


class RemoteFormError(CheckerError):
    """The page script reported a failure instead of the awaited message."""

    def __init__(self, identifier: str, detail: Optional[str]):
        self.identifier = identifier
        self.detail = detail or "Remote form error"
        super().__init__(f"Remote form failed for {identifier}: {self.detail}")


class WaiterCollisionError(CheckerError):
    """A new wait was registered while one for the same BOID was still pending."""

    def __init__(self, identifier: str, pending_type: str):
        self.identifier = identifier
        self.pending_type = pending_type
        super().__init__(f"Wait for {pending_type} ({identifier}) replaced before it resolved")


class SessionDiscardedError(CheckerError):
    """The session was reset while this wait or prompt was outstanding."""

    def __init__(self, message: str = "Session discarded"):
        super().__init__(message)


class PageLoadError(CheckerError):
    """The result page could not be opened with any browser profile."""

    def __init__(self, url: str, attempts: int, last_error: Optional[str] = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Could not load {url} after {attempts} attempts: {last_error or 'unknown error'}")
