"""Exception hierarchy for luna-bot."""

from __future__ import annotations


class LunaBotError(Exception):
    """Base class for luna-bot errors."""


class RemoteCallError(LunaBotError):
    """A remote API call failed.

    ``status_code`` is the HTTP status when the remote side answered, or
    ``None`` for network failures, timeouts and unusable payloads.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(RemoteCallError):
    """The remote answered 2xx but the payload lacked the expected text."""


class KeyRotationError(LunaBotError):
    """No API key could serve the request."""


class CredentialsExhaustedError(KeyRotationError):
    """Every API key is cooling down; nothing was attempted."""


class AllCredentialsFailedError(KeyRotationError):
    """Every attempt failed. ``last_error`` holds the final failure."""

    def __init__(self, message: str, last_error: RemoteCallError | None = None):
        super().__init__(message)
        self.last_error = last_error
