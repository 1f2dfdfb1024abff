from __future__ import annotations

from typing import Any, Optional


class AuthorizationError(Exception):
    """Base class for every failure raised by the authorization core."""


class RemoteUnavailable(AuthorizationError):
    """
    The policy engine could not be reached or answered with something we
    cannot interpret (transport error, timeout, gateway status, garbage body).

    Triggers the switch to local evaluation; never a denial reason by itself.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteRejected(AuthorizationError):
    """The policy engine answered with a structured error (validation, conflict, ...)."""

    def __init__(self, message: str, *, status_code: int, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ActorAbsent(AuthorizationError):
    """No actor is signed in; there is nothing to authorize."""


class EvaluationError(AuthorizationError):
    """Unexpected failure while evaluating a decision. Always treated as deny."""


class BootstrapError(AuthorizationError):
    """Provisioning failed in a way that must block start-up."""
