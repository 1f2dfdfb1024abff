from .auth import LoginRequest, SessionOut
from .authz import CheckRequest, CheckResponse, DecisionsResponse, ModeResponse

__all__ = [
    "CheckRequest",
    "CheckResponse",
    "DecisionsResponse",
    "LoginRequest",
    "ModeResponse",
    "SessionOut",
]
