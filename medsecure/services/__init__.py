from .authorizer import AuthorizationState, Authorizer
from .decision_log import DecisionLog
from .directory import UserDirectory, demo_directory
from .guard import GuardState, GuardStatus, PermissionGuard
from .session import FileStorage, InMemoryStorage, SessionStore

__all__ = [
    "AuthorizationState",
    "Authorizer",
    "DecisionLog",
    "FileStorage",
    "GuardState",
    "GuardStatus",
    "InMemoryStorage",
    "PermissionGuard",
    "SessionStore",
    "UserDirectory",
    "demo_directory",
]
