from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EvaluationMode(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class DecisionReason(str, Enum):
    # remote engine
    REMOTE_CHECK = "remote_check"
    REMOTE_RESOURCE_CHECK = "remote_resource_check"
    REMOTE_REJECTED = "remote_rejected"

    # local role table
    NO_ROLES = "no_roles"
    UNKNOWN_ROLE = "unknown_role"
    WILDCARD_PERMISSION = "wildcard_permission"
    ROLE_PERMISSION = "role_permission"
    NO_RESOURCE_PERMISSION = "no_resource_permission"
    NO_ACTION_PERMISSION = "no_action_permission"

    # local resource checks
    NO_BASIC_PERMISSION = "no_basic_permission"
    ABAC_DENIED = "abac_denied"
    PASSED_ALL_CHECKS = "passed_all_checks"

    # guards
    ACTOR_ABSENT = "actor_absent"
    EVALUATION_ERROR = "evaluation_error"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Decision(BaseModel):
    """
    One authorization outcome. Immutable once appended to the decision log.
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_now)
    actor_id: Optional[str] = None
    action: str
    resource: str
    allowed: bool
    reason: DecisionReason
    detail: Optional[str] = None
    mode: EvaluationMode
