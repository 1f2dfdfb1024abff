from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..models.decision import Decision, EvaluationMode


class CheckRequest(BaseModel):
    """
    Ask whether the signed-in user may perform an action.

    resource is the flat instance shape used by presentation code, e.g.
      {"patientId": "pt-001"}  or  {"type": "prescription", "department": "Cardiology"}
    Omit it for a plain role-based check.
    """
    action: str
    resource_type: str
    resource: Optional[Dict[str, Any]] = None
    error_on_failure: bool = False


class CheckResponse(BaseModel):
    allowed: bool
    status: str
    error: Optional[str] = None
    mode: EvaluationMode


class ModeResponse(BaseModel):
    mode: EvaluationMode
    bootstrapped: bool
    fallback_reason: Optional[str] = None


class DecisionsResponse(BaseModel):
    items: List[Decision] = []
    capacity: int
    evicted: int
