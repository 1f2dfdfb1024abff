from .actor import Actor
from .decision import Decision, DecisionReason, EvaluationMode
from .resource import ResourceInstance
from .role import Role

__all__ = [
    "Actor",
    "Decision",
    "DecisionReason",
    "EvaluationMode",
    "ResourceInstance",
    "Role",
]
