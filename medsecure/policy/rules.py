from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

from ..models.actor import Actor
from ..models.role import Role


class Operand(BaseModel):
    """
    One side of a condition. Exactly one of the fields is meaningful:
      {"user": "department"}     -> actor attribute
      {"resource": "patientId"}  -> resource instance attribute
      {"value": "Emergency"}     -> literal
    """
    user: Optional[str] = None
    resource: Optional[str] = None
    value: Any = None

    def resolve(self, actor: Actor, attributes: Dict[str, Any]) -> Any:
        if self.user is not None:
            v = getattr(actor, self.user, None)
        elif self.resource is not None:
            v = attributes.get(self.resource)
        else:
            v = self.value
        return v.value if isinstance(v, Enum) else v

    def to_remote(self) -> Any:
        if self.user is not None:
            return {"user": self.user}
        if self.resource is not None:
            return {"resource": self.resource}
        return self.value


class Condition(BaseModel):
    type: Literal["equals"] = "equals"
    left: Operand
    right: Operand

    def holds(self, actor: Actor, attributes: Dict[str, Any]) -> bool:
        left = self.left.resolve(actor, attributes)
        right = self.right.resolve(actor, attributes)
        # missing operand never satisfies a condition
        if left is None or right is None:
            return False
        return left == right

    def to_remote(self) -> Dict[str, Any]:
        return {"type": self.type, "left": self.left.to_remote(), "right": self.right.to_remote()}


class AbacRule(BaseModel):
    """
    Attribute condition attached to (role, resource[, actions]).

    actions=None restricts every action the role holds on the resource.
    """
    key: str
    description: str
    role: Role
    resource: str
    actions: Optional[List[str]] = None
    condition: Condition

    def applies(self, role: Optional[Role], action: str, resource_type: str) -> bool:
        if role != self.role or resource_type != self.resource:
            return False
        return self.actions is None or action in self.actions

    def to_remote(self, actions: List[str]) -> Dict[str, Any]:
        """Render as a policy_rules document for the remote engine."""
        return {
            "key": self.key,
            "description": self.description,
            "rules": [
                {
                    "user_set": {"role": self.role.value},
                    "permission_set": {"resource": self.resource, "action": action},
                    "condition": {"context": self.condition.to_remote()},
                }
                for action in actions
            ],
        }
