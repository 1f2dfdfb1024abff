from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from ..models.actor import Actor
from .catalog import ABAC_RULES
from .rules import AbacRule


def failed_rules(
    actor: Actor,
    action: str,
    resource_type: str,
    attributes: Optional[Dict[str, Any]],
    rules: Sequence[AbacRule] = ABAC_RULES,
) -> List[AbacRule]:
    """
    Every rule that applies to (primary role, action, resource_type) and whose
    condition does not hold. All matching rules are checked; none short-circuits.

    attributes=None means no resource instance was supplied, so nothing applies.
    """
    if attributes is None:
        return []

    role = actor.primary_role
    return [
        rule
        for rule in rules
        if rule.applies(role, action, resource_type) and not rule.condition.holds(actor, attributes)
    ]


def evaluate_conditions(
    actor: Actor,
    action: str,
    resource_type: str,
    attributes: Optional[Dict[str, Any]],
    rules: Sequence[AbacRule] = ABAC_RULES,
) -> bool:
    return not failed_rules(actor, action, resource_type, attributes, rules)
