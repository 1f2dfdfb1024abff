from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..errors import EvaluationError
from ..models.actor import Actor
from ..models.decision import DecisionReason
from ..models.resource import ResourceInstance
from ..models.role import Role
from .catalog import ABAC_RULES, RESOURCE_ACTIONS, ROLE_PERMISSIONS, WILDCARD
from .conditions import failed_rules
from .rules import AbacRule

log = logging.getLogger("medsecure.local_policy")


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: DecisionReason
    detail: str


class LocalPolicyEvaluator:
    """
    In-process mirror of the role table provisioned remotely.

    Used when the policy engine is unreachable. Only the actor's primary role
    is considered.
    """

    def __init__(
        self,
        *,
        role_permissions: Optional[Dict[Role, Dict[str, List[str]]]] = None,
        rules: Sequence[AbacRule] = ABAC_RULES,
    ):
        self.role_permissions = role_permissions if role_permissions is not None else ROLE_PERMISSIONS
        self.rules = rules
        self.users: Dict[str, Actor] = {}

    def setup(self) -> bool:
        """Local schema setup: sanity-check the table against the resource catalog."""
        for role, perms in self.role_permissions.items():
            for resource in perms:
                if resource != WILDCARD and resource not in RESOURCE_ACTIONS:
                    log.warning("local policy role=%s references unknown resource=%s", role.value, resource)
        log.info(
            "local policy loaded roles=%d rules=%d",
            len(self.role_permissions),
            len(self.rules),
        )
        return True

    def ready(self) -> bool:
        return True

    def sync_actor(self, actor: Actor) -> bool:
        self.users[actor.id] = actor
        return True

    # -----------------------------
    # RBAC
    # -----------------------------
    def evaluate_basic(self, actor: Actor, action: str, resource_type: str) -> Verdict:
        role = actor.primary_role
        if role is None:
            return Verdict(False, DecisionReason.NO_ROLES, "User has no roles")

        perms = self.role_permissions.get(role)
        if perms is None:
            return Verdict(False, DecisionReason.UNKNOWN_ROLE, f"Role {role.value} has no permissions")

        wildcard = perms.get(WILDCARD) or []
        if WILDCARD in wildcard or action in wildcard:
            return Verdict(True, DecisionReason.WILDCARD_PERMISSION, "Wildcard permission")

        actions = perms.get(resource_type)
        if not actions:
            return Verdict(False, DecisionReason.NO_RESOURCE_PERMISSION, "No permissions for this resource")

        if WILDCARD in actions or action in actions:
            return Verdict(True, DecisionReason.ROLE_PERMISSION, "Role-based permission")

        return Verdict(False, DecisionReason.NO_ACTION_PERMISSION, "No permission for this action")

    def check_basic(self, actor: Actor, action: str, resource_type: str) -> bool:
        return self.evaluate_basic(actor, action, resource_type).allowed

    # -----------------------------
    # RBAC AND ABAC
    # -----------------------------
    def evaluate_resource(self, actor: Actor, action: str, instance: ResourceInstance) -> Verdict:
        resource_type = instance.type or ""
        basic = self.evaluate_basic(actor, action, resource_type)
        if not basic.allowed:
            return Verdict(False, DecisionReason.NO_BASIC_PERMISSION, basic.detail)

        try:
            failed = failed_rules(actor, action, resource_type, instance.attributes, self.rules)
        except Exception as e:
            log.exception("abac evaluation failed actor=%s action=%s resource=%s", actor.id, action, resource_type)
            raise EvaluationError(f"Condition evaluation failed: {e}") from e

        if failed:
            keys = ", ".join(r.key for r in failed)
            return Verdict(False, DecisionReason.ABAC_DENIED, f"Failed attribute-based conditions: {keys}")

        return Verdict(True, DecisionReason.PASSED_ALL_CHECKS, "Passed all permission checks")

    def check_resource(self, actor: Actor, action: str, instance: ResourceInstance) -> bool:
        try:
            return self.evaluate_resource(actor, action, instance).allowed
        except EvaluationError:
            return False
