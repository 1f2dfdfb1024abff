from __future__ import annotations

"""
MedSecure policy catalog: the single source of truth for both evaluation modes.

- RESOURCES / ROLES / ROLE_PERMISSIONS are provisioned remotely and mirrored
  by the local evaluator.
- ABAC_RULES are interpreted locally and rendered into remote policy rules.

Naming convention:
  Resources:   snake_case nouns         e.g. medical_record
  Grants:      <resource>:<action>      e.g. prescription:approve
  Policy rules <subject>_<constraint>   e.g. patient_own_billing
"""

from typing import Dict, List, Tuple

from ..models.role import Role
from .rules import AbacRule, Condition, Operand

WILDCARD = "*"


# ------------------------------------------------------------------------------
# Resource types and their actions
# ------------------------------------------------------------------------------
RESOURCES: List[Dict[str, object]] = [
    {"key": "patient", "name": "Patient", "description": "Patient records",
     "actions": ["view", "create", "edit", "delete"]},
    {"key": "medical_record", "name": "Medical Record", "description": "Medical records",
     "actions": ["view", "create", "edit", "delete"]},
    {"key": "prescription", "name": "Prescription", "description": "Prescription data",
     "actions": ["view", "create", "edit", "delete", "approve", "administer"]},
    {"key": "billing", "name": "Billing", "description": "Billing information",
     "actions": ["view", "create", "edit", "delete", "approve"]},
    {"key": "system", "name": "System", "description": "System settings",
     "actions": ["view", "manage", "administer"]},
    {"key": "lab_result", "name": "Lab Result", "description": "Laboratory test results",
     "actions": ["view", "create", "edit", "delete", "approve"]},
    {"key": "appointment", "name": "Appointment", "description": "Patient appointments",
     "actions": ["view", "create", "edit", "delete", "approve"]},
    {"key": "schedule", "name": "Schedule", "description": "Staff schedules",
     "actions": ["view", "create", "edit", "delete", "approve"]},
]

RESOURCE_ACTIONS: Dict[str, List[str]] = {str(r["key"]): list(r["actions"]) for r in RESOURCES}  # type: ignore[arg-type]


# ------------------------------------------------------------------------------
# Roles
# ------------------------------------------------------------------------------
ROLES: List[Tuple[Role, str, str]] = [
    (Role.ADMIN, "Administrator", "Full system access"),
    (Role.DOCTOR, "Doctor", "Medical staff with treatment privileges"),
    (Role.NURSE, "Nurse", "Medical staff with care privileges"),
    (Role.PATIENT, "Patient", "Patient access to own records"),
    (Role.LAB_TECHNICIAN, "Lab Technician", "Laboratory staff"),
    (Role.RECEPTIONIST, "Receptionist", "Front desk staff"),
    (Role.BILLING_STAFF, "Billing Staff", "Finance department staff"),
]


# ------------------------------------------------------------------------------
# RBAC table: role -> resource -> actions
# ------------------------------------------------------------------------------
ROLE_PERMISSIONS: Dict[Role, Dict[str, List[str]]] = {
    Role.ADMIN: {
        WILDCARD: [WILDCARD],
    },
    Role.DOCTOR: {
        "patient": ["view", "create", "edit"],
        "medical_record": ["view", "create", "edit"],
        "prescription": ["view", "create", "approve"],
        "billing": ["view"],
        "lab_result": ["view", "create", "approve"],
        "appointment": ["view", "create", "edit", "approve"],
        "schedule": ["view"],
    },
    Role.NURSE: {
        "patient": ["view"],
        "medical_record": ["view", "create"],
        "prescription": ["view", "administer"],
        "lab_result": ["view"],
        "appointment": ["view", "create"],
        "schedule": ["view"],
    },
    # patient grants are narrowed further by ABAC_RULES
    Role.PATIENT: {
        "patient": ["view"],
        "medical_record": ["view"],
        "prescription": ["view"],
        "billing": ["view"],
        "appointment": ["view", "create"],
    },
    Role.LAB_TECHNICIAN: {
        "patient": ["view"],
        "medical_record": ["view"],
        "lab_result": ["view", "create", "edit"],
    },
    Role.RECEPTIONIST: {
        "patient": ["view", "create"],
        "appointment": ["view", "create", "edit"],
        "schedule": ["view"],
    },
    Role.BILLING_STAFF: {
        "patient": ["view"],
        "billing": ["view", "create", "edit", "approve"],
    },
}


# ------------------------------------------------------------------------------
# ABAC rules
# ------------------------------------------------------------------------------
def _own(key: str, resource: str, attribute: str, description: str) -> AbacRule:
    return AbacRule(
        key=key,
        description=description,
        role=Role.PATIENT,
        resource=resource,
        condition=Condition(left=Operand(user="id"), right=Operand(resource=attribute)),
    )


ABAC_RULES: List[AbacRule] = [
    _own("patient_own_data", "patient", "id", "Patients can only access their own data"),
    _own("patient_own_medical_records", "medical_record", "patientId",
         "Patients can only access their own medical records"),
    _own("patient_own_prescriptions", "prescription", "patientId",
         "Patients can only access their own prescriptions"),
    _own("patient_own_billing", "billing", "patientId", "Patients can only access their own billing"),
    AbacRule(
        key="emergency_nurse_edit",
        description="Only Emergency nurses can edit patient data",
        role=Role.NURSE,
        resource="patient",
        actions=["edit"],
        condition=Condition(left=Operand(user="department"), right=Operand(value="Emergency")),
    ),
    AbacRule(
        key="doctor_specialty_prescriptions",
        description="Doctors can only approve prescriptions in their specialty",
        role=Role.DOCTOR,
        resource="prescription",
        actions=["approve"],
        condition=Condition(left=Operand(user="department"), right=Operand(resource="department")),
    ),
]


# ------------------------------------------------------------------------------
# Helpers used by provisioning
# ------------------------------------------------------------------------------
def granted_actions(role: Role, resource: str) -> List[str]:
    """Concrete actions the role holds on a resource, wildcards expanded against RESOURCES."""
    perms = ROLE_PERMISSIONS.get(role) or {}
    known = RESOURCE_ACTIONS.get(resource, [])

    actions: List[str] = []
    for entry in (perms.get(WILDCARD), perms.get(resource)):
        if not entry:
            continue
        actions.extend(known if WILDCARD in entry else entry)
    return [a for a in known if a in actions]


def role_grants(role: Role) -> List[str]:
    """Remote grant keys for a role, e.g. ["patient:view", "billing:view"]."""
    return [f"{r}:{a}" for r in RESOURCE_ACTIONS for a in granted_actions(role, r)]


def remote_rule_actions(rule: AbacRule) -> List[str]:
    if rule.actions is not None:
        return list(rule.actions)
    return granted_actions(rule.role, rule.resource)
