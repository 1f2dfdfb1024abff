"""
Unit tests for the ABAC condition interpreter.
"""

from medsecure.models import Actor, Role
from medsecure.policy.conditions import evaluate_conditions, failed_rules
from medsecure.policy.rules import AbacRule, Condition, Operand


# ── Rule 1: patient self-access ──────────────────────────────────────

def test_patient_own_record_passes(patient):
    assert evaluate_conditions(patient, "view", "patient", {"id": "pt-1"})
    for rtype in ("medical_record", "prescription", "billing"):
        assert evaluate_conditions(patient, "view", rtype, {"patientId": "pt-1"})


def test_patient_other_record_fails(patient):
    assert not evaluate_conditions(patient, "view", "patient", {"id": "pt-2"})
    for rtype in ("medical_record", "prescription", "billing"):
        assert not evaluate_conditions(patient, "view", rtype, {"patientId": "pt-2"})


def test_patient_rule_ignores_action(patient):
    # the restriction holds for every action, not only view
    assert not evaluate_conditions(patient, "edit", "billing", {"patientId": "pt-2"})


def test_patient_unrestricted_resource_falls_through(patient):
    assert evaluate_conditions(patient, "create", "appointment", {"patientId": "pt-2"})


def test_patient_missing_attribute_fails_closed(patient):
    assert not evaluate_conditions(patient, "view", "medical_record", {})


# ── Rule 2: nurse edit ───────────────────────────────────────────────

def test_nurse_edit_patient_requires_emergency(nurse):
    assert not evaluate_conditions(nurse, "edit", "patient", {"id": "pt-1"})

    er_nurse = nurse.model_copy(update={"department": "Emergency"})
    assert evaluate_conditions(er_nurse, "edit", "patient", {"id": "pt-1"})


def test_nurse_view_patient_unrestricted(nurse):
    assert evaluate_conditions(nurse, "view", "patient", {"id": "pt-1"})


# ── Rule 3: doctor approve ───────────────────────────────────────────

def test_doctor_approve_same_department(doctor):
    assert evaluate_conditions(doctor, "approve", "prescription", {"department": "Cardiology"})
    assert not evaluate_conditions(doctor, "approve", "prescription", {"department": "Oncology"})


def test_doctor_approve_without_departments_fails():
    doc = Actor(id="d-2", roles=[Role.DOCTOR], department=None)
    assert not evaluate_conditions(doc, "approve", "prescription", {})


def test_doctor_other_actions_unrestricted(doctor):
    assert evaluate_conditions(doctor, "view", "prescription", {"department": "Oncology"})


# ── General behaviour ────────────────────────────────────────────────

def test_no_attributes_means_no_condition(patient, nurse):
    assert evaluate_conditions(patient, "view", "billing", None)
    assert evaluate_conditions(nurse, "edit", "patient", None)


def test_only_primary_role_counts():
    actor = Actor(id="pt-1", roles=[Role.DOCTOR, Role.PATIENT], department="Cardiology")
    assert evaluate_conditions(actor, "view", "billing", {"patientId": "someone-else"})


def test_every_matching_rule_is_applied(patient):
    extra = AbacRule(
        key="patient_same_tenant_billing",
        description="test",
        role=Role.PATIENT,
        resource="billing",
        condition=Condition(left=Operand(user="tenant"), right=Operand(resource="tenant")),
    )
    own = AbacRule(
        key="own",
        description="test",
        role=Role.PATIENT,
        resource="billing",
        condition=Condition(left=Operand(user="id"), right=Operand(resource="patientId")),
    )

    failed = failed_rules(patient, "view", "billing", {"patientId": "pt-1", "tenant": "other"}, [own, extra])
    assert [r.key for r in failed] == ["patient_same_tenant_billing"]

    failed = failed_rules(patient, "view", "billing", {"patientId": "pt-9", "tenant": "other"}, [own, extra])
    assert [r.key for r in failed] == ["own", "patient_same_tenant_billing"]


def test_rule_renders_remote_policy():
    rule = AbacRule(
        key="emergency_nurse_edit",
        description="x",
        role=Role.NURSE,
        resource="patient",
        actions=["edit"],
        condition=Condition(left=Operand(user="department"), right=Operand(value="Emergency")),
    )
    doc = rule.to_remote(["edit"])
    assert doc["key"] == "emergency_nurse_edit"
    assert doc["rules"] == [
        {
            "user_set": {"role": "nurse"},
            "permission_set": {"resource": "patient", "action": "edit"},
            "condition": {"context": {"type": "equals", "left": {"user": "department"}, "right": "Emergency"}},
        }
    ]
