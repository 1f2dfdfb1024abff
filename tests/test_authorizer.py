"""
Tests for the authorization facade: mode handling, fallback and audit.
"""

import pytest

from medsecure.errors import BootstrapError, EvaluationError, RemoteUnavailable
from medsecure.models import Actor, DecisionReason, EvaluationMode, ResourceInstance, Role
from medsecure.policy.catalog import RESOURCE_ACTIONS, ROLES
from medsecure.policy.local import LocalPolicyEvaluator
from medsecure.services.authorizer import Authorizer
from medsecure.services.decision_log import DecisionLog

pytestmark = pytest.mark.anyio

ENV_PATH = "/medsecure/env/dev"


class _ExplodingClient:
    async def provision_schema(self):
        raise RuntimeError("schema mismatch")

    async def aclose(self):
        pass


# ── Bootstrap ────────────────────────────────────────────────────────

async def test_initialize_remote_provisions_once(engine, authorizer):
    assert await authorizer.initialize()
    assert authorizer.mode is EvaluationMode.REMOTE
    posts = engine.count("POST")

    assert await authorizer.initialize()
    assert engine.count("POST") == posts


async def test_initialize_falls_back_when_engine_down(engine, authorizer):
    engine.down = True
    seen = []
    authorizer.state.subscribe(lambda mode, reason: seen.append(mode))

    assert await authorizer.initialize()
    assert authorizer.mode is EvaluationMode.LOCAL
    assert seen == [EvaluationMode.LOCAL]
    assert "provisioning unavailable" in authorizer.state.fallback_reason


async def test_initialize_without_client_is_local(local_authorizer):
    assert await local_authorizer.initialize()
    assert local_authorizer.mode is EvaluationMode.LOCAL
    assert await local_authorizer.ready()


async def test_initialize_unexpected_error_is_bootstrap_error():
    auth = Authorizer(client=_ExplodingClient())  # type: ignore[arg-type]
    with pytest.raises(BootstrapError):
        await auth.initialize()
    assert auth.mode is EvaluationMode.REMOTE
    assert not auth.state.bootstrapped


async def test_ready_failure_switches_to_local(engine, authorizer):
    await authorizer.initialize()
    assert await authorizer.ready()

    engine.reject[("GET", f"{ENV_PATH}/config")] = (503, "upstream down")
    assert await authorizer.ready()
    assert authorizer.mode is EvaluationMode.LOCAL


# ── Checks ───────────────────────────────────────────────────────────

async def test_remote_check_records_one_decision(authorizer, doctor):
    await authorizer.initialize()

    assert await authorizer.check(doctor, "view", "patient") is True
    assert len(authorizer.decisions) == 1
    d = authorizer.decisions.last()
    assert d.mode is EvaluationMode.REMOTE
    assert d.reason is DecisionReason.REMOTE_CHECK
    assert d.actor_id == "doctor-smith"


async def test_tenant_defaults_to_actor_tenant(engine, authorizer, doctor):
    await authorizer.initialize()
    await authorizer.check(doctor, "view", "patient")
    assert engine.checks[-1]["tenant"] == "hospital_central"

    await authorizer.check(doctor, "view", "patient", tenant="north")
    assert engine.checks[-1]["tenant"] == "north"

    await authorizer.check(Actor(id="x", roles=[Role.DOCTOR]), "view", "patient")
    assert engine.checks[-1]["tenant"] == "default"


async def test_failure_mid_session_falls_back_and_answers(engine, authorizer, nurse):
    await authorizer.initialize()
    engine.down = True

    allowed = await authorizer.check(nurse, "view", "patient")
    assert allowed is True
    assert authorizer.mode is EvaluationMode.LOCAL
    assert len(authorizer.decisions) == 1
    assert authorizer.decisions.last().mode is EvaluationMode.LOCAL


async def test_no_remote_calls_after_fallback(engine, authorizer, nurse):
    await authorizer.initialize()
    engine.down = True
    await authorizer.check(nurse, "view", "patient")

    engine.down = False
    checks = len(engine.checks)
    await authorizer.check(nurse, "view", "patient")
    assert len(engine.checks) == checks
    assert authorizer.mode is EvaluationMode.LOCAL


async def test_remote_rejection_denies_without_fallback(engine, authorizer, doctor):
    await authorizer.initialize()
    engine.reject[("POST", "/policy/check")] = (400, {"detail": "unknown action"})

    assert await authorizer.check(doctor, "view", "patient") is False
    assert authorizer.mode is EvaluationMode.REMOTE
    assert authorizer.decisions.last().reason is DecisionReason.REMOTE_REJECTED


async def test_absent_actor_denies(authorizer):
    await authorizer.initialize()
    assert await authorizer.check(None, "view", "patient") is False
    d = authorizer.decisions.last()
    assert d.reason is DecisionReason.ACTOR_ABSENT
    assert d.actor_id is None


async def test_local_resource_check_applies_conditions(local_authorizer, patient):
    await local_authorizer.initialize()

    assert await local_authorizer.check_resource(patient, "view", {"type": "billing", "patientId": "pt-1"})
    assert not await local_authorizer.check_resource(patient, "view", {"type": "billing", "patientId": "pt-2"})
    assert local_authorizer.decisions.last().reason is DecisionReason.ABAC_DENIED


async def test_remote_resource_check_sends_attributes(engine, authorizer, doctor):
    await authorizer.initialize()
    inst = ResourceInstance(type="prescription", attributes={"department": "Cardiology"})

    assert await authorizer.check_resource(doctor, "approve", inst)
    assert engine.checks[-1]["context"]["resource"] == {"department": "Cardiology"}
    assert authorizer.decisions.last().reason is DecisionReason.REMOTE_RESOURCE_CHECK


async def test_resource_check_requires_type(local_authorizer, doctor):
    with pytest.raises(EvaluationError):
        await local_authorizer.check_resource(doctor, "view", {"patientId": "pt-1"})
    d = local_authorizer.decisions.last()
    assert d.allowed is False
    assert d.reason is DecisionReason.EVALUATION_ERROR
    assert d.actor_id == "doctor-smith"


async def test_absent_actor_on_resource_check_denies_before_type_check(local_authorizer):
    assert await local_authorizer.check_resource(None, "view", {"patientId": "x"}) is False
    assert len(local_authorizer.decisions) == 1
    assert local_authorizer.decisions.last().reason is DecisionReason.ACTOR_ABSENT


async def test_resource_check_accepts_nested_instance_shape(local_authorizer, patient):
    own = {"type": "billing", "attributes": {"patientId": "pt-1"}}
    other = {"type": "billing", "attributes": {"patientId": "pt-2"}}
    assert await local_authorizer.check_resource(patient, "view", own)
    assert not await local_authorizer.check_resource(patient, "view", other)


async def test_condition_error_records_deny_and_raises(doctor):
    class BrokenRule:
        key = "broken"

        def applies(self, role, action, resource_type):
            raise RuntimeError("boom")

    auth = Authorizer(client=None, local=LocalPolicyEvaluator(rules=[BrokenRule()]))  # type: ignore[list-item]
    await auth.initialize()

    with pytest.raises(EvaluationError, match="Condition evaluation failed: boom"):
        await auth.check_resource(doctor, "view", {"type": "patient", "id": "x"})
    assert len(auth.decisions) == 1
    assert auth.decisions.last().reason is DecisionReason.EVALUATION_ERROR


async def test_unexpected_error_records_deny_and_raises(doctor):
    class Broken:
        def setup(self):
            return True

        def evaluate_basic(self, actor, action, resource_type):
            raise RuntimeError("table corrupt")

    auth = Authorizer(client=None, local=Broken(), decisions=DecisionLog(capacity=10))  # type: ignore[arg-type]
    await auth.initialize()

    with pytest.raises(EvaluationError):
        await auth.check(doctor, "view", "patient")
    d = auth.decisions.last()
    assert d.allowed is False
    assert d.reason is DecisionReason.EVALUATION_ERROR


# ── Both modes agree on the role table ───────────────────────────────

async def test_remote_and_local_agree_on_catalog(engine, authorizer, local_authorizer):
    await authorizer.initialize()
    await local_authorizer.initialize()

    for role, _, _ in ROLES:
        actor = Actor(id=f"u-{role.value}", roles=[role])
        for resource, actions in RESOURCE_ACTIONS.items():
            for action in actions:
                remote = await authorizer.check(actor, action, resource)
                local = await local_authorizer.check(actor, action, resource)
                assert remote == local, (role.value, resource, action)

    assert authorizer.mode is EvaluationMode.REMOTE


# ── Mode listeners ───────────────────────────────────────────────────

async def test_mode_listener_fires_once_and_unsubscribes(engine, authorizer, nurse):
    await authorizer.initialize()
    seen = []
    unsubscribe = authorizer.state.subscribe(lambda mode, reason: seen.append((mode, reason)))

    engine.down = True
    await authorizer.check(nurse, "view", "patient")
    await authorizer.check(nurse, "view", "patient")
    assert len(seen) == 1
    assert seen[0][0] is EvaluationMode.LOCAL

    unsubscribe()
    assert authorizer.state.fall_back("again") is False


# ── Users ────────────────────────────────────────────────────────────

async def test_sync_actor_remote(engine, authorizer, doctor):
    await authorizer.initialize()
    assert await authorizer.sync_actor(doctor)
    assert "doctor-smith" in engine.users
    assert authorizer.local.users["doctor-smith"] == doctor


async def test_sync_actor_failure_does_not_change_mode(engine, authorizer, doctor):
    await authorizer.initialize()
    engine.down = True
    with pytest.raises(RemoteUnavailable):
        await authorizer.sync_actor(doctor)
    assert authorizer.mode is EvaluationMode.REMOTE
