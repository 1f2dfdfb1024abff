from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..core.policy_client import PolicyClient
from ..errors import BootstrapError, EvaluationError, RemoteRejected, RemoteUnavailable
from ..models.actor import Actor
from ..models.decision import Decision, DecisionReason, EvaluationMode
from ..models.resource import ResourceInstance
from ..policy.local import LocalPolicyEvaluator, Verdict
from .decision_log import DecisionLog

log = logging.getLogger("medsecure.authorizer")

ModeListener = Callable[[EvaluationMode, str], None]


class AuthorizationState:
    """
    Evaluation mode owned by one Authorizer.

    remote -> local is one-way: nothing switches back to remote.
    """

    def __init__(self) -> None:
        self.mode = EvaluationMode.REMOTE
        self.bootstrapped = False
        self.fallback_reason: Optional[str] = None
        self._listeners: List[ModeListener] = []

    def subscribe(self, listener: ModeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def fall_back(self, reason: str) -> bool:
        if self.mode is EvaluationMode.LOCAL:
            return False
        self.mode = EvaluationMode.LOCAL
        self.fallback_reason = reason
        log.warning("authorization mode switched to local reason=%s", reason)
        for listener in list(self._listeners):
            listener(self.mode, reason)
        return True


class Authorizer:
    """
    Entry point for every authorization question.

    Delegates to the remote policy engine while it answers and to the local
    evaluator once it has failed. Exactly one Decision is recorded per check.
    """

    def __init__(
        self,
        *,
        client: Optional[PolicyClient],
        local: Optional[LocalPolicyEvaluator] = None,
        decisions: Optional[DecisionLog] = None,
        default_tenant: str = "default",
    ):
        self.client = client
        self.local = local or LocalPolicyEvaluator()
        self.decisions = decisions or DecisionLog()
        self.default_tenant = default_tenant
        self.state = AuthorizationState()
        self._init_lock = asyncio.Lock()

    @property
    def mode(self) -> EvaluationMode:
        return self.state.mode

    @property
    def _remote(self) -> bool:
        return self.client is not None and self.state.mode is EvaluationMode.REMOTE

    # -----------------------------
    # Lifecycle
    # -----------------------------
    async def initialize(self) -> bool:
        async with self._init_lock:
            if self.state.bootstrapped:
                return True

            if not self._remote:
                self.local.setup()
                self.state.fall_back(self.state.fallback_reason or "no policy client configured")
            else:
                try:
                    await self.client.provision_schema()  # type: ignore[union-attr]
                except RemoteUnavailable as e:
                    self.local.setup()
                    self.state.fall_back(f"provisioning unavailable: {e}")
                except Exception as e:
                    log.exception("bootstrap failed err=%s", e)
                    raise BootstrapError(f"Policy provisioning failed: {e}") from e

            self.state.bootstrapped = True
            log.info("authorizer initialized mode=%s", self.state.mode.value)
            return True

    async def ready(self) -> bool:
        if not self._remote:
            return self.local.ready()

        try:
            ok = await self.client.probe_ready()  # type: ignore[union-attr]
            reason = "readiness probe returned not ready"
        except RemoteUnavailable as e:
            ok = False
            reason = f"readiness probe failed: {e}"

        if ok:
            return True
        if self.state.fall_back(reason):
            self.local.setup()
        return self.local.ready()

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    # -----------------------------
    # Decisions
    # -----------------------------
    def _record(
        self,
        actor: Optional[Actor],
        action: str,
        resource: str,
        allowed: bool,
        reason: DecisionReason,
        detail: Optional[str],
        mode: EvaluationMode,
    ) -> bool:
        self.decisions.append(
            Decision(
                actor_id=actor.id if actor else None,
                action=action,
                resource=resource,
                allowed=allowed,
                reason=reason,
                detail=detail,
                mode=mode,
            )
        )
        return allowed

    def _absent(self, action: str, resource: str) -> bool:
        return self._record(None, action, resource, False, DecisionReason.ACTOR_ABSENT,
                            "No user signed in", self.state.mode)

    async def _decide(
        self,
        actor: Optional[Actor],
        action: str,
        resource: str,
        *,
        remote: Callable[[], Awaitable[bool]],
        remote_reason: DecisionReason,
        local: Callable[[], Verdict],
    ) -> bool:
        if actor is None:
            return self._absent(action, resource)

        try:
            if self._remote:
                try:
                    allowed = await remote()
                    return self._record(actor, action, resource, allowed, remote_reason,
                                        "API permission check", EvaluationMode.REMOTE)
                except RemoteRejected as e:
                    log.warning("remote check rejected user=%s action=%s resource=%s status=%s",
                                actor.id, action, resource, e.status_code)
                    return self._record(actor, action, resource, False, DecisionReason.REMOTE_REJECTED,
                                        str(e), EvaluationMode.REMOTE)
                except RemoteUnavailable as e:
                    if self.state.fall_back(f"check failed: {e}"):
                        self.local.setup()

            v = local()
            return self._record(actor, action, resource, v.allowed, v.reason, v.detail, EvaluationMode.LOCAL)
        except Exception as e:
            log.exception("authorization check failed user=%s action=%s resource=%s", actor.id, action, resource)
            self._record(actor, action, resource, False, DecisionReason.EVALUATION_ERROR, str(e), self.state.mode)
            if isinstance(e, EvaluationError):
                raise
            raise EvaluationError(str(e)) from e

    async def check(self, actor: Optional[Actor], action: str, resource_type: str, tenant: Optional[str] = None) -> bool:
        tenant_eff = tenant or (actor.tenant if actor else None) or self.default_tenant
        return await self._decide(
            actor,
            action,
            resource_type,
            remote=lambda: self.client.check_basic(actor, action, resource_type, tenant_eff),  # type: ignore[union-attr,arg-type]
            remote_reason=DecisionReason.REMOTE_CHECK,
            local=lambda: self.local.evaluate_basic(actor, action, resource_type),  # type: ignore[arg-type]
        )

    async def check_resource(
        self,
        actor: Optional[Actor],
        action: str,
        resource_instance: Union[ResourceInstance, Dict[str, Any]],
        tenant: Optional[str] = None,
    ) -> bool:
        instance = ResourceInstance.coerce(resource_instance)
        resource = instance.type if instance is not None and instance.type else ""
        if actor is None:
            return self._absent(action, resource)
        if instance is None or not instance.type:
            self._record(actor, action, resource, False, DecisionReason.EVALUATION_ERROR,
                         "Resource instance has no type", self.state.mode)
            raise EvaluationError("resource instance has no type")

        tenant_eff = tenant or actor.tenant or self.default_tenant
        return await self._decide(
            actor,
            action,
            instance.type,
            remote=lambda: self.client.check_resource(actor, action, instance, tenant_eff),  # type: ignore[union-attr,arg-type]
            remote_reason=DecisionReason.REMOTE_RESOURCE_CHECK,
            local=lambda: self.local.evaluate_resource(actor, action, instance),  # type: ignore[arg-type]
        )

    # -----------------------------
    # Users
    # -----------------------------
    async def sync_actor(self, actor: Actor) -> bool:
        """
        Not a security decision: failures propagate to the caller and never
        change the evaluation mode.
        """
        self.local.sync_actor(actor)
        if not self._remote:
            return True
        return await self.client.sync_actor(actor)  # type: ignore[union-attr]
