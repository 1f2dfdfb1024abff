from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import RemoteRejected, RemoteUnavailable
from ..models.actor import Actor
from ..models.resource import ResourceInstance
from ..policy.catalog import ABAC_RULES, RESOURCES, ROLES, remote_rule_actions, role_grants
from ..settings import Settings

log = logging.getLogger("medsecure.policy_client")

# gateway statuses mean the engine is unreachable even when a relay wraps them in JSON
UNAVAILABLE_STATUSES = {502, 503, 504}


@dataclass
class ProvisionReport:
    created: List[str] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _json_object(resp: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _raise_for(resp: httpx.Response, what: str) -> None:
    payload = _json_object(resp)
    if resp.status_code in UNAVAILABLE_STATUSES or payload is None:
        raise RemoteUnavailable(f"{what} failed status={resp.status_code}", status_code=resp.status_code)
    raise RemoteRejected(f"{what} rejected status={resp.status_code}", status_code=resp.status_code, payload=payload)


class PolicyClient:
    """
    Talks to the remote policy engine.

    Every method raises RemoteUnavailable or RemoteRejected instead of turning a
    failure into a deny; the authorizer decides what a failure means.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str],
        project: str,
        environment: str,
        default_tenant: str = "default",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.project = project
        self.environment = environment
        self.default_tenant = default_tenant
        self.last_report: Optional[ProvisionReport] = None
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, s: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "PolicyClient":
        return cls(
            base_url=s.policy_base_url,
            # through the relay the token is injected server-side
            api_key=None if s.USE_PROXY else s.POLICY_API_KEY,
            project=s.POLICY_PROJECT,
            environment=s.POLICY_ENVIRONMENT,
            default_tenant=s.DEFAULT_TENANT,
            timeout=s.POLICY_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def env_path(self) -> str:
        return f"/{self.project}/env/{self.environment}"

    # -----------------------------
    # HTTP plumbing
    # -----------------------------
    async def _send(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        try:
            return await self._http.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"{method} {path} transport error: {e}") from e

    async def _call(self, method: str, path: str, *, json: Any = None) -> Any:
        resp = await self._send(method, path, json=json)
        if not resp.is_success:
            _raise_for(resp, f"{method} {path}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteUnavailable(f"{method} {path} returned unparseable body", status_code=resp.status_code) from e

    # -----------------------------
    # Decisions
    # -----------------------------
    @staticmethod
    def _user_context(actor: Actor) -> Dict[str, Any]:
        return {"department": actor.department, "roles": [r.value for r in actor.roles]}

    async def _decide(self, payload: Dict[str, Any]) -> bool:
        data = await self._call("POST", "/policy/check", json=payload)
        allow = data.get("allow") if isinstance(data, dict) else None
        if not isinstance(allow, bool):
            raise RemoteUnavailable("policy check returned no allow flag")
        return allow

    async def check_basic(self, actor: Actor, action: str, resource_type: str, tenant: Optional[str] = None) -> bool:
        return await self._decide(
            {
                "user": actor.id,
                "action": action,
                "resource": resource_type,
                "tenant": tenant or self.default_tenant,
                "context": {"user": self._user_context(actor)},
            }
        )

    async def check_resource(
        self,
        actor: Actor,
        action: str,
        instance: ResourceInstance,
        tenant: Optional[str] = None,
    ) -> bool:
        return await self._decide(
            {
                "user": actor.id,
                "action": action,
                "resource": instance.type,
                "tenant": tenant or self.default_tenant,
                "context": {
                    "user": self._user_context(actor),
                    "resource": instance.attributes,
                },
            }
        )

    # -----------------------------
    # Users
    # -----------------------------
    async def sync_actor(self, actor: Actor) -> bool:
        """
        Upsert the actor, then assign every role in the actor's tenant.
        Role assignments run concurrently and fail independently.
        """
        tenant = actor.tenant or self.default_tenant
        body = {
            "key": actor.id,
            "first_name": actor.first_name,
            "last_name": actor.last_name,
            "email": actor.email,
            "attributes": {"department": actor.department, "tenant": tenant},
        }

        resp = await self._send("POST", f"{self.env_path}/users", json=body)
        if resp.status_code == 409:
            await self._call("PATCH", f"{self.env_path}/users/{actor.id}", json=body)
        elif not resp.is_success:
            _raise_for(resp, "user upsert")

        results = await asyncio.gather(
            *(self._assign_role(actor.id, role.value, tenant) for role in actor.roles),
            return_exceptions=True,
        )

        ok = True
        for role, res in zip(actor.roles, results):
            if isinstance(res, Exception):
                ok = False
                log.warning("role assignment failed user=%s role=%s tenant=%s err=%s", actor.id, role.value, tenant, res)

        log.info("user synced user=%s roles=%d tenant=%s ok=%s", actor.id, len(actor.roles), tenant, ok)
        return ok

    async def _assign_role(self, user: str, role: str, tenant: str) -> None:
        resp = await self._send(
            "POST",
            f"{self.env_path}/user_role_assignments",
            json={"user": user, "role": role, "tenant": tenant},
        )
        if resp.status_code == 409 or resp.is_success:
            return
        _raise_for(resp, f"role assignment {role}")

    # -----------------------------
    # Liveness
    # -----------------------------
    async def probe_ready(self) -> bool:
        try:
            await self._call("GET", f"{self.env_path}/config")
        except RemoteRejected as e:
            log.warning("policy engine not ready status=%s", e.status_code)
            return False
        return True

    # -----------------------------
    # Provisioning (create-if-absent)
    # -----------------------------
    async def _exists(self, path: str) -> bool:
        resp = await self._send("GET", path)
        if resp.status_code == 404:
            return False
        if resp.is_success:
            return True
        _raise_for(resp, f"GET {path}")
        return False

    async def _create(self, path: str, body: Dict[str, Any]) -> bool:
        """Returns True when created, False when it already existed."""
        resp = await self._send("POST", path, json=body)
        if resp.status_code == 409:
            return False
        if not resp.is_success:
            _raise_for(resp, f"POST {path}")
        return True

    async def _ensure(
        self,
        report: ProvisionReport,
        label: str,
        *,
        create_path: str,
        body: Dict[str, Any],
        get_path: Optional[str] = None,
    ) -> None:
        try:
            if get_path and await self._exists(get_path):
                report.existing.append(label)
                return
            if await self._create(create_path, body):
                report.created.append(label)
            else:
                report.existing.append(label)
        except RemoteRejected as e:
            log.warning("provision skipped item=%s status=%s payload=%s", label, e.status_code, e.payload)
            report.skipped.append(label)

    async def provision_schema(self) -> bool:
        """
        Idempotently ensure project, environment, resources, roles, grants and
        ABAC policy rules exist remotely. RemoteUnavailable aborts and propagates.
        """
        report = ProvisionReport()
        env = self.env_path

        await self._ensure(
            report,
            f"project:{self.project}",
            get_path=f"/{self.project}",
            create_path="/projects",
            body={
                "key": self.project,
                "name": "MedSecure Healthcare System",
                "description": "Hospital management system with strong authorization controls",
            },
        )
        await self._ensure(
            report,
            f"environment:{self.environment}",
            get_path=env,
            create_path=f"/{self.project}/environments",
            body={"key": self.environment, "name": self.environment.title(), "description": f"{self.environment} environment"},
        )

        for r in RESOURCES:
            name = str(r["name"])
            await self._ensure(
                report,
                f"resource:{r['key']}",
                get_path=f"{env}/resources/{r['key']}",
                create_path=f"{env}/resources",
                body={
                    "key": r["key"],
                    "name": name,
                    "description": r["description"],
                    "actions": [
                        {"key": a, "name": a.capitalize(), "description": f"{a.capitalize()} {name}"}
                        for a in r["actions"]  # type: ignore[union-attr]
                    ],
                },
            )

        for role, name, description in ROLES:
            await self._ensure(
                report,
                f"role:{role.value}",
                get_path=f"{env}/roles/{role.value}",
                create_path=f"{env}/roles",
                body={"key": role.value, "name": name, "description": description},
            )

        for role, _, _ in ROLES:
            await self._ensure(
                report,
                f"grants:{role.value}",
                create_path=f"{env}/roles/{role.value}/permissions",
                body={"permissions": role_grants(role)},
            )

        for rule in ABAC_RULES:
            await self._ensure(
                report,
                f"policy_rule:{rule.key}",
                get_path=f"{env}/policy_rules/{rule.key}",
                create_path=f"{env}/policy_rules",
                body=rule.to_remote(remote_rule_actions(rule)),
            )

        self.last_report = report
        log.info(
            "provision complete project=%s env=%s created=%d existing=%d skipped=%d",
            self.project,
            self.environment,
            len(report.created),
            len(report.existing),
            len(report.skipped),
        )
        return True
