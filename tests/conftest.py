import json
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx
import pytest

from medsecure.core.policy_client import PolicyClient
from medsecure.models import Actor, Role
from medsecure.services.authorizer import Authorizer
from medsecure.services.decision_log import DecisionLog


ENGINE_URL = "https://engine.test"
PROJECT = "medsecure"
ENV = "dev"
ENV_PATH = f"/{PROJECT}/env/{ENV}"


@pytest.fixture
def anyio_backend():
    return "asyncio"


# ── Fake policy engine ───────────────────────────────────────────────

class FakePolicyEngine:
    """
    Minimal in-memory stand-in for the remote policy engine.

    Answers /policy/check from the grants it received during provisioning, so
    remote decisions come from what the client actually provisioned.
    """

    def __init__(self) -> None:
        self.objects: Set[str] = set()
        self.grants: Dict[str, Set[str]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.assignments: List[Dict[str, Any]] = []
        self.policy_rules: Dict[str, Dict[str, Any]] = {}
        self.requests: List[Tuple[str, str]] = []
        self.checks: List[Dict[str, Any]] = []
        self.down = False
        self.reject: Dict[Tuple[str, str], Tuple[int, Any]] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))

        if self.down:
            raise httpx.ConnectError("engine down", request=request)

        if (method, path) in self.reject:
            status, payload = self.reject[(method, path)]
            if isinstance(payload, (dict, list)):
                return httpx.Response(status, json=payload)
            return httpx.Response(status, text=payload or "")

        body = json.loads(request.content) if request.content else None

        if path == "/policy/check" and method == "POST":
            return self._check(body)

        if method == "GET":
            if path == f"{ENV_PATH}/config":
                return httpx.Response(200, json={"project": PROJECT, "env": ENV})
            if path in self.objects:
                return httpx.Response(200, json={"path": path})
            return httpx.Response(404, json={"detail": "not found"})

        if method == "POST":
            return self._create(path, body)

        if method == "PATCH" and path.startswith(f"{ENV_PATH}/users/"):
            key = path.rsplit("/", 1)[-1]
            self.users[key] = body
            return httpx.Response(200, json=body)

        return httpx.Response(405, json={"detail": "unsupported"})

    def _check(self, body: Dict[str, Any]) -> httpx.Response:
        self.checks.append(body)
        roles = body["context"]["user"]["roles"]
        role = roles[0] if roles else None
        allowed = f"{body['resource']}:{body['action']}" in self.grants.get(role, set())
        return httpx.Response(200, json={"allow": allowed})

    def _add(self, path: str, body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if path in self.objects:
            return httpx.Response(409, json={"detail": "already exists"})
        self.objects.add(path)
        return httpx.Response(201, json=body or {})

    def _create(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        if path == "/projects":
            return self._add(f"/{body['key']}", body)
        if path == f"/{PROJECT}/environments":
            return self._add(f"/{PROJECT}/env/{body['key']}", body)
        for kind in ("resources", "roles", "policy_rules"):
            if path == f"{ENV_PATH}/{kind}":
                if kind == "policy_rules":
                    self.policy_rules[body["key"]] = body
                return self._add(f"{ENV_PATH}/{kind}/{body['key']}", body)
        if path.startswith(f"{ENV_PATH}/roles/") and path.endswith("/permissions"):
            role = path.split("/")[-2]
            self.grants.setdefault(role, set()).update(body["permissions"])
            return httpx.Response(200, json={"role": role})
        if path == f"{ENV_PATH}/users":
            if body["key"] in self.users:
                return httpx.Response(409, json={"detail": "user exists"})
            self.users[body["key"]] = body
            return httpx.Response(201, json=body)
        if path == f"{ENV_PATH}/user_role_assignments":
            self.assignments.append(body)
            return httpx.Response(201, json=body)
        return httpx.Response(404, json={"detail": f"no route {path}"})

    def count(self, method: str, prefix: str = "") -> int:
        return sum(1 for m, p in self.requests if m == method and p.startswith(prefix))


@pytest.fixture
def engine() -> FakePolicyEngine:
    return FakePolicyEngine()


def make_client(engine: FakePolicyEngine) -> PolicyClient:
    return PolicyClient(
        base_url=ENGINE_URL,
        api_key="test-key",
        project=PROJECT,
        environment=ENV,
        default_tenant="default",
        timeout=1.0,
        transport=engine.transport(),
    )


@pytest.fixture
def client(engine) -> PolicyClient:
    return make_client(engine)


@pytest.fixture
def authorizer(client) -> Authorizer:
    return Authorizer(client=client, decisions=DecisionLog(capacity=100))


@pytest.fixture
def local_authorizer() -> Authorizer:
    return Authorizer(client=None, decisions=DecisionLog(capacity=100))


# ── Actors ───────────────────────────────────────────────────────────

@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-user", roles=[Role.ADMIN], department="Administration", tenant="hospital_central")


@pytest.fixture
def doctor() -> Actor:
    return Actor(id="doctor-smith", first_name="John", last_name="Smith",
                 roles=[Role.DOCTOR], department="Cardiology", tenant="hospital_central")


@pytest.fixture
def nurse() -> Actor:
    return Actor(id="nurse-johnson", roles=[Role.NURSE], department="Pediatrics", tenant="hospital_central")


@pytest.fixture
def patient() -> Actor:
    return Actor(id="pt-1", roles=[Role.PATIENT], tenant="hospital_central")
