from __future__ import annotations

import hmac
from typing import Dict, Iterable, Optional

from ..models.actor import Actor
from ..models.role import Role


class DirectoryUser(Actor):
    password: str

    def to_actor(self) -> Actor:
        return Actor.model_validate(self.model_dump(exclude={"password"}))


class UserDirectory:
    """Credential lookup used by login. Demo-grade: plain passwords, in memory."""

    def __init__(self, users: Iterable[DirectoryUser]) -> None:
        self._by_email: Dict[str, DirectoryUser] = {u.email.lower(): u for u in users if u.email}

    def authenticate(self, email: str, password: str) -> Optional[Actor]:
        user = self._by_email.get((email or "").strip().lower())
        if user is None:
            return None
        if not hmac.compare_digest(user.password.encode(), (password or "").encode()):
            return None
        return user.to_actor()


DEMO_USERS = [
    DirectoryUser(
        id="admin-user",
        email="admin@healthapp.com",
        password="2025DEVChallenge",
        first_name="Admin",
        last_name="User",
        roles=[Role.ADMIN],
        department="Administration",
        tenant="hospital_central",
    ),
    DirectoryUser(
        id="doctor-smith",
        email="dr.smith@healthapp.com",
        password="doctor123",
        first_name="John",
        last_name="Smith",
        roles=[Role.DOCTOR],
        department="Cardiology",
        tenant="hospital_central",
    ),
    DirectoryUser(
        id="nurse-johnson",
        email="nurse.johnson@healthapp.com",
        password="nurse123",
        first_name="Sarah",
        last_name="Johnson",
        roles=[Role.NURSE],
        department="Pediatrics",
        tenant="hospital_central",
    ),
    DirectoryUser(
        id="pt-001",
        email="patient.doe@example.com",
        password="patient123",
        first_name="John",
        last_name="Doe",
        roles=[Role.PATIENT],
        department=None,
        tenant="hospital_central",
    ),
]


def demo_directory() -> UserDirectory:
    return UserDirectory(DEMO_USERS)
