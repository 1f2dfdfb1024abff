from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from ..models.actor import Actor


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionOut(BaseModel):
    authenticated: bool
    user: Optional[Actor] = None
    display_name: Optional[str] = None
    roles: List[str] = []

    @classmethod
    def of(cls, actor: Optional[Actor]) -> "SessionOut":
        if actor is None:
            return cls(authenticated=False)
        return cls(
            authenticated=True,
            user=actor,
            display_name=actor.display_name,
            roles=[r.value for r in actor.roles],
        )
