from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from .role import Role


class Actor(BaseModel):
    """
    The signed-in user as seen by the authorization core.

    roles is ordered: the first entry is the primary role and the only one the
    local evaluator looks at.
    tenant: isolation boundary (hospital site); the configured default applies when unset.
    """
    id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    roles: List[Role] = []
    department: Optional[str] = None
    tenant: Optional[str] = None

    @property
    def primary_role(self) -> Optional[Role]:
        return self.roles[0] if self.roles else None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.id
