from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from itsdangerous import BadSignature, URLSafeSerializer

from ..errors import ActorAbsent
from ..models.actor import Actor
from ..services.authorizer import Authorizer
from ..services.guard import PermissionGuard
from ..services.session import SessionStore
from ..session_registry import SessionRegistry


def serializer(request: Request) -> URLSafeSerializer:
    s = request.app.state.settings
    return URLSafeSerializer(s.SESSION_SIGNING_SECRET, salt="medsecure-session")


def get_authorizer(request: Request) -> Authorizer:
    return request.app.state.authorizer


def get_session_id(request: Request) -> Optional[str]:
    raw = request.cookies.get(request.app.state.settings.SESSION_COOKIE_NAME)
    if not raw:
        return None
    try:
        return serializer(request).loads(raw)
    except BadSignature:
        return None


def current_session(request: Request) -> Optional[SessionStore]:
    sid = get_session_id(request)
    if not sid:
        return None
    registry: SessionRegistry = request.app.state.sessions
    return registry.get(sid)


def require_actor(session: Optional[SessionStore] = Depends(current_session)) -> Actor:
    if session is None:
        raise HTTPException(401, "Not signed in")
    try:
        return session.require_actor()
    except ActorAbsent as e:
        raise HTTPException(401, str(e)) from e


def require_permission(action: str, resource_type: str) -> Callable:
    """Route dependency: evaluates a PermissionGuard for the caller and rejects with 403 on deny."""

    async def dependency(
        authorizer: Authorizer = Depends(get_authorizer),
        actor: Actor = Depends(require_actor),
        session: Optional[SessionStore] = Depends(current_session),
    ) -> Actor:
        guard = PermissionGuard(authorizer, session, action=action, resource_type=resource_type)
        state = await guard.evaluate()
        if not state.allowed:
            raise HTTPException(403, f"Not allowed to {action} {resource_type}")
        return actor

    return dependency
