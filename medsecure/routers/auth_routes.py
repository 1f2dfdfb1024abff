from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..schemas.auth import LoginRequest, SessionOut
from ..services.session import SessionStore
from ..session_registry import SessionRegistry
from .deps import current_session, get_session_id, serializer

router = APIRouter(prefix="/auth", tags=["auth"])
log = logging.getLogger("medsecure.auth")


def _set_session_cookie(request: Request, resp: Response, sid: str) -> None:
    s = request.app.state.settings
    resp.set_cookie(
        key=s.SESSION_COOKIE_NAME,
        value=serializer(request).dumps(sid),
        httponly=True,
        secure=s.COOKIE_SECURE,
        samesite=s.COOKIE_SAMESITE,
        max_age=s.SESSION_TTL_SECONDS,
        path="/",
    )


@router.post("/login", response_model=SessionOut)
async def login(request: Request, response: Response, body: LoginRequest):
    registry: SessionRegistry = request.app.state.sessions

    sid = get_session_id(request)
    store = registry.get(sid) if sid else None
    created = store is None
    if created:
        sid, store = registry.create()

    if not await store.login(body.email, body.password):
        # anonymous failed attempts get no cookie
        if created:
            registry.delete(sid)  # type: ignore[arg-type]
        raise HTTPException(401, store.error or "Login failed")

    _set_session_cookie(request, response, sid)  # type: ignore[arg-type]
    return SessionOut.of(store.actor)


@router.post("/logout")
async def logout(request: Request, response: Response):
    sid = get_session_id(request)
    if sid:
        registry: SessionRegistry = request.app.state.sessions
        store = registry.get(sid)
        if store:
            store.logout()
        registry.delete(sid)

    response.delete_cookie(key=request.app.state.settings.SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/me", response_model=SessionOut)
async def me(session: Optional[SessionStore] = Depends(current_session)):
    return SessionOut.of(session.actor if session else None)
