from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends

from ..models.actor import Actor
from ..schemas.authz import CheckRequest, CheckResponse, DecisionsResponse, ModeResponse
from ..services.authorizer import Authorizer
from ..services.guard import PermissionGuard
from ..services.session import SessionStore
from .deps import current_session, get_authorizer, require_permission

router = APIRouter(prefix="/authz", tags=["authz"])


@router.post("/check", response_model=CheckResponse)
async def check(
    body: CheckRequest,
    authorizer: Authorizer = Depends(get_authorizer),
    session: Optional[SessionStore] = Depends(current_session),
):
    guard = PermissionGuard(
        authorizer,
        session,
        action=body.action,
        resource_type=body.resource_type,
        resource_instance=body.resource,
        error_on_failure=body.error_on_failure,
    )
    state = await guard.evaluate()
    return CheckResponse(allowed=state.allowed, status=state.status.value, error=state.error, mode=authorizer.mode)


@router.get("/mode", response_model=ModeResponse)
async def mode(authorizer: Authorizer = Depends(get_authorizer)):
    return ModeResponse(
        mode=authorizer.mode,
        bootstrapped=authorizer.state.bootstrapped,
        fallback_reason=authorizer.state.fallback_reason,
    )


@router.get("/decisions", response_model=DecisionsResponse)
async def decisions(
    outcome: Literal["all", "allowed", "denied"] = "all",
    limit: int = 200,
    authorizer: Authorizer = Depends(get_authorizer),
    _actor: Actor = Depends(require_permission("administer", "system")),
):
    log = authorizer.decisions
    items = log.entries(outcome, newest_first=True)[: max(limit, 0)]
    return DecisionsResponse(items=items, capacity=log.capacity, evicted=log.evicted)
