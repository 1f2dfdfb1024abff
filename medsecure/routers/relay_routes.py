from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/policy", tags=["relay"])
log = logging.getLogger("medsecure.relay")

_FORWARDED_HEADERS = ("content-type", "accept")


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def relay(request: Request, path: str):
    """
    Forward to the policy engine with the bearer token injected here, so the
    token never reaches the browser. Status and body are mirrored.
    """
    upstream: httpx.AsyncClient = request.app.state.relay_http
    body = await request.body()
    headers = {k: v for k, v in request.headers.items() if k.lower() in _FORWARDED_HEADERS}

    try:
        resp = await upstream.request(
            request.method,
            f"/{path}",
            params=request.query_params,
            content=body or None,
            headers=headers,
        )
    except httpx.HTTPError as e:
        log.error("relay upstream failed method=%s path=/%s err=%s", request.method, path, e)
        return JSONResponse(status_code=503, content={"error": True, "message": "No response from policy engine"})

    if not resp.is_success:
        log.warning("relay upstream status=%s method=%s path=/%s", resp.status_code, request.method, path)

    return Response(
        content=resp.content,
        status_code=resp.status_code,
        media_type=resp.headers.get("content-type", "application/json"),
    )
