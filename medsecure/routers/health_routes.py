from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..errors import BootstrapError

router = APIRouter(tags=["health"])
log = logging.getLogger("medsecure.health")


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
async def readyz(request: Request):
    err = getattr(request.app.state, "bootstrap_error", None)
    if err:
        return JSONResponse(status_code=503, content={"ready": False, "error": err})

    authorizer = request.app.state.authorizer
    ready = await authorizer.ready()
    return {"ready": ready, "mode": authorizer.mode.value}


@router.post("/bootstrap/retry")
async def retry_bootstrap(request: Request):
    authorizer = request.app.state.authorizer
    try:
        await authorizer.initialize()
    except BootstrapError as e:
        request.app.state.bootstrap_error = str(e)
        return JSONResponse(status_code=503, content={"ready": False, "error": str(e)})

    request.app.state.bootstrap_error = None
    log.info("bootstrap retry succeeded mode=%s", authorizer.mode.value)
    return {"ready": True, "mode": authorizer.mode.value}
