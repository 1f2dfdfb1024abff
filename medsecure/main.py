from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from .core.policy_client import PolicyClient
from .errors import BootstrapError
from .logger import setup_logging
from .routers import auth_router, authz_router, health_router, relay_router
from .services.authorizer import Authorizer
from .services.decision_log import DecisionLog
from .services.directory import UserDirectory, demo_directory
from .services.session import FileStorage, InMemoryStorage, KeyValueStorage, SessionStore
from .session_registry import SessionRegistry
from .settings import Settings, settings as default_settings

setup_logging()
log = logging.getLogger("medsecure")


def create_app(
    s: Optional[Settings] = None,
    *,
    policy_transport: Optional[httpx.AsyncBaseTransport] = None,
    relay_transport: Optional[httpx.AsyncBaseTransport] = None,
    directory: Optional[UserDirectory] = None,
) -> FastAPI:
    s = s or default_settings
    app = FastAPI(title="MedSecure Service (Hospital Authorization)")
    app.state.settings = s

    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid
        start = time.time()

        has_session = s.SESSION_COOKIE_NAME in request.cookies
        log.info("REQ rid=%s method=%s path=%s session=%s", rid, request.method, request.url.path, has_session)

        try:
            resp: Response = await call_next(request)
            dur_ms = int((time.time() - start) * 1000)
            authorizer = getattr(request.app.state, "authorizer", None)
            log.info(
                "RES rid=%s status=%s dur_ms=%s path=%s mode=%s",
                rid,
                resp.status_code,
                dur_ms,
                request.url.path,
                authorizer.mode.value if authorizer else None,
            )
            resp.headers["x-request-id"] = rid
            return resp
        except Exception:
            dur_ms = int((time.time() - start) * 1000)
            log.exception("ERR rid=%s dur_ms=%s path=%s", rid, dur_ms, request.url.path)
            raise

    @app.on_event("startup")
    async def startup():
        log.info(
            "startup begin policy_url=%s proxy=%s project=%s env=%s remote=%s",
            s.policy_base_url,
            s.USE_PROXY,
            s.POLICY_PROJECT,
            s.POLICY_ENVIRONMENT,
            s.remote_enabled,
        )

        client = PolicyClient.from_settings(s, transport=policy_transport) if s.remote_enabled else None
        authorizer = Authorizer(
            client=client,
            decisions=DecisionLog(capacity=s.DECISION_LOG_CAPACITY),
            default_tenant=s.DEFAULT_TENANT,
        )
        app.state.authorizer = authorizer

        users = directory or demo_directory()
        shared: Optional[KeyValueStorage] = FileStorage(s.SESSION_STORAGE_PATH) if s.SESSION_STORAGE_PATH else None

        def new_session(sid: str) -> SessionStore:
            if shared is None:
                return SessionStore(authorizer, directory=users, storage=InMemoryStorage())
            return SessionStore(authorizer, directory=users, storage=shared, storage_key=f"user:{sid}")

        app.state.sessions = SessionRegistry(new_session, ttl_seconds=s.SESSION_TTL_SECONDS)

        app.state.relay_http = httpx.AsyncClient(
            base_url=str(s.POLICY_API_URL).rstrip("/"),
            headers={"Authorization": f"Bearer {s.POLICY_API_KEY}"} if s.POLICY_API_KEY else None,
            timeout=s.POLICY_TIMEOUT_SECONDS,
            transport=relay_transport,
        )

        app.state.bootstrap_error = None
        try:
            await authorizer.initialize()
            await authorizer.ready()
        except BootstrapError as e:
            # /readyz reports it; /bootstrap/retry runs initialize again
            app.state.bootstrap_error = str(e)
            log.error("startup bootstrap failed err=%s", e)

        log.info("startup complete mode=%s", authorizer.mode.value)

    @app.on_event("shutdown")
    async def shutdown():
        authorizer = getattr(app.state, "authorizer", None)
        if authorizer:
            await authorizer.aclose()
        relay = getattr(app.state, "relay_http", None)
        if relay:
            await relay.aclose()

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(authz_router)
    app.include_router(relay_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "medsecure.main:app",
        host="0.0.0.0",
        port=default_settings.PORT,
        reload=True,
    )
