"""FastAPI application that bans clients exceeding a per-IP request rate."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from ipguard.clients.cloudflare import CloudflareBanClient, CloudflareError
from ipguard.config import get_settings
from ipguard.guard import RateGuard
from ipguard.logging_config import configure_logging
from ipguard.utils import resolve_client_ip

configure_logging()
LOGGER = logging.getLogger(__name__)

settings = get_settings()
guard = RateGuard.from_settings(settings)
ban_client: Optional[CloudflareBanClient] = (
    CloudflareBanClient(settings) if settings.ban_enabled else None
)


def get_ban_client() -> Optional[CloudflareBanClient]:
    """Return the configured ban client, or ``None`` when banning is disabled."""

    return ban_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the eviction scheduler for the lifetime of the app."""
    guard.start()
    try:
        yield
    finally:
        guard.shutdown()


app = FastAPI(title="IP Rate Guard", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _ban(client_ip: str) -> None:
    banner = get_ban_client()
    if banner is None:
        return
    try:
        await run_in_threadpool(banner.ban, client_ip, settings.ban_reason)
    except CloudflareError as exc:
        LOGGER.warning("ban request rejected: %s", exc, extra={"client_ip": client_ip})
    except Exception:  # noqa: BLE001
        LOGGER.exception("ban request failed", extra={"client_ip": client_ip})


@app.middleware("http")
async def apply_rate_limiting(request: Request, call_next):  # type: ignore[override]
    peer = request.client.host if request.client else None
    client_ip = resolve_client_ip(request.headers, peer, settings.trust_proxy_headers)
    decision = guard.record_event(client_ip)
    if decision.exceeded:
        LOGGER.warning(
            "You are hitting limit", extra={"client_ip": client_ip, "rate": decision.rate}
        )
        await _ban(client_ip)
        if settings.reject_exceeded:
            return JSONResponse(
                status_code=429, content={"detail": "Too many requests. Please slow down."}
            )
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Unhandled exception", extra={"client_ip": client_ip})
        raise exc
    return response


@app.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return "Successful response."


@app.get("/healthz", tags=["health"])
def healthz() -> dict:
    """Return a readiness indicator with the number of tracked clients."""

    return {"status": "ok", "trackedClients": len(guard)}
