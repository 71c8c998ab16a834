"""Registry hub - HTTP surface over a LeaseStore.

Routes:
- POST /register    {service, ip, port, ttlSeconds, meta?}
- POST /deregister  {service, ip, port}
- GET  /discover?service=<name>
- GET  /health
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query
from pydantic import BaseModel, ConfigDict, Field

from .lease_store import LeaseStore
from .sweeper import DEFAULT_SWEEP_INTERVAL, ExpirySweeper

logger = logging.getLogger(__name__)

DEFAULT_HUB_HOST = "0.0.0.0"
DEFAULT_HUB_PORT = 5000

# Ten years; keeps the acknowledged expiry a representable datetime.
MAX_TTL_SECONDS = 10 * 365 * 24 * 3600


class RegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: str = Field(..., min_length=1)
    ip: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    ttl_seconds: int = Field(30, alias="ttlSeconds", le=MAX_TTL_SECONDS)
    meta: Optional[dict[str, str]] = None


class DeregistrationRequest(BaseModel):
    service: str = Field(..., min_length=1)
    ip: str
    port: int


class RegistrationAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "registered"
    expires_at: datetime = Field(..., serialization_alias="expiresAt")


class LeaseEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: str
    ip: str
    port: int
    ttl_seconds: int = Field(..., serialization_alias="ttlSeconds")
    meta: Optional[dict[str, str]] = None


def create_app(
    store: Optional[LeaseStore] = None,
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
) -> FastAPI:
    """Build the hub application.

    The expiry sweeper starts with the application and is stopped (and
    joined) when it shuts down.

    Args:
        store: Lease store to serve. Default: a fresh in-memory store.
        sweep_interval: Seconds between expiry sweeps.
    """
    store = store if store is not None else LeaseStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = ExpirySweeper(store, interval=sweep_interval)
        sweeper.start()
        logger.info("Registry hub started (sweep every %.1fs)", sweep_interval)
        try:
            yield
        finally:
            sweeper.stop()
            logger.info("Registry hub stopped")

    app = FastAPI(title="service-discovery registry", lifespan=lifespan)
    app.state.store = store

    @app.post(
        "/register",
        response_model=RegistrationAck,
        response_model_by_alias=True,
    )
    def register(reg: RegistrationRequest) -> RegistrationAck:
        expires_at = store.upsert(reg.service, reg.ip, reg.port, reg.ttl_seconds, reg.meta)
        logger.info("Registered %s at %s:%d", reg.service, reg.ip, reg.port)
        return RegistrationAck(
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )

    @app.post("/deregister")
    def deregister(reg: DeregistrationRequest) -> dict:
        if store.remove(reg.service, reg.ip, reg.port):
            logger.info("Deregistered %s at %s:%d", reg.service, reg.ip, reg.port)
        return {"status": "deregistered"}

    @app.get(
        "/discover",
        response_model=list[LeaseEntry],
        response_model_by_alias=True,
    )
    def discover(service: str = Query(...)) -> list[LeaseEntry]:
        return [
            LeaseEntry(
                service=info.service,
                ip=info.ip,
                port=info.port,
                ttl_seconds=info.ttl_seconds,
                meta=info.meta,
            )
            for info in store.query(service)
        ]

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "services": len(store.services())}

    return app
