from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from visitor_tracker import blacklist, stats
from visitor_tracker.config import (
    ADMIN_KEY,
    APP_ENV,
    APP_VERSION,
    DB_CONNECT_TIMEOUT,
    DB_IDLE_TIMEOUT,
    DB_PATH,
    DB_POOL_SIZE,
    GEO_TIMEOUT_SECONDS,
    SERVER_HOST,
    SERVER_PORT,
)
from visitor_tracker.dashboard_html import render_dashboard_page
from visitor_tracker.errors import AdminNotConfigured, StoreError, Unauthorized, ValidationError
from visitor_tracker.recorder import record_visit
from visitor_tracker.region import GeoProvider, RegionResolver
from visitor_tracker.store import VisitorStore
from visitor_tracker.timefmt import local_now

logging.basicConfig(
    level=logging.DEBUG if APP_ENV == "development" else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


class ResetRequest(BaseModel):
    adminKey: str | None = None


class BlacklistAddRequest(BaseModel):
    ip: str | None = None
    remark: str | None = None


def get_store(request: Request) -> VisitorStore:
    return request.app.state.store


def get_resolver(request: Request) -> RegionResolver:
    return request.app.state.resolver


def _uptime_str(start: float) -> str:
    elapsed = time.monotonic() - start
    days = int(elapsed // 86400)
    hours = int((elapsed % 86400) // 3600)
    if days > 0:
        return f"{days}d {hours}h"
    minutes = int((elapsed % 3600) // 60)
    return f"{hours}h {minutes}m"


def _fail(status_code: int, msg: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "msg": msg})


router = APIRouter()


@router.get("/api/visitor/record")
async def api_record_visit(
    request: Request,
    store: VisitorStore = Depends(get_store),
    resolver: RegionResolver = Depends(get_resolver),
):
    result = await record_visit(
        store,
        resolver,
        peer=request.client.host if request.client else None,
        forwarded=request.headers.get("x-forwarded-for"),
        user_agent=request.headers.get("user-agent"),
    )
    if result.blocked:
        return {
            "success": False,
            "msg": "your ip has been blocked",
            "isBlocked": True,
            "visitorIp": result.visitor_ip,
        }
    return {
        "success": True,
        "msg": "visit recorded",
        "isBlocked": False,
        "visitorIp": result.visitor_ip,
        "region": result.region,
        "visitTime": result.visit_time,
    }


@router.get("/api/visitor/stats")
async def api_stats(store: VisitorStore = Depends(get_store)):
    return {"success": True, "data": await stats.get_stats(store)}


@router.post("/api/visitor/reset")
async def api_reset(
    request: Request,
    body: ResetRequest | None = None,
    store: VisitorStore = Depends(get_store),
):
    body = body or ResetRequest()
    await blacklist.reset(store, body.adminKey, request.app.state.admin_key)
    return {"success": True, "msg": "all visitor data has been reset"}


@router.get("/api/blacklist")
async def api_blacklist(store: VisitorStore = Depends(get_store)):
    entries = await blacklist.list_entries(store)
    return {"success": True, "data": [e.to_api_dict() for e in entries]}


@router.post("/api/blacklist/add")
async def api_blacklist_add(
    body: BlacklistAddRequest | None = None,
    store: VisitorStore = Depends(get_store),
):
    body = body or BlacklistAddRequest()
    if not await blacklist.add(store, body.ip, body.remark):
        return {"success": False, "msg": "ip is already blacklisted"}
    return {"success": True, "msg": "ip added to blacklist"}


@router.delete("/api/blacklist/delete/{entry_id}")
async def api_blacklist_delete(entry_id: str, store: VisitorStore = Depends(get_store)):
    await blacklist.remove(store, entry_id)
    return {"success": True, "msg": "ip removed from blacklist"}


@router.api_route("/api/status", methods=["GET", "HEAD"])
async def api_status(request: Request, store: VisitorStore = Depends(get_store)):
    return {
        "uptime": _uptime_str(request.app.state.start_time),
        "version": APP_VERSION,
        "totalVisitors": await store.count_valid_visits(),
        "blacklisted": len(await store.list_blacklist()),
    }


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request, store: VisitorStore = Depends(get_store)):
    report = await stats.get_stats(store)
    html = render_dashboard_page(
        generated=local_now()[0],
        uptime=_uptime_str(request.app.state.start_time),
        stats=report,
        blacklist=await store.list_blacklist(),
        version=APP_VERSION,
    )
    return HTMLResponse(content=html)


def create_app(
    db_path: str = DB_PATH,
    admin_key: str = ADMIN_KEY,
    providers: list[GeoProvider] | None = None,
) -> FastAPI:
    """Build the app. The store and the outbound HTTP client live for the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.start_time = time.monotonic()
        store = VisitorStore(
            db_path,
            pool_size=DB_POOL_SIZE,
            connect_timeout=DB_CONNECT_TIMEOUT,
            idle_timeout=DB_IDLE_TIMEOUT,
        )
        await store.open()
        app.state.store = store
        if not admin_key:
            logger.warning("ADMIN_KEY is not set: visit reset is disabled")
        try:
            async with httpx.AsyncClient(timeout=GEO_TIMEOUT_SECONDS) as client:
                app.state.resolver = RegionResolver(client, providers)
                yield
        finally:
            await store.close()

    app = FastAPI(title="Visitor Tracker", version=APP_VERSION, lifespan=lifespan)
    app.state.admin_key = admin_key

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "X-Forwarded-For"],
    )

    @app.exception_handler(ValidationError)
    async def _on_validation_error(request: Request, exc: ValidationError):
        return _fail(400, str(exc))

    @app.exception_handler(Unauthorized)
    async def _on_unauthorized(request: Request, exc: Unauthorized):
        return _fail(403, "authentication failed: wrong admin key")

    @app.exception_handler(AdminNotConfigured)
    async def _on_admin_not_configured(request: Request, exc: AdminNotConfigured):
        return _fail(503, str(exc))

    @app.exception_handler(StoreError)
    async def _on_store_error(request: Request, exc: StoreError):
        logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
        return _fail(500, "internal server error")

    @app.exception_handler(RequestValidationError)
    async def _on_request_validation_error(request: Request, exc: RequestValidationError):
        return _fail(400, "malformed request")

    @app.exception_handler(Exception)
    async def _on_unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _fail(500, "internal server error")

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)
