"""Admin router: /, /api/supply, /api/status, /api/settlements, /api/rounds/recover."""

from fastapi import APIRouter, Header, Query
from starlette.requests import Request

from roundmint import __version__
from roundmint.deps import get_server

router = APIRouter()


@router.get("/")
async def root(request: Request):
    srv = get_server(request)
    return {
        "service": "roundmint",
        "version": __version__,
        "api_port": srv.config.api_port,
        "uptime": "running",
    }


@router.get("/api/supply")
async def supply(request: Request):
    srv = get_server(request)
    return await srv.mining.supply_info()


@router.get("/api/status")
async def server_status(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    await srv.auth.require_admin(x_api_key)
    active = await srv.rounds.get_active()
    return {
        "accounts": await srv.storage.accounts.count(),
        "rounds": await srv.storage.rounds.count(),
        "closed_rounds": await srv.storage.rounds.count(status="closed"),
        "active_round": active["sequence"] if active else None,
        "active_status": active["status"] if active else None,
        "online": await srv.registry.count_online(active) if active else 0,
        "total_settlements": await srv.storage.settlements.count(),
        "supply": await srv.supply.snapshot(),
    }


@router.get("/api/settlements")
async def list_settlements(
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    x_api_key: str = Header(default=""),
):
    srv = get_server(request)
    await srv.auth.require_admin(x_api_key)
    return await srv.storage.settlements.list_all(limit=limit, offset=offset)


@router.post("/api/rounds/recover")
async def recover_rounds(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    await srv.auth.require_admin(x_api_key)
    recovered = await srv.rounds.recover_locked_rounds()
    return {"recovered": recovered}
