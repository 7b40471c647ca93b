"""Mining router: /api/mining/* endpoints."""

from fastapi import APIRouter, Header, HTTPException, Query
from starlette.requests import Request

from roundmint.deps import as_http_error, get_server, require_user
from roundmint.errors import MiningError
from roundmint.models import JoinRequest, SubmitRequest

router = APIRouter(prefix="/api/mining")


@router.get("/block")
async def current_block(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    await require_user(srv, x_api_key)
    return await srv.mining.current_round()


@router.post("/join")
async def join(request: Request, req: JoinRequest, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    try:
        return await srv.mining.join(caller["account_id"], req.mode)
    except MiningError as e:
        raise as_http_error(e)


@router.post("/tick")
async def tick(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.mining.heartbeat(caller["account_id"])


@router.post("/submit")
async def submit(request: Request, req: SubmitRequest, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    try:
        return await srv.mining.submit(
            caller["account_id"], req.hash, req.nonce, block_number=req.block_number,
        )
    except MiningError as e:
        raise as_http_error(e)


@router.post("/leave")
async def leave(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    try:
        return await srv.mining.leave(caller["account_id"])
    except MiningError as e:
        raise as_http_error(e)


@router.get("/status")
async def status(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.mining.status(caller["account_id"])


@router.get("/modes")
async def modes(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.mining.modes(caller["account_id"])


@router.get("/history")
async def history(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    x_api_key: str = Header(default=""),
):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.mining.history(caller["account_id"], page=page, limit=limit)


@router.get("/last-blocks")
async def last_blocks(request: Request, limit: int = Query(10, ge=1, le=50),
                      x_api_key: str = Header(default="")):
    srv = get_server(request)
    await require_user(srv, x_api_key)
    return await srv.mining.last_blocks(limit=limit)


@router.get("/rounds/{sequence}")
async def get_round(request: Request, sequence: int, x_api_key: str = Header(default="")):
    srv = get_server(request)
    await require_user(srv, x_api_key)
    round_ = await srv.rounds.get(sequence)
    if round_ is None:
        raise HTTPException(status_code=404, detail="Round not found")
    return srv.rounds.snapshot(round_)
