"""Account router: /api/auth/*, /api/user/*, /api/referrals/*, /api/shop/*, /api/leaderboard."""

from fastapi import APIRouter, Header, HTTPException, Query
from starlette.requests import Request

from roundmint.account import public_view
from roundmint.deps import as_http_error, get_server, require_user
from roundmint.errors import MiningError
from roundmint.models import LoginRequest, RegisterRequest, ShopApplyRequest

router = APIRouter()


@router.post("/api/auth/register")
async def auth_register(request: Request, req: RegisterRequest):
    srv = get_server(request)
    try:
        acct = await srv.auth.register(
            req.identity, username=req.username, referral_code=req.referral_code,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {**public_view(acct), "api_key": acct["api_key"]}


@router.post("/api/auth/login")
async def auth_login(request: Request, req: LoginRequest):
    srv = get_server(request)
    try:
        acct = await srv.auth.login(req.identity)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"account_id": acct["account_id"], "api_key": acct["api_key"]}


@router.get("/api/user/profile")
async def user_profile(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.accounts.profile(caller["account_id"])


@router.get("/api/referrals")
async def referral_info(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.accounts.referral_info(caller["account_id"])


@router.get("/api/referrals/list")
async def referral_list(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.accounts.referral_list(caller["account_id"])


@router.post("/api/shop/apply")
async def shop_apply(request: Request, req: ShopApplyRequest, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    try:
        claims = srv.auth.verify_attestation(req.attestation, caller["account_id"])
        return await srv.accounts.apply_shop_credit(claims["jti"], caller["account_id"], claims["item"])
    except MiningError as e:
        raise as_http_error(e)


@router.get("/api/shop/items")
async def shop_items(request: Request, x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.accounts.shop_items(caller["account_id"])


@router.get("/api/leaderboard")
async def leaderboard(request: Request, limit: int = Query(100, ge=1, le=100),
                      x_api_key: str = Header(default="")):
    srv = get_server(request)
    caller = await require_user(srv, x_api_key)
    return await srv.accounts.leaderboard(caller["account_id"], limit=limit)
