"""HTTP routers for the mining API, mounted by register_all_routers()."""

from fastapi import FastAPI

from roundmint.routers import account, admin, mining


def register_all_routers(app: FastAPI):
    app.include_router(admin.router)
    app.include_router(mining.router)
    app.include_router(account.router)
