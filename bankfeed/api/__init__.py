"""HTTP routers, one module per resource."""

from fastapi import FastAPI

from .accounts_router import router as accounts_router
from .categories_router import router as categories_router
from .reconciliation_router import router as reconciliation_router
from .recurring_router import router as recurring_router
from .staging_router import router as staging_router
from .transactions_router import router as transactions_router
from .webhooks_router import router as webhooks_router

API_PREFIX = "/api"


def register_routers(app: FastAPI) -> None:
    """Attach all API routes to the FastAPI application."""

    for router in (
        accounts_router,
        categories_router,
        transactions_router,
        staging_router,
        recurring_router,
        reconciliation_router,
        webhooks_router,
    ):
        app.include_router(router, prefix=API_PREFIX)
