from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feeledger.api.v1.accounts.router import router as accounts_router
from feeledger.api.v1.admin.router import router as admin_router
from feeledger.api.v1.dues.router import router as dues_router
from feeledger.api.v1.gateway.router import router as gateway_router
from feeledger.api.v1.ledger.router import router as ledger_router
from feeledger.api.v1.reconciliation.router import router as reconciliation_router
from feeledger.core.config import settings
from feeledger.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="Fee Ledger")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(accounts_router)
    app.include_router(gateway_router)
    app.include_router(ledger_router)
    app.include_router(dues_router)
    app.include_router(reconciliation_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
