#main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.providers.factory import warn_if_sandbox_on_remote_db
from middleware import RequestContextMiddleware
from routes.admin_reconcile import router as admin_reconcile_router
from routes.admin_recipients import router as admin_recipients_router
from routes.admin_webhooks import router as admin_webhooks_router
from routes.admin_winnings import router as admin_winnings_router
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.wallet import router as wallet_router
from routes.webhooks import router as webhooks_router
from routes.withdrawal import router as withdrawal_router
from services.errors import FinanceError, error_response_parts
from services.observability import configure_logging

logger = logging.getLogger("finance.api")


def create_app() -> FastAPI:
    configure_logging()
    warn_if_sandbox_on_remote_db()
    app = FastAPI(title="Finance Payments API", version="1.0.0")
    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(admin_winnings_router)
    app.include_router(admin_reconcile_router)
    app.include_router(admin_recipients_router)
    app.include_router(admin_webhooks_router)
    app.include_router(wallet_router)
    app.include_router(withdrawal_router)
    app.include_router(webhooks_router)

    @app.exception_handler(FinanceError)
    async def finance_error_handler(request: Request, exc: FinanceError):
        status_code, detail = error_response_parts(exc)
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error request_id=%s path=%s", getattr(request.state, "request_id", None), request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
