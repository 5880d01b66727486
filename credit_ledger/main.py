import uvicorn
from fastapi import FastAPI

from credit_ledger.api.routes.health import router as health_router
from credit_ledger.api.routes.internal_credits import router as internal_credits_router
from credit_ledger.api.routes.internal_purchases import router as internal_purchases_router
from credit_ledger.core.config import get_settings
from credit_ledger.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Credit Ledger API",
        version="0.1.0",
        docs_url="/docs" if settings.app_env == "dev" else None,
        redoc_url=None,
    )
    app.include_router(health_router)
    app.include_router(internal_credits_router)
    app.include_router(internal_purchases_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "credit_ledger.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
