import uvicorn
from fastapi import FastAPI

from paywall.api.exceptions import register_exception_handlers
from paywall.api.routes.health import router as health_router
from paywall.api.routes.stripe_checkout import router as stripe_checkout_router
from paywall.api.routes.stripe_entitlements import router as stripe_entitlements_router
from paywall.api.routes.stripe_portal import router as stripe_portal_router
from paywall.api.routes.stripe_verify import router as stripe_verify_router
from paywall.api.routes.stripe_webhook import router as stripe_webhook_router
from paywall.core.config import get_settings
from paywall.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    docs_enabled = bool(getattr(settings, "docs_enabled", True))
    app = FastAPI(
        title="WHISPR Paywall API",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(stripe_webhook_router)
    app.include_router(stripe_checkout_router)
    app.include_router(stripe_entitlements_router)
    app.include_router(stripe_verify_router)
    app.include_router(stripe_portal_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "paywall.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
