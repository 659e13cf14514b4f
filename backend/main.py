"""
FastAPI application entry point for the FX Academy API.

Authentication is attached by AuthContextMiddleware. Access control is
enforced per route by the guard decorators in fxacademy.platform.rbac.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fxacademy.auth.middleware import AuthContextMiddleware
from fxacademy.config.settings import get_settings
from fxacademy.platform.errors import register_error_handlers
from fxacademy.api.routes import admin
from fxacademy.api.routes import auth
from fxacademy.api.routes import billing
from fxacademy.api.routes import health
from fxacademy.api.routes import owner
from fxacademy.api.routes import student
from fxacademy.api.routes import users
from fxacademy.api.routes import webhooks_paystack

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting FX Academy API")

    # Refuse to start half-configured; ConfigurationError names every missing variable
    settings = get_settings(validate=True)

    masked = settings.database_url.split("@")[-1] if "@" in settings.database_url else "(local)"
    logger.info(
        "Configuration loaded",
        extra={
            "host_db": masked,
            "currency": settings.payment_currency,
            "owner_emails": len(settings.owner_emails),
            "renewal_window_days": settings.renewal_window_days,
        },
    )

    yield

    # Shutdown
    logger.info("Shutting down FX Academy API")


# Create FastAPI app
app = FastAPI(
    title="FX Academy API",
    description="Forex academy access control, subscriptions and payments",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware (CORS_ORIGINS, comma separated)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware uses lazy initialization - settings validated in lifespan startup
auth_middleware = AuthContextMiddleware()
app.middleware("http")(auth_middleware)

register_error_handlers(app)

# Include health route (bypasses authentication)
app.include_router(health.router)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(billing.billing_router)
app.include_router(billing.payments_router)

# Webhook route (signature verified, no session token)
app.include_router(webhooks_paystack.router)

app.include_router(student.router)
app.include_router(admin.router)
app.include_router(owner.router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
