from sqlalchemy import text

from inventory_sync.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from inventory_sync.core.config import settings
from inventory_sync.db.session import engine
from inventory_sync.routers import inventory, reconciliation, webhooks

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Keeps one stock count per piece across the shop, the point of sale and the marketplace.\n\n"
        "Channels push sales to `/webhooks/*`; `/reconciliation/runs` catches up on missed ones.\n"
        "Back-office endpoints need a bearer operator token."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "webhooks", "description": "Signed sale notifications from the point of sale and the marketplace."},
        {"name": "inventory", "description": "Piece intake, lifecycle and per-channel listings."},
        {"name": "reconciliation", "description": "Batch catch-up runs and removal retries."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    # local back-office tooling runs on dynamic localhost ports
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(inventory.router)
app.include_router(reconciliation.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
        "channels": {
            "pos": settings.pos_configured,
            "marketplace": settings.marketplace_configured,
        },
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
