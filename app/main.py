from contextlib import asynccontextmanager

from sqlalchemy import text

from app.core.errors import DomainError
from app.core.observability import (
    domain_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.db.session import engine
from app.routers import admin_bot, broadcast, configurations, coupon_codes, cron, posts, sales_rules, user_bot, users
from app.services.runtime import close_runtime, get_runtime
from app.services.scheduler import scheduler_status, start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.scheduler = None
    if settings.scheduler_enabled:
        app.state.scheduler = start_scheduler(get_runtime())
    try:
        yield
    finally:
        stop_scheduler(app.state.scheduler)
        close_runtime()


app = FastAPI(
    title=settings.app_name,
    version="0.3.0",
    description=(
        "Backend API for the Telegram CRM bot.\n\n"
        "Posts and sales rules are queued per recipient and delivered by background drain workers. "
        "Coupon codes are redeemed through the admin bot or the `/coupon-codes` endpoints.\n\n"
        "When `ADMIN_API_KEY` is configured, admin endpoints require the `X-Admin-Key` header."
    ),
    lifespan=lifespan,
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "broadcast", "description": "Queue posts for delivery to bot users."},
        {"name": "posts", "description": "Broadcast post content."},
        {"name": "sales-rules", "description": "Coupon campaigns and campaign delivery."},
        {"name": "coupon-codes", "description": "Issued coupon codes, admin edits, and redemption."},
        {"name": "cron", "description": "Queue statistics and manual runs of the background jobs."},
        {"name": "users", "description": "Bot users and batch deletion."},
        {"name": "configurations", "description": "Runtime key/value configuration."},
        {"name": "bot", "description": "Telegram webhook of the customer bot: registration and block status."},
        {"name": "admin-bot", "description": "Telegram webhook of the coupon confirmation bot."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(DomainError, domain_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(broadcast.router)
app.include_router(posts.router)
app.include_router(sales_rules.router)
app.include_router(coupon_codes.router)
app.include_router(cron.router)
app.include_router(users.router)
app.include_router(configurations.router)
app.include_router(admin_bot.router)
app.include_router(user_bot.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True, "scheduler": scheduler_status(getattr(app.state, "scheduler", None))}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
