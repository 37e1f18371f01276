import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.middleware.cors import CORSMiddleware

from tutor.api import activity, auth, content, entitlements, health, settings as settings_api, users, weekly_tests
from tutor.api.deps import get_services
from tutor.core.config import settings, validate_config
from tutor.core.database import create_all_tables, get_database_url
from tutor.core.errors import (
    AppError,
    StoreError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from tutor.core.logging import configure_logging
from tutor.core.middleware.metrics import MetricsMiddleware
from tutor.core.middleware.request_id import RequestIdMiddleware

configure_logging(settings.ENV)
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("nst")
    logger.info("Starting NST tutor backend...")

    if get_database_url():
        create_all_tables()

    services = get_services()
    if services.realtime is not None:
        try:
            services.settings_hub.attach(services.realtime)
        except StoreError as e:
            logger.warning("Settings hub not attached to realtime store", extra={"error_code": e.code})

    try:
        yield
    finally:
        services.settings_hub.detach()
        logger.info("Stopping NST tutor backend...")


app = FastAPI(title="NST Tutor - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router)
app.include_router(auth.router)
app.include_router(entitlements.router)
app.include_router(content.router)
app.include_router(activity.router)
app.include_router(settings_api.router)
app.include_router(weekly_tests.router)
app.include_router(users.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tutor.main:app", host="0.0.0.0", port=8000, reload=settings.ENV == "development")
