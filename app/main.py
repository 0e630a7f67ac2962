from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise
from tortoise.exceptions import (
    DBConnectionError,
    OperationalError,
    TransactionManagementError,
)

from app import settings
from app.errors import ReservationContention
from app.routers import admin, booking
from app.scopes import BOOKING_SCOPE_DESCRIPTIONS
from app.scheduler import build_scheduler

TORTOISE_ORM = {
    "connections": {"default": settings.db_url},
    "apps": {"models": {"models": ["app.models"], "default_connection": "default"}},
    "use_tz": True,
    "timezone": "UTC",
}


def _scopes_description() -> str:
    lines = [f"- `{scope}`: {text}" for scope, text in BOOKING_SCOPE_DESCRIPTIONS.items()]
    return "Scopes forwarded by the gateway in `X-User-Scopes`:\n\n" + "\n".join(lines)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        config=TORTOISE_ORM,
        generate_schemas=settings.db_url.startswith("sqlite"),
    ):
        scheduler = build_scheduler()
        scheduler.start()
        logger.info(
            "Expiry sweep scheduled every {}s", settings.SWEEP_INTERVAL_SECONDS
        )
        yield
        scheduler.shutdown(wait=False)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ground slot bookings",
        description=_scopes_description(),
        lifespan=lifespan,
    )
    app.include_router(booking.router)
    app.include_router(admin.router)

    @app.exception_handler(ReservationContention)
    @app.exception_handler(DBConnectionError)
    @app.exception_handler(OperationalError)
    @app.exception_handler(TransactionManagementError)
    async def storage_unavailable(request: Request, exc: Exception) -> JSONResponse:
        # Never "slot taken": the caller should simply try again
        logger.opt(exception=exc).error(
            "Storage fault on {} {}", request.method, request.url.path
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Booking service is temporarily unavailable, please try again."},
        )

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
