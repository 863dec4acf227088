from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from sitepulse.core.config import settings
from sitepulse.core.database import init_db, close_db, get_session_local
from sitepulse.core.exceptions import SitePulseError, AuthenticationError
from sitepulse.core.logging_config import logger
from sitepulse.core.middleware import RequestLoggingMiddleware
from sitepulse.api.v1.router import api_router
from sitepulse.services.notification_service import create_notification_hub
from sitepulse.services.realtime.capture import install_change_capture
from sitepulse.services.realtime.transport import create_transport
import sitepulse.models  # noqa: F401  Import models so metadata knows about them


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: tables, realtime transport, change capture, hub. Shutdown in reverse."""
    logger.info(f"[Startup] {settings.APP_NAME} ({settings.ENVIRONMENT})")

    await init_db()

    transport = create_transport()
    try:
        await transport.connect()
    except SitePulseError as e:
        # Channels will report CHANNEL_ERROR; counts still work on demand
        logger.warning(f"[Startup] Realtime transport unavailable: {e.message}")

    capture = install_change_capture(transport) if settings.REALTIME_CAPTURE_CHANGES else None
    app.state.realtime_transport = transport
    app.state.notification_hub = create_notification_hub(get_session_local(), transport)

    yield

    await app.state.notification_hub.shutdown()
    if capture is not None:
        await capture.drain()
        capture.uninstall()
    await transport.close()
    await close_db()
    logger.info("[Shutdown] Complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(SitePulseError)
    async def sitepulse_error_handler(request: Request, exc: SitePulseError):
        status_code = 401 if isinstance(exc, AuthenticationError) else 500
        logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")
    return app


app = create_app()
