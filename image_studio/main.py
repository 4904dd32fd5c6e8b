"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from image_studio.config import get_settings
from image_studio.logging_setup import setup_logging
from image_studio.services.errors import StudioError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    key_state = "configured" if settings.is_configured else "MISSING (remote modes disabled)"
    print(f"╔══════════════════════════════════════════════════════════════╗")
    print(f"║       Image Studio v0.1.0                                    ║")
    print(f"╠══════════════════════════════════════════════════════════════╣")
    print(f"║  RunningHub: {settings.runninghub_base_url:<47} ║")
    print(f"║  API key:    {key_state:<47} ║")
    print(f"╠══════════════════════════════════════════════════════════════╣")
    print(f"║  UI: http://{settings.host}:{settings.port:<43} ║")
    print(f"╚══════════════════════════════════════════════════════════════╝")

    yield

    # Shutdown
    from image_studio.services.lifecycle import shutdown_controller
    await shutdown_controller()
    print("Shutting down...")


app = FastAPI(
    title="Image Studio",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError):
    """Render service errors with their own status code and reason."""
    body = {"error": exc.message, "reason": exc.reason}
    if exc.code is not None:
        body["code"] = exc.code
    return JSONResponse(status_code=exc.status_code, content=body)


@app.get("/health")
async def health():
    return {"status": "ok", "configured": get_settings().is_configured}


# ============================================================================
# API Routes (imported from routers)
# ============================================================================

from image_studio.routers import runninghub as runninghub_router
from image_studio.routers import jobs as jobs_router
from image_studio.routers import filters as filters_router
from image_studio.routers import download as download_router

app.include_router(runninghub_router.router, prefix="/api/runninghub", tags=["runninghub"])
app.include_router(jobs_router.router, prefix="/api/jobs", tags=["jobs"])
app.include_router(filters_router.router, prefix="/api/filters", tags=["filters"])
app.include_router(download_router.router, prefix="/api", tags=["download"])


# ============================================================================
# WebSocket for job notifications
# ============================================================================

from image_studio.websocket import router as ws_router
app.include_router(ws_router)


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("image_studio.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
