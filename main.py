# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Rotation Service
================
On-call rotation scheduling: who is on call now, when that changes next, and a
notification every time it does.

Each rotation runs a long-lived scheduler task that sleeps until its next
transition or until a schedule edit wakes it early.

Port: 8003
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rotation_service.controllers import rotation_controller, system_controller
from rotation_service.core.config import settings
from rotation_service.core.database import engine, init_schema
from rotation_service.core.dependencies import get_supervisor
from rotation_service.core.errors import RotationError
from rotation_service.core.logging import get_logger
from rotation_service.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger(settings.SERVICE_NAME)


@asynccontextmanager
async def lifespan(application: FastAPI):
    init_schema(engine)
    supervisor = get_supervisor()
    if settings.RESUME_SCHEDULERS_ON_STARTUP:
        supervisor.resume_all()
    logger.info("%s v%s started", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    yield
    await supervisor.shutdown()
    engine.dispose()
    logger.info("%s stopped", settings.SERVICE_NAME)


app = FastAPI(
    title="Rotation Service",
    description="On-call rotation scheduling with per-rotation scheduler processes.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(RotationError)
async def rotation_error_handler(request: Request, exc: RotationError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": request_id})
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal_server_error", "request_id": request_id},
    )


app.include_router(system_controller.router)
app.include_router(rotation_controller.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.SERVICE_PORT)
