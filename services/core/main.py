import asyncio
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import close_redis, get_uow_factory
from api.endpoints.priorities import router as priorities_router
from api.middleware import LoggingMiddleware, get_allowed_origins
from database import close_db_connections
from exceptions import BasePriorityException, status_for
from logging_config import get_logger
from purge_sweeper import PurgeSweeper

logger = get_logger(__name__)

# Run the sweeper inside the API process (off when Celery beat is deployed)
IN_PROCESS_SWEEPER = os.getenv("PURGE_SWEEPER_IN_PROCESS", "0") == "1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    stop_event = asyncio.Event()
    sweeper_task = None

    if IN_PROCESS_SWEEPER:
        sweeper = PurgeSweeper(get_uow_factory())
        sweeper_task = asyncio.create_task(sweeper.run_periodically(stop_event=stop_event))

    logger.info("priority_service_started", in_process_sweeper=IN_PROCESS_SWEEPER)
    try:
        yield
    finally:
        stop_event.set()
        if sweeper_task is not None:
            await sweeper_task
        await close_redis()
        await close_db_connections()
        logger.info("priority_service_stopped")


app = FastAPI(title="Daily Priorities", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-User-Id"],
)
app.add_middleware(LoggingMiddleware)

app.include_router(priorities_router)


@app.exception_handler(BasePriorityException)
async def priority_exception_handler(request: Request, exc: BasePriorityException):
    """Map domain exceptions to HTTP responses"""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=type(exc).__name__, details=exc.details)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """422 with loc/msg/type only; the rejected input may be NaN or Infinity"""
    errors = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": errors})


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
