import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import models
from .config import settings
from .database import engine
from .exceptions import NotFoundError, ConditionsNotMetError
from .routers import booking_router
from .outbox_poller import run_outbox_poller

# Setup logger
logger = logging.getLogger("booking_service")

# Create database tables on startup
# The users and items tables are normally owned by the catalog services
models.Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    poller_task = None
    if settings.OUTBOX_POLLER_ENABLED:
        logger.info("Starting outbox poller task...")
        poller_task = asyncio.create_task(run_outbox_poller())

    yield  # The application is now running

    if poller_task is not None:
        logger.info("Shutting down outbox poller task...")
        poller_task.cancel()
        try:
            await poller_task
        except asyncio.CancelledError:
            logger.info("Outbox poller task successfully cancelled.")
        except Exception as e:
            logger.error(f"Error during outbox poller shutdown: {e}")


app = FastAPI(
    title="ShareIt Booking Service API",
    description="Handles bookings of shared items.",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.warning(f"NotFound: {exc.message}")
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(ConditionsNotMetError)
async def conditions_not_met_handler(request: Request, exc: ConditionsNotMetError):
    logger.warning(f"ConditionsNotMet: {exc.message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Validation error") if errors else "Validation error"
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": message})


app.include_router(booking_router.router)


@app.get("/health")
def health():
    return {"status": "ok", "service": "booking-service"}
