import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401 - registers tables on Base.metadata
from .config import CORS_ORIGINS
from .database import Base, engine
from .domain.bookings.router import router as bookings_router
from .domain.consultations.router import router as consultations_router
from .domain.contracts.router import router as contracts_router
from .domain.invoices.router import router as invoices_router
from .domain.payments.router import router as payment_webhooks_router
from .domain.reservations.router import router as reservations_router
from .rate_limiter import get_redis_client
from .shared.exceptions import AppError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Database tables created successfully")

    if get_redis_client() is not None:
        logger.info("Redis connection established")
    else:
        logger.info("Redis not configured - rate limits and locks are process-local")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Studio Bookings API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render workflow errors with their status and a client-safe message"""
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} - {exc.status_code} {exc.code}")

    headers = None
    if exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400 with the offending fields"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": "The request is missing required information or contains invalid values.",
            "code": "validation_error",
            "errors": errors,
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# Log CORS configuration for debugging
logger.info(f"CORS allowed origins: {CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(reservations_router)
app.include_router(bookings_router)
app.include_router(consultations_router)
app.include_router(contracts_router)
app.include_router(invoices_router)
app.include_router(payment_webhooks_router)


@app.get("/")
def root():
    return {"message": "Studio Bookings API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
