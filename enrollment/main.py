# enrollment/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from enrollment.api.v1.api import api_router
from enrollment.core.config import settings
from enrollment.core.exceptions import EnrollmentError, TransactionFailed
from enrollment.scheduler import init_scheduler, shutdown_scheduler
from enrollment.services.notifications import get_notifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Enrollment service starting up...")
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    yield
    if settings.SCHEDULER_ENABLED:
        shutdown_scheduler()
    get_notifier().close()
    logger.info("Enrollment service shutting down...")


app = FastAPI(
    title="Enrollment Service",
    version="1.0.0",
    description="""
        Registration, payment-gated confirmation and waitlist management for
        capacity-bounded offerings.

        ## Authentication

        Endpoints require JWT authentication via the `Authorization: Bearer <token>` header,
        except the Stripe webhook, which is verified by signature.
        """,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EnrollmentError)
async def enrollment_error_handler(request: Request, exc: EnrollmentError):
    body = {"code": exc.code, "detail": exc.message}
    if getattr(exc, "registration_id", None):
        body["registration_id"] = exc.registration_id
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(TransactionFailed)
async def transaction_failed_handler(request: Request, exc: TransactionFailed):
    return JSONResponse(
        status_code=503,
        content={"code": "transaction_failed", "detail": "The request could not be completed, please retry"},
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Enrollment Service is running"}
