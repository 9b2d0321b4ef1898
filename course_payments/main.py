import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from course_payments.config import Settings, cors_origins
from course_payments.credentials import resolve_credentials
from course_payments.errors import PaymentServiceError
from course_payments.razorpay_service import RazorpayGateway
from course_payments.reconciliation import Reconciler
from course_payments.routes import router
from course_payments.sheets_service import SheetsLedger, build_sheets_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger("course_payments.server")

START_TIME = time.monotonic()

AVAILABLE_ENDPOINTS = [
    "GET /health",
    "POST /api/payment/create-order",
    "POST /api/payment/append-form",
    "GET|POST /api/payment/verify-payment",
    "GET /api/payment/cancel-payment",
    "POST /api/payment/webhook",
]


def build_reconciler(settings: Settings) -> Reconciler:
    credentials = resolve_credentials(settings)
    ledger = SheetsLedger(
        build_sheets_service(credentials), settings.spreadsheet_id, settings.sheet_range
    )
    gateway = RazorpayGateway(settings.razorpay_key_id, settings.razorpay_key_secret)
    return Reconciler(ledger, gateway, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build settings and clients once per process unless already provided."""
    if getattr(app.state, "reconciler", None) is None:
        settings = Settings.from_env()
        app.state.settings = settings
        app.state.reconciler = build_reconciler(settings)

    settings = app.state.settings
    logger.info(f"Course payment service started ({settings.environment}, port {settings.port})")
    if not settings.razorpay_webhook_secret:
        logger.warning("RAZORPAY_WEBHOOK_SECRET not set - webhook signatures will not be checked"
                       if settings.allow_unsigned_webhooks
                       else "RAZORPAY_WEBHOOK_SECRET not set - webhooks will be rejected")
    yield
    logger.info("Course payment service shutting down")


app = FastAPI(title="Course Payment Service", lifespan=lifespan)

# Middleware is installed at import time, before the lifespan builds Settings.
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?|https://([a-z0-9-]+\.)*railway\.app",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration = (time.perf_counter() - start) * 1000
    response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
    logger.info(f"{request.method} {request.url.path} {response.status_code} {duration:.1f} ms")
    return response


@app.exception_handler(PaymentServiceError)
async def payment_error_handler(request: Request, exc: PaymentServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.public_message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"{request.method} {request.url.path} invalid body: {exc.errors()}")
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={
            "error": "Route not found",
            "message": "This endpoint does not exist",
            "availableEndpoints": AVAILABLE_ENDPOINTS,
        })
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} crashed: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal Server Error"})


@app.get("/health")
async def health(request: Request):
    settings: Settings = request.app.state.settings
    return {
        "ok": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "env": settings.environment,
        "port": settings.port,
        "message": "Course payment service is healthy",
        "uptime": round(time.monotonic() - START_TIME, 3),
    }


@app.get("/debug-env")
async def debug_env(request: Request):
    settings: Settings = request.app.state.settings
    if settings.is_production and not settings.allow_debug_env:
        return JSONResponse(status_code=404, content={"error": "Not found"})
    return {
        "env": settings.environment,
        "hasGoogleCredsJson": bool(settings.credentials_json),
        "hasGoogleCredsBase64": bool(settings.credentials_base64),
        "hasRazorpayKey": bool(settings.razorpay_key_id),
        "hasRazorpaySecret": bool(settings.razorpay_key_secret),
        "hasWebhookSecret": bool(settings.razorpay_webhook_secret),
        "baseUrl": "set" if settings.base_url else "not set",
        "googleSheetId": "set" if settings.spreadsheet_id else "not set",
    }


if __name__ == "__main__":
    settings = Settings.from_env()
    uvicorn.run("course_payments.main:app", host="0.0.0.0", port=settings.port)
