import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.database import create_supabase_client
from core.exceptions import PaymentServiceError
from core.limiter import init_redis
from services.appointment_store import create_appointment_store
from services.error_monitoring import log_error_with_context
from services.gateways import create_payment_gateway
from services.payment_service import PaymentService

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from routers import payments

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Appointment Payments API Server...")
    app.state.supabase = create_supabase_client(settings)
    store = create_appointment_store(app.state.supabase, settings.ENVIRONMENT)
    gateway = create_payment_gateway(settings)
    app.state.payment_service = PaymentService.from_settings(settings, gateway, store)

    # Initialize Redis for rate limiting
    redis_conn = await init_redis(settings.REDIS_URL)
    if not redis_conn:
        logger.warning("⚠️ Rate limiting will be disabled (Redis unavailable).")
    yield
    # Shutdown
    if redis_conn:
        await redis_conn.aclose()
    logger.info("🛑 Shutting down Server...")

app = FastAPI(
    title="Appointment Payments API",
    description="Two-phase (advance / remaining) appointment payments over Razorpay",
    version="1.0.0",
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:5173",
        "http://localhost:3000"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments.router)

@app.exception_handler(PaymentServiceError)
async def payment_error_handler(request: Request, exc: PaymentServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Framework errors (404 route, 405, 429 from the limiter) in the same envelope
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )

# Validation exception handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    error_details = [{"field": ".".join(str(loc) for loc in e["loc"]), "message": e["msg"]} for e in errors]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation error", "errors": error_details}
    )

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_error_with_context(exc, request)
    content = {"success": False, "message": "Internal server error."}
    if settings.ENVIRONMENT != "production":
        content["errors"] = [str(exc)]
    return JSONResponse(status_code=500, content=content)

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "payments", "version": "1.0.0"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.SERVER_HOST, port=settings.SERVER_PORT, reload=(settings.ENVIRONMENT=="development"))
