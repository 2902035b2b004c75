"""
Error Monitoring and Logging
Logs unhandled errors with request context for the global exception handler.
"""
import logging
from typing import Optional
from fastapi import Request

from core.limiter import get_real_ip

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key", "x-razorpay-signature")


def capture_exception(error: Exception, context: Optional[dict] = None):
    """Capture exception and log it"""
    error_msg = f"Unhandled exception: {error}"
    if context:
        context_str = ", ".join([f"{k}={v}" for k, v in context.items()])
        error_msg += f" | Context: {context_str}"
    logger.error(error_msg, exc_info=error)


def request_context(request: Request) -> dict:
    headers = {k: v for k, v in request.headers.items() if k.lower() not in SENSITIVE_HEADERS}
    return {
        "method": request.method,
        "path": request.url.path,
        "client": get_real_ip(request),
        "headers": headers,
    }


def log_error_with_context(error: Exception, request: Optional[Request] = None, user_id: Optional[str] = None):
    """Log error with request context"""
    context = {}
    if request is not None:
        context["request"] = request_context(request)
    if user_id:
        context["user_id"] = user_id
    capture_exception(error, context)
