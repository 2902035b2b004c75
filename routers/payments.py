from contextlib import contextmanager
from datetime import datetime
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Header, Query, Request

from core.exceptions import PaymentServiceError, UpstreamError, VerificationFailedError
from core.config import settings
from core.limiter import get_real_ip, rate_limit
from core.responses import success_response
from dependencies.auth import get_current_admin, get_current_user
from dependencies.payments import get_payment_service
from schemas import CreateOrderRequest, PaymentFailureRequest, RefundRequest, VerifyPaymentRequest
from services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

payment_rate_limit = rate_limit(times=settings.PAYMENT_RATE_LIMIT_PER_MINUTE, seconds=60)


@contextmanager
def unexpected_errors(message: str):
    """Business-rule errors pass through; anything else becomes a 500 carrying the cause."""
    try:
        yield
    except PaymentServiceError:
        raise
    except Exception as e:
        logger.error(f"{message}: {e}", exc_info=True)
        raise UpstreamError(message, [str(e)])


@router.post("/create-order", dependencies=[Depends(payment_rate_limit)])
def create_payment_order(
    order_data: CreateOrderRequest,
    current_user: dict = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a gateway order for the advance or remaining phase of an appointment"""
    with unexpected_errors("Failed to create payment order"):
        data = service.create_order(order_data.appointmentId, order_data.paymentType, current_user)
    return success_response("Payment order created successfully", data)


@router.post("/verify", dependencies=[Depends(payment_rate_limit)])
def verify_payment(
    verification: VerifyPaymentRequest,
    current_user: dict = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Verify a checkout signature and mark the phase paid"""
    with unexpected_errors("Payment verification failed"):
        data = service.verify_payment(
            order_id=verification.razorpay_order_id,
            payment_id=verification.razorpay_payment_id,
            signature=verification.razorpay_signature,
            appointment_id=verification.appointmentId,
            payment_type=verification.paymentType,
        )
    return success_response("Payment verified and updated successfully", data)


@router.post("/failure")
def record_payment_failure(
    failure: PaymentFailureRequest,
    current_user: dict = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Record a payment failure reported by the checkout client"""
    with unexpected_errors("Failed to handle payment failure"):
        service.record_failure(failure.appointmentId, failure.paymentType, failure.error)
    return success_response("Payment failure recorded")


@router.get("/appointment/{appointment_id}")
def get_payment_details(
    appointment_id: str,
    current_user: dict = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Payment record and appointment status (patient, doctor or admin).
    Serves the payment-details lookup at /appointment/{appointment_id}.
    """
    with unexpected_errors("Failed to fetch payment details"):
        data = service.get_payment_details(appointment_id, current_user)
    return success_response("Payment details fetched", data)


@router.get("/history")
def get_payment_history(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = None,
    paymentType: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    admin_user: dict = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    """Paginated payment history with the overall revenue (admin only)"""
    with unexpected_errors("Failed to fetch payment history"):
        data = service.get_payment_history(
            status=status,
            payment_type=paymentType,
            start_date=startDate,
            end_date=endDate,
            page=page,
            limit=limit,
        )
    return success_response("Payment history fetched", data)


@router.get("/analytics")
def get_payment_analytics(
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    admin_user: dict = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    """Paid appointment revenue over a period, last 30 days by default (admin only)"""
    with unexpected_errors("Failed to fetch payment analytics"):
        data = service.get_payment_analytics(startDate, endDate)
    return success_response("Payment analytics fetched", data)


@router.post("/refund")
def refund_payment(
    refund: RefundRequest,
    admin_user: dict = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    """Initiate a full or partial refund with the gateway (admin only)"""
    with unexpected_errors("Failed to initiate refund"):
        data = service.refund_payment(refund.paymentId, refund.amount, refund.reason, admin_user)
    return success_response("Refund initiated successfully", data)


@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None, alias="x-razorpay-signature"),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Razorpay webhook endpoint (no user auth; the body signature is the auth).
    Acknowledges every authenticated event so the gateway stops retrying.
    """
    # Raw bytes: the signature covers the body exactly as sent
    body_bytes = await request.body()
    try:
        with unexpected_errors("Webhook processing failed"):
            event_type = service.handle_webhook(body_bytes, x_razorpay_signature)
    except VerificationFailedError:
        logger.warning(f"Rejected webhook with invalid signature from {get_real_ip(request)}")
        raise
    return success_response("Webhook processed", {"event": event_type})
