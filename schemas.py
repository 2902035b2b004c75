from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class PaymentRequest(BaseModel):
    # Appointment ids may arrive as numbers from older mobile clients
    model_config = ConfigDict(coerce_numbers_to_str=True)


class CreateOrderRequest(PaymentRequest):
    appointmentId: str = Field(..., min_length=1)
    # Checked by the service after the appointment lookup
    paymentType: str


class VerifyPaymentRequest(PaymentRequest):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    appointmentId: str = Field(..., min_length=1)
    paymentType: str


class PaymentFailureRequest(PaymentRequest):
    appointmentId: str = Field(..., min_length=1)
    paymentType: str
    error: Optional[Any] = None


class RefundRequest(PaymentRequest):
    paymentId: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = None
