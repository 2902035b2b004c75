import hashlib
import hmac
import os
import pytest
from datetime import datetime, timezone
from httpx import ASGITransport, AsyncClient
from typing import AsyncGenerator
from unittest.mock import MagicMock

CHECKOUT_SECRET = "test_checkout_secret"
WEBHOOK_SECRET = "test_webhook_secret"

# Set test environment vars before importing app
os.environ["ENVIRONMENT"] = "testing"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_KEY"] = ""
os.environ["JWT_SECRET"] = "super-secret-test-key-32-chars-long"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = CHECKOUT_SECRET
os.environ["RAZORPAY_WEBHOOK_SECRET"] = WEBHOOK_SECRET

from main import app
from core.security import create_access_token
from dependencies.payments import get_payment_service
from models import Appointment, Party, PaymentRecord, PhaseStatus
from services.appointment_store import InMemoryAppointmentStore
from services.gateways import GatewayError, RazorpayGateway
from services.payment_service import PaymentService

FIXED_NOW = 1_700_000_000.0

PATIENT = {"id": "patient-1", "role": "patient"}
DOCTOR = {"id": "doctor-1", "role": "doctor"}
ADMIN = {"id": "admin-1", "role": "admin"}
STRANGER = {"id": "patient-2", "role": "patient"}


class RecordingGateway(RazorpayGateway):
    """Real Razorpay signature checks; orders and refunds are recorded instead of sent."""

    def __init__(self):
        super().__init__(key_id="rzp_test_key", key_secret=CHECKOUT_SECRET, webhook_secret=WEBHOOK_SECRET)
        self.orders = []
        self.refunds = []
        self.error = None

    def create_order(self, amount, currency, receipt, notes=None):
        if self.error:
            raise GatewayError(self.error)
        self.orders.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return {"order_id": f"order_{len(self.orders)}", "amount": amount, "currency": currency}

    def create_refund(self, payment_id, amount=None, notes=None):
        if self.error:
            raise GatewayError(self.error)
        self.refunds.append({"payment_id": payment_id, "amount": amount, "notes": notes})
        return {"id": f"rfnd_{len(self.refunds)}", "amount": int(round((amount or 2000) * 100)), "status": "processed"}


def sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@pytest.fixture
def checkout_signature():
    def _sign(order_id: str, payment_id: str) -> str:
        return sign(CHECKOUT_SECRET, f"{order_id}|{payment_id}".encode())
    return _sign


@pytest.fixture
def webhook_signature():
    def _sign(body: bytes) -> str:
        return sign(WEBHOOK_SECRET, body)
    return _sign


@pytest.fixture
def make_appointment():
    def _make(
        appointment_id="A1",
        advance_amount=500,
        remaining_amount=1500,
        advance_status=PhaseStatus.UNPAID,
        final_status=PhaseStatus.UNPAID,
        created_at=datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc),
        status="pending",
    ):
        return Appointment(
            id=appointment_id,
            patient_id=PATIENT["id"],
            doctor_id=DOCTOR["id"],
            status=status,
            created_at=created_at,
            payment=PaymentRecord(
                advance_amount=advance_amount,
                remaining_amount=remaining_amount,
                total_amount=advance_amount + remaining_amount,
                advance_payment_status=advance_status,
                final_payment_status=final_status,
            ),
            patient=Party(name="Asha Rao", email="asha@example.com"),
            doctor=Party(name="Dr. Vikram Mehta", specialization="cardiology"),
        )
    return _make


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def store(make_appointment) -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore([make_appointment()])


@pytest.fixture
def service(gateway, store) -> PaymentService:
    return PaymentService(gateway, store, clock=lambda: FIXED_NOW)


# Supabase chain mock, as returned by client.table(...)
@pytest.fixture
def supabase_chain():
    def make_chain(return_val, count=None):
        chain = MagicMock()
        for method in ("select", "insert", "update", "eq", "or_", "gte", "lte", "limit", "order", "range"):
            getattr(chain, method).return_value = chain
        chain.execute.return_value = MagicMock(data=return_val, count=count)
        return chain
    return make_chain


def bearer(user: dict) -> dict:
    token = create_access_token({"sub": user["id"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return bearer


@pytest.fixture
async def async_client(service) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_payment_service] = lambda: service
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
