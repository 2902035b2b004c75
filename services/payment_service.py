"""
Payment Service: two-phase (advance / remaining) appointment payments.

Order creation, client-side verification, failure recording, webhook
authentication and the read-side reports. Built once at startup with its
gateway and appointment store; holds no per-request state.
"""

import json
import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from core.exceptions import (
    AccessDeniedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VerificationFailedError,
)
from models import Appointment, PaymentPhase, PhaseStatus, UserRole
from services.appointment_store import AppointmentStore
from services.failure_recorder import ClientReportedFailureRecorder, FailureRecorder
from services.gateways.base import PaymentGatewayBase

logger = logging.getLogger(__name__)

WEBHOOK_PAYMENT_CAPTURED = "payment.captured"
WEBHOOK_PAYMENT_FAILED = "payment.failed"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _display_name(name: Optional[str]) -> str:
    return name or ""


class PaymentService:
    """Gateway-backed payment state transitions for appointments."""

    def __init__(
        self,
        gateway: PaymentGatewayBase,
        store: AppointmentStore,
        failure_recorder: Optional[FailureRecorder] = None,
        currency: str = "INR",
        history_default_limit: int = 20,
        history_max_limit: int = 100,
        analytics_default_days: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self._gateway = gateway
        self._store = store
        self._failure_recorder = failure_recorder or ClientReportedFailureRecorder(store)
        self._currency = currency
        self._history_default_limit = history_default_limit
        self._history_max_limit = history_max_limit
        self._analytics_default_days = analytics_default_days
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, gateway: PaymentGatewayBase, store: AppointmentStore) -> "PaymentService":
        return cls(
            gateway=gateway,
            store=store,
            currency=settings.PAYMENT_CURRENCY,
            history_default_limit=settings.HISTORY_DEFAULT_LIMIT,
            history_max_limit=settings.HISTORY_MAX_LIMIT,
            analytics_default_days=settings.ANALYTICS_DEFAULT_DAYS,
        )

    # ── helpers ──────────────────────────────────────────────
    @staticmethod
    def parse_phase(payment_type: Any) -> PaymentPhase:
        try:
            return PaymentPhase(payment_type)
        except ValueError:
            raise ValidationError(
                "Invalid payment type",
                [f"paymentType must be one of: {', '.join(p.value for p in PaymentPhase)}"],
            )

    @staticmethod
    def parse_status(status: Any) -> PhaseStatus:
        try:
            return PhaseStatus(status)
        except ValueError:
            raise ValidationError(
                "Invalid payment status",
                [f"status must be one of: {', '.join(s.value for s in PhaseStatus)}"],
            )

    def _load(self, appointment_id: str) -> Appointment:
        appointment = self._store.get(str(appointment_id))
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def build_receipt(self, phase: PaymentPhase, appointment_id: str) -> str:
        """Debug aid for the gateway dashboard, not a dedup key. Kept under 40 chars."""
        return f"{phase.receipt_prefix}_{str(appointment_id)[-20:]}_{int(self._clock() * 1000)}"

    @staticmethod
    def _require_advance_paid(appointment: Appointment) -> None:
        if appointment.payment.advance_payment_status != PhaseStatus.PAID:
            raise InvalidStateError("Advance payment must be completed first")

    # ── Create Order ────────────────────────────────────────
    def create_order(self, appointment_id: str, payment_type: Any, current_user: Dict[str, Any]) -> Dict[str, Any]:
        appointment = self._load(appointment_id)
        if not appointment.is_party(current_user.get("id")):
            raise AccessDeniedError("Access denied")
        phase = self.parse_phase(payment_type)

        payment = appointment.payment
        if phase is PaymentPhase.ADVANCE:
            if payment.advance_payment_status == PhaseStatus.PAID:
                raise InvalidStateError("Advance payment already completed")
        else:
            self._require_advance_paid(appointment)
            if payment.final_payment_status == PhaseStatus.PAID:
                raise InvalidStateError("Final payment already completed")

        amount = payment.amount_of(phase)
        if not amount or amount <= 0:
            raise InvalidStateError("No amount is due for this payment phase")

        order = self._gateway.create_order(
            amount=amount,
            currency=self._currency,
            receipt=self.build_receipt(phase, appointment.id),
            notes={
                "appointmentId": appointment.id,
                "paymentType": phase.value,
                "patientId": appointment.patient_id,
            },
        )

        # A failure here leaves an orphaned gateway order; it is not rolled back.
        self._store.update_payment(appointment.id, {"order_id": order["order_id"]})
        logger.info(f"Order {order['order_id']} created for appointment {appointment.id} ({phase.value}, {amount})")

        return {
            "orderId": order["order_id"],
            "amount": amount,
            "currency": self._currency,
            "appointmentId": appointment.id,
            "paymentType": phase.value,
            "publicKeyId": self._gateway.key_id,
            "patientName": _display_name(appointment.patient.name),
            "doctorName": _display_name(appointment.doctor.name),
        }

    # ── Verify (client-submitted proof) ─────────────────────
    def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        appointment_id: str,
        payment_type: Any,
    ) -> Dict[str, Any]:
        if not self._gateway.verify_payment_signature(order_id, payment_id, signature):
            logger.warning(f"Payment signature mismatch for order {order_id}")
            raise VerificationFailedError("Payment verification failed")

        appointment = self._load(appointment_id)
        phase = self.parse_phase(payment_type)

        changes: Dict[str, Any] = {phase.status_field: PhaseStatus.PAID}
        if phase is PaymentPhase.ADVANCE:
            changes["payment_id"] = payment_id
        else:
            self._require_advance_paid(appointment)

        self._store.update_payment(appointment.id, changes)
        logger.info(f"Payment {payment_id} verified for appointment {appointment.id} ({phase.value})")

        return {
            "paymentId": payment_id,
            "appointmentId": appointment.id,
            "paymentType": phase.value,
        }

    # ── Failure (client-reported) ───────────────────────────
    def record_failure(self, appointment_id: str, payment_type: Any, error: Any = None) -> None:
        appointment = self._load(appointment_id)
        phase = self.parse_phase(payment_type)
        if phase is PaymentPhase.REMAINING:
            self._require_advance_paid(appointment)
        self._failure_recorder.record(appointment, phase, error)

    # ── Read side ───────────────────────────────────────────
    def get_payment_details(self, appointment_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        appointment = self._load(appointment_id)
        is_admin = current_user.get("role") == UserRole.ADMIN.value
        if not (appointment.is_party(current_user.get("id")) or is_admin):
            raise AccessDeniedError("Access denied")
        return {
            "payment": appointment.payment.to_api(),
            "appointmentStatus": appointment.status,
        }

    def get_payment_history(
        self,
        status: Optional[str] = None,
        payment_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Admin report. `status` matches either phase unless `payment_type`
        narrows it to one. `summary.totalRevenue` is the global paid total and
        ignores every filter and the page.
        """
        status_filter = self.parse_status(status) if status else None
        phase_filter = self.parse_phase(payment_type) if payment_type else None
        start_date, end_date = _as_utc(start_date), _as_utc(end_date)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("startDate must not be after endDate")
        if page < 1:
            raise ValidationError("page must be at least 1")
        limit = limit or self._history_default_limit
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        limit = min(limit, self._history_max_limit)

        appointments, total = self._store.list_payments(
            status=status_filter,
            phase=phase_filter,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
        total_revenue, _ = self._store.paid_revenue()

        return {
            "payments": [
                {
                    "id": a.id,
                    "payment": a.payment.to_api(),
                    "status": a.status,
                    "createdAt": a.created_at.isoformat() if a.created_at else None,
                    "patient": {"name": a.patient.name, "email": a.patient.email},
                    "doctor": {"name": a.doctor.name, "specialization": a.doctor.specialization},
                }
                for a in appointments
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
            "summary": {"totalRevenue": total_revenue},
        }

    def get_payment_analytics(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        end = _as_utc(end_date) or self._now()
        start = _as_utc(start_date) or (end - timedelta(days=self._analytics_default_days))
        if start > end:
            raise ValidationError("startDate must not be after endDate")

        total_revenue, transactions = self._store.paid_revenue(start, end)
        return {
            "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
            "summary": {"totalRevenue": total_revenue, "totalTransactions": transactions},
        }

    # ── Refund (admin) ──────────────────────────────────────
    def refund_payment(
        self,
        payment_id: str,
        amount: Optional[float],
        reason: Optional[str],
        current_user: Dict[str, Any],
    ) -> Dict[str, Any]:
        refund = self._gateway.create_refund(
            payment_id,
            amount=amount,
            notes={"reason": reason or "", "refunded_by": str(current_user.get("id"))},
        )
        logger.info(f"Refund {refund.get('id')} initiated for payment {payment_id} by {current_user.get('id')}")
        return {
            "refundId": refund.get("id"),
            "amount": (refund.get("amount") or 0) / 100,
            "status": refund.get("status"),
        }

    # ── Webhook ─────────────────────────────────────────────
    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[str]:
        """
        Authenticate a gateway callback and log it.

        Only logs: appointment state is driven by client verification. Returns
        the event type so the caller can acknowledge it.
        """
        if not signature or not self._gateway.verify_webhook_signature(raw_body, signature):
            raise VerificationFailedError("Invalid signature")

        try:
            event = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        event_type = event.get("event")
        if event_type == WEBHOOK_PAYMENT_CAPTURED:
            logger.info(f"Payment captured: {_payment_entity(event)}")
        elif event_type == WEBHOOK_PAYMENT_FAILED:
            logger.info(f"Payment failed: {_payment_entity(event)}")
        else:
            logger.info(f"Unhandled webhook event: {event_type}")
        return event_type


def _payment_entity(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    node: Any = event
    for key in ("payload", "payment", "entity"):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node
