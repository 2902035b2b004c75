"""
Appointment persistence for the payment service.

The payment service only needs a small surface: load one appointment, write
some payment fields of one appointment, page through appointments for the
history report and total up paid revenue. Payment fields live in flat
columns named after the PaymentRecord attributes, so each write touches only
the fields the calling operation owns.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError

from core.exceptions import UpstreamError
from models import Appointment, Party, PaymentPhase, PaymentRecord, PhaseStatus

logger = logging.getLogger(__name__)

APPOINTMENTS_TABLE = "appointments"

# PostgREST error code for an offset past the last row (HTTP 416)
RANGE_NOT_SATISFIABLE = "PGRST103"

# Matches the default Supabase max-rows
REVENUE_PAGE_SIZE = 1000

PAYMENT_COLUMNS = tuple(PaymentRecord.model_fields.keys())

SELECT_COLUMNS = (
    "id, patient_id, doctor_id, status, created_at, "
    + ", ".join(PAYMENT_COLUMNS)
    + ", patient:users!patient_id(name, email), doctor:users!doctor_id(name, specialization)"
)


class AppointmentStore(ABC):
    """Key-value style access to appointments, keyed by appointment id."""

    @abstractmethod
    def get(self, appointment_id: str) -> Optional[Appointment]:
        ...

    @abstractmethod
    def update_payment(self, appointment_id: str, changes: Dict[str, Any]) -> None:
        """Persist the given PaymentRecord fields. Raises UpstreamError on failure."""
        ...

    @abstractmethod
    def list_payments(
        self,
        status: Optional[PhaseStatus] = None,
        phase: Optional[PaymentPhase] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Appointment], int]:
        """Newest-first page of appointments and the total matching count."""
        ...

    @abstractmethod
    def paid_revenue(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Tuple[float, int]:
        """Sum of total_amount and count over appointments whose final payment is paid."""
        ...


def _column_values(changes: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - set(PAYMENT_COLUMNS)
    if unknown:
        raise ValueError(f"Not payment fields: {sorted(unknown)}")
    return {k: (v.value if isinstance(v, PhaseStatus) else v) for k, v in changes.items()}


def row_to_appointment(row: Dict[str, Any]) -> Appointment:
    payment = PaymentRecord(**{
        col: row[col] for col in PAYMENT_COLUMNS if row.get(col) is not None
    })
    return Appointment(
        id=str(row["id"]),
        patient_id=str(row["patient_id"]),
        doctor_id=str(row["doctor_id"]),
        status=row.get("status") or "pending",
        created_at=row.get("created_at"),
        payment=payment,
        patient=Party(**(row.get("patient") or {})),
        doctor=Party(**(row.get("doctor") or {})),
    )


class SupabaseAppointmentStore(AppointmentStore):
    """Appointments table accessed through the Supabase (PostgREST) client."""

    def __init__(self, client):
        self._client = client

    def _table(self):
        return self._client.table(APPOINTMENTS_TABLE)

    def get(self, appointment_id: str) -> Optional[Appointment]:
        result = self._table().select(SELECT_COLUMNS).eq("id", appointment_id).limit(1).execute()
        if not result.data:
            return None
        return row_to_appointment(result.data[0])

    def update_payment(self, appointment_id: str, changes: Dict[str, Any]) -> None:
        result = self._table().update(_column_values(changes)).eq("id", appointment_id).execute()
        if not result.data:
            raise UpstreamError("Failed to save payment", [f"No appointment row updated for {appointment_id}"])

    @staticmethod
    def _apply_date_range(query, start_date: Optional[datetime], end_date: Optional[datetime]):
        if start_date:
            query = query.gte("created_at", start_date.isoformat())
        if end_date:
            query = query.lte("created_at", end_date.isoformat())
        return query

    def list_payments(
        self,
        status: Optional[PhaseStatus] = None,
        phase: Optional[PaymentPhase] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Appointment], int]:
        offset = (page - 1) * limit
        query = self._payments_query(SELECT_COLUMNS, status, phase, start_date, end_date)
        try:
            result = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        except APIError as e:
            if e.code != RANGE_NOT_SATISFIABLE:
                raise
            # Page past the end: empty page, real total
            count_query = self._payments_query("id", status, phase, start_date, end_date)
            result = count_query.limit(1).execute()
            return [], result.count or 0
        rows = result.data or []
        return [row_to_appointment(r) for r in rows], result.count or 0

    def _payments_query(self, columns: str, status, phase, start_date, end_date):
        query = self._table().select(columns, count="exact")
        if status:
            if phase:
                query = query.eq(phase.status_field, status.value)
            else:
                query = query.or_(
                    f"advance_payment_status.eq.{status.value},final_payment_status.eq.{status.value}"
                )
        return self._apply_date_range(query, start_date, end_date)

    def paid_revenue(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Tuple[float, int]:
        """Sums page by page; PostgREST caps a single response at its max-rows setting."""
        revenue = 0.0
        fetched = 0
        while True:
            query = self._table().select("total_amount", count="exact").eq(
                "final_payment_status", PhaseStatus.PAID.value
            )
            query = self._apply_date_range(query, start_date, end_date)
            result = query.order("id").range(fetched, fetched + REVENUE_PAGE_SIZE - 1).execute()
            rows = result.data or []
            revenue += sum(float(r.get("total_amount") or 0) for r in rows)
            fetched += len(rows)
            total = result.count if result.count is not None else fetched
            if not rows or fetched >= total:
                return revenue, total


class InMemoryAppointmentStore(AppointmentStore):
    """Process-local store. Used when Supabase is not configured, and in tests."""

    def __init__(self, appointments: Optional[List[Appointment]] = None):
        self._lock = threading.Lock()
        self._appointments: Dict[str, Appointment] = {}
        for appointment in appointments or []:
            self.add(appointment)

    def add(self, appointment: Appointment) -> None:
        with self._lock:
            self._appointments[appointment.id] = appointment.model_copy(deep=True)

    def get(self, appointment_id: str) -> Optional[Appointment]:
        with self._lock:
            appointment = self._appointments.get(str(appointment_id))
            return appointment.model_copy(deep=True) if appointment else None

    def update_payment(self, appointment_id: str, changes: Dict[str, Any]) -> None:
        _column_values(changes)
        with self._lock:
            appointment = self._appointments.get(str(appointment_id))
            if appointment is None:
                raise UpstreamError("Failed to save payment", [f"No appointment row updated for {appointment_id}"])
            appointment.payment = appointment.payment.model_copy(update=changes)

    @staticmethod
    def _in_range(appointment: Appointment, start_date, end_date) -> bool:
        created = appointment.created_at
        if start_date and (created is None or created < start_date):
            return False
        if end_date and (created is None or created > end_date):
            return False
        return True

    def list_payments(
        self,
        status: Optional[PhaseStatus] = None,
        phase: Optional[PaymentPhase] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Appointment], int]:
        with self._lock:
            matches = []
            for appointment in self._appointments.values():
                if status:
                    phases = [phase] if phase else list(PaymentPhase)
                    if not any(appointment.payment.status_of(p) == status for p in phases):
                        continue
                if not self._in_range(appointment, start_date, end_date):
                    continue
                matches.append(appointment.model_copy(deep=True))

        matches.sort(key=lambda a: a.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        offset = (page - 1) * limit
        return matches[offset:offset + limit], len(matches)

    def paid_revenue(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Tuple[float, int]:
        with self._lock:
            paid = [
                a for a in self._appointments.values()
                if a.payment.final_payment_status == PhaseStatus.PAID
                and self._in_range(a, start_date, end_date)
            ]
        return sum(a.payment.total_amount for a in paid), len(paid)


def create_appointment_store(client, environment: str = "development") -> AppointmentStore:
    if client is not None:
        return SupabaseAppointmentStore(client)
    if environment == "production":
        raise RuntimeError("Supabase is not configured; refusing to start with in-memory storage")
    logger.warning("⚠️ Supabase not configured, using in-memory appointment storage")
    return InMemoryAppointmentStore()
