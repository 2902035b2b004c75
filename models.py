"""
Payment domain models.
Enums are shared with schemas.py; the appointment and its embedded payment
record are what the appointment store reads and writes.
"""
import enum
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PhaseStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"


class PaymentPhase(str, enum.Enum):
    ADVANCE = "advance"
    REMAINING = "remaining"

    @property
    def status_field(self) -> str:
        """PaymentRecord attribute holding this phase's status."""
        if self is PaymentPhase.ADVANCE:
            return "advance_payment_status"
        return "final_payment_status"

    @property
    def amount_field(self) -> str:
        if self is PaymentPhase.ADVANCE:
            return "advance_amount"
        return "remaining_amount"

    @property
    def receipt_prefix(self) -> str:
        return "adv" if self is PaymentPhase.ADVANCE else "rem"


class PaymentRecord(BaseModel):
    """Payment sub-document embedded in an appointment (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    advance_amount: float = 0
    remaining_amount: float = 0
    total_amount: float = 0
    advance_payment_status: PhaseStatus = PhaseStatus.UNPAID
    final_payment_status: PhaseStatus = PhaseStatus.UNPAID
    order_id: Optional[str] = None
    payment_id: Optional[str] = None

    def status_of(self, phase: PaymentPhase) -> PhaseStatus:
        return getattr(self, phase.status_field)

    def amount_of(self, phase: PaymentPhase) -> float:
        return getattr(self, phase.amount_field)

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Party(BaseModel):
    """Display fields of a patient or doctor joined into an appointment."""

    name: Optional[str] = None
    email: Optional[str] = None
    specialization: Optional[str] = None


class Appointment(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    status: str = AppointmentStatus.PENDING.value
    created_at: Optional[datetime] = None
    payment: PaymentRecord = Field(default_factory=PaymentRecord)
    patient: Party = Field(default_factory=Party)
    doctor: Party = Field(default_factory=Party)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_party(self, user_id) -> bool:
        """True when the user is this appointment's patient or doctor."""
        return str(user_id) in (self.patient_id, self.doctor_id)
