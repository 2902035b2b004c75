"""
Payment failure recording.

The checkout client reports failed attempts itself and nothing on the server
corroborates them. Recording sits behind FailureRecorder so a reconciliation
job that checks gateway truth can replace the default without touching the
/failure route.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from models import Appointment, PaymentPhase, PhaseStatus
from services.appointment_store import AppointmentStore

logger = logging.getLogger(__name__)


class FailureRecorder(ABC):

    @abstractmethod
    def record(self, appointment: Appointment, phase: PaymentPhase, error: Any = None) -> None:
        ...


class ClientReportedFailureRecorder(FailureRecorder):
    """Marks the phase failed on the caller's word alone.

    Acceptable only because a failure never unlocks funds or advances booking state.
    """

    def __init__(self, store: AppointmentStore):
        self._store = store

    def record(self, appointment: Appointment, phase: PaymentPhase, error: Any = None) -> None:
        if appointment.payment.status_of(phase) == PhaseStatus.PAID:
            # Paid is final
            logger.warning(
                f"Ignoring failure report for appointment {appointment.id} "
                f"({phase.value}), phase already paid, client error: {error}"
            )
            return
        self._store.update_payment(appointment.id, {phase.status_field: PhaseStatus.FAILED})
        logger.info(
            f"Payment failure recorded for appointment {appointment.id} "
            f"({phase.value}), client error: {error}"
        )
