"""
Payment Gateway Abstraction Layer
Defines the contract the payment service consumes: order creation, the two
signature checks and refunds.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any


class GatewayError(RuntimeError):
    """Raised when the gateway rejects a request or cannot be reached."""


class PaymentGatewayBase(ABC):
    """Abstract base class for the payment gateway."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the gateway name, e.g. 'razorpay'"""
        ...

    @property
    @abstractmethod
    def key_id(self) -> str:
        """Public key identifier handed to the checkout client."""
        ...

    @abstractmethod
    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create an auto-capture payment order.

        `amount` is in major units; implementations convert to minor units.
        Must return a dict with AT LEAST:
          - order_id: str
          - amount: float          (major units)
          - currency: str
        Raises GatewayError on failure.
        """
        ...

    @abstractmethod
    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check a checkout proof with the checkout secret."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        """Check a webhook body with the webhook secret."""
        ...

    @abstractmethod
    def create_refund(
        self, payment_id: str, amount: Optional[float] = None, notes: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Issue a refund (full when amount is None). Raises GatewayError on failure."""
        ...
