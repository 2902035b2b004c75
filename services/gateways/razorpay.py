"""
Razorpay Payment Gateway Implementation
"""

import hmac
import hashlib
import logging
from typing import Optional, Dict, Any
import requests
from .base import GatewayError, PaymentGatewayBase

logger = logging.getLogger(__name__)

RAZORPAY_BASE_URL = "https://api.razorpay.com/v1"


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayGateway(PaymentGatewayBase):
    """Razorpay implementation of the payment gateway."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        timeout: int = 30,
        base_url: str = RAZORPAY_BASE_URL,
    ):
        self._key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self._timeout = timeout
        self._base_url = base_url
        if self._key_id and self._key_secret:
            logger.info("✅ Razorpay gateway credentials loaded")
        else:
            logger.warning("⚠️ Razorpay credentials missing")
        if not self._webhook_secret:
            logger.warning("⚠️ Razorpay webhook secret not configured, webhooks are verified against an empty secret")

    @classmethod
    def from_settings(cls, settings) -> "RazorpayGateway":
        return cls(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )

    @property
    def name(self) -> str:
        return "razorpay"

    @property
    def key_id(self) -> str:
        return self._key_id

    # ── helpers ──────────────────────────────────────────────
    @property
    def _auth(self):
        return (self._key_id, self._key_secret)

    def _require_credentials(self):
        if not self._key_id or not self._key_secret:
            raise GatewayError("Razorpay credentials not configured")

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(
                f"{self._base_url}{path}",
                auth=self._auth,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Razorpay request to {path} failed: {e}")
            raise GatewayError(f"Razorpay unreachable: {e}") from e

        if resp.status_code not in (200, 201):
            logger.error(f"Razorpay {path} failed: {resp.text}")
            raise GatewayError(f"Razorpay error: {resp.text}")
        return resp.json()

    # ── create_order ────────────────────────────────────────
    def create_order(
        self,
        amount: float,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        self._require_credentials()

        payload = {
            "amount": to_minor_units(amount),  # paise
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
            "notes": notes or {},
        }
        order = self._post("/orders", payload)
        return {
            "order_id": order["id"],
            "amount": amount,
            "currency": order.get("currency", currency),
        }

    # ── signatures ──────────────────────────────────────────
    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self._key_secret:
            logger.warning("Razorpay key secret not configured, rejecting payment signature")
            return False
        expected = hmac_sha256_hex(self._key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))

    def verify_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        expected = hmac_sha256_hex(self._webhook_secret or "", raw_body)
        return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))

    # ── create_refund ───────────────────────────────────────
    def create_refund(
        self, payment_id: str, amount: Optional[float] = None, notes: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        self._require_credentials()
        payload: Dict[str, Any] = {"notes": notes or {}}
        if amount:
            payload["amount"] = to_minor_units(amount)
        return self._post(f"/payments/{payment_id}/refund", payload)
