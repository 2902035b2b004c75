"""
Payment Gateway Factory
Builds the Razorpay gateway from settings once, at process start.
"""

import logging
from core.config import Settings
from .base import GatewayError, PaymentGatewayBase
from .razorpay import RazorpayGateway

logger = logging.getLogger(__name__)

__all__ = ["GatewayError", "PaymentGatewayBase", "RazorpayGateway", "create_payment_gateway"]


def create_payment_gateway(settings: Settings) -> PaymentGatewayBase:
    gw = RazorpayGateway.from_settings(settings)
    logger.info(f"🔌 Payment gateway initialized: {gw.name}")
    return gw
