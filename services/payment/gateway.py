"""
services/payment/gateway.py
Razorpay client: order creation and checkout signature verification.

Order creation is one outbound call with an explicit timeout. Idempotency
is the caller's concern (the receipt id is advisory only) and nothing is
retried here.
"""

import asyncio
import logging
from typing import Optional, TypedDict

import razorpay
from starlette.concurrency import run_in_threadpool

from config.settings import settings
from shared.utils.exceptions import UpstreamError
from shared.utils.security import verify_razorpay_signature

logger = logging.getLogger(__name__)


class ExternalOrder(TypedDict):
    external_order_id: str
    amount: int          # minor units (paise)
    currency: str


class PaymentGateway:
    """Wraps the Razorpay orders API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        timeout: float = settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        client: Optional["razorpay.Client"] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> "razorpay.Client":
        if self._client is None:
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    async def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> ExternalOrder:
        """Create a Razorpay order. Any failure or timeout raises UpstreamError."""
        payload = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
            "notes": notes or {},
        }
        try:
            # The SDK is synchronous (requests); keep it off the event loop
            order = await asyncio.wait_for(
                run_in_threadpool(self.client.order.create, payload),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Razorpay order creation timed out after {self.timeout}s (receipt={receipt})")
            raise UpstreamError("Payment gateway timed out. Please try again.")
        except Exception as e:
            logger.error(f"Razorpay order creation failed (receipt={receipt}): {e}")
            raise UpstreamError("Payment gateway error. Please try again.")

        try:
            return ExternalOrder(
                external_order_id=order["id"],
                amount=int(order.get("amount", amount_minor_units)),
                currency=order.get("currency", currency),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected Razorpay order payload for receipt={receipt}: {e}")
            raise UpstreamError("Payment gateway returned an invalid order")

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return verify_razorpay_signature(order_id, payment_id, signature, self.key_secret)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency. Tests override this with a stub gateway."""
    return PaymentGateway(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
