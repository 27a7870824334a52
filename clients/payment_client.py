"""
Stripe Checkout client: create sessions, verify them after redirect, verify webhooks.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    pass

class PaymentUnconfirmed(PaymentError):
    pass

class WebhookSignatureError(PaymentError):
    pass


@dataclass
class PaidSession:
    session_id: str
    paid: bool
    upload_id: Optional[str] = None
    email: Optional[str] = None


def _field(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


class PaymentClient:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        base_url: str = "",
        price_cents: int = 500,
        currency: str = "usd",
        product_name: str = "Santa Magic Video",
        product_description: str = "",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.base_url = (base_url or "").rstrip("/")
        self.price_cents = price_cents
        self.currency = currency
        self.product_name = product_name
        self.product_description = product_description

    def create_checkout(self, upload_id: str, email: Optional[str] = None) -> str:
        """Create a hosted checkout page bound to ``upload_id``. Returns its URL."""
        product_data = {"name": self.product_name}
        if self.product_description:
            product_data["description"] = self.product_description
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": product_data,
                            "unit_amount": self.price_cents,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=f"{self.base_url}/processing?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.base_url}/",
                customer_email=email or None,
                metadata={"upload_id": upload_id, "email": email or ""},
            )
        except stripe.StripeError as e:
            raise PaymentError(f"Checkout session create failed: {e}") from e
        logger.info("Checkout session created: %s for upload %s", session.id, upload_id)
        return session.url

    def retrieve_session(self, session_id: str) -> PaidSession:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise PaymentError(f"Checkout session lookup failed: {e}") from e
        metadata = _field(session, "metadata")
        email = _field(metadata, "email") or _field(_field(session, "customer_details"), "email")
        return PaidSession(
            session_id=session_id,
            paid=_field(session, "payment_status") == "paid",
            upload_id=_field(metadata, "upload_id"),
            email=email or None,
        )

    def construct_event(self, payload: bytes, signature: str):
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}") from e
