"""Off-session payment capture through Stripe."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

import stripe

from backend.app.core.settings import get_settings

logger = logging.getLogger(__name__)

CHARGE_SUCCEEDED = "succeeded"
CHARGE_FAILED = "failed"


class PaymentGatewayError(Exception):
    """Raised when a charge is declined, times out or cannot be attempted."""


@dataclass
class ChargeResult:
    status: str
    reference: Optional[str] = None
    payment_method: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == CHARGE_SUCCEEDED


class PaymentGateway(ABC):
    @abstractmethod
    def charge_off_session(
        self,
        customer_ref: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, str],
    ) -> ChargeResult:
        """Charge a saved customer off-session.

        A decline may surface as PaymentGatewayError or as a result whose status
        is not ``succeeded``.
        """


def to_minor_units(amount: Decimal | float) -> int:
    cents = (Decimal(str(amount)) * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


class StripePaymentGateway(PaymentGateway):
    def __init__(self, api_key: str, timeout_seconds: int = 30):
        self.timeout_seconds = timeout_seconds
        self.client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
        )

    def charge_off_session(self, customer_ref, amount, currency, metadata):
        try:
            customer = self.client.customers.retrieve(customer_ref)
            invoice_settings = getattr(customer, "invoice_settings", None)
            payment_method = getattr(invoice_settings, "default_payment_method", None)
            params = {
                "amount": to_minor_units(amount),
                "currency": currency,
                "customer": customer_ref,
                "off_session": True,
                "confirm": True,
                "metadata": metadata,
                "expand": ["payment_method"],
            }
            if payment_method:
                params["payment_method"] = payment_method
            intent = self.client.payment_intents.create(params=params)
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            raise PaymentGatewayError(message) from exc

        if intent.status != CHARGE_SUCCEEDED:
            raise PaymentGatewayError(f"Payment intent {intent.id} ended with status {intent.status}")

        return ChargeResult(
            status=CHARGE_SUCCEEDED,
            reference=intent.id,
            payment_method=getattr(intent.payment_method, "type", None),
        )


def get_payment_gateway() -> Optional[PaymentGateway]:
    """Return the configured gateway, or None when no Stripe key is set."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is not set; off-session charges are disabled")
        return None
    return StripePaymentGateway(settings.stripe_secret_key, timeout_seconds=settings.payment_timeout_seconds)
