# glowglitch/services/payments.py
"""
Outbound payout gateways.

Each gateway takes a payout and the creator's decoded payment details and
returns a provider reference, or raises PaymentError. Live provider calls
are outside this service; the gateways validate the destination and mint
the reference that reconciliation keys on.
"""
from __future__ import annotations

import logging
import secrets
from decimal import Decimal
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)

REQUIRED_DETAIL_FIELDS: dict[str, tuple[str, ...]] = {
    "paypal": ("email",),
    "stripe": ("cardNumber", "cardName"),
    "bank": ("accountNumber", "routingNumber", "accountName"),
}


class PaymentError(Exception):
    pass


class PaymentGateway(Protocol):
    method: str

    async def send_payout(self, *, amount: Decimal, currency: str, details: Mapping[str, Any]) -> str: ...


def missing_detail_fields(method: str, details: Mapping[str, Any]) -> list[str]:
    required = REQUIRED_DETAIL_FIELDS.get(method, ())
    return [f for f in required if not str(details.get(f) or "").strip()]


class _BaseGateway:
    method = ""
    reference_prefix = ""

    async def send_payout(self, *, amount: Decimal, currency: str, details: Mapping[str, Any]) -> str:
        if amount <= 0:
            raise PaymentError("Payout amount must be positive")
        missing = missing_detail_fields(self.method, details)
        if missing:
            raise PaymentError(f"Missing {self.method} payment details: {', '.join(missing)}")
        self.validate(details)

        reference = f"{self.reference_prefix}_{secrets.token_hex(8)}"
        logger.info("%s payout of %s %s accepted (ref=%s)", self.method, amount, currency, reference)
        return reference

    def validate(self, details: Mapping[str, Any]) -> None:
        return None


class StripeGateway(_BaseGateway):
    method = "stripe"
    reference_prefix = "stripe"

    def validate(self, details: Mapping[str, Any]) -> None:
        digits = "".join(ch for ch in str(details["cardNumber"]) if ch.isdigit())
        if not 12 <= len(digits) <= 19:
            raise PaymentError("Stripe transfer failed: invalid card number")


class PayPalGateway(_BaseGateway):
    method = "paypal"
    reference_prefix = "paypal"

    def validate(self, details: Mapping[str, Any]) -> None:
        if "@" not in str(details["email"]):
            raise PaymentError("PayPal payout failed: invalid receiver email")


class BankTransferGateway(_BaseGateway):
    method = "bank"
    reference_prefix = "ach"

    def validate(self, details: Mapping[str, Any]) -> None:
        routing = str(details["routingNumber"]).strip()
        if not (routing.isdigit() and len(routing) == 9):
            raise PaymentError("Bank transfer failed - invalid account information")


GATEWAYS: dict[str, PaymentGateway] = {
    "stripe": StripeGateway(),
    "paypal": PayPalGateway(),
    "bank": BankTransferGateway(),
}


def get_gateway(method: str) -> PaymentGateway:
    try:
        return GATEWAYS[method]
    except KeyError:
        raise PaymentError("Unsupported payment method")
