from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import DatabaseError

from core.telegram_notify import notify_registration_paid
from registrations.models import OfferingKind, Registration
from registrations.services import active_count, finalize

from .liqpay import LiqPayClient, PayloadMalformed, SignatureInvalid
from .models import PaymentWebhookLog
from .orders import OrderReference


logger = logging.getLogger(__name__)

PAID_STATUSES = {"success", "subscribed"}
FAILED_STATUSES = {"failure", "error"}
SANDBOX_STATUS = "sandbox"


@dataclass(frozen=True)
class PaymentSession:
    order_id: str
    amount: Decimal
    currency: str
    data: str
    signature: str
    checkout_url: str


@dataclass(frozen=True)
class CallbackResult:
    """Outcome of a verified callback.

    Every verified callback is acknowledged to LiqPay; `applied` only says
    whether the registration actually changed.
    """

    order_id: str
    status: str
    outcome: str
    applied: bool = False


def session_amount(offering, kind: str, course_price=None) -> Decimal:
    if kind == OfferingKind.COURSE and course_price not in (None, ""):
        amount = Decimal(str(course_price))
    else:
        amount = Decimal(str(offering.price or 0))
    return amount.quantize(Decimal("0.01"))


def _amount_value(amount: Decimal):
    return int(amount) if amount == amount.to_integral_value() else float(amount)


def build_session(client: LiqPayClient, customer_id: int, offering, kind: str, *, result_url: str,
                  server_url: str, language: str = "en", course_price=None) -> PaymentSession:
    amount = session_amount(offering, kind, course_price)
    if amount <= 0:
        raise ValueError(f"Nothing to pay for {kind}#{offering.id}")

    order_id = str(OrderReference(kind=str(kind), customer_id=customer_id, offering_id=offering.id))
    signed = client.checkout_params({
        "action": "pay",
        "amount": _amount_value(amount),
        "currency": client.currency,
        "description": f"{offering.name} ({kind} #{offering.id})"[:255],
        "order_id": order_id,
        "result_url": result_url,
        "server_url": server_url,
        "language": language,
    })
    logger.info("Payment session %s: %s %s", order_id, amount, client.currency)
    return PaymentSession(
        order_id=order_id,
        amount=amount,
        currency=client.currency,
        data=signed["data"],
        signature=signed["signature"],
        checkout_url=client.checkout_url,
    )


def map_status(provider_status: str, *, sandbox: bool = False) -> str | None:
    """LiqPay status -> registration status; None for statuses we do not act on."""
    status = (provider_status or "").strip().lower()
    if status in PAID_STATUSES:
        return Registration.Status.PAID
    if sandbox and status == SANDBOX_STATUS:
        return Registration.Status.PAID
    if status in FAILED_STATUSES:
        return Registration.Status.FAILED
    return None


def _log_callback(order_id: str, status: str, payload: dict) -> None:
    try:
        PaymentWebhookLog.objects.create(order_id=order_id[:64], status=status[:32], payload=payload)
    except DatabaseError:
        logger.exception("Could not store LiqPay callback for order %s", order_id)


def notify_paid(registration, reference: OrderReference, *, amount=None, currency: str = "UAH") -> None:
    try:
        notify_registration_paid(
            registration=registration,
            active_count=active_count(reference.kind, reference.offering_id),
            amount=amount,
            currency=currency,
        )
    except Exception:
        logger.exception("Could not send paid notification for order %s", reference)


def handle_callback(client: LiqPayClient, raw_data: str, raw_signature: str) -> CallbackResult:
    """Verify, decode and apply a LiqPay server callback.

    Raises SignatureInvalid / PayloadMalformed for callbacks that must be
    rejected. Once those checks pass, failures to apply the outcome are only
    logged: the callback is still acknowledged.
    """
    if not raw_data or not raw_signature:
        raise SignatureInvalid("Missing data or signature")
    if not client.verify(raw_data, raw_signature):
        raise SignatureInvalid("Invalid signature")

    payload = client.decode(raw_data)
    order_id = str(payload.get("order_id") or "").strip()
    status = str(payload.get("status") or "").strip()
    if not order_id or not status:
        raise PayloadMalformed("Missing order_id or status")

    try:
        reference = OrderReference.parse(order_id)
    except ValueError as exc:
        raise PayloadMalformed(str(exc)) from exc

    _log_callback(order_id, status, payload)

    new_status = map_status(status, sandbox=client.sandbox)
    if new_status is None:
        logger.warning("LiqPay callback for order %s with status %r ignored", order_id, status)
        return CallbackResult(order_id=order_id, status=status, outcome="ignored")

    try:
        result = finalize(
            reference,
            new_status,
            provider_status=status,
            payment_id=str(payload.get("payment_id") or ""),
        )
    except Exception:
        logger.exception("LiqPay callback: could not apply %s to order %s", new_status, order_id)
        return CallbackResult(order_id=order_id, status=status, outcome="error")

    if result.newly_paid:
        notify_paid(
            result.registration,
            reference,
            amount=payload.get("amount"),
            currency=str(payload.get("currency") or client.currency),
        )

    return CallbackResult(
        order_id=order_id,
        status=status,
        outcome="applied" if result.changed else "unchanged",
        applied=result.changed,
    )
