import logging
import re

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import DatabaseError

from core.exceptions import StoreError

from .models import Customer


logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_phone(phone: str) -> str:
    raw = (phone or "").strip()
    if not raw:
        return ""
    digits = re.sub(r"\D+", "", raw)
    if len(digits) == 12 and digits.startswith("380"):
        return f"+{digits}"
    if len(digits) == 10 and digits.startswith("0"):
        return f"+38{digits}"
    # not a Ukrainian number we recognize: keep digits and a leading plus
    prefix = "+" if raw.startswith("+") else ""
    return f"{prefix}{digits}"[:32]


def clean_instagram(handle: str) -> str:
    return re.sub(r"^[#@]+", "", (handle or "").strip()).strip()[:64]


def resolve_customer(email: str, first_name: str, last_name: str, phone: str | None = None,
                     instagram: str | None = None) -> int:
    """Find a customer by e-mail or create one; returns the customer id.

    Existing customers are returned as they are: name, phone and instagram
    submitted on a repeat visit are not written back.
    """
    email = normalize_email(email)
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()

    validate_email(email)
    if not first_name or not last_name:
        raise ValidationError("First and last name are required")

    try:
        customer, created = Customer.objects.get_or_create(
            email=email,
            defaults={
                "first_name": first_name[:120],
                "last_name": last_name[:120],
                "phone": normalize_phone(phone or ""),
                "instagram": clean_instagram(instagram or ""),
            },
        )
    except DatabaseError as exc:
        logger.exception("Could not resolve customer %s", email)
        raise StoreError(f"Could not resolve customer: {exc}") from exc

    if created:
        logger.info("Created customer #%s for %s", customer.id, email)
    else:
        logger.info("Found existing customer #%s for %s", customer.id, email)
    return customer.id
