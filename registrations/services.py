from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from core.exceptions import AlreadyRegistered, CapacityExceeded, OfferingNotFound, StoreError

from .models import (
    ACTIVE_STATUSES,
    REGISTRATION_MODELS,
    OfferingKind,
    Registration,
    offering_model,
    registration_model,
)


logger = logging.getLogger(__name__)

# provider_status of pending rows expired by the cleanup command
EXPIRED_MARKER = "EXPIRED"


@dataclass(frozen=True)
class CapacityStatus:
    full: bool
    count: int
    capacity: int | None


@dataclass(frozen=True)
class RegistrationResult:
    registration: Registration
    replaced_pending: int = 0

    @property
    def registration_id(self) -> int:
        return self.registration.id

    @property
    def status(self) -> str:
        return self.registration.status


@dataclass(frozen=True)
class FinalizeResult:
    registration: Registration | None
    changed: bool
    previous_status: str = ""

    @property
    def newly_paid(self) -> bool:
        return (
            self.changed
            and self.registration is not None
            and self.registration.status == Registration.Status.PAID
        )


def _kind_label(kind: str) -> str:
    return "course" if kind == OfferingKind.COURSE else "event"


def _pair(kind: str, customer_id: int, offering_id: int):
    model = registration_model(kind)
    return model.objects.filter(customer_id=customer_id, **{f"{model.offering_field}_id": offering_id})


def check_capacity(offering_id: int, kind: str, max_capacity: int | None, *,
                   exclude_customer_id: int | None = None) -> CapacityStatus:
    """Count pending+paid registrations of an offering against its capacity.

    `exclude_customer_id` leaves that customer's own pending row out of the
    count: a new attempt replaces it, so it must not block the customer.
    """
    model = registration_model(kind)
    qs = model.objects.filter(
        status__in=ACTIVE_STATUSES,
        **{f"{model.offering_field}_id": offering_id},
    )
    if exclude_customer_id is not None:
        qs = qs.exclude(customer_id=exclude_customer_id, status=Registration.Status.PENDING)

    count = qs.count()
    full = max_capacity is not None and count >= max_capacity
    return CapacityStatus(full=full, count=count, capacity=max_capacity)


def register(customer_id: int, offering_id: int, kind: str) -> RegistrationResult:
    """Create the pending registration for a (customer, offering) pair.

    A paid registration for the pair is final: AlreadyRegistered. Any older
    pending row of the pair is dropped first, so exactly one pending row is
    left afterwards.
    """
    model = registration_model(kind)
    label = _kind_label(kind)
    pair = _pair(kind, customer_id, offering_id)

    try:
        with transaction.atomic():
            if pair.filter(status=Registration.Status.PAID).exists():
                raise AlreadyRegistered(
                    f"customer#{customer_id} already paid for {label}#{offering_id}",
                    public_message=f"You are already registered for this {label}.",
                )

            replaced, _ = pair.filter(status=Registration.Status.PENDING).delete()
            registration = model.objects.create(
                customer_id=customer_id,
                status=Registration.Status.PENDING,
                **{f"{model.offering_field}_id": offering_id},
            )
    except IntegrityError as exc:
        # a concurrent attempt for the same pair got its row in first
        logger.warning("Duplicate registration customer#%s %s#%s: %s", customer_id, label, offering_id, exc)
        raise AlreadyRegistered(
            str(exc),
            public_message=f"You are already registered for this {label}.",
        ) from exc
    except DatabaseError as exc:
        logger.exception("Could not create registration customer#%s %s#%s", customer_id, label, offering_id)
        raise StoreError(f"Error creating registration: {exc}") from exc

    if replaced:
        logger.info("Replaced %s stale pending registration(s) of customer#%s for %s#%s",
                    replaced, customer_id, label, offering_id)
    logger.info("Registration %s#%s created for customer#%s (%s#%s)",
                model.__name__, registration.id, customer_id, label, offering_id)
    return RegistrationResult(registration=registration, replaced_pending=replaced)


def submit_registration(customer_id: int, offering_id: int, kind: str) -> RegistrationResult:
    """Capacity check and insert as one step.

    The offering row stays locked (select_for_update) until the new pending
    row is written, so two requests for the last spot cannot both pass the
    capacity check.
    """
    label = _kind_label(kind)
    try:
        with transaction.atomic():
            offering = offering_model(kind).objects.select_for_update().filter(id=offering_id).first()
            if offering is None:
                raise OfferingNotFound(f"{label}#{offering_id} not found")

            capacity = check_capacity(
                offering.id,
                kind,
                offering.max_capacity,
                exclude_customer_id=customer_id,
            )
            logger.info("%s#%s capacity: %s, active registrations: %s",
                        label, offering.id, offering.max_capacity, capacity.count)
            if capacity.full:
                raise CapacityExceeded(
                    f"{label}#{offering.id} is full ({capacity.count}/{capacity.capacity})",
                    public_message=f"Sorry, this {label} is now full.",
                )

            return register(customer_id, offering.id, kind)
    except DatabaseError as exc:
        logger.exception("Store error while registering customer#%s for %s#%s", customer_id, label, offering_id)
        raise StoreError(f"Error registering: {exc}") from exc


def finalize(order_reference, new_status: str, provider_status: str = "", payment_id: str = "") -> FinalizeResult:
    """Apply a payment outcome to the registration behind an order reference.

    Only pending rows move: to paid, or to failed (failed rows are kept for
    the audit trail, never deleted). Paid rows are never touched, so replayed
    callbacks change nothing. A row expired by the cleanup command is revived
    by a late successful payment.
    """
    if new_status not in (Registration.Status.PAID, Registration.Status.FAILED):
        raise ValueError(f"Unsupported final status: {new_status!r}")

    kind = order_reference.kind
    label = _kind_label(kind)
    customer_id = order_reference.customer_id
    offering_id = order_reference.offering_id

    with transaction.atomic():
        rows = _pair(kind, customer_id, offering_id).select_for_update().order_by("-created_at", "-id")
        registration = rows.filter(status=Registration.Status.PENDING).first()

        if registration is None and new_status == Registration.Status.PAID:
            paid = rows.filter(status=Registration.Status.PAID).first()
            if paid is not None:
                logger.info("Order %s already paid, nothing to do", order_reference)
                return FinalizeResult(registration=paid, changed=False, previous_status=paid.status)
            registration = rows.filter(status=Registration.Status.FAILED, provider_status=EXPIRED_MARKER).first()
            if registration is not None:
                logger.warning("Late payment for expired order %s, reviving registration #%s",
                               order_reference, registration.id)

        if registration is None:
            latest = rows.first()
            if latest is None:
                logger.warning("No registration found for order %s (%s#%s, customer#%s)",
                               order_reference, label, offering_id, customer_id)
            else:
                logger.info("Order %s is already %s, ignoring %s", order_reference, latest.status, new_status)
            return FinalizeResult(registration=latest, changed=False, previous_status=latest.status if latest else "")

        previous = registration.status
        registration.status = new_status
        registration.provider_status = (provider_status or "")[:32]
        update_fields = ["status", "provider_status", "updated_at"]
        if payment_id:
            registration.payment_id = str(payment_id)[:64]
            update_fields.append("payment_id")
        if new_status == Registration.Status.PAID:
            registration.paid_at = timezone.now()
            update_fields.append("paid_at")
        registration.save(update_fields=update_fields)

    logger.info("Order %s: registration #%s %s -> %s", order_reference, registration.id, previous, new_status)
    return FinalizeResult(registration=registration, changed=True, previous_status=previous)


def latest_registration(kind: str, customer_id: int, offering_id: int) -> Registration | None:
    return _pair(kind, customer_id, offering_id).order_by("-created_at", "-id").first()


def active_count(kind: str, offering_id: int) -> int:
    return check_capacity(offering_id, kind, None).count


def expire_stale_pending(older_than: datetime, *, dry_run: bool = False) -> dict[str, int]:
    """Mark pending registrations created before `older_than` as failed.

    Returns the number of rows per offering kind.
    """
    expired = {}
    for kind, model in REGISTRATION_MODELS.items():
        qs = model.objects.filter(status=Registration.Status.PENDING, created_at__lt=older_than)
        if dry_run:
            expired[str(kind)] = qs.count()
            continue
        expired[str(kind)] = qs.update(
            status=Registration.Status.FAILED,
            provider_status=EXPIRED_MARKER,
            updated_at=timezone.now(),
        )
    return expired
