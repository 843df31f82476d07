from django.db import models
from django.db.models import Q

from customers.models import Customer
from offerings.models import Course, Event


class OfferingKind(models.TextChoices):
    EVENT = "event", "Event"
    COURSE = "course", "Course"


class Registration(models.Model):
    """Customer's seat on an offering.

    Stored in one table per offering kind; both tables share this shape and
    are addressed through `kind` and `offering_field`.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Awaiting payment"
        PAID = "paid", "Paid"
        FAILED = "failed", "Payment failed"

    kind: str = ""
    offering_field: str = ""

    customer = models.ForeignKey(
        Customer,
        verbose_name="Customer",
        on_delete=models.PROTECT,
        related_name="%(class)ss",
    )
    status = models.CharField(
        "Status",
        max_length=12,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )

    provider_status = models.CharField("LiqPay status", max_length=32, blank=True, default="")
    payment_id = models.CharField("LiqPay payment id", max_length=64, blank=True, default="")

    created_at = models.DateTimeField("Created", auto_now_add=True)
    updated_at = models.DateTimeField("Updated", auto_now=True)
    paid_at = models.DateTimeField("Paid", null=True, blank=True)

    class Meta:
        abstract = True

    @property
    def offering(self):
        return getattr(self, self.offering_field)

    @property
    def offering_id(self) -> int:
        return getattr(self, f"{self.offering_field}_id")

    def __str__(self) -> str:
        return f"{self.kind}#{self.offering_id} ← customer#{self.customer_id} ({self.status})"


ACTIVE_STATUSES = (Registration.Status.PENDING, Registration.Status.PAID)


class EventRegistration(Registration):
    kind = OfferingKind.EVENT
    offering_field = "event"

    event = models.ForeignKey(
        Event,
        verbose_name="Event",
        on_delete=models.PROTECT,
        related_name="registrations",
    )

    class Meta:
        verbose_name = "Event registration"
        verbose_name_plural = "Event registrations"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["customer", "event"],
                condition=Q(status__in=["pending", "paid"]),
                name="uniq_active_event_registration",
            ),
        ]
        indexes = [
            models.Index(fields=["event", "status"], name="evreg_event_status_idx"),
            models.Index(fields=["status", "created_at"], name="evreg_status_created_idx"),
        ]


class CourseRegistration(Registration):
    kind = OfferingKind.COURSE
    offering_field = "course"

    course = models.ForeignKey(
        Course,
        verbose_name="Course",
        on_delete=models.PROTECT,
        related_name="registrations",
    )

    class Meta:
        verbose_name = "Course registration"
        verbose_name_plural = "Course registrations"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["customer", "course"],
                condition=Q(status__in=["pending", "paid"]),
                name="uniq_active_course_registration",
            ),
        ]
        indexes = [
            models.Index(fields=["course", "status"], name="coreg_course_status_idx"),
            models.Index(fields=["status", "created_at"], name="coreg_status_created_idx"),
        ]


REGISTRATION_MODELS = {
    OfferingKind.EVENT: EventRegistration,
    OfferingKind.COURSE: CourseRegistration,
}

OFFERING_MODELS = {
    OfferingKind.EVENT: Event,
    OfferingKind.COURSE: Course,
}


def registration_model(kind: str) -> type[Registration]:
    try:
        return REGISTRATION_MODELS[OfferingKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown offering kind: {kind!r}") from None


def offering_model(kind: str):
    try:
        return OFFERING_MODELS[OfferingKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown offering kind: {kind!r}") from None
