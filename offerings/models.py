from django.db import models


class Offering(models.Model):
    """Something a customer can register and pay for."""

    name = models.CharField("Name", max_length=160)
    price = models.DecimalField("Price, UAH", max_digits=10, decimal_places=2, default=0)
    # empty means unlimited
    max_capacity = models.PositiveIntegerField("Max capacity", null=True, blank=True)

    created_at = models.DateTimeField("Created", auto_now_add=True)

    class Meta:
        abstract = True

    @property
    def participant_count(self) -> int:
        from registrations.models import ACTIVE_STATUSES

        # list views annotate active_count instead of querying per row
        annotated = getattr(self, "active_count", None)
        if annotated is not None:
            return annotated
        return self.registrations.filter(status__in=ACTIVE_STATUSES).count()

    @property
    def seats_left(self) -> int | None:
        if self.max_capacity is None:
            return None
        return max(0, int(self.max_capacity) - self.participant_count)

    @property
    def is_full(self) -> bool:
        left = self.seats_left
        return left is not None and left <= 0


class Event(Offering):
    """Single show, jam or workshop."""

    date = models.DateField("Date", db_index=True)
    time = models.TimeField("Time", null=True, blank=True)
    duration_min = models.PositiveIntegerField("Duration, min", default=120)
    details = models.TextField("Details", blank=True, default="")

    class Meta:
        verbose_name = "Event"
        verbose_name_plural = "Events"
        ordering = ["date", "time"]

    def __str__(self) -> str:
        return f"{self.name} — {self.date:%d.%m.%Y}"


class Course(Offering):
    """Recurring weekly class."""

    class DayOfWeek(models.TextChoices):
        MONDAY = "Monday", "Monday"
        TUESDAY = "Tuesday", "Tuesday"
        WEDNESDAY = "Wednesday", "Wednesday"
        THURSDAY = "Thursday", "Thursday"
        FRIDAY = "Friday", "Friday"
        SATURDAY = "Saturday", "Saturday"
        SUNDAY = "Sunday", "Sunday"

    type = models.CharField("Level", max_length=40, db_index=True, help_text="e.g. beginner, advanced")
    day_of_week = models.CharField("Day of week", max_length=16, choices=DayOfWeek.choices)
    time = models.TimeField("Time")
    start_date = models.DateField("Start date", db_index=True)
    end_date = models.DateField("End date", null=True, blank=True)
    instructor = models.CharField("Instructor", max_length=120, blank=True, default="")
    location = models.CharField("Location", max_length=160, blank=True, default="")

    class Meta:
        verbose_name = "Course"
        verbose_name_plural = "Courses"
        ordering = ["start_date", "time"]

    def __str__(self) -> str:
        return f"{self.name} — every {self.day_of_week} {self.time:%H:%M}"
