from datetime import timedelta

from django.conf import settings
from django.db.models import Count, Q
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from registrations.models import ACTIVE_STATUSES

from .models import Course, Event


MAX_UPCOMING_DAYS = 365


def _with_counts(qs):
    return qs.annotate(
        active_count=Count("registrations", filter=Q(registrations__status__in=ACTIVE_STATUSES)),
    )


def _event_row(e: Event) -> dict:
    return {
        "id": e.id,
        "type": "event",
        "name": e.name,
        "date": e.date.isoformat(),
        "time": e.time.strftime("%H:%M") if e.time else None,
        "duration_min": e.duration_min,
        "details": e.details,
        "price": str(e.price),
        "max_capacity": e.max_capacity,
        "participant_count": e.participant_count,
        "seats_left": e.seats_left,
        "is_full": e.is_full,
    }


def _course_row(c: Course) -> dict:
    return {
        "id": c.id,
        "type": "course",
        "name": c.name,
        "level": c.type,
        "day_of_week": c.day_of_week,
        "time": c.time.strftime("%H:%M"),
        "start_date": c.start_date.isoformat(),
        "end_date": c.end_date.isoformat() if c.end_date else None,
        "instructor": c.instructor,
        "location": c.location,
        "price": str(c.price),
        "max_capacity": c.max_capacity,
        "participant_count": c.participant_count,
        "seats_left": c.seats_left,
        "is_full": c.is_full,
    }


@require_GET
def upcoming(request):
    """Events and courses starting within the next `days` days, with spot counts."""
    default_days = int(getattr(settings, "IMPROV_UPCOMING_DAYS", 14) or 14)
    raw_days = (request.GET.get("days") or "").strip()
    days = int(raw_days) if raw_days.isdigit() else default_days
    days = min(max(days, 0), MAX_UPCOMING_DAYS)

    today = timezone.localdate()
    until = today + timedelta(days=days)

    events = _with_counts(Event.objects.filter(date__gte=today, date__lte=until)).order_by("date", "time")
    courses = _with_counts(Course.objects.filter(start_date__gte=today, start_date__lte=until))
    level = (request.GET.get("level") or "").strip()
    if level:
        courses = courses.filter(type=level)
    courses = courses.order_by("start_date", "time")

    return JsonResponse({
        "events": [_event_row(e) for e in events],
        "courses": [_course_row(c) for c in courses],
    })
