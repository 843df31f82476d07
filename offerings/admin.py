from django.contrib import admin
from django.db.models import Count, Q

from registrations.models import ACTIVE_STATUSES

from .models import Course, Event


class OfferingAdmin(admin.ModelAdmin):
    readonly_fields = ("created_at",)

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.annotate(
            active_count=Count("registrations", filter=Q(registrations__status__in=ACTIVE_STATUSES)),
        )

    @admin.display(description="Spots", ordering="active_count")
    def spots(self, obj):
        if obj.max_capacity is None:
            return f"{obj.participant_count} / ∞"
        return f"{obj.participant_count} / {obj.max_capacity} ({obj.seats_left} left)"


@admin.register(Event)
class EventAdmin(OfferingAdmin):
    list_display = ("id", "name", "date", "time", "price", "spots")
    list_filter = ("date",)
    search_fields = ("name", "details")
    ordering = ("-date", "time")


@admin.register(Course)
class CourseAdmin(OfferingAdmin):
    list_display = ("id", "name", "type", "day_of_week", "time", "start_date", "instructor", "price", "spots")
    list_filter = ("type", "day_of_week", "location")
    search_fields = ("name", "type", "instructor", "location")
    ordering = ("-start_date", "time")
