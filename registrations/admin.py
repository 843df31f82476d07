from django.contrib import admin

from .models import CourseRegistration, EventRegistration


class RegistrationAdmin(admin.ModelAdmin):
    list_filter = ("status", "created_at")
    search_fields = ("customer__email", "customer__first_name", "customer__last_name", "payment_id")
    autocomplete_fields = ("customer",)
    readonly_fields = ("created_at", "updated_at", "paid_at", "provider_status", "payment_id")
    ordering = ("-created_at",)
    list_select_related = ("customer",)


@admin.register(EventRegistration)
class EventRegistrationAdmin(RegistrationAdmin):
    list_display = ("id", "event", "customer", "status", "provider_status", "created_at", "paid_at")
    list_select_related = ("customer", "event")


@admin.register(CourseRegistration)
class CourseRegistrationAdmin(RegistrationAdmin):
    list_display = ("id", "course", "customer", "status", "provider_status", "created_at", "paid_at")
    list_select_related = ("customer", "course")
