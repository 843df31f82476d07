from django.contrib import admin

from .models import PaymentWebhookLog


@admin.register(PaymentWebhookLog)
class PaymentWebhookLogAdmin(admin.ModelAdmin):
    list_display = ("id", "created_at", "order_id", "status")
    list_filter = ("status",)
    search_fields = ("order_id",)
    readonly_fields = ("created_at", "order_id", "status", "payload")
