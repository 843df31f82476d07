from django.db import models


class PaymentWebhookLog(models.Model):
    """Every LiqPay callback that passed the signature check."""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    order_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    status = models.CharField(max_length=32, blank=True, default="")
    payload = models.JSONField()

    class Meta:
        verbose_name = "LiqPay callback"
        verbose_name_plural = "LiqPay callbacks"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.order_id or '—'} ({self.status or '—'})"
