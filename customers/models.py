from django.db import models


class Customer(models.Model):
    first_name = models.CharField("First name", max_length=120)
    last_name = models.CharField("Last name", max_length=120)
    # natural key: registrations look customers up by it
    email = models.EmailField("E-mail", unique=True)
    phone = models.CharField("Phone", max_length=32, blank=True, default="")
    instagram = models.CharField("Instagram", max_length=64, blank=True, default="")

    created_at = models.DateTimeField("Created", auto_now_add=True)

    class Meta:
        verbose_name = "Customer"
        verbose_name_plural = "Customers"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email
