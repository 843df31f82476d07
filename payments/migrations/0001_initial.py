from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True
    dependencies = []
    operations = [
        migrations.CreateModel(
            name="PaymentWebhookLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("order_id", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("status", models.CharField(blank=True, default="", max_length=32)),
                ("payload", models.JSONField()),
            ],
            options={
                "verbose_name": "LiqPay callback",
                "verbose_name_plural": "LiqPay callbacks",
                "ordering": ["-created_at"],
            },
        ),
    ]
