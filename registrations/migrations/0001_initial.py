import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True
    dependencies = [
        ("customers", "0001_initial"),
        ("offerings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="EventRegistration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(
                    choices=[("pending", "Awaiting payment"), ("paid", "Paid"), ("failed", "Payment failed")],
                    db_index=True,
                    default="pending",
                    max_length=12,
                    verbose_name="Status",
                )),
                ("provider_status", models.CharField(blank=True, default="", max_length=32, verbose_name="LiqPay status")),
                ("payment_id", models.CharField(blank=True, default="", max_length=64, verbose_name="LiqPay payment id")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated")),
                ("paid_at", models.DateTimeField(blank=True, null=True, verbose_name="Paid")),
                ("customer", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="eventregistrations",
                    to="customers.customer",
                    verbose_name="Customer",
                )),
                ("event", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="registrations",
                    to="offerings.event",
                    verbose_name="Event",
                )),
            ],
            options={
                "verbose_name": "Event registration",
                "verbose_name_plural": "Event registrations",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["event", "status"], name="evreg_event_status_idx"),
                    models.Index(fields=["status", "created_at"], name="evreg_status_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "paid"])),
                        fields=("customer", "event"),
                        name="uniq_active_event_registration",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CourseRegistration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(
                    choices=[("pending", "Awaiting payment"), ("paid", "Paid"), ("failed", "Payment failed")],
                    db_index=True,
                    default="pending",
                    max_length=12,
                    verbose_name="Status",
                )),
                ("provider_status", models.CharField(blank=True, default="", max_length=32, verbose_name="LiqPay status")),
                ("payment_id", models.CharField(blank=True, default="", max_length=64, verbose_name="LiqPay payment id")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated")),
                ("paid_at", models.DateTimeField(blank=True, null=True, verbose_name="Paid")),
                ("customer", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="courseregistrations",
                    to="customers.customer",
                    verbose_name="Customer",
                )),
                ("course", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="registrations",
                    to="offerings.course",
                    verbose_name="Course",
                )),
            ],
            options={
                "verbose_name": "Course registration",
                "verbose_name_plural": "Course registrations",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["course", "status"], name="coreg_course_status_idx"),
                    models.Index(fields=["status", "created_at"], name="coreg_status_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "paid"])),
                        fields=("customer", "course"),
                        name="uniq_active_course_registration",
                    ),
                ],
            },
        ),
    ]
