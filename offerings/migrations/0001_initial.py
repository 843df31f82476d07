from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True
    dependencies = []
    operations = [
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=160, verbose_name="Name")),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=10, verbose_name="Price, UAH")),
                ("max_capacity", models.PositiveIntegerField(blank=True, null=True, verbose_name="Max capacity")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created")),
                ("date", models.DateField(db_index=True, verbose_name="Date")),
                ("time", models.TimeField(blank=True, null=True, verbose_name="Time")),
                ("duration_min", models.PositiveIntegerField(default=120, verbose_name="Duration, min")),
                ("details", models.TextField(blank=True, default="", verbose_name="Details")),
            ],
            options={
                "verbose_name": "Event",
                "verbose_name_plural": "Events",
                "ordering": ["date", "time"],
            },
        ),
        migrations.CreateModel(
            name="Course",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=160, verbose_name="Name")),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=10, verbose_name="Price, UAH")),
                ("max_capacity", models.PositiveIntegerField(blank=True, null=True, verbose_name="Max capacity")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created")),
                ("type", models.CharField(db_index=True, help_text="e.g. beginner, advanced", max_length=40, verbose_name="Level")),
                ("day_of_week", models.CharField(
                    choices=[
                        ("Monday", "Monday"),
                        ("Tuesday", "Tuesday"),
                        ("Wednesday", "Wednesday"),
                        ("Thursday", "Thursday"),
                        ("Friday", "Friday"),
                        ("Saturday", "Saturday"),
                        ("Sunday", "Sunday"),
                    ],
                    max_length=16,
                    verbose_name="Day of week",
                )),
                ("time", models.TimeField(verbose_name="Time")),
                ("start_date", models.DateField(db_index=True, verbose_name="Start date")),
                ("end_date", models.DateField(blank=True, null=True, verbose_name="End date")),
                ("instructor", models.CharField(blank=True, default="", max_length=120, verbose_name="Instructor")),
                ("location", models.CharField(blank=True, default="", max_length=160, verbose_name="Location")),
            ],
            options={
                "verbose_name": "Course",
                "verbose_name_plural": "Courses",
                "ordering": ["start_date", "time"],
            },
        ),
    ]
