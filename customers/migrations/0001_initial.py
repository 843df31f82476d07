from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True
    dependencies = []
    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("first_name", models.CharField(max_length=120, verbose_name="First name")),
                ("last_name", models.CharField(max_length=120, verbose_name="Last name")),
                ("email", models.EmailField(max_length=254, unique=True, verbose_name="E-mail")),
                ("phone", models.CharField(blank=True, default="", max_length=32, verbose_name="Phone")),
                ("instagram", models.CharField(blank=True, default="", max_length=64, verbose_name="Instagram")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created")),
            ],
            options={
                "verbose_name": "Customer",
                "verbose_name_plural": "Customers",
                "ordering": ["-created_at"],
            },
        ),
    ]
