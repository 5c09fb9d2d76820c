import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="InventoryIntegration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("provider", models.CharField(choices=[("SQUARE", "Square")], default="SQUARE", max_length=32)),
                (
                    "environment",
                    models.CharField(
                        choices=[("PRODUCTION", "Production"), ("SANDBOX", "Sandbox")],
                        default="PRODUCTION",
                        max_length=32,
                    ),
                ),
                ("display_name", models.CharField(default="Square", max_length=255)),
                ("access_token", models.TextField(blank=True)),
                ("last_success_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
