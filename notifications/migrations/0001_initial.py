import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("payment_id", models.CharField(max_length=64, unique=True)),
                ("order_id", models.CharField(max_length=64)),
                ("amount", models.BigIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("NEW", "New"),
                            ("AUTHORIZED", "Authorized"),
                            ("CONFIRMED", "Confirmed"),
                            ("PARTIAL_REFUNDED", "Partial refunded"),
                            ("REFUNDED", "Refunded"),
                            ("REJECTED", "Rejected"),
                            ("REVERSED", "Reversed"),
                        ],
                        default="NEW",
                        max_length=32,
                    ),
                ),
                ("success", models.BooleanField(default=False)),
                ("error_code", models.CharField(blank=True, max_length=16)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["order_id"], name="payment_order_id_idx"),
                    models.Index(fields=["status"], name="payment_status_idx"),
                ],
            },
        ),
    ]
