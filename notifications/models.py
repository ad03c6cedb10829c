import uuid
from django.db import models
from django.utils import timezone


class Payment(models.Model):
    STATUS_CHOICES = [
        ("NEW", "New"),
        ("AUTHORIZED", "Authorized"),
        ("CONFIRMED", "Confirmed"),
        ("PARTIAL_REFUNDED", "Partial refunded"),
        ("REFUNDED", "Refunded"),
        ("REJECTED", "Rejected"),
        ("REVERSED", "Reversed"),
    ]

    # Lifecycle position of each status. A notification whose status is not
    # past the stored one arrived out of order and is ignored.
    STATUS_RANK = {
        "NEW": 0,
        "AUTHORIZED": 1,
        "CONFIRMED": 2,
        "REJECTED": 2,
        "REVERSED": 2,
        "PARTIAL_REFUNDED": 3,
        "REFUNDED": 4,
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment_id = models.CharField(max_length=64, unique=True)  # gateway PaymentId
    order_id = models.CharField(max_length=64)
    amount = models.BigIntegerField(default=0)  # minor currency units, as sent by the gateway
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default="NEW")
    success = models.BooleanField(default=False)
    error_code = models.CharField(max_length=16, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["order_id"], name="payment_order_id_idx"),
            models.Index(fields=["status"], name="payment_status_idx"),
        ]

    def __str__(self):
        return f"Payment {self.payment_id} for order {self.order_id} ({self.status})"

    def is_stale(self, status):
        """True when ``status`` does not move this payment forward."""
        return self.STATUS_RANK[status] <= self.STATUS_RANK.get(self.status, 0)
