from rest_framework import serializers

from .models import Payment


class NotificationSerializer(serializers.Serializer):
    """
    Business fields of a gateway notification.

    Only used once the token has been verified; unknown fields are ignored.
    """

    TerminalKey = serializers.CharField(required=False, allow_blank=True)
    OrderId = serializers.CharField(max_length=64)
    PaymentId = serializers.CharField(max_length=64)
    Status = serializers.ChoiceField(choices=Payment.STATUS_CHOICES)
    Success = serializers.BooleanField()
    Amount = serializers.IntegerField(min_value=0, required=False, default=0)
    ErrorCode = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")

    def to_payment_fields(self):
        data = self.validated_data
        return {
            "order_id": data["OrderId"],
            "amount": data["Amount"],
            "status": data["Status"],
            "success": data["Success"],
            "error_code": data["ErrorCode"],
        }
