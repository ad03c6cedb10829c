from django.conf import settings
from django.db import transaction
from django.http import HttpResponse
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Payment
from .serializers import NotificationSerializer
from .tokens import InvalidArgument, MalformedInput, TokenValidator
import logging

logger = logging.getLogger(__name__)


# The gateway keeps redelivering a notification until it receives this exact body.
ACKNOWLEDGEMENT = "OK"


def acknowledge():
    return HttpResponse(ACKNOWLEDGEMENT, content_type="text/plain", status=status.HTTP_200_OK)


class TinkoffNotificationView(APIView):
    """
    Handle Tinkoff payment notifications:
    - Verify the Token field against the terminal password
    - Ensure idempotency (a redelivered or out-of-order status is acknowledged without side effects)
    - Update the payment status
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]

    def post(self, request, *args, **kwargs):
        payload = request.data
        if not isinstance(payload, dict):
            logger.error("Tinkoff notification body is not a JSON object")
            return Response({"error": "Invalid JSON payload"}, status=status.HTTP_400_BAD_REQUEST)

        # 1. Verify the token
        try:
            validator = TokenValidator(settings.TINKOFF_TERMINAL_PASSWORD)
        except InvalidArgument:
            logger.error("TINKOFF_TERMINAL_PASSWORD is not configured, refusing notification")
            return Response(
                {"error": "Notification endpoint is not configured"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        try:
            verified = validator.verify(payload)
        except MalformedInput as exc:
            logger.error(f"Malformed Tinkoff notification: {exc}")
            return Response({"error": "Malformed notification payload"}, status=status.HTTP_400_BAD_REQUEST)

        if not verified:
            logger.error(
                f"Invalid token in Tinkoff notification for order {payload.get('OrderId')}, "
                f"payment {payload.get('PaymentId')}"
            )
            return Response({"error": "Invalid token"}, status=status.HTTP_403_FORBIDDEN)

        terminal_key = settings.TINKOFF_TERMINAL_KEY
        if terminal_key and payload.get("TerminalKey") != terminal_key:
            logger.error(f"Tinkoff notification for unknown terminal {payload.get('TerminalKey')}")
            return Response({"error": "Unknown terminal"}, status=status.HTTP_403_FORBIDDEN)

        # 2. Extract the fields we store
        serializer = NotificationSerializer(data=payload)
        serializer.is_valid(raise_exception=True)
        payment_id = serializer.validated_data["PaymentId"]
        fields = serializer.to_payment_fields()

        # 3. Process payment atomically
        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(payment_id=payment_id).first()

            if payment and payment.is_stale(fields["status"]):
                # Redelivery, or an older status arriving late.
                logger.info(f"Payment {payment_id} already in status {payment.status}, ignoring {fields['status']}.")
                return acknowledge()

            if payment is None:
                payment = Payment(payment_id=payment_id)
            for name, value in fields.items():
                setattr(payment, name, value)
            payment.save()
            logger.info(f"Payment {payment_id} moved to status {payment.status}")

        return acknowledge()
