import logging

from django.core.exceptions import ImproperlyConfigured
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.capabilities import caller_for
from activities.pricing import from_minor_units
from core.api import EngineErrorMixin
from core.exceptions import SignatureInvalid
from payments.models import PaymentRecord
from payments.serializers import PaymentIntentRequestSerializer, PaymentRecordSerializer
from payments.services.gateway import start_payment
from payments.services.webhooks import handle_webhook

logger = logging.getLogger(__name__)


class PaymentIntentView(EngineErrorMixin, APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PaymentIntentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking, intent = start_payment(
            caller_for(request.user),
            serializer.validated_data["booking_id"],
            currency=serializer.validated_data.get("currency"),
        )
        return Response(
            {
                "booking_id": booking.pk,
                "payment_intent_id": intent.id,
                "client_secret": intent.client_secret,
                "amount": f"{from_minor_units(intent.amount, intent.currency):.2f}",
                "amount_minor": intent.amount,
                "currency": intent.currency,
            },
            status=status.HTTP_201_CREATED,
        )


class PaymentHistoryView(generics.ListAPIView):
    serializer_class = PaymentRecordSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return (
            PaymentRecord.objects.filter(user=self.request.user)
            .select_related("booking", "farm")
            .order_by("-created_at")
        )


class PaymentWebhookView(APIView):
    """Receive payment provider events. Every authenticated delivery is acknowledged."""

    permission_classes: list = []
    authentication_classes: list = []

    def post(self, request, *args, **kwargs):
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE")
        try:
            outcome = handle_webhook(payload, sig_header)
        except ImproperlyConfigured as exc:
            logger.error("Payment webhook not configured: %s", exc)
            return Response(status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        except SignatureInvalid as exc:
            logger.warning("Rejected payment webhook: %s", exc.detail)
            return Response(exc.as_payload(), status=exc.status_code)

        logger.debug("Payment webhook handled with outcome %s", outcome)
        return Response({"received": True}, status=status.HTTP_200_OK)
