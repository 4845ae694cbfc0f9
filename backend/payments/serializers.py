from rest_framework import serializers

from payments.models import PaymentRecord


class PaymentIntentRequestSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()
    currency = serializers.RegexField(r"^[A-Za-z]{3}$", required=False)


class PaymentRecordSerializer(serializers.ModelSerializer):
    confirmation_code = serializers.CharField(source="booking.confirmation_code", read_only=True)
    farm_name = serializers.CharField(source="farm.name", read_only=True)

    class Meta:
        model = PaymentRecord
        fields = [
            "id",
            "booking",
            "confirmation_code",
            "farm",
            "farm_name",
            "provider",
            "provider_transaction_id",
            "currency",
            "total_amount",
            "charged_amount",
            "charged_currency",
            "status",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields
