from rest_framework import serializers

from activities.pricing import Participants
from bookings.models import ActivityLine, Booking, BookingTimelineEntry
from bookings.services.ledger import LineRequest


class ParticipantsSerializer(serializers.Serializer):
    adults = serializers.IntegerField(min_value=0, required=False, default=0)
    children = serializers.IntegerField(min_value=0, required=False, default=0)
    seniors = serializers.IntegerField(min_value=0, required=False, default=0)


class TimeSlotSerializer(serializers.Serializer):
    start_time = serializers.TimeField(required=False, allow_null=True)
    end_time = serializers.TimeField(required=False, allow_null=True)


class ActivityLineInputSerializer(serializers.Serializer):
    activity_id = serializers.IntegerField()
    date = serializers.DateField()
    participants = ParticipantsSerializer()
    time_slot = TimeSlotSerializer(required=False)

    def to_line_request(self, data) -> LineRequest:
        slot = data.get("time_slot") or {}
        return LineRequest(
            activity_id=data["activity_id"],
            date=data["date"],
            participants=Participants(**data["participants"]),
            start_time=slot.get("start_time"),
            end_time=slot.get("end_time"),
        )


def line_requests_from(validated_lines) -> list[LineRequest]:
    builder = ActivityLineInputSerializer()
    return [builder.to_line_request(line) for line in validated_lines]


class BookingCreateSerializer(serializers.Serializer):
    farm_id = serializers.IntegerField()
    activities = ActivityLineInputSerializer(many=True, allow_empty=False)
    contact_info = serializers.DictField(required=False, default=dict)
    group_details = serializers.DictField(required=False, default=dict)
    special_requests = serializers.CharField(required=False, allow_blank=True, default="")


class BookingUpdateSerializer(serializers.Serializer):
    activities = ActivityLineInputSerializer(many=True, allow_empty=False, required=False)
    contact_info = serializers.DictField(required=False)
    group_details = serializers.DictField(required=False)
    special_requests = serializers.CharField(required=False, allow_blank=True)


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class BookingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Booking.COMPLETED, Booking.NO_SHOW, Booking.CANCELLED])
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ActivityLineSerializer(serializers.ModelSerializer):
    activity_name = serializers.CharField(source="activity.name", read_only=True)
    participants = serializers.SerializerMethodField()

    class Meta:
        model = ActivityLine
        fields = [
            "position",
            "activity",
            "activity_name",
            "date",
            "start_time",
            "end_time",
            "participants",
            "subtotal",
            "taxes",
            "total",
            "currency",
        ]
        read_only_fields = fields

    def get_participants(self, obj: ActivityLine):
        return {"adults": obj.adults, "children": obj.children, "seniors": obj.seniors}


class BookingTimelineEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingTimelineEntry
        fields = ["status", "note", "actor", "created_at"]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    farm_name = serializers.CharField(source="farm.name", read_only=True)
    lines = ActivityLineSerializer(many=True, read_only=True)
    pricing = serializers.SerializerMethodField()
    payment = serializers.SerializerMethodField()
    cancellation = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "confirmation_code",
            "status",
            "user",
            "farm",
            "farm_name",
            "lines",
            "pricing",
            "payment",
            "cancellation",
            "contact_info",
            "group_details",
            "special_requests",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_pricing(self, obj: Booking):
        return {
            "subtotal": f"{obj.subtotal:.2f}",
            "taxes": f"{obj.taxes:.2f}",
            "total": f"{obj.total:.2f}",
            "currency": obj.currency,
        }

    def get_payment(self, obj: Booking):
        return {
            "status": obj.payment_status,
            "payment_intent_id": obj.payment_intent_id,
            "transaction_id": obj.transaction_id,
            "paid_amount": f"{obj.paid_amount:.2f}" if obj.paid_amount is not None else None,
            "paid_at": obj.paid_at.isoformat() if obj.paid_at else None,
        }

    def get_cancellation(self, obj: Booking):
        if obj.cancelled_at is None:
            return None
        return {
            "reason": obj.cancellation_reason,
            "cancelled_by": obj.cancelled_by,
            "cancelled_at": obj.cancelled_at.isoformat(),
        }


class BookingDetailSerializer(BookingSerializer):
    timeline = BookingTimelineEntrySerializer(many=True, read_only=True)

    class Meta(BookingSerializer.Meta):
        fields = BookingSerializer.Meta.fields + ["timeline"]
        read_only_fields = fields
