from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.capabilities import caller_for
from bookings.serializers import (
    BookingCancelSerializer,
    BookingCreateSerializer,
    BookingDetailSerializer,
    BookingSerializer,
    BookingStatusSerializer,
    BookingUpdateSerializer,
    line_requests_from,
)
from bookings.services import ledger
from core.api import EngineErrorMixin


class BookingViewSet(EngineErrorMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status", "farm", "payment_status"]
    ordering_fields = ["created_at", "total"]

    def get_queryset(self):
        return ledger.bookings_for_caller(caller_for(self.request.user))

    def _detail_response(self, booking, *, status_code=status.HTTP_200_OK):
        booking = ledger.get_booking_for_caller(caller_for(self.request.user), booking.pk)
        return Response(BookingDetailSerializer(booking).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = ledger.create_booking(
            caller_for(request.user),
            farm_id=data["farm_id"],
            lines=line_requests_from(data["activities"]),
            contact_info=data.get("contact_info"),
            group_details=data.get("group_details"),
            special_requests=data.get("special_requests", ""),
        )
        return self._detail_response(booking, status_code=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        booking = ledger.get_booking_for_caller(caller_for(request.user), pk)
        return Response(BookingDetailSerializer(booking).data)

    def partial_update(self, request, pk=None):
        serializer = BookingUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        lines = data.get("activities")
        booking = ledger.modify_booking(
            caller_for(request.user),
            pk,
            contact_info=data.get("contact_info"),
            group_details=data.get("group_details"),
            special_requests=data.get("special_requests"),
            lines=line_requests_from(lines) if lines is not None else None,
        )
        return self._detail_response(booking)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = ledger.cancel_booking(
            caller_for(request.user),
            pk,
            reason=serializer.validated_data["reason"],
        )
        return Response(
            {
                "detail": "Booking cancelled successfully.",
                "booking": BookingSerializer(booking).data,
            }
        )

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = ledger.transition_status(
            caller_for(request.user),
            pk,
            serializer.validated_data["status"],
            reason=serializer.validated_data["reason"],
        )
        return self._detail_response(booking)

    @action(detail=False, methods=["get"], url_path=r"confirmation/(?P<code>[A-Za-z0-9]+)")
    def confirmation(self, request, code=None):
        booking = ledger.find_by_confirmation_code(caller_for(request.user), code)
        return Response(BookingDetailSerializer(booking).data)
