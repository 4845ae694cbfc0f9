from django.contrib import admin

from .models import PaymentEvent, PaymentRecord


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = (
        "provider_transaction_id",
        "booking",
        "farm",
        "total_amount",
        "currency",
        "charged_amount",
        "charged_currency",
        "commission_amount",
        "payout_status",
        "status",
    )
    list_filter = ("status", "payout_status", "commission_status", "currency")
    search_fields = ("provider_transaction_id", "booking__confirmation_code", "farm__name")
    readonly_fields = ("booking_applied_at", "stats_applied_at", "created_at", "updated_at")


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    list_display = ("provider_event_id", "event_type", "status", "attempts", "received_at", "processed_at")
    list_filter = ("status", "event_type")
    search_fields = ("provider_event_id",)
    readonly_fields = ("payload", "received_at", "processed_at", "last_error")
