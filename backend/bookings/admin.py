from django.contrib import admin

from .models import ActivityLine, Booking, BookingTimelineEntry


class ActivityLineInline(admin.TabularInline):
    model = ActivityLine
    extra = 0
    readonly_fields = ("subtotal", "taxes", "total", "currency")


class BookingTimelineInline(admin.TabularInline):
    model = BookingTimelineEntry
    extra = 0
    readonly_fields = ("status", "note", "actor", "created_at")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("confirmation_code", "farm", "user", "status", "payment_status", "total", "currency", "created_at")
    list_filter = ("status", "payment_status", "currency")
    search_fields = ("confirmation_code", "user__email", "farm__name", "transaction_id")
    readonly_fields = ("confirmation_code", "subtotal", "taxes", "total", "transaction_id", "paid_amount", "paid_at")
    inlines = [ActivityLineInline, BookingTimelineInline]
