from django.contrib import admin

from .models import Farm, FarmStatistics


@admin.register(Farm)
class FarmAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "owner", "status", "is_active")
    list_filter = ("status", "is_active")
    search_fields = ("name", "slug", "contact_email", "owner__email")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(FarmStatistics)
class FarmStatisticsAdmin(admin.ModelAdmin):
    list_display = ("farm", "total_bookings", "total_revenue", "updated_at")
    readonly_fields = ("total_bookings", "total_revenue", "updated_at")
    search_fields = ("farm__name",)
