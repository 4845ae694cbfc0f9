from django.contrib import admin

from .models import Activity


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ("name", "farm", "category", "adult_price", "currency", "min_participants", "max_participants", "is_active")
    list_filter = ("category", "is_active", "currency")
    search_fields = ("name", "farm__name")
