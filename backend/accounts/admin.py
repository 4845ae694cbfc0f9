from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import User


@admin.register(User)
class FarmstayUserAdmin(UserAdmin):
    list_display = ("username", "email", "display_name", "role", "is_staff")
    list_filter = UserAdmin.list_filter + ("role",)
    fieldsets = UserAdmin.fieldsets + (("Farmstay", {"fields": ("display_name", "role")}),)
