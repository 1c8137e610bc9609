from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    list_display = ["name", "phone", "role", "is_active", "has_doctor_profile"]
    list_filter = ["role", "is_active", "is_staff"]
    search_fields = ["name", "phone", "email"]
    ordering = ["name"]

    fieldsets = (
        (None, {"fields": ("phone", "password")}),
        ("Profile", {"fields": ("name", "email", "role")}),
        ("Access", {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")}),
        ("Activity", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {
            "classes": ("wide",),
            "fields": ("phone", "name", "role", "password1", "password2"),
        }),
    )

    @admin.display(boolean=True, description="Scheduling profile")
    def has_doctor_profile(self, obj):
        return obj.is_practitioner and hasattr(obj, "doctor_profile")
