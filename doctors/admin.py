from django.contrib import admin
from .models import DoctorProfile


@admin.register(DoctorProfile)
class DoctorProfileAdmin(admin.ModelAdmin):
    list_display = ['get_doctor_name', 'clinic', 'preferred_session_duration', 'deleted_at']
    list_filter = ['clinic']
    search_fields = ['user__name', 'user__phone', 'clinic__name']
    readonly_fields = ['created_at', 'deleted_at']
    raw_id_fields = ['user']

    @admin.display(description='Doctor', ordering='user__name')
    def get_doctor_name(self, obj):
        return obj.user.name
