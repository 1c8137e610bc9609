"""
URL configuration for clinic_scheduler project.

Every API lives under its owning app:
    /schedules/     working hours, availability, room schedules, occupancy
    /clinics/       rooms and the clinic dashboard
    /appointments/  booking, rescheduling and cancellation
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("schedules/", include("schedules.urls")),
    path("clinics/", include("clinics.urls")),
    path("appointments/", include("appointments.urls")),
]
