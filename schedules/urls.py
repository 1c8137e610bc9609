from django.urls import path
from . import api_views

app_name = "schedules"

urlpatterns = [
    # --- Working hours ---
    path(
        "api/working-hours/<str:kind>/<int:entity_id>/",
        api_views.WorkingHoursAPIView.as_view(),
        name="api_working_hours",
    ),
    path(
        "api/working-hours/<str:kind>/<int:entity_id>/overrides/",
        api_views.DateOverrideAPIView.as_view(),
        name="api_date_overrides",
    ),
    path(
        "api/working-hours/<str:kind>/<int:entity_id>/overrides/<str:override_date>/",
        api_views.DateOverrideDetailAPIView.as_view(),
        name="api_date_override_detail",
    ),
    path(
        "api/working-hours/<str:kind>/<int:entity_id>/effective/",
        api_views.EffectiveScheduleAPIView.as_view(),
        name="api_effective_schedule",
    ),
    # --- Availability ---
    path(
        "api/availability/slots/",
        api_views.AvailableSlotsAPIView.as_view(),
        name="api_available_slots",
    ),
    path(
        "api/availability/rooms/",
        api_views.AvailableRoomsAPIView.as_view(),
        name="api_available_rooms",
    ),
    # --- Room day views ---
    path(
        "api/rooms/<int:room_id>/schedule/",
        api_views.RoomScheduleAPIView.as_view(),
        name="api_room_schedule",
    ),
    path(
        "api/clinics/<int:clinic_id>/rooms/schedule/",
        api_views.ClinicRoomsScheduleAPIView.as_view(),
        name="api_clinic_rooms_schedule",
    ),
    # --- Occupancy ---
    path(
        "api/occupancy/<str:kind>/<int:entity_id>/",
        api_views.OccupancyAPIView.as_view(),
        name="api_occupancy",
    ),
]
