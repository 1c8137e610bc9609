from django.urls import path
from . import api_views

app_name = 'clinics'

urlpatterns = [
    path('api/<int:clinic_id>/dashboard/', api_views.ClinicDashboardAPIView.as_view(), name='api_dashboard'),
    path('api/<int:clinic_id>/rooms/', api_views.ClinicRoomListAPIView.as_view(), name='api_rooms'),
    path(
        'api/<int:clinic_id>/rooms/<int:room_id>/',
        api_views.ClinicRoomDetailAPIView.as_view(),
        name='api_room_detail',
    ),
]
