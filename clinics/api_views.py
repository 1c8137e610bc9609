import calendar
import logging

from django.db.models import Count, Q
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from appointments.models import Appointment
from doctors.models import DoctorProfile
from schedules.exceptions import OccupancyError, SchedulingError
from schedules.models import OccupancyEntity
from schedules.services import calculate_occupancy

from .models import Clinic, Room
from .serializers import DashboardQuerySerializer, RoomSerializer

logger = logging.getLogger(__name__)


def _get_clinic_or_404(clinic_id):
    try:
        return Clinic.objects.alive().get(id=clinic_id), None
    except Clinic.DoesNotExist:
        return None, Response({"detail": "Clinic not found."}, status=status.HTTP_404_NOT_FOUND)


class ClinicRoomListAPIView(APIView):
    """
    GET  /clinics/api/<clinic_id>/rooms/   live rooms (active and inactive)
    POST /clinics/api/<clinic_id>/rooms/   create a room
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, clinic_id):
        clinic, error = _get_clinic_or_404(clinic_id)
        if error:
            return error

        rooms = Room.objects.alive().filter(clinic=clinic).order_by("name")
        return Response(
            {
                "active_count": Room.count_active_by_clinic(clinic.id),
                "results": RoomSerializer(rooms, many=True).data,
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request, clinic_id):
        clinic, error = _get_clinic_or_404(clinic_id)
        if error:
            return error

        serializer = RoomSerializer(data=request.data, context={"clinic": clinic})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        room = serializer.save(clinic=clinic)
        logger.info("[ROOMS] Created room_id=%s clinic_id=%s name=%s", room.id, clinic.id, room.name)
        return Response(RoomSerializer(room).data, status=status.HTTP_201_CREATED)


class ClinicRoomDetailAPIView(APIView):
    """DELETE /clinics/api/<clinic_id>/rooms/<room_id>/  soft-delete a room"""

    permission_classes = [IsAuthenticated]

    def delete(self, request, clinic_id, room_id):
        if not Room.belongs_to_clinic(room_id, clinic_id):
            return Response({"detail": "Room not found in this clinic."}, status=status.HTTP_404_NOT_FOUND)

        room = Room.objects.get(id=room_id)
        room.soft_delete()
        logger.info("[ROOMS] Soft-deleted room_id=%s clinic_id=%s", room_id, clinic_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ClinicDashboardAPIView(APIView):
    """
    GET /clinics/api/<clinic_id>/dashboard/?start_date=YYYY-MM-DD&end_date=YYYY-MM-DD

    Headline numbers for a clinic. When occupancy cannot be computed the
    dashboard still renders: occupancy_rate is reported as 0 and
    occupancy_available as false.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, clinic_id):
        clinic, error = _get_clinic_or_404(clinic_id)
        if error:
            return error

        serializer = DashboardQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        today = timezone.localdate()
        start_date = serializer.validated_data.get("start_date") or today.replace(day=1)
        end_date = serializer.validated_data.get("end_date") or today.replace(
            day=calendar.monthrange(today.year, today.month)[1]
        )
        if start_date > end_date:
            return Response(
                {"end_date": "end_date must be on or after start_date."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        practitioner_ids = DoctorProfile.objects.for_clinic(clinic.id).values("user_id")
        counts = Appointment.objects.alive().filter(
            doctor_id__in=practitioner_ids,
            appointment_date__range=(start_date, end_date),
        ).aggregate(
            total=Count("id", filter=~Q(status=Appointment.Status.CANCELLED)),
            cancelled=Count("id", filter=Q(status=Appointment.Status.CANCELLED)),
            completed=Count("id", filter=Q(status=Appointment.Status.COMPLETED)),
        )

        occupancy_available = True
        try:
            occupancy = calculate_occupancy(OccupancyEntity.CLINIC, clinic.id, start_date, end_date)
            occupancy_rate = occupancy["occupancy_rate"]
        except OccupancyError as e:
            logger.error("[DASHBOARD] Occupancy unavailable for clinic_id=%s: %s", clinic.id, e.message)
            occupancy_rate, occupancy_available = 0, False
        except SchedulingError as e:
            return Response(e.as_response_data(), status=e.status_code)

        return Response(
            {
                "clinic": {"id": clinic.id, "name": clinic.name},
                "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
                "total_practitioners": DoctorProfile.objects.for_clinic(clinic.id).count(),
                "active_rooms": Room.count_active_by_clinic(clinic.id),
                "total_appointments": counts["total"],
                "completed_appointments": counts["completed"],
                "cancelled_appointments": counts["cancelled"],
                "occupancy_rate": occupancy_rate,
                "occupancy_available": occupancy_available,
            },
            status=status.HTTP_200_OK,
        )
