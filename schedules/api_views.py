import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .domain import parse_date
from .exceptions import SchedulingError
from .models import OccupancyEntity
from .resolvers import resolve_effective_schedule
from .serializers import (
    AvailableRoomsQuerySerializer,
    AvailableSlotsQuerySerializer,
    DateOverrideOutputSerializer,
    DateOverrideSerializer,
    DateQuerySerializer,
    OccupancyQuerySerializer,
    WorkingHoursSerializer,
    WorkingHoursUpdateSerializer,
)
from .services.room_service import room_summary

logger = logging.getLogger(__name__)


class SchedulingAPIView(APIView):
    """
    APIView that renders SchedulingError subclasses with their own status
    code, and turns anything unexpected into a logged, generic 500.
    """

    permission_classes = [IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, SchedulingError):
            return Response(exc.as_response_data(), status=exc.status_code)
        if not isinstance(exc, APIException):
            logger.exception("[SCHEDULE] Unexpected error in %s", self.__class__.__name__)
            return Response(
                {"detail": "Internal server error.", "code": "internal_error"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return super().handle_exception(exc)


def _validated_query(serializer_class, request):
    serializer = serializer_class(data=request.query_params)
    if not serializer.is_valid():
        return None, Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    return serializer.validated_data, None


# ── Working hours ────────────────────────────────────────────────────


class WorkingHoursAPIView(SchedulingAPIView):
    """
    GET    /schedules/api/working-hours/<kind>/<entity_id>/
    PUT    /schedules/api/working-hours/<kind>/<entity_id>/
    DELETE /schedules/api/working-hours/<kind>/<entity_id>/

    kind is "clinic" or "practitioner" (practitioners by user id).
    GET creates the record with the default pattern on first access.
    DELETE soft-deletes the record so the entity falls back to the default.

    PUT body (any subset):
        {
            "weekly_schedule": [
                {"day_of_week": 1, "is_open": true,
                 "slots": [{"start_time": "08:00", "end_time": "12:00"}]},
                ... exactly 7 entries, 0=Sunday ...
            ],
            "default_session_duration": 50,
            "buffer_between_sessions": 10
        }
    """

    def get(self, request, kind, entity_id):
        record = services.get_or_create_working_hours(kind, entity_id)
        return Response(WorkingHoursSerializer(record).data, status=status.HTTP_200_OK)

    def put(self, request, kind, entity_id):
        serializer = WorkingHoursUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        record = services.update_working_hours(kind, entity_id, **serializer.validated_data)
        return Response(WorkingHoursSerializer(record).data, status=status.HTTP_200_OK)

    def delete(self, request, kind, entity_id):
        if not services.reset_working_hours(kind, entity_id):
            return Response(
                {"detail": "No working hours defined for this entity."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class DateOverrideAPIView(SchedulingAPIView):
    """
    POST /schedules/api/working-hours/<kind>/<entity_id>/overrides/

    Body: {"date": "2024-12-25", "is_open": false, "slots": [], "reason": "Holiday"}
    An existing override for the same date is replaced.
    """

    def post(self, request, kind, entity_id):
        serializer = DateOverrideSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        override = services.add_date_override(
            kind,
            entity_id,
            data["date"],
            is_open=data["is_open"],
            slots=data["slots"],
            reason=data["reason"],
        )
        return Response(DateOverrideOutputSerializer(override).data, status=status.HTTP_201_CREATED)


class DateOverrideDetailAPIView(SchedulingAPIView):
    """DELETE /schedules/api/working-hours/<kind>/<entity_id>/overrides/<YYYY-MM-DD>/"""

    def delete(self, request, kind, entity_id, override_date):
        if not services.remove_date_override(kind, entity_id, parse_date(override_date)):
            return Response({"detail": "No override for this date."}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class EffectiveScheduleAPIView(SchedulingAPIView):
    """
    GET /schedules/api/working-hours/<kind>/<entity_id>/effective/?date=YYYY-MM-DD

    The open/closed answer for one date after overrides and clinic precedence.
    """

    def get(self, request, kind, entity_id):
        params, error = _validated_query(DateQuerySerializer, request)
        if error:
            return error

        schedule = resolve_effective_schedule(kind, entity_id, params["date"])
        return Response(
            {"date": params["date"].isoformat(), **schedule.to_dict()},
            status=status.HTTP_200_OK,
        )


# ── Availability ─────────────────────────────────────────────────────


class AvailableSlotsAPIView(SchedulingAPIView):
    """
    GET /schedules/api/availability/slots/?doctor_id=5&date=2024-01-08&duration=50&include_rooms=true

    Returns:
        {"slots": [{"start_time": "08:00", "end_time": "08:50",
                    "available_rooms": [{"id", "name", "number"}]}],
         "is_open": true, "reason": null, "session_duration": 50}
    """

    def get(self, request):
        params, error = _validated_query(AvailableSlotsQuerySerializer, request)
        if error:
            return error

        result = services.get_available_slots(
            doctor_id=params["doctor_id"],
            target_date=params["date"],
            duration=params.get("duration"),
            include_rooms=params["include_rooms"],
        )
        return Response(result, status=status.HTTP_200_OK)


class AvailableRoomsAPIView(SchedulingAPIView):
    """GET /schedules/api/availability/rooms/?clinic_id=1&date=2024-01-08&start_time=10:00&end_time=10:50"""

    def get(self, request):
        params, error = _validated_query(AvailableRoomsQuerySerializer, request)
        if error:
            return error

        rooms = services.get_available_rooms(
            params["clinic_id"], params["date"], params["start_time"], params["end_time"],
        )
        return Response({"results": [room_summary(room) for room in rooms]}, status=status.HTTP_200_OK)


class RoomScheduleAPIView(SchedulingAPIView):
    """GET /schedules/api/rooms/<room_id>/schedule/?date=YYYY-MM-DD"""

    def get(self, request, room_id):
        params, error = _validated_query(DateQuerySerializer, request)
        if error:
            return error
        return Response(services.get_room_schedule(room_id, params["date"]), status=status.HTTP_200_OK)


class ClinicRoomsScheduleAPIView(SchedulingAPIView):
    """GET /schedules/api/clinics/<clinic_id>/rooms/schedule/?date=YYYY-MM-DD"""

    def get(self, request, clinic_id):
        params, error = _validated_query(DateQuerySerializer, request)
        if error:
            return error

        schedules = services.get_clinic_rooms_schedule(clinic_id, params["date"])
        return Response({"results": schedules}, status=status.HTTP_200_OK)


# ── Occupancy ────────────────────────────────────────────────────────


class OccupancyAPIView(SchedulingAPIView):
    """
    GET /schedules/api/occupancy/<kind>/<entity_id>/?start_date=&end_date=&group_by=&detailed=

    kind: clinic | practitioner | room
    group_by: day | week | month (optional)
    detailed: clinic only, adds per-practitioner and per-room breakdowns
    """

    def get(self, request, kind, entity_id):
        if kind not in OccupancyEntity.values:
            return Response(
                {"kind": f"Must be one of: {', '.join(OccupancyEntity.values)}."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        params, error = _validated_query(OccupancyQuerySerializer, request)
        if error:
            return error

        if params["detailed"]:
            if kind != OccupancyEntity.CLINIC:
                return Response(
                    {"detailed": "The detailed breakdown is only available for clinics."},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            result = services.calculate_detailed_occupancy(entity_id, params["start_date"], params["end_date"])
        else:
            result = services.calculate_occupancy(
                kind,
                entity_id,
                params["start_date"],
                params["end_date"],
                group_by=params.get("group_by"),
            )
        return Response(result, status=status.HTTP_200_OK)

