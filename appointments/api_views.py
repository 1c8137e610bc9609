import logging

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import (
    AppointmentResponseSerializer,
    BookAppointmentSerializer,
    CancelAppointmentSerializer,
    RescheduleAppointmentSerializer,
)
from .services import (
    AppointmentNotFoundError,
    BookingError,
    SlotUnavailableError,
    book_appointment,
    cancel_appointment,
    reschedule_appointment,
)

logger = logging.getLogger(__name__)

User = get_user_model()


def booking_error_response(error):
    if isinstance(error, SlotUnavailableError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(error, AppointmentNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return Response({"detail": error.message, "code": error.code}, status=status_code)


class BookAppointmentAPIView(APIView):
    """
    POST /appointments/api/book/

    Request body:
        {
            "doctor_id": 5,
            "appointment_date": "2026-02-20",
            "appointment_time": "10:00",
            "duration_minutes": 50,      (optional)
            "room_id": 3,                (optional)
            "type": "IN_PERSON",         (optional)
            "patient_id": 9,             (optional, defaults to the requester)
            "notes": "First session"     (optional)
        }

    Success Response (201):
        Full appointment details via AppointmentResponseSerializer.

    Error Responses:
        400: Validation errors or booking errors.
        409: The practitioner or the room is already booked at that time.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = BookAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        patient = request.user
        if data.get("patient_id"):
            try:
                patient = User.objects.get(id=data["patient_id"], is_active=True)
            except User.DoesNotExist:
                return Response({"patient_id": "Patient not found."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = book_appointment(
                patient=patient,
                doctor_id=data["doctor_id"],
                appointment_date=data["appointment_date"],
                appointment_time=data["appointment_time"],
                duration_minutes=data.get("duration_minutes"),
                room_id=data["room_id"],
                appointment_type=data["type"],
                notes=data["notes"],
                created_by=request.user,
            )
        except BookingError as e:
            return booking_error_response(e)

        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_201_CREATED)


class RescheduleAppointmentAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/reschedule/

    Body: {"appointment_date", "appointment_time", "duration_minutes"?, "room_id"?}
    Omitting room_id keeps the current room; null releases it.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        serializer = RescheduleAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        kwargs = {}
        if "room_id" in data:
            kwargs["room_id"] = data["room_id"]

        try:
            appointment = reschedule_appointment(
                appointment_id=appointment_id,
                appointment_date=data["appointment_date"],
                appointment_time=data["appointment_time"],
                duration_minutes=data.get("duration_minutes"),
                **kwargs,
            )
        except BookingError as e:
            return booking_error_response(e)

        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class CancelAppointmentAPIView(APIView):
    """POST /appointments/api/<appointment_id>/cancel/  body: {"reason"?}"""

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        serializer = CancelAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = cancel_appointment(
                appointment_id=appointment_id,
                cancelled_by=request.user,
                reason=serializer.validated_data["reason"],
            )
        except BookingError as e:
            return booking_error_response(e)

        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)
