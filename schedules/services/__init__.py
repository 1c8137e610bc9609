from .availability_service import get_available_slots
from .occupancy_service import calculate_detailed_occupancy, calculate_occupancy
from .room_service import get_available_rooms, get_clinic_rooms_schedule, get_room_schedule
from .working_hours_service import (
    add_date_override,
    get_or_create_working_hours,
    remove_date_override,
    reset_working_hours,
    update_working_hours,
)
