"""
Slot generation.

Slots are cut from each open interval independently: a slot is emitted
while it still fits inside the interval, then the cursor jumps by the
session length plus the buffer. Intervals shorter than one session yield
nothing.
"""

from .domain import Slot


def generate_time_slots(intervals, session_duration, buffer_between_sessions=0):
    """
    Generate candidate slots for one day.

    Args:
        intervals: Iterable of TimeInterval (non-overlapping).
        session_duration: Slot length in minutes, must be positive.
        buffer_between_sessions: Idle minutes between consecutive slots.

    Returns:
        List of Slot sorted by start.
    """
    if session_duration <= 0:
        raise ValueError("session_duration must be a positive number of minutes.")
    if buffer_between_sessions < 0:
        raise ValueError("buffer_between_sessions cannot be negative.")

    step = session_duration + buffer_between_sessions
    slots = []
    for interval in sorted(intervals):
        cursor = interval.start
        while cursor + session_duration <= interval.end:
            slots.append(Slot(cursor, cursor + session_duration))
            cursor += step
    return slots
