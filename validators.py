import datetime
import re
from typing import Optional

from errors import ValidationError

_EXERCISE_NAME_RE = re.compile(r"^[\w\s-]+$")

MAX_WEIGHT = 1000.0
MAX_REPS = 1000
MAX_REST_TIME = 600
MAX_NOTES = 500
MAX_NAME = 50


def validate_exercise_name(name: str) -> str:
    """Return the trimmed exercise name or raise ``ValidationError``."""
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Exercise name cannot be empty")
    if len(trimmed) < 2:
        raise ValidationError("Exercise name must be at least 2 characters")
    if len(trimmed) > MAX_NAME:
        raise ValidationError(f"Exercise name must be less than {MAX_NAME} characters")
    if not _EXERCISE_NAME_RE.match(trimmed) or "_" in trimmed:
        raise ValidationError("Exercise name contains invalid characters")
    return trimmed


def validate_workout_name(name: str) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Workout name cannot be empty")
    if len(trimmed) > MAX_NAME:
        raise ValidationError(f"Workout name must be less than {MAX_NAME} characters")
    return trimmed


def validate_notes(notes: Optional[str]) -> Optional[str]:
    if notes is not None and len(notes) > MAX_NOTES:
        raise ValidationError(f"Notes must be less than {MAX_NOTES} characters")
    return notes


def validate_weight(weight: float) -> float:
    if weight < 0:
        raise ValidationError("Weight cannot be negative")
    if weight > MAX_WEIGHT:
        raise ValidationError("Weight seems too high. Please check the value")
    return float(weight)


def validate_reps(reps: int) -> int:
    if reps < 0:
        raise ValidationError("Reps cannot be negative")
    if reps > MAX_REPS:
        raise ValidationError("Reps seem too high. Please check the value")
    return int(reps)


def validate_rest_time(seconds: int) -> int:
    if seconds < 0:
        raise ValidationError("Rest time cannot be negative")
    if seconds > MAX_REST_TIME:
        raise ValidationError("Rest time seems too long. Maximum is 10 minutes")
    return int(seconds)


def validate_set_number(number: int) -> int:
    if number < 1:
        raise ValidationError("Set number must be at least 1")
    return int(number)


def validate_workout_date(
    date: datetime.datetime, now: Optional[datetime.datetime] = None
) -> datetime.datetime:
    """Reject dates more than a week ahead or more than a year back.

    Advisory check for input forms. Repositories accept any date so that
    imported history and backdated entries can be stored.
    """
    now = now or datetime.datetime.now()
    if date > now + datetime.timedelta(days=7):
        raise ValidationError("Workout date cannot be more than 1 week in the future")
    try:
        year_ago = now.replace(year=now.year - 1)
    except ValueError:
        # Feb 29
        year_ago = now.replace(year=now.year - 1, day=28)
    if date < year_ago:
        raise ValidationError("Workout date cannot be more than 1 year in the past")
    return date


def sanitize_numeric_input(text: str, allow_decimal: bool = False) -> str:
    """Strip everything but digits (and one decimal point) from raw input."""
    allowed = "0123456789." if allow_decimal else "0123456789"
    filtered = "".join(ch for ch in text if ch in allowed)
    if allow_decimal:
        parts = filtered.split(".")
        if len(parts) > 2:
            return parts[0] + "." + "".join(parts[1:])
    return filtered


def sanitize_text_input(text: str, max_length: Optional[int] = None) -> str:
    sanitized = re.sub(r" {2,}", " ", text.strip())
    if max_length is not None and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
    return sanitized
