from algorithms import WeightConverter
from settings_schema import DEFAULT_SETTINGS, SettingsSchema


def format_weight(weight: float, prefs: SettingsSchema = DEFAULT_SETTINGS) -> str:
    """Return a stored kg weight formatted in the preferred unit."""
    value = round(WeightConverter.convert(weight, "kg", prefs.weight_unit), 1)
    if value.is_integer():
        return f"{int(value)} {prefs.weight_unit}"
    return f"{value:.1f} {prefs.weight_unit}"


def parse_weight(value: float, prefs: SettingsSchema = DEFAULT_SETTINGS) -> float:
    """Convert a weight entered in the preferred unit to kg for storage."""
    return WeightConverter.convert(value, prefs.weight_unit, "kg")


def format_duration(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_rest_time(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    if seconds >= 60:
        minutes, secs = divmod(seconds, 60)
        return f"{minutes}:{secs:02d}"
    return f"{seconds}s"
