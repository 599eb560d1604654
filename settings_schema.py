from typing import Literal

from pydantic import BaseModel, Field, ValidationError

import errors


class SettingsSchema(BaseModel):
    """User preferences passed explicitly to formatting and statistics."""

    weight_unit: Literal["kg", "lbs"] = "kg"
    default_rest_time: int = Field(90, ge=0, le=600)
    first_weekday: int = Field(0, ge=0, le=6)
    auto_start_rest_timer: bool = True
    play_timer_sound: bool = True
    enable_haptics: bool = True
    show_warmup_reminder: bool = True
    auto_add_sets: bool = False
    show_previous_workout: bool = True
    quick_start_enabled: bool = True
    theme: Literal["system", "light", "dark"] = "system"
    use_larger_text: bool = False
    log_level: str = "INFO"


DEFAULT_SETTINGS = SettingsSchema()


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise errors.ValidationError(str(e)) from e
