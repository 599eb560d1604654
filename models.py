from __future__ import annotations
import datetime
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

import errors
from settings_schema import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime.datetime:
    return datetime.datetime.now()


class ExerciseCategory(str, Enum):
    CHEST = "Chest"
    BACK = "Back"
    SHOULDERS = "Shoulders"
    BICEPS = "Biceps"
    TRICEPS = "Triceps"
    LEGS = "Legs"
    CORE = "Core"
    CARDIO = "Cardio"
    OTHER = "Other"


class MuscleGroup(str, Enum):
    """Anatomical tags offered for exercises; free-text tags are also allowed."""

    PECTORAL_MAJOR = "Pectoral Major"
    PECTORAL_MINOR = "Pectoral Minor"
    LATISSIMUS_DORSI = "Latissimus Dorsi"
    TRAPEZIUS = "Trapezius"
    RHOMBOIDS = "Rhomboids"
    ERECTOR_SPINAE = "Erector Spinae"
    ANTERIOR_DELTOID = "Anterior Deltoid"
    MEDIAL_DELTOID = "Medial Deltoid"
    POSTERIOR_DELTOID = "Posterior Deltoid"
    BICEPS_BRACHII = "Biceps Brachii"
    TRICEPS_BRACHII = "Triceps Brachii"
    FOREARMS = "Forearms"
    QUADRICEPS = "Quadriceps"
    HAMSTRINGS = "Hamstrings"
    GLUTES = "Glutes"
    CALVES = "Calves"
    HIP_FLEXORS = "Hip Flexors"
    ADDUCTORS = "Adductors"
    ABDUCTORS = "Abductors"
    RECTUS_ABDOMINIS = "Rectus Abdominis"
    OBLIQUES = "Obliques"
    TRANSVERSE_ABDOMINIS = "Transverse Abdominis"

    @property
    def category(self) -> ExerciseCategory:
        return _MUSCLE_CATEGORIES[self]


_MUSCLE_CATEGORIES = {
    MuscleGroup.PECTORAL_MAJOR: ExerciseCategory.CHEST,
    MuscleGroup.PECTORAL_MINOR: ExerciseCategory.CHEST,
    MuscleGroup.LATISSIMUS_DORSI: ExerciseCategory.BACK,
    MuscleGroup.TRAPEZIUS: ExerciseCategory.BACK,
    MuscleGroup.RHOMBOIDS: ExerciseCategory.BACK,
    MuscleGroup.ERECTOR_SPINAE: ExerciseCategory.BACK,
    MuscleGroup.ANTERIOR_DELTOID: ExerciseCategory.SHOULDERS,
    MuscleGroup.MEDIAL_DELTOID: ExerciseCategory.SHOULDERS,
    MuscleGroup.POSTERIOR_DELTOID: ExerciseCategory.SHOULDERS,
    MuscleGroup.BICEPS_BRACHII: ExerciseCategory.BICEPS,
    MuscleGroup.TRICEPS_BRACHII: ExerciseCategory.TRICEPS,
    MuscleGroup.FOREARMS: ExerciseCategory.OTHER,
    MuscleGroup.QUADRICEPS: ExerciseCategory.LEGS,
    MuscleGroup.HAMSTRINGS: ExerciseCategory.LEGS,
    MuscleGroup.GLUTES: ExerciseCategory.LEGS,
    MuscleGroup.CALVES: ExerciseCategory.LEGS,
    MuscleGroup.HIP_FLEXORS: ExerciseCategory.LEGS,
    MuscleGroup.ADDUCTORS: ExerciseCategory.LEGS,
    MuscleGroup.ABDUCTORS: ExerciseCategory.LEGS,
    MuscleGroup.RECTUS_ABDOMINIS: ExerciseCategory.CORE,
    MuscleGroup.OBLIQUES: ExerciseCategory.CORE,
    MuscleGroup.TRANSVERSE_ABDOMINIS: ExerciseCategory.CORE,
}


class WorkoutStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class Exercise:
    name: str
    category: ExerciseCategory = ExerciseCategory.OTHER
    muscle_groups: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime.datetime = field(default_factory=_now)
    updated_at: datetime.datetime = field(default_factory=_now)


@dataclass
class Workout:
    name: str
    date: datetime.datetime = field(default_factory=_now)
    notes: Optional[str] = None
    duration: int = 0
    id: str = field(default_factory=new_id)
    created_at: datetime.datetime = field(default_factory=_now)
    updated_at: datetime.datetime = field(default_factory=_now)


@dataclass
class WorkoutExercise:
    workout_id: str
    exercise_id: str
    order: int = 0
    id: str = field(default_factory=new_id)


@dataclass
class WorkoutSet:
    workout_exercise_id: str
    set_number: int = 1
    weight: float = 0.0
    reps: int = 0
    rest_time: int = 0
    completed: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime.datetime = field(default_factory=_now)

    @property
    def volume(self) -> float:
        return float(self.weight) * int(self.reps)


@dataclass
class WorkoutTemplate:
    name: str
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime.datetime = field(default_factory=_now)
    updated_at: datetime.datetime = field(default_factory=_now)


# keys written by older builds
_SET_CONFIGURATION_ALIASES = {
    "setNumber": "set_number",
    "restTime": "rest_time",
}


class SetConfiguration(BaseModel):
    """Blueprint of one set stored on a template exercise."""

    model_config = ConfigDict(frozen=True)

    set_number: int = Field(1, ge=1)
    weight: float = Field(0.0, ge=0)
    reps: int = Field(0, ge=0)
    rest_time: int = Field(DEFAULT_SETTINGS.default_rest_time, ge=0)

    @classmethod
    def from_workout_set(cls, workout_set: WorkoutSet) -> "SetConfiguration":
        try:
            return cls(
                set_number=workout_set.set_number,
                weight=workout_set.weight,
                reps=workout_set.reps,
                rest_time=workout_set.rest_time,
            )
        except PydanticValidationError as e:
            raise errors.ValidationError(str(e)) from e

    @classmethod
    def from_raw(cls, raw: Any) -> "SetConfiguration":
        """Build a configuration, replacing each missing or malformed field
        with its default instead of rejecting the whole entry."""
        if not isinstance(raw, dict):
            logger.warning("set configuration %r is not a mapping, using defaults", raw)
            return cls()
        values: dict[str, Any] = {}
        for key, value in raw.items():
            name = _SET_CONFIGURATION_ALIASES.get(key, key)
            if name not in cls.model_fields:
                continue
            try:
                cls.model_validate({name: value})
            except PydanticValidationError:
                logger.warning(
                    "invalid %s %r in set configuration, using default", name, value
                )
                continue
            values[name] = value
        return cls.model_validate(values)


@dataclass
class TemplateExercise:
    template_id: str
    exercise_id: str
    order: int = 0
    sets_configuration: List[SetConfiguration] = field(default_factory=list)
    id: str = field(default_factory=new_id)


@dataclass
class WorkoutExerciseDetail:
    workout_exercise: WorkoutExercise
    exercise: Optional[Exercise]
    sets: List[WorkoutSet] = field(default_factory=list)

    @property
    def total_volume(self) -> float:
        return sum(s.volume for s in self.sets if s.completed)

    @property
    def completed_sets_count(self) -> int:
        return sum(1 for s in self.sets if s.completed)


@dataclass
class WorkoutDetail:
    """A workout together with its ordered exercises and their sets."""

    workout: Workout
    exercises: List[WorkoutExerciseDetail] = field(default_factory=list)

    @property
    def total_sets(self) -> int:
        return sum(len(ex.sets) for ex in self.exercises)

    @property
    def completed_sets(self) -> int:
        return sum(ex.completed_sets_count for ex in self.exercises)

    @property
    def progress(self) -> float:
        total = self.total_sets
        if total == 0:
            return 0.0
        return self.completed_sets / total

    @property
    def is_completed(self) -> bool:
        return self.total_sets > 0 and self.completed_sets == self.total_sets

    @property
    def total_volume(self) -> float:
        return sum(ex.total_volume for ex in self.exercises)

    @property
    def status(self) -> WorkoutStatus:
        if self.is_completed:
            return WorkoutStatus.COMPLETED
        if self.workout.duration == 0 and self.completed_sets == 0:
            return WorkoutStatus.PLANNED
        return WorkoutStatus.IN_PROGRESS


@dataclass
class TemplateExerciseDetail:
    template_exercise: TemplateExercise
    exercise: Optional[Exercise]


@dataclass
class TemplateDetail:
    template: WorkoutTemplate
    exercises: List[TemplateExerciseDetail] = field(default_factory=list)

    @property
    def total_sets(self) -> int:
        return sum(
            len(ex.template_exercise.sets_configuration) for ex in self.exercises
        )
