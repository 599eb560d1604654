import datetime
import logging

from config import configure_logging
from db import ExerciseRepository, SetRepository, WorkoutRepository
from models import ExerciseCategory, MuscleGroup

logger = logging.getLogger(__name__)

DEFAULT_EXERCISES = [
    ("Bench Press", ExerciseCategory.CHEST, [MuscleGroup.PECTORAL_MAJOR, MuscleGroup.TRICEPS_BRACHII]),
    ("Squat", ExerciseCategory.LEGS, [MuscleGroup.QUADRICEPS, MuscleGroup.GLUTES]),
    (
        "Deadlift",
        ExerciseCategory.BACK,
        [MuscleGroup.ERECTOR_SPINAE, MuscleGroup.GLUTES, MuscleGroup.HAMSTRINGS],
    ),
    ("Pull-up", ExerciseCategory.BACK, [MuscleGroup.LATISSIMUS_DORSI, MuscleGroup.BICEPS_BRACHII]),
    (
        "Shoulder Press",
        ExerciseCategory.SHOULDERS,
        [MuscleGroup.ANTERIOR_DELTOID, MuscleGroup.MEDIAL_DELTOID],
    ),
    ("Bicep Curl", ExerciseCategory.BICEPS, [MuscleGroup.BICEPS_BRACHII]),
    ("Tricep Extension", ExerciseCategory.TRICEPS, [MuscleGroup.TRICEPS_BRACHII]),
    (
        "Plank",
        ExerciseCategory.CORE,
        [MuscleGroup.RECTUS_ABDOMINIS, MuscleGroup.TRANSVERSE_ABDOMINIS],
    ),
    ("Running", ExerciseCategory.CARDIO, []),
]


def seed(db_path: str = "workout.db", now: datetime.datetime | None = None) -> bool:
    """Insert the default exercise library and sample workouts.

    Returns ``False`` without touching the store when exercises already exist.
    """
    exercises = ExerciseRepository(db_path)
    workouts = WorkoutRepository(db_path)
    sets = SetRepository(db_path)
    if exercises.fetch_all_exercises():
        logger.info("database already contains exercises")
        return False

    created = {
        name: exercises.create(name, category, muscles)
        for name, category, muscles in DEFAULT_EXERCISES
    }
    now = now or datetime.datetime.now()
    workout = workouts.create(
        "Upper Body Day", now - datetime.timedelta(days=1), "Felt strong today!"
    )
    bench = workouts.add_exercise(workout.id, created["Bench Press"].id, 0)
    curl = workouts.add_exercise(workout.id, created["Bicep Curl"].id, 1)
    for number, (weight, reps) in enumerate([(135, 12), (145, 10), (155, 8)], 1):
        sets.add(bench.id, number, weight, reps, 90)
    for number, (weight, reps) in enumerate([(30, 15), (35, 12)], 1):
        sets.add(curl.id, number, weight, reps, 60)
    workouts.create("Leg Day", now)
    logger.info("seed data inserted into %s", db_path)
    return True


if __name__ == "__main__":
    configure_logging()
    seed()
