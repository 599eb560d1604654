from __future__ import annotations
import datetime
import logging
from typing import List, Optional

from db import TemplateRepository, WorkoutRepository
from models import (
    SetConfiguration,
    TemplateDetail,
    TemplateExercise,
    Workout,
    WorkoutDetail,
    WorkoutExercise,
    WorkoutSet,
    WorkoutTemplate,
)
import validators

logger = logging.getLogger(__name__)


class PlannerService:
    """Copies workout graphs into new workouts and reusable templates.

    Every operation builds the complete graph in memory and persists it
    through a single ``save_graph`` call, so a storage failure leaves
    nothing behind.
    """

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        template_repo: TemplateRepository,
    ) -> None:
        self.workouts = workout_repo
        self.templates = template_repo

    def duplicate_workout(
        self,
        workout_id: str,
        new_date: datetime.datetime,
        new_name: Optional[str] = None,
    ) -> WorkoutDetail:
        """Create a copy of an existing workout including all exercises and sets."""
        source = self.workouts.fetch_detail(workout_id)
        if new_name is not None:
            name = validators.validate_workout_name(new_name)
        else:
            # derived from an already stored name, may exceed MAX_NAME
            name = f"{source.workout.name} (Copy)"
        workout = Workout(
            name=name,
            date=new_date,
            notes=source.workout.notes,
            duration=0,
        )
        workout_exercises: List[WorkoutExercise] = []
        sets: List[WorkoutSet] = []
        for item in source.exercises:
            copy = WorkoutExercise(
                workout_id=workout.id,
                exercise_id=item.workout_exercise.exercise_id,
                order=item.workout_exercise.order,
            )
            workout_exercises.append(copy)
            for s in item.sets:
                sets.append(
                    WorkoutSet(
                        workout_exercise_id=copy.id,
                        set_number=s.set_number,
                        weight=s.weight,
                        reps=s.reps,
                        rest_time=s.rest_time,
                        completed=False,
                    )
                )
        self.workouts.save_graph(workout, workout_exercises, sets)
        logger.info(
            "duplicated workout %s into %s with %d exercises and %d sets",
            workout_id,
            workout.id,
            len(workout_exercises),
            len(sets),
        )
        return self.workouts.fetch_detail(workout.id)

    def copy_workout_to_template(self, workout_id: str, name: str) -> TemplateDetail:
        """Create a template from an existing workout."""
        source = self.workouts.fetch_detail(workout_id)
        template = WorkoutTemplate(
            name=validators.validate_workout_name(name),
            notes=source.workout.notes,
        )
        entries = [
            TemplateExercise(
                template_id=template.id,
                exercise_id=item.workout_exercise.exercise_id,
                order=index,
                sets_configuration=[
                    SetConfiguration.from_workout_set(s) for s in item.sets
                ],
            )
            for index, item in enumerate(source.exercises)
        ]
        self.templates.save_graph(template, entries)
        logger.info(
            "saved workout %s as template %s (%s)", workout_id, template.id, template.name
        )
        return self.templates.fetch_detail(template.id)

    def create_workout_from_template(
        self,
        template_id: str,
        date: datetime.datetime,
        name: Optional[str] = None,
    ) -> WorkoutDetail:
        """Instantiate a new workout with fresh, uncompleted sets from a template."""
        source = self.templates.fetch_detail(template_id)
        workout = Workout(
            name=validators.validate_workout_name(
                name if name is not None else source.template.name
            ),
            date=date,
            notes=source.template.notes,
        )
        workout_exercises: List[WorkoutExercise] = []
        sets: List[WorkoutSet] = []
        for item in source.exercises:
            entry = item.template_exercise
            copy = WorkoutExercise(
                workout_id=workout.id,
                exercise_id=entry.exercise_id,
                order=entry.order,
            )
            workout_exercises.append(copy)
            for config in entry.sets_configuration:
                sets.append(
                    WorkoutSet(
                        workout_exercise_id=copy.id,
                        set_number=config.set_number,
                        weight=config.weight,
                        reps=config.reps,
                        rest_time=config.rest_time,
                        completed=False,
                    )
                )
        self.workouts.save_graph(workout, workout_exercises, sets)
        logger.info(
            "created workout %s from template %s with %d sets",
            workout.id,
            template_id,
            len(sets),
        )
        return self.workouts.fetch_detail(workout.id)
