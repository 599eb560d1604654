import os
import sqlite3
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import ExerciseRepository, SetRepository, TemplateRepository, WorkoutRepository
from errors import ValidationError
from models import (
    ExerciseCategory,
    MuscleGroup,
    SetConfiguration,
    TemplateExercise,
    WorkoutTemplate,
)


class RepositoryTestCase(unittest.TestCase):
    def setUp(self):
        self.db = "test_repositories.db"
        if os.path.exists(self.db):
            os.remove(self.db)
        self.exercises = ExerciseRepository(self.db)
        self.workouts = WorkoutRepository(self.db)
        self.sets = SetRepository(self.db)
        self.templates = TemplateRepository(self.db)

    def tearDown(self):
        if os.path.exists(self.db):
            os.remove(self.db)


class ExerciseRepositoryTest(RepositoryTestCase):
    def test_create_trims_and_validates(self):
        ex = self.exercises.create(
            "  Bench Press ",
            ExerciseCategory.CHEST,
            [MuscleGroup.PECTORAL_MAJOR, "Pectoral Major", MuscleGroup.TRICEPS_BRACHII],
        )
        self.assertEqual(ex.name, "Bench Press")
        self.assertEqual(ex.muscle_groups, ["Pectoral Major", "Triceps Brachii"])
        for bad in ["", "   ", "A", "Bench_Press", "Bench!"]:
            with self.assertRaises(ValidationError):
                self.exercises.create(bad)
        with self.assertRaises(ValidationError):
            self.exercises.create("Row", "Wings")

    def test_fetch_search_and_category(self):
        self.exercises.create("Squat", "Legs", notes="low bar")
        self.exercises.create("Bench Press", "Chest")
        self.exercises.create("Leg Press", "Legs")
        self.assertEqual(
            [e.name for e in self.exercises.fetch_all_exercises()],
            ["Bench Press", "Leg Press", "Squat"],
        )
        self.assertEqual(
            [e.name for e in self.exercises.fetch_by_category("Legs")],
            ["Leg Press", "Squat"],
        )
        self.assertEqual([e.name for e in self.exercises.search("PRESS")], ["Bench Press", "Leg Press"])
        self.assertEqual([e.name for e in self.exercises.search("low")], ["Squat"])
        self.assertEqual(len(self.exercises.search("")), 3)

    def test_update_refreshes_timestamp(self):
        ex = self.exercises.create("Squat", "Legs")
        updated = self.exercises.update(ex.id, name="Front Squat", muscle_groups=["Quadriceps"])
        self.assertEqual(updated.name, "Front Squat")
        self.assertGreaterEqual(updated.updated_at, ex.updated_at)
        self.assertEqual(self.exercises.fetch(ex.id).muscle_groups, ["Quadriceps"])
        with self.assertRaises(ValueError):
            self.exercises.update("missing", name="Nope")


class WorkoutRepositoryTest(RepositoryTestCase):
    def test_lifecycle(self):
        workout = self.workouts.create(" Push ", datetime.datetime(2024, 5, 1, 9))
        self.assertEqual(workout.name, "Push")
        started = self.workouts.start_workout(workout.id, datetime.datetime(2024, 5, 2, 7))
        self.assertEqual(started.date, datetime.datetime(2024, 5, 2, 7))
        ended = self.workouts.end_workout(workout.id, 3600)
        self.assertEqual(self.workouts.fetch(workout.id).duration, 3600)
        self.assertGreaterEqual(ended.updated_at, workout.updated_at)
        with self.assertRaises(ValidationError):
            self.workouts.end_workout(workout.id, -5)
        with self.assertRaises(ValueError):
            self.workouts.update("missing", name="x")
        with self.assertRaises(ValidationError):
            self.workouts.create("   ")

    def test_fetch_ranges(self):
        now = datetime.datetime(2024, 5, 15, 12)
        self.workouts.create("Old", datetime.datetime(2024, 5, 1))
        self.workouts.create("Morning", datetime.datetime(2024, 5, 15, 6))
        self.workouts.create("Evening", datetime.datetime(2024, 5, 15, 23, 59))
        self.assertEqual(
            [w.name for w in self.workouts.fetch_today(now)], ["Evening", "Morning"]
        )
        self.assertEqual(
            [w.name for w in self.workouts.fetch_all_workouts(descending=False)],
            ["Old", "Morning", "Evening"],
        )
        self.assertEqual(
            [
                w.name
                for w in self.workouts.fetch_by_date_range(
                    datetime.datetime(2024, 4, 30), datetime.datetime(2024, 5, 2)
                )
            ],
            ["Old"],
        )

    def test_add_remove_and_reorder_exercises(self):
        squat = self.exercises.create("Squat", "Legs")
        bench = self.exercises.create("Bench Press", "Chest")
        workout = self.workouts.create("Full", datetime.datetime(2024, 5, 1))
        first = self.workouts.add_exercise(workout.id, squat.id)
        second = self.workouts.add_exercise(workout.id, bench.id)
        self.assertEqual((first.order, second.order), (0, 1))
        self.workouts.reorder_exercises(workout.id, [second.id, first.id])
        detail = self.workouts.fetch_detail(workout.id)
        self.assertEqual([e.exercise.name for e in detail.exercises], ["Bench Press", "Squat"])
        with self.assertRaises(ValidationError):
            self.workouts.reorder_exercises(workout.id, [first.id])
        self.workouts.remove_exercise(first.id)
        self.assertEqual(len(self.workouts.fetch_workout_exercises(workout.id)), 1)
        with self.assertRaises(ValueError):
            self.workouts.add_exercise(workout.id, "missing")


class SetRepositoryTest(RepositoryTestCase):
    def setUp(self):
        super().setUp()
        squat = self.exercises.create("Squat", "Legs")
        self.workout = self.workouts.create("Legs", datetime.datetime(2024, 5, 1))
        self.we = self.workouts.add_exercise(self.workout.id, squat.id)

    def test_add_copies_previous_set(self):
        first = self.sets.add(self.we.id)
        self.assertEqual((first.set_number, first.weight, first.reps, first.rest_time), (1, 0.0, 0, 90))
        self.sets.update(first.id, weight=100, reps=5, rest_time=120)
        second = self.sets.add(self.we.id)
        self.assertEqual((second.set_number, second.weight, second.reps, second.rest_time), (2, 100.0, 5, 120))
        third = self.sets.add(self.we.id, weight=110)
        self.assertEqual((third.set_number, third.weight, third.reps), (3, 110.0, 5))
        self.assertEqual([s.set_number for s in self.sets.fetch_for_exercise(self.we.id)], [1, 2, 3])

    def test_validation_and_completion(self):
        with self.assertRaises(ValidationError):
            self.sets.add(self.we.id, weight=-1)
        with self.assertRaises(ValidationError):
            self.sets.add(self.we.id, reps=5000)
        with self.assertRaises(ValidationError):
            self.sets.add(self.we.id, rest_time=601)
        a = self.sets.add(self.we.id, weight=100, reps=5)
        b = self.sets.add(self.we.id)
        self.sets.bulk_complete([a.id, b.id])
        completed = self.sets.fetch_completed_for_exercise(self.we.exercise_id)
        self.assertEqual([s.id for s, _ in completed], [a.id, b.id])
        self.assertEqual(completed[0][1], self.workout.date)
        self.sets.remove(b.id)
        self.assertIsNone(self.sets.fetch(b.id))

    def test_set_number_must_be_positive(self):
        with self.assertRaises(ValidationError):
            self.sets.add(self.we.id, set_number=0, weight=50, reps=5)
        self.assertEqual(self.sets.fetch_for_exercise(self.we.id), [])

    def test_default_rest_time_preference(self):
        sets = SetRepository(self.db, default_rest_time=45)
        first = sets.add(self.we.id, weight=60, reps=8)
        self.assertEqual(first.rest_time, 45)
        sets.update(first.id, rest_time=120)
        self.assertEqual(sets.add(self.we.id).rest_time, 120)
        with self.assertRaises(ValidationError):
            SetRepository(self.db, default_rest_time=900)


class TemplateRepositoryTest(RepositoryTestCase):
    def test_save_graph_and_rename(self):
        squat = self.exercises.create("Squat", "Legs")
        template = WorkoutTemplate(name="Legs A", notes="heavy")
        entry = TemplateExercise(
            template_id=template.id,
            exercise_id=squat.id,
            sets_configuration=[SetConfiguration(set_number=1, weight=100, reps=5, rest_time=180)],
        )
        self.templates.save_graph(template, [entry])
        detail = self.templates.fetch_detail(template.id)
        self.assertEqual(detail.total_sets, 1)
        self.assertEqual(detail.exercises[0].exercise.name, "Squat")
        self.assertEqual(detail.exercises[0].template_exercise.sets_configuration[0].rest_time, 180)
        self.templates.rename(template.id, "Legs B")
        self.assertEqual([t.name for t in self.templates.fetch_all_templates()], ["Legs B"])
        self.templates.delete(template.id)
        self.assertIsNone(self.templates.fetch(template.id))

    def test_corrupt_configuration_loads_without_sets(self):
        squat = self.exercises.create("Squat", "Legs")
        template = WorkoutTemplate(name="Legs A")
        entry = TemplateExercise(template_id=template.id, exercise_id=squat.id)
        self.templates.save_graph(template, [entry])
        conn = sqlite3.connect(self.db)
        conn.execute(
            "UPDATE template_exercises SET sets_configuration = ? WHERE id = ?",
            ("{not json", entry.id),
        )
        conn.commit()
        conn.close()
        detail = self.templates.fetch_detail(template.id)
        self.assertEqual(len(detail.exercises), 1)
        self.assertEqual(detail.exercises[0].template_exercise.sets_configuration, [])


if __name__ == "__main__":
    unittest.main()
