import os
import json
import sqlite3
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import ExerciseRepository, SetRepository, TemplateRepository, WorkoutRepository
from errors import DataAccessError, ValidationError
from planner_service import PlannerService


class PlannerServiceTest(unittest.TestCase):
    def setUp(self):
        self.db = "test_planner.db"
        if os.path.exists(self.db):
            os.remove(self.db)
        self.exercises = ExerciseRepository(self.db)
        self.workouts = WorkoutRepository(self.db)
        self.sets = SetRepository(self.db)
        self.templates = TemplateRepository(self.db)
        self.planner = PlannerService(self.workouts, self.templates)

        self.bench = self.exercises.create("Bench Press", "Chest")
        self.curl = self.exercises.create("Bicep Curl", "Biceps")
        self.source = self.workouts.create(
            "Upper Body Day", datetime.datetime(2024, 5, 14, 18), "Felt strong"
        )
        first = self.workouts.add_exercise(self.source.id, self.bench.id)
        second = self.workouts.add_exercise(self.source.id, self.curl.id)
        for weight, reps in [(135, 12), (145, 10), (155, 8)]:
            s = self.sets.add(first.id, weight=weight, reps=reps, rest_time=90)
            self.sets.update(s.id, completed=True)
        for weight, reps in [(30, 15), (35, 12)]:
            self.sets.add(second.id, weight=weight, reps=reps, rest_time=60)
        self.workouts.end_workout(self.source.id, 2700)

    def tearDown(self):
        if os.path.exists(self.db):
            os.remove(self.db)

    @staticmethod
    def _values(detail):
        return [
            (item.workout_exercise.exercise_id, [(s.set_number, s.weight, s.reps, s.rest_time) for s in item.sets])
            for item in detail.exercises
        ]

    def test_duplicate_workout(self):
        new_date = datetime.datetime(2024, 5, 21, 18)
        source = self.workouts.fetch_detail(self.source.id)
        copy = self.planner.duplicate_workout(self.source.id, new_date)
        self.assertNotEqual(copy.workout.id, self.source.id)
        self.assertEqual(copy.workout.name, "Upper Body Day (Copy)")
        self.assertEqual(copy.workout.notes, "Felt strong")
        self.assertEqual(copy.workout.date, new_date)
        self.assertEqual(copy.workout.duration, 0)
        self.assertEqual(copy.total_sets, source.total_sets)
        self.assertEqual(copy.completed_sets, 0)
        self.assertEqual(self._values(copy), self._values(source))
        self.assertEqual(
            [e.workout_exercise.order for e in copy.exercises],
            [e.workout_exercise.order for e in source.exercises],
        )
        source_ids = {s.id for e in source.exercises for s in e.sets}
        self.assertFalse(source_ids & {s.id for e in copy.exercises for s in e.sets})
        # the source is untouched
        self.assertEqual(self.workouts.fetch_detail(self.source.id).completed_sets, 3)

    def test_duplicate_with_name(self):
        copy = self.planner.duplicate_workout(
            self.source.id, datetime.datetime(2024, 5, 21), "Upper B"
        )
        self.assertEqual(copy.workout.name, "Upper B")

    def test_duplicate_long_name(self):
        source = self.workouts.create("A" * 48, datetime.datetime(2024, 5, 14))
        copy = self.planner.duplicate_workout(source.id, datetime.datetime(2024, 5, 21))
        self.assertEqual(copy.workout.name, "A" * 48 + " (Copy)")
        with self.assertRaises(ValidationError):
            self.planner.duplicate_workout(
                source.id, datetime.datetime(2024, 5, 21), "B" * 51
            )

    def test_template_from_invalid_set_number(self):
        we = self.workouts.fetch_workout_exercises(self.source.id)[0]
        conn = sqlite3.connect(self.db)
        conn.execute(
            "UPDATE sets SET set_number = 0 WHERE workout_exercise_id = ?", (we.id,)
        )
        conn.commit()
        conn.close()
        with self.assertRaises(ValidationError):
            self.planner.copy_workout_to_template(self.source.id, "Upper Template")
        self.assertEqual(self.templates.fetch_all_templates(), [])

    def test_duplicate_missing_workout(self):
        with self.assertRaises(ValueError):
            self.planner.duplicate_workout("missing", datetime.datetime(2024, 5, 21))

    def test_template_round_trip(self):
        template = self.planner.copy_workout_to_template(self.source.id, "Upper Template")
        self.assertEqual(template.template.name, "Upper Template")
        self.assertEqual(template.template.notes, "Felt strong")
        self.assertEqual(template.total_sets, 5)
        self.assertEqual([e.template_exercise.order for e in template.exercises], [0, 1])

        date = datetime.datetime(2024, 5, 28, 18)
        workout = self.planner.create_workout_from_template(template.template.id, date)
        self.assertEqual(workout.workout.name, "Upper Template")
        self.assertEqual(workout.workout.notes, "Felt strong")
        self.assertEqual(workout.workout.duration, 0)
        self.assertEqual(workout.workout.date, date)
        self.assertEqual(workout.completed_sets, 0)
        self.assertEqual(self._values(workout), self._values(self.workouts.fetch_detail(self.source.id)))

        named = self.planner.create_workout_from_template(template.template.id, date, "Push")
        self.assertEqual(named.workout.name, "Push")

    def test_template_defaults_for_malformed_configuration(self):
        template = self.planner.copy_workout_to_template(self.source.id, "Upper Template")
        bench_entry, curl_entry = [e.template_exercise for e in template.exercises]
        conn = sqlite3.connect(self.db)
        conn.execute(
            "UPDATE template_exercises SET sets_configuration = ? WHERE id = ?",
            (
                json.dumps([{"setNumber": 2, "weight": "heavy", "reps": 8}, "junk"]),
                bench_entry.id,
            ),
        )
        conn.execute(
            "UPDATE template_exercises SET sets_configuration = ? WHERE id = ?",
            ("[{broken", curl_entry.id),
        )
        conn.commit()
        conn.close()

        with self.assertLogs("models", level="WARNING"):
            workout = self.planner.create_workout_from_template(
                template.template.id, datetime.datetime(2024, 5, 28)
            )
        bench, curl = workout.exercises
        self.assertEqual(
            [(s.set_number, s.weight, s.reps, s.rest_time) for s in bench.sets],
            [(1, 0.0, 0, 90), (2, 0.0, 8, 90)],
        )
        self.assertEqual(curl.sets, [])
        self.assertFalse(any(s.completed for s in bench.sets))

    def test_failed_instantiation_leaves_no_rows(self):
        template = self.planner.copy_workout_to_template(self.source.id, "Upper Template")
        conn = sqlite3.connect(self.db)
        conn.execute(
            "UPDATE template_exercises SET exercise_id = 'deleted' WHERE template_id = ?",
            (template.template.id,),
        )
        conn.commit()
        conn.close()
        before = len(self.workouts.fetch_all_workouts())
        with self.assertRaises(DataAccessError):
            self.planner.create_workout_from_template(
                template.template.id, datetime.datetime(2024, 5, 28)
            )
        self.assertEqual(len(self.workouts.fetch_all_workouts()), before)


if __name__ == "__main__":
    unittest.main()
