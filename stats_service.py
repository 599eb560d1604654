from __future__ import annotations
import datetime
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from algorithms import MathTools
from db import ExerciseRepository, SetRepository, WorkoutRepository
from models import Exercise
from settings_schema import DEFAULT_SETTINGS, SettingsSchema

logger = logging.getLogger(__name__)

FAVORITE_LIMIT = 5
FREQUENCY_WINDOW_DAYS = 30


class ProgressMetric(str, Enum):
    WEIGHT = "weight"
    VOLUME = "volume"
    REPS = "reps"


@dataclass(frozen=True)
class WorkoutStreak:
    current_streak: int = 0
    longest_streak: int = 0
    last_workout_date: Optional[datetime.datetime] = None
    streak_start_date: Optional[datetime.date] = None


@dataclass(frozen=True)
class ExerciseCount:
    exercise: Exercise
    count: int


@dataclass(frozen=True)
class MuscleGroupShare:
    muscle_group: str
    sets: int
    percentage: float


@dataclass(frozen=True)
class WorkoutAnalytics:
    total_workouts: int
    total_volume: float
    total_sets: int
    total_reps: int
    total_duration: int
    average_workout_duration: float
    workouts_this_week: int
    workouts_this_month: int
    streak: WorkoutStreak
    favorite_exercises: Tuple[ExerciseCount, ...] = ()
    muscle_group_distribution: Tuple[MuscleGroupShare, ...] = ()

    @property
    def current_streak(self) -> int:
        return self.streak.current_streak

    @property
    def longest_streak(self) -> int:
        return self.streak.longest_streak


@dataclass(frozen=True)
class ExercisePerformance:
    """Aggregate of one exercise's completed sets on a single calendar day."""

    date: datetime.date
    max_weight: float
    total_volume: float
    total_sets: int
    average_reps: float


@dataclass(frozen=True)
class RecordSet:
    value: float
    weight: float
    reps: int
    date: datetime.datetime


@dataclass(frozen=True)
class PersonalRecords:
    max_weight: Optional[RecordSet] = None
    max_volume: Optional[RecordSet] = None
    max_reps: Optional[RecordSet] = None


@dataclass(frozen=True)
class ExerciseAnalytics:
    exercise: Exercise
    total_sets: int
    total_reps: int
    total_volume: float
    max_weight: float
    average_weight: float
    average_reps: float
    last_performed: Optional[datetime.datetime]
    performance_history: Tuple[ExercisePerformance, ...]
    personal_records: PersonalRecords


@dataclass(frozen=True)
class MuscleGroupStats:
    muscle_group: str
    total_sets: int
    total_volume: float
    last_trained: Optional[datetime.datetime]
    frequency: float
    exercises: Tuple[Exercise, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProgressPoint:
    date: datetime.date
    value: float
    metric: ProgressMetric


@dataclass
class _DayTotals:
    max_weight: float = 0.0
    volume: float = 0.0
    sets: int = 0
    reps: int = 0

    def freeze(self, day: datetime.date) -> ExercisePerformance:
        return ExercisePerformance(
            date=day,
            max_weight=self.max_weight,
            total_volume=self.volume,
            total_sets=self.sets,
            average_reps=self.reps / self.sets,
        )


@dataclass
class _MuscleTotals:
    sets: int = 0
    volume: float = 0.0
    last_trained: Optional[datetime.datetime] = None
    exercises: Dict[str, Exercise] = field(default_factory=dict)


def week_start(day: datetime.date, first_weekday: int = 0) -> datetime.date:
    """Return the first day of the week containing ``day``."""
    return day - datetime.timedelta(days=(day.weekday() - first_weekday) % 7)


def month_start(day: datetime.date) -> datetime.date:
    return day.replace(day=1)


def next_month_start(day: datetime.date) -> datetime.date:
    first = month_start(day)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def calculate_streak(
    dates: List[datetime.datetime], today: datetime.date
) -> WorkoutStreak:
    """Compute consecutive-day streaks from workout dates.

    Multiple workouts on one calendar day count once. The current streak is
    the run containing the most recent workout and is only reported while
    that workout was today or yesterday.
    """
    if not dates:
        return WorkoutStreak()
    last_workout = max(dates)
    days = sorted({d.date() for d in dates}, reverse=True)
    longest = 0
    run = 1
    recent_run: Optional[int] = None
    recent_start = days[0]
    for later, earlier in zip(days, days[1:]):
        if (later - earlier).days == 1:
            run += 1
            if recent_run is None:
                recent_start = earlier
        else:
            longest = max(longest, run)
            if recent_run is None:
                recent_run = run
            run = 1
    longest = max(longest, run)
    if recent_run is None:
        recent_run = run
    if (today - days[0]).days > 1:
        return WorkoutStreak(0, longest, last_workout, None)
    return WorkoutStreak(recent_run, longest, last_workout, recent_start)


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        set_repo: SetRepository,
        exercise_repo: ExerciseRepository,
        preferences: SettingsSchema | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.sets = set_repo
        self.exercises = exercise_repo
        self.preferences = preferences or DEFAULT_SETTINGS
        self.clock = clock or datetime.datetime.now

    def _require_exercise(self, exercise_id: str) -> Exercise:
        exercise = self.exercises.fetch(exercise_id)
        if exercise is None:
            raise ValueError("exercise not found")
        return exercise

    def workout_analytics(
        self,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
    ) -> WorkoutAnalytics:
        """Summarize all workouts between ``start_date`` and ``end_date``."""
        details = self.workouts.fetch_details(start_date, end_date)
        now = self.clock()
        total_volume = 0.0
        total_sets = 0
        total_reps = 0
        total_duration = 0
        exercise_counts: Counter[str] = Counter()
        exercises: Dict[str, Exercise] = {}
        muscle_sets: Dict[str, int] = {}
        for detail in details:
            total_duration += detail.workout.duration
            for item in detail.exercises:
                if item.exercise is not None:
                    exercise_counts[item.exercise.id] += 1
                    exercises.setdefault(item.exercise.id, item.exercise)
                    for muscle in item.exercise.muscle_groups:
                        muscle_sets[muscle] = muscle_sets.get(muscle, 0) + len(
                            item.sets
                        )
                for s in item.sets:
                    if not s.completed:
                        continue
                    total_sets += 1
                    total_reps += s.reps
                    total_volume += s.volume

        week = week_start(now.date(), self.preferences.first_weekday)
        week_end = week + datetime.timedelta(days=7)
        month = month_start(now.date())
        month_end = next_month_start(now.date())
        this_week = sum(1 for d in details if week <= d.workout.date.date() < week_end)
        this_month = sum(
            1 for d in details if month <= d.workout.date.date() < month_end
        )

        favorites = tuple(
            ExerciseCount(exercises[ex_id], count)
            for ex_id, count in exercise_counts.most_common(FAVORITE_LIMIT)
        )
        distribution: List[MuscleGroupShare] = []
        total_muscle_sets = sum(muscle_sets.values())
        if total_muscle_sets > 0:
            distribution = [
                MuscleGroupShare(
                    muscle,
                    count,
                    MathTools.percentage_share(count, total_muscle_sets),
                )
                for muscle, count in muscle_sets.items()
            ]
            distribution.sort(key=lambda share: share.percentage, reverse=True)

        total_workouts = len(details)
        return WorkoutAnalytics(
            total_workouts=total_workouts,
            total_volume=total_volume,
            total_sets=total_sets,
            total_reps=total_reps,
            total_duration=total_duration,
            average_workout_duration=(
                total_duration / total_workouts if total_workouts else 0.0
            ),
            workouts_this_week=this_week,
            workouts_this_month=this_month,
            streak=self.workout_streak(),
            favorite_exercises=favorites,
            muscle_group_distribution=tuple(distribution),
        )

    def workout_streak(self) -> WorkoutStreak:
        """Return current and longest daily workout streaks over all history."""
        dates = [w.date for w in self.workouts.fetch_all_workouts()]
        return calculate_streak(dates, self.clock().date())

    def exercise_analytics(
        self, exercise_id: str, start_date: Optional[datetime.datetime] = None
    ) -> ExerciseAnalytics:
        """Aggregate completed sets of one exercise, optionally since
        ``start_date``."""
        exercise = self._require_exercise(exercise_id)
        history = self.workouts.fetch_exercise_history(exercise_id, start_date)
        weights: List[float] = []
        reps: List[int] = []
        by_day: Dict[datetime.date, _DayTotals] = {}
        for workout, item in history:
            completed = [s for s in item.sets if s.completed]
            if not completed:
                continue
            totals = by_day.setdefault(workout.date.date(), _DayTotals())
            for s in completed:
                weights.append(s.weight)
                reps.append(s.reps)
                totals.max_weight = max(totals.max_weight, s.weight)
                totals.volume += s.volume
                totals.sets += 1
                totals.reps += s.reps

        performance = tuple(
            by_day[day].freeze(day) for day in sorted(by_day)
        )
        return ExerciseAnalytics(
            exercise=exercise,
            total_sets=len(weights),
            total_reps=sum(reps),
            total_volume=MathTools.volume(zip(reps, weights)),
            max_weight=max(weights, default=0.0),
            average_weight=MathTools.mean(weights),
            average_reps=MathTools.mean(reps),
            last_performed=max((w.date for w, _ in history), default=None),
            performance_history=performance,
            personal_records=self.personal_records(exercise_id),
        )

    def personal_records(self, exercise_id: str) -> PersonalRecords:
        """Return the heaviest, highest-volume and highest-rep completed sets.

        The earliest set wins when values are equal.
        """
        best: Dict[str, Optional[RecordSet]] = {
            "weight": None,
            "volume": None,
            "reps": None,
        }
        for s, date in self.sets.fetch_completed_for_exercise(exercise_id):
            for key, value in (
                ("weight", s.weight),
                ("volume", s.volume),
                ("reps", float(s.reps)),
            ):
                current = best[key]
                if value > (current.value if current else 0.0):
                    best[key] = RecordSet(value, s.weight, s.reps, date)
        return PersonalRecords(
            max_weight=best["weight"],
            max_volume=best["volume"],
            max_reps=best["reps"],
        )

    def muscle_group_stats(self) -> List[MuscleGroupStats]:
        """Return per muscle group totals, busiest group first."""
        details = self.workouts.fetch_details()
        cutoff = self.clock() - datetime.timedelta(days=FREQUENCY_WINDOW_DAYS)
        totals: Dict[str, _MuscleTotals] = {}
        recent: Dict[str, set] = {}
        for detail in details:
            workout = detail.workout
            for item in detail.exercises:
                if item.exercise is None:
                    continue
                for muscle in item.exercise.muscle_groups:
                    data = totals.setdefault(muscle, _MuscleTotals())
                    for s in item.sets:
                        if s.completed:
                            data.sets += 1
                            data.volume += s.volume
                    if data.last_trained is None or workout.date > data.last_trained:
                        data.last_trained = workout.date
                    data.exercises[item.exercise.id] = item.exercise
                    if workout.date >= cutoff:
                        recent.setdefault(muscle, set()).add(workout.id)

        stats = [
            MuscleGroupStats(
                muscle_group=muscle,
                total_sets=data.sets,
                total_volume=data.volume,
                last_trained=data.last_trained,
                frequency=MathTools.weekly_frequency(len(recent.get(muscle, ()))),
                exercises=tuple(
                    sorted(data.exercises.values(), key=lambda e: e.name)
                ),
            )
            for muscle, data in totals.items()
        ]
        stats.sort(key=lambda s: s.total_sets, reverse=True)
        return stats

    def _metric_value(
        self, performance: ExercisePerformance, metric: ProgressMetric
    ) -> float:
        if metric is ProgressMetric.WEIGHT:
            return performance.max_weight
        if metric is ProgressMetric.VOLUME:
            return performance.total_volume
        return performance.average_reps

    def progress_series(
        self,
        exercise_id: str,
        metric: ProgressMetric | str = ProgressMetric.WEIGHT,
        days: int = 30,
    ) -> List[ProgressPoint]:
        """Return one point per training day over the trailing ``days``."""
        if days < 0:
            raise ValueError("days must be non-negative")
        metric = ProgressMetric(metric)
        start = self.clock() - datetime.timedelta(days=days)
        analytics = self.exercise_analytics(exercise_id, start)
        logger.debug(
            "progress series for %s: %d points", exercise_id, len(analytics.performance_history)
        )
        return [
            ProgressPoint(p.date, self._metric_value(p, metric), metric)
            for p in analytics.performance_history
        ]
