import sqlite3
import datetime
import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from config import YamlConfig
from errors import DataAccessError, ValidationError
from models import (
    Exercise,
    ExerciseCategory,
    SetConfiguration,
    TemplateDetail,
    TemplateExercise,
    TemplateExerciseDetail,
    Workout,
    WorkoutDetail,
    WorkoutExercise,
    WorkoutExerciseDetail,
    WorkoutSet,
    WorkoutTemplate,
)
from settings_schema import DEFAULT_SETTINGS, SettingsSchema, validate_settings
import validators

logger = logging.getLogger(__name__)


def to_timestamp(value: datetime.datetime) -> str:
    """Return ``value`` as naive local ISO text suitable for ordering."""
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")


def from_timestamp(text: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(text)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "exercises": (
            """CREATE TABLE exercises (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'Other',
                    muscle_groups TEXT NOT NULL DEFAULT '[]',
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "name",
                "category",
                "muscle_groups",
                "notes",
                "created_at",
                "updated_at",
            ],
        ),
        "workouts": (
            """CREATE TABLE workouts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    date TEXT NOT NULL,
                    notes TEXT,
                    duration INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "name", "date", "notes", "duration", "created_at", "updated_at"],
        ),
        "workout_exercises": (
            """CREATE TABLE workout_exercises (
                    id TEXT PRIMARY KEY,
                    workout_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            ["id", "workout_id", "exercise_id", "position"],
        ),
        "sets": (
            """CREATE TABLE sets (
                    id TEXT PRIMARY KEY,
                    workout_exercise_id TEXT NOT NULL,
                    set_number INTEGER NOT NULL,
                    weight REAL NOT NULL DEFAULT 0,
                    reps INTEGER NOT NULL DEFAULT 0,
                    rest_time INTEGER NOT NULL DEFAULT 0,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(workout_exercise_id) REFERENCES workout_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_exercise_id",
                "set_number",
                "weight",
                "reps",
                "rest_time",
                "completed",
                "created_at",
            ],
        ),
        "workout_templates": (
            """CREATE TABLE workout_templates (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "name", "notes", "created_at", "updated_at"],
        ),
        "template_exercises": (
            """CREATE TABLE template_exercises (
                    id TEXT PRIMARY KEY,
                    template_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    sets_configuration TEXT NOT NULL DEFAULT '[]',
                    FOREIGN KEY(template_id) REFERENCES workout_templates(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            ["id", "template_id", "exercise_id", "position", "sets_configuration"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT
                );""",
            ["key", "value"],
        ),
    }

    _INDEXES = (
        "CREATE INDEX IF NOT EXISTS idx_workouts_date ON workouts(date);",
        "CREATE INDEX IF NOT EXISTS idx_workout_exercises_workout ON workout_exercises(workout_id);",
        "CREATE INDEX IF NOT EXISTS idx_workout_exercises_exercise ON workout_exercises(exercise_id);",
        "CREATE INDEX IF NOT EXISTS idx_sets_workout_exercise ON sets(workout_exercise_id);",
        "CREATE INDEX IF NOT EXISTS idx_template_exercises_template ON template_exercises(template_id);",
    )

    _COLUMN_DEFAULTS = {
        "category": "'Other'",
        "muscle_groups": "'[]'",
        "sets_configuration": "'[]'",
        "duration": "0",
        "position": "0",
        "weight": "0",
        "reps": "0",
        "rest_time": "0",
        "completed": "0",
        "set_number": "1",
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._ensure_indexes()

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            logger.error("cannot open database %s: %s", self._db_path, e)
            raise DataAccessError(f"cannot open database: {e}") from e
        try:
            connection.execute("PRAGMA foreign_keys=on;")
            yield connection
            connection.commit()
        except sqlite3.Error as e:
            logger.error("database operation failed on %s: %s", self._db_path, e)
            raise DataAccessError(str(e)) from e
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep references in other tables pointing at the rebuilt table
            conn.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.commit()
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_indexes(self) -> None:
        with self._connection() as conn:
            for sql in self._INDEXES:
                conn.execute(sql)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s", table)
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                defaults = ", ".join(
                    self._COLUMN_DEFAULTS.get(c, "NULL") for c in missing
                )
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


def _decode_sets_configuration(text: str) -> List[SetConfiguration]:
    try:
        raw = json.loads(text or "[]")
    except json.JSONDecodeError:
        logger.warning("unreadable set configuration %r, no sets restored", text)
        return []
    if not isinstance(raw, list):
        logger.warning("set configuration is not a list, no sets restored")
        return []
    return [SetConfiguration.from_raw(item) for item in raw]


class _EntityMapping(NamedTuple):
    table: str
    columns: List[str]
    to_row: Callable[[Any], Tuple]
    from_row: Callable[[Tuple], Any]


_ENTITY_MAPPINGS: Dict[type, _EntityMapping] = {
    Exercise: _EntityMapping(
        "exercises",
        Database._TABLE_DEFINITIONS["exercises"][1],
        lambda e: (
            e.id,
            e.name,
            ExerciseCategory(e.category).value,
            json.dumps(list(e.muscle_groups)),
            e.notes,
            to_timestamp(e.created_at),
            to_timestamp(e.updated_at),
        ),
        lambda r: Exercise(
            id=r[0],
            name=r[1],
            category=ExerciseCategory(r[2]),
            muscle_groups=list(json.loads(r[3] or "[]")),
            notes=r[4],
            created_at=from_timestamp(r[5]),
            updated_at=from_timestamp(r[6]),
        ),
    ),
    Workout: _EntityMapping(
        "workouts",
        Database._TABLE_DEFINITIONS["workouts"][1],
        lambda w: (
            w.id,
            w.name,
            to_timestamp(w.date),
            w.notes,
            int(w.duration),
            to_timestamp(w.created_at),
            to_timestamp(w.updated_at),
        ),
        lambda r: Workout(
            id=r[0],
            name=r[1],
            date=from_timestamp(r[2]),
            notes=r[3],
            duration=int(r[4]),
            created_at=from_timestamp(r[5]),
            updated_at=from_timestamp(r[6]),
        ),
    ),
    WorkoutExercise: _EntityMapping(
        "workout_exercises",
        Database._TABLE_DEFINITIONS["workout_exercises"][1],
        lambda we: (we.id, we.workout_id, we.exercise_id, int(we.order)),
        lambda r: WorkoutExercise(
            id=r[0], workout_id=r[1], exercise_id=r[2], order=int(r[3])
        ),
    ),
    WorkoutSet: _EntityMapping(
        "sets",
        Database._TABLE_DEFINITIONS["sets"][1],
        lambda s: (
            s.id,
            s.workout_exercise_id,
            int(s.set_number),
            float(s.weight),
            int(s.reps),
            int(s.rest_time),
            int(bool(s.completed)),
            to_timestamp(s.created_at),
        ),
        lambda r: WorkoutSet(
            id=r[0],
            workout_exercise_id=r[1],
            set_number=int(r[2]),
            weight=float(r[3]),
            reps=int(r[4]),
            rest_time=int(r[5]),
            completed=bool(r[6]),
            created_at=from_timestamp(r[7]),
        ),
    ),
    WorkoutTemplate: _EntityMapping(
        "workout_templates",
        Database._TABLE_DEFINITIONS["workout_templates"][1],
        lambda t: (
            t.id,
            t.name,
            t.notes,
            to_timestamp(t.created_at),
            to_timestamp(t.updated_at),
        ),
        lambda r: WorkoutTemplate(
            id=r[0],
            name=r[1],
            notes=r[2],
            created_at=from_timestamp(r[3]),
            updated_at=from_timestamp(r[4]),
        ),
    ),
    TemplateExercise: _EntityMapping(
        "template_exercises",
        Database._TABLE_DEFINITIONS["template_exercises"][1],
        lambda te: (
            te.id,
            te.template_id,
            te.exercise_id,
            int(te.order),
            json.dumps([c.model_dump() for c in te.sets_configuration]),
        ),
        lambda r: TemplateExercise(
            id=r[0],
            template_id=r[1],
            exercise_id=r[2],
            order=int(r[3]),
            sets_configuration=_decode_sets_configuration(r[4]),
        ),
    ),
}

# attribute names that differ from their column
_ATTRIBUTE_COLUMNS = {"order": "position"}


class EntityStore(BaseRepository):
    """Generic entity access over the typed tables.

    ``fetch_entities`` and ``fetch_entity`` read, ``save_entities`` upserts a
    batch inside one transaction and ``delete_entity`` removes by id, letting
    the schema cascade to owned rows.
    """

    @staticmethod
    def _mapping(entity_type: type) -> _EntityMapping:
        try:
            return _ENTITY_MAPPINGS[entity_type]
        except KeyError:
            raise ValueError(f"unsupported entity type {entity_type.__name__}")

    @staticmethod
    def _column(mapping: _EntityMapping, attribute: str) -> str:
        column = _ATTRIBUTE_COLUMNS.get(attribute, attribute)
        if column not in mapping.columns:
            raise ValueError(f"unknown field {attribute} for {mapping.table}")
        return column

    @staticmethod
    def _param(value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, datetime.datetime):
            return to_timestamp(value)
        if isinstance(value, ExerciseCategory):
            return value.value
        return value

    def _select(self, mapping: _EntityMapping, alias: str = "") -> str:
        prefix = f"{alias}." if alias else ""
        return ", ".join(prefix + c for c in mapping.columns)

    def fetch_entities(
        self,
        entity_type: type,
        filters: Optional[Dict[str, Any]] = None,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
        sort_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Any]:
        mapping = self._mapping(entity_type)
        query = f"SELECT {self._select(mapping)} FROM {mapping.table}"
        params: list[Any] = []
        where_clauses: list[str] = []
        for attribute, value in (filters or {}).items():
            where_clauses.append(f"{self._column(mapping, attribute)} = ?")
            params.append(self._param(value))
        if start_date is not None or end_date is not None:
            self._column(mapping, "date")
        if start_date is not None:
            where_clauses.append("date >= ?")
            params.append(to_timestamp(start_date))
        if end_date is not None:
            where_clauses.append("date <= ?")
            params.append(to_timestamp(end_date))
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        order = "DESC" if descending else "ASC"
        if sort_by is not None:
            query += f" ORDER BY {self._column(mapping, sort_by)} {order}, rowid {order}"
        else:
            query += " ORDER BY rowid"
        query += ";"
        return [mapping.from_row(r) for r in self.fetch_all(query, tuple(params))]

    def fetch_entity(self, entity_type: type, entity_id: str) -> Optional[Any]:
        mapping = self._mapping(entity_type)
        rows = self.fetch_all(
            f"SELECT {self._select(mapping)} FROM {mapping.table} WHERE id = ?;",
            (entity_id,),
        )
        return mapping.from_row(rows[0]) if rows else None

    def save_entities(self, entities: Iterable[Any]) -> None:
        """Insert or update all ``entities`` atomically, parents first."""
        with self._connection() as conn:
            for entity in entities:
                mapping = self._mapping(type(entity))
                cols = ", ".join(mapping.columns)
                placeholders = ", ".join("?" for _ in mapping.columns)
                updates = ", ".join(
                    f"{c} = excluded.{c}" for c in mapping.columns if c != "id"
                )
                conn.execute(
                    f"INSERT INTO {mapping.table} ({cols}) VALUES ({placeholders}) "
                    f"ON CONFLICT(id) DO UPDATE SET {updates};",
                    mapping.to_row(entity),
                )

    def delete_entity(self, entity: Any) -> None:
        mapping = self._mapping(type(entity))
        self.execute(f"DELETE FROM {mapping.table} WHERE id = ?;", (entity.id,))


def _category(value: Any) -> ExerciseCategory:
    try:
        return ExerciseCategory(value)
    except ValueError:
        raise ValidationError(f"unknown exercise category {value!r}")


def _muscle_groups(values: Iterable[Any]) -> List[str]:
    tags = [str(getattr(v, "value", v)).strip() for v in values]
    return list(dict.fromkeys(t for t in tags if t))


class ExerciseRepository(EntityStore):
    """Repository for the shared exercise library."""

    def create(
        self,
        name: str,
        category: ExerciseCategory | str = ExerciseCategory.OTHER,
        muscle_groups: Iterable[str] = (),
        notes: Optional[str] = None,
    ) -> Exercise:
        exercise = Exercise(
            name=validators.validate_exercise_name(name),
            category=_category(category),
            muscle_groups=_muscle_groups(muscle_groups),
            notes=validators.validate_notes(notes),
        )
        self.save_entities([exercise])
        return exercise

    def fetch_all_exercises(self) -> List[Exercise]:
        return self.fetch_entities(Exercise, sort_by="name")

    def fetch(self, exercise_id: str) -> Optional[Exercise]:
        return self.fetch_entity(Exercise, exercise_id)

    def fetch_by_category(self, category: ExerciseCategory | str) -> List[Exercise]:
        return self.fetch_entities(
            Exercise, {"category": _category(category)}, sort_by="name"
        )

    def search(self, query: str) -> List[Exercise]:
        """Return exercises whose name, category or notes contain ``query``."""
        if not query:
            return self.fetch_all_exercises()
        mapping = self._mapping(Exercise)
        like = f"%{query.lower()}%"
        rows = self.fetch_all(
            f"SELECT {self._select(mapping)} FROM exercises "
            "WHERE lower(name) LIKE ? OR lower(category) LIKE ? OR lower(notes) LIKE ? "
            "ORDER BY name;",
            (like, like, like),
        )
        return [mapping.from_row(r) for r in rows]

    def update(
        self,
        exercise_id: str,
        name: Optional[str] = None,
        category: ExerciseCategory | str | None = None,
        muscle_groups: Optional[Iterable[str]] = None,
        notes: Optional[str] = None,
    ) -> Exercise:
        exercise = self.fetch(exercise_id)
        if exercise is None:
            raise ValueError("exercise not found")
        if name is not None:
            exercise.name = validators.validate_exercise_name(name)
        if category is not None:
            exercise.category = _category(category)
        if muscle_groups is not None:
            exercise.muscle_groups = _muscle_groups(muscle_groups)
        if notes is not None:
            exercise.notes = validators.validate_notes(notes)
        exercise.updated_at = datetime.datetime.now()
        self.save_entities([exercise])
        return exercise

    def usage_count(self, exercise_id: str) -> int:
        rows = self.fetch_all(
            "SELECT (SELECT COUNT(*) FROM workout_exercises WHERE exercise_id = ?)"
            " + (SELECT COUNT(*) FROM template_exercises WHERE exercise_id = ?);",
            (exercise_id, exercise_id),
        )
        return int(rows[0][0])

    def delete(self, exercise_id: str) -> None:
        exercise = self.fetch(exercise_id)
        if exercise is None:
            raise ValueError("exercise not found")
        used = self.usage_count(exercise_id)
        if used:
            raise ValidationError(
                f"exercise {exercise.name} is used by {used} workout or template entries"
            )
        self.delete_entity(exercise)

    def delete_all(self) -> None:
        rows = self.fetch_all(
            "SELECT (SELECT COUNT(*) FROM workout_exercises)"
            " + (SELECT COUNT(*) FROM template_exercises);"
        )
        if int(rows[0][0]):
            raise ValidationError("exercises are still used by workouts or templates")
        self._delete_all("exercises")


class WorkoutRepository(EntityStore):
    """Repository for workouts and the exercises performed in them."""

    def create(
        self,
        name: str,
        date: Optional[datetime.datetime] = None,
        notes: Optional[str] = None,
    ) -> Workout:
        workout = Workout(
            name=validators.validate_workout_name(name),
            date=date or datetime.datetime.now(),
            notes=validators.validate_notes(notes),
        )
        self.save_entities([workout])
        return workout

    def fetch_all_workouts(
        self,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
        descending: bool = True,
    ) -> List[Workout]:
        return self.fetch_entities(
            Workout,
            start_date=start_date,
            end_date=end_date,
            sort_by="date",
            descending=descending,
        )

    def fetch(self, workout_id: str) -> Optional[Workout]:
        return self.fetch_entity(Workout, workout_id)

    def _require(self, workout_id: str) -> Workout:
        workout = self.fetch(workout_id)
        if workout is None:
            raise ValueError("workout not found")
        return workout

    def fetch_by_date_range(
        self, start_date: datetime.datetime, end_date: datetime.datetime
    ) -> List[Workout]:
        return self.fetch_all_workouts(start_date, end_date)

    def fetch_today(self, now: Optional[datetime.datetime] = None) -> List[Workout]:
        now = now or datetime.datetime.now()
        start = datetime.datetime.combine(now.date(), datetime.time.min)
        end = datetime.datetime.combine(now.date(), datetime.time.max)
        return self.fetch_all_workouts(start, end)

    def update(
        self,
        workout_id: str,
        name: Optional[str] = None,
        date: Optional[datetime.datetime] = None,
        notes: Optional[str] = None,
    ) -> Workout:
        workout = self._require(workout_id)
        if name is not None:
            workout.name = validators.validate_workout_name(name)
        if date is not None:
            workout.date = date
        if notes is not None:
            workout.notes = validators.validate_notes(notes)
        workout.updated_at = datetime.datetime.now()
        self.save_entities([workout])
        return workout

    def start_workout(
        self, workout_id: str, now: Optional[datetime.datetime] = None
    ) -> Workout:
        workout = self._require(workout_id)
        workout.date = now or datetime.datetime.now()
        workout.updated_at = datetime.datetime.now()
        self.save_entities([workout])
        return workout

    def end_workout(self, workout_id: str, duration: int) -> Workout:
        if duration < 0:
            raise ValidationError("duration must be non-negative")
        workout = self._require(workout_id)
        workout.duration = int(duration)
        workout.updated_at = datetime.datetime.now()
        self.save_entities([workout])
        return workout

    def delete(self, workout_id: str) -> None:
        self.delete_entity(self._require(workout_id))

    def add_exercise(
        self, workout_id: str, exercise_id: str, order: Optional[int] = None
    ) -> WorkoutExercise:
        self._require(workout_id)
        if self.fetch_entity(Exercise, exercise_id) is None:
            raise ValueError("exercise not found")
        if order is None:
            rows = self.fetch_all(
                "SELECT COALESCE(MAX(position) + 1, 0) FROM workout_exercises WHERE workout_id = ?;",
                (workout_id,),
            )
            order = int(rows[0][0])
        workout_exercise = WorkoutExercise(
            workout_id=workout_id, exercise_id=exercise_id, order=order
        )
        self.save_entities([workout_exercise])
        return workout_exercise

    def remove_exercise(self, workout_exercise_id: str) -> None:
        self.execute(
            "DELETE FROM workout_exercises WHERE id = ?;", (workout_exercise_id,)
        )

    def fetch_workout_exercises(self, workout_id: str) -> List[WorkoutExercise]:
        return self.fetch_entities(
            WorkoutExercise, {"workout_id": workout_id}, sort_by="order"
        )

    def reorder_exercises(self, workout_id: str, order: List[str]) -> None:
        existing = [we.id for we in self.fetch_workout_exercises(workout_id)]
        if set(order) != set(existing) or len(order) != len(existing):
            raise ValidationError("invalid order")
        with self._connection() as conn:
            for pos, we_id in enumerate(order):
                conn.execute(
                    "UPDATE workout_exercises SET position = ? WHERE id = ?;",
                    (pos, we_id),
                )

    def _exercise_lookup(self) -> Dict[str, Exercise]:
        return {e.id: e for e in self.fetch_entities(Exercise)}

    def _assemble(
        self,
        workouts: List[Workout],
        where: str = "",
        params: Tuple = (),
    ) -> List[WorkoutDetail]:
        we_map = _ENTITY_MAPPINGS[WorkoutExercise]
        set_map = _ENTITY_MAPPINGS[WorkoutSet]
        we_rows = self.fetch_all(
            f"SELECT {self._select(we_map, 'we')} FROM workout_exercises we "
            f"JOIN workouts w ON we.workout_id = w.id {where} "
            "ORDER BY we.position, we.rowid;",
            params,
        )
        set_rows = self.fetch_all(
            f"SELECT {self._select(set_map, 's')} FROM sets s "
            "JOIN workout_exercises we ON s.workout_exercise_id = we.id "
            f"JOIN workouts w ON we.workout_id = w.id {where} "
            "ORDER BY s.set_number, s.rowid;",
            params,
        )
        exercises = self._exercise_lookup()
        sets_by_exercise: Dict[str, List[WorkoutSet]] = {}
        for row in set_rows:
            workout_set = set_map.from_row(row)
            sets_by_exercise.setdefault(workout_set.workout_exercise_id, []).append(
                workout_set
            )
        details = {w.id: WorkoutDetail(workout=w) for w in workouts}
        for row in we_rows:
            we = we_map.from_row(row)
            detail = details.get(we.workout_id)
            if detail is None:
                continue
            detail.exercises.append(
                WorkoutExerciseDetail(
                    workout_exercise=we,
                    exercise=exercises.get(we.exercise_id),
                    sets=sets_by_exercise.get(we.id, []),
                )
            )
        return [details[w.id] for w in workouts]

    def fetch_detail(self, workout_id: str) -> WorkoutDetail:
        workout = self._require(workout_id)
        return self._assemble([workout], "WHERE w.id = ?", (workout_id,))[0]

    def fetch_details(
        self,
        start_date: Optional[datetime.datetime] = None,
        end_date: Optional[datetime.datetime] = None,
        descending: bool = False,
    ) -> List[WorkoutDetail]:
        workouts = self.fetch_all_workouts(start_date, end_date, descending)
        clauses: list[str] = []
        params: list[str] = []
        if start_date is not None:
            clauses.append("w.date >= ?")
            params.append(to_timestamp(start_date))
        if end_date is not None:
            clauses.append("w.date <= ?")
            params.append(to_timestamp(end_date))
        where = "WHERE " + " AND ".join(clauses) if clauses else ""
        return self._assemble(workouts, where, tuple(params))

    def fetch_exercise_history(
        self, exercise_id: str, start_date: Optional[datetime.datetime] = None
    ) -> List[Tuple[Workout, WorkoutExerciseDetail]]:
        """Return every performance of ``exercise_id`` with its workout,
        oldest first."""
        where = "WHERE we.exercise_id = ?"
        params: list[str] = [exercise_id]
        if start_date is not None:
            where += " AND w.date >= ?"
            params.append(to_timestamp(start_date))
        workout_map = _ENTITY_MAPPINGS[Workout]
        rows = self.fetch_all(
            f"SELECT {self._select(workout_map, 'w')} FROM workouts w "
            "WHERE w.id IN (SELECT we.workout_id FROM workout_exercises we "
            f"JOIN workouts w ON we.workout_id = w.id {where}) "
            "ORDER BY w.date, w.rowid;",
            tuple(params),
        )
        workouts = [workout_map.from_row(r) for r in rows]
        history: List[Tuple[Workout, WorkoutExerciseDetail]] = []
        for detail in self._assemble(workouts, where, tuple(params)):
            for item in detail.exercises:
                history.append((detail.workout, item))
        return history

    def save_graph(
        self,
        workout: Workout,
        workout_exercises: Iterable[WorkoutExercise],
        sets: Iterable[WorkoutSet],
    ) -> None:
        self.save_entities([workout, *workout_exercises, *sets])


class SetRepository(EntityStore):
    """Repository for sets table operations.

    ``default_rest_time`` is the user's rest preference, applied to the first
    set of an exercise when no rest time is given.
    """

    def __init__(
        self,
        db_path: str = "workout.db",
        default_rest_time: int = DEFAULT_SETTINGS.default_rest_time,
    ) -> None:
        super().__init__(db_path)
        self.default_rest_time = validators.validate_rest_time(default_rest_time)

    def add(
        self,
        workout_exercise_id: str,
        set_number: Optional[int] = None,
        weight: Optional[float] = None,
        reps: Optional[int] = None,
        rest_time: Optional[int] = None,
    ) -> WorkoutSet:
        """Append a set, copying unspecified values from the previous set."""
        if self.fetch_entity(WorkoutExercise, workout_exercise_id) is None:
            raise ValueError("workout exercise not found")
        existing = self.fetch_for_exercise(workout_exercise_id)
        last = existing[-1] if existing else None
        if set_number is None:
            set_number = (last.set_number if last else 0) + 1
        if weight is None:
            weight = last.weight if last else 0.0
        if reps is None:
            reps = last.reps if last else 0
        if rest_time is None:
            rest_time = last.rest_time if last else self.default_rest_time
        workout_set = WorkoutSet(
            workout_exercise_id=workout_exercise_id,
            set_number=validators.validate_set_number(set_number),
            weight=validators.validate_weight(weight),
            reps=validators.validate_reps(reps),
            rest_time=validators.validate_rest_time(rest_time),
        )
        self.save_entities([workout_set])
        return workout_set

    def fetch(self, set_id: str) -> Optional[WorkoutSet]:
        return self.fetch_entity(WorkoutSet, set_id)

    def update(
        self,
        set_id: str,
        weight: Optional[float] = None,
        reps: Optional[int] = None,
        rest_time: Optional[int] = None,
        completed: Optional[bool] = None,
    ) -> WorkoutSet:
        workout_set = self.fetch(set_id)
        if workout_set is None:
            raise ValueError("set not found")
        if weight is not None:
            workout_set.weight = validators.validate_weight(weight)
        if reps is not None:
            workout_set.reps = validators.validate_reps(reps)
        if rest_time is not None:
            workout_set.rest_time = validators.validate_rest_time(rest_time)
        if completed is not None:
            workout_set.completed = bool(completed)
        self.save_entities([workout_set])
        return workout_set

    def bulk_complete(self, set_ids: List[str], completed: bool = True) -> None:
        if not set_ids:
            return
        with self._connection() as conn:
            for sid in set_ids:
                conn.execute(
                    "UPDATE sets SET completed = ? WHERE id = ?;",
                    (int(completed), sid),
                )

    def remove(self, set_id: str) -> None:
        self.execute("DELETE FROM sets WHERE id = ?;", (set_id,))

    def fetch_for_exercise(self, workout_exercise_id: str) -> List[WorkoutSet]:
        return self.fetch_entities(
            WorkoutSet,
            {"workout_exercise_id": workout_exercise_id},
            sort_by="set_number",
        )

    def fetch_completed_for_exercise(
        self, exercise_id: str
    ) -> List[Tuple[WorkoutSet, datetime.datetime]]:
        """Return completed sets of ``exercise_id`` with their workout date,
        in the order they were performed."""
        set_map = _ENTITY_MAPPINGS[WorkoutSet]
        rows = self.fetch_all(
            f"SELECT {self._select(set_map, 's')}, w.date FROM sets s "
            "JOIN workout_exercises we ON s.workout_exercise_id = we.id "
            "JOIN workouts w ON we.workout_id = w.id "
            "WHERE we.exercise_id = ? AND s.completed = 1 "
            "ORDER BY w.date, w.rowid, we.position, s.set_number, s.rowid;",
            (exercise_id,),
        )
        return [(set_map.from_row(r[:-1]), from_timestamp(r[-1])) for r in rows]


class TemplateRepository(EntityStore):
    """Repository for workout templates and their set blueprints."""

    def fetch_all_templates(self) -> List[WorkoutTemplate]:
        return self.fetch_entities(WorkoutTemplate, sort_by="name")

    def fetch(self, template_id: str) -> Optional[WorkoutTemplate]:
        return self.fetch_entity(WorkoutTemplate, template_id)

    def _require(self, template_id: str) -> WorkoutTemplate:
        template = self.fetch(template_id)
        if template is None:
            raise ValueError("template not found")
        return template

    def fetch_detail(self, template_id: str) -> TemplateDetail:
        template = self._require(template_id)
        exercises = {e.id: e for e in self.fetch_entities(Exercise)}
        entries = self.fetch_entities(
            TemplateExercise, {"template_id": template_id}, sort_by="order"
        )
        return TemplateDetail(
            template=template,
            exercises=[
                TemplateExerciseDetail(
                    template_exercise=te, exercise=exercises.get(te.exercise_id)
                )
                for te in entries
            ],
        )

    def rename(self, template_id: str, name: str) -> WorkoutTemplate:
        template = self._require(template_id)
        template.name = validators.validate_workout_name(name)
        template.updated_at = datetime.datetime.now()
        self.save_entities([template])
        return template

    def delete(self, template_id: str) -> None:
        self.delete_entity(self._require(template_id))

    def save_graph(
        self,
        template: WorkoutTemplate,
        template_exercises: Iterable[TemplateExercise],
    ) -> None:
        self.save_entities([template, *template_exercises])


class SettingsRepository(BaseRepository):
    """Repository for user preferences synchronized with YAML."""

    _BOOL_KEYS = {
        name
        for name, info in SettingsSchema.model_fields.items()
        if info.annotation is bool
    }
    _INT_KEYS = {
        name
        for name, info in SettingsSchema.model_fields.items()
        if info.annotation is int
    }

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._init_settings()
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _encode(self, key: str, value: Any) -> str:
        if key in self._BOOL_KEYS:
            return "1" if str(value) in {"1", "1.0", "true", "True"} else "0"
        return str(value)

    def _decode(self, key: str, value: str) -> Any:
        if key in self._BOOL_KEYS:
            return value in {"1", "1.0", "true", "True"}
        if key in self._INT_KEYS:
            try:
                return int(float(value))
            except ValueError:
                return value
        return value

    def _init_settings(self) -> None:
        with self._connection() as conn:
            for key, value in DEFAULT_SETTINGS.model_dump().items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, self._encode(key, value)),
                )

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        return {k: self._decode(k, v) for k, v in rows}

    def _upsert(self, conn: sqlite3.Connection, key: str, value: Any) -> None:
        conn.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, self._encode(key, value)),
        )

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                self._upsert(conn, key, value)

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def set_text(self, key: str, value: str) -> None:
        validate_settings({**self._raw_all_settings(), key: value})
        with self._connection() as conn:
            self._upsert(conn, key, value)
        self._sync_to_yaml()

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(int(value)))

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def preferences(self) -> SettingsSchema:
        return validate_settings(self.all_settings())

    def reset(self) -> None:
        with self._connection() as conn:
            for key, value in DEFAULT_SETTINGS.model_dump().items():
                self._upsert(conn, key, value)
        self._sync_to_yaml()
