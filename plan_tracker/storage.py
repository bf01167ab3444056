"""Persistence for plans, workouts, exercises and progress.

Two interchangeable backends implement :class:`Storage`: an in-memory store
for tests and throwaway sessions, and a SQLite file store. The server builds
exactly one of them at startup (see :func:`create_storage`) and hands it to
every request through ``app.state.store``.

Records are plain dicts with snake_case keys.
"""

import datetime
import itertools
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from plan_tracker.progress import apply_completion, completion_percentage
from plan_tracker.schemas import PlanFile, validate_plan

logger = logging.getLogger(__name__)

WORKOUT_FIELDS = ('day', 'name', 'notes', 'is_completed')
EXERCISE_FIELDS = ('name', 'sets', 'reps', 'notes', 'is_completed')
PROGRESS_FIELDS = ('current_day', 'completed_days', 'current_streak', 'longest_streak')


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _pick(updates: Dict, allowed) -> Dict:
    return {key: updates[key] for key in allowed if key in updates}


class Storage(ABC):
    """Operations every backend provides, plus the composite operations built on them."""

    def __init__(self) -> None:
        # Guards read-modify-write of progress counters.
        self.lock = threading.Lock()

    # Plans

    @abstractmethod
    def create_plan(self, name: str, total_days: int) -> Dict: ...

    @abstractmethod
    def get_plan(self, plan_id: int) -> Optional[Dict]: ...

    @abstractmethod
    def list_plans(self) -> List[Dict]: ...

    # Workouts

    @abstractmethod
    def create_workout(self, plan_id: int, day: int, name: str, notes: Optional[str]) -> Dict: ...

    @abstractmethod
    def get_workout(self, workout_id: int) -> Optional[Dict]: ...

    @abstractmethod
    def list_workouts(self, plan_id: int) -> List[Dict]: ...

    @abstractmethod
    def get_workout_by_day(self, plan_id: int, day: int) -> Optional[Dict]: ...

    @abstractmethod
    def update_workout(self, workout_id: int, **updates) -> Optional[Dict]:
        """Apply ``updates``; stamps ``completed_at`` when the workout becomes complete."""

    # Exercises

    @abstractmethod
    def create_exercise(self, workout_id: int, name: str, sets: int, reps: str,
                        notes: Optional[str]) -> Dict: ...

    @abstractmethod
    def get_exercise(self, exercise_id: int) -> Optional[Dict]: ...

    @abstractmethod
    def list_exercises(self, workout_id: int) -> List[Dict]: ...

    @abstractmethod
    def update_exercise(self, exercise_id: int, **updates) -> Optional[Dict]: ...

    # Progress

    @abstractmethod
    def create_progress(self, plan_id: int) -> Dict: ...

    @abstractmethod
    def get_progress(self, plan_id: int) -> Optional[Dict]: ...

    @abstractmethod
    def update_progress(self, progress_id: int, **updates) -> Optional[Dict]:
        """Apply ``updates``; stamps ``last_completed_at`` when ``completed_days`` grows
        and never lets ``longest_streak`` shrink."""

    # Composite operations

    def import_plan(self, plan: PlanFile) -> Dict:
        """Store a validated plan with its days, exercises and a fresh progress record."""
        record = self.create_plan(plan.name, plan.total_days)
        for day in plan.workouts:
            workout = self.create_workout(record['id'], day.day, day.name, day.notes)
            for exercise in day.exercises:
                self.create_exercise(workout['id'], exercise.name, exercise.sets,
                                     exercise.reps, exercise.notes)
        self.create_progress(record['id'])
        logger.info("Stored plan %d %r (%d day(s) of %d)",
                    record['id'], plan.name, len(plan.workouts), plan.total_days)
        return record

    def export_plan(self, plan_id: int) -> Optional[PlanFile]:
        plan = self.get_plan(plan_id)
        if plan is None:
            return None
        workouts = []
        for workout in self.list_workouts(plan_id):
            exercises = []
            for exercise in self.list_exercises(workout['id']):
                entry = {'name': exercise['name'], 'sets': exercise['sets'], 'reps': exercise['reps']}
                if exercise['notes'] is not None:
                    entry['notes'] = exercise['notes']
                exercises.append(entry)
            day = {'day': workout['day'], 'name': workout['name'], 'exercises': exercises}
            if workout['notes'] is not None:
                day['notes'] = workout['notes']
            workouts.append(day)
        return validate_plan({'name': plan['name'], 'totalDays': plan['total_days'], 'workouts': workouts})

    def complete_workout(self, workout_id: int) -> Optional[Dict]:
        """Mark a workout complete and advance the plan's progress.

        Completing a workout that is already complete changes nothing.
        """
        with self.lock:
            workout = self.get_workout(workout_id)
            if workout is None:
                return None
            if workout['is_completed']:
                logger.info("Workout %d already completed, progress unchanged", workout_id)
                return workout
            updated = self.update_workout(workout_id, is_completed=True)
            progress = self.get_progress(workout['plan_id'])
            if progress is not None:
                changes = apply_completion(progress, workout['day'])
                self.update_progress(progress['id'], **changes)
                logger.info("Plan %d day %d completed: streak %d, next day %d",
                            workout['plan_id'], workout['day'],
                            changes['current_streak'], changes['current_day'])
            else:
                logger.warning("No progress record for plan %d", workout['plan_id'])
            return updated

    def complete_exercise(self, exercise_id: int) -> Optional[Dict]:
        return self.update_exercise(exercise_id, is_completed=True)

    def progress_summary(self, plan_id: int, recent: int = 5) -> Optional[Dict]:
        """Progress counters, completion percentage and the latest completed workouts."""
        progress = self.get_progress(plan_id)
        plan = self.get_plan(plan_id)
        if progress is None or plan is None:
            return None
        completed = [w for w in self.list_workouts(plan_id) if w['is_completed']]
        completed.sort(key=lambda w: w['completed_at'] or '', reverse=True)
        return {
            'progress': progress,
            'completion_percentage': completion_percentage(progress['completed_days'], plan['total_days']),
            'total_days': plan['total_days'],
            'recent_completed_workouts': completed[:recent],
        }


class MemoryStorage(Storage):
    """Keeps every record in dicts keyed by id; nothing survives the process."""

    def __init__(self) -> None:
        super().__init__()
        self._plans: Dict[int, Dict] = {}
        self._workouts: Dict[int, Dict] = {}
        self._exercises: Dict[int, Dict] = {}
        self._progress: Dict[int, Dict] = {}
        self._plan_ids = itertools.count(1)
        self._workout_ids = itertools.count(1)
        self._exercise_ids = itertools.count(1)
        self._progress_ids = itertools.count(1)

    def create_plan(self, name, total_days):
        plan_id = next(self._plan_ids)
        self._plans[plan_id] = {'id': plan_id, 'name': name, 'total_days': total_days,
                                'created_at': _now()}
        return dict(self._plans[plan_id])

    def get_plan(self, plan_id):
        plan = self._plans.get(plan_id)
        return dict(plan) if plan else None

    def list_plans(self):
        return [dict(plan) for plan in self._plans.values()]

    def create_workout(self, plan_id, day, name, notes):
        workout_id = next(self._workout_ids)
        self._workouts[workout_id] = {
            'id': workout_id, 'plan_id': plan_id, 'day': day, 'name': name, 'notes': notes,
            'is_completed': False, 'completed_at': None,
        }
        return dict(self._workouts[workout_id])

    def get_workout(self, workout_id):
        workout = self._workouts.get(workout_id)
        return dict(workout) if workout else None

    def list_workouts(self, plan_id):
        workouts = [dict(w) for w in self._workouts.values() if w['plan_id'] == plan_id]
        return sorted(workouts, key=lambda w: w['day'])

    def get_workout_by_day(self, plan_id, day):
        for workout in self._workouts.values():
            if workout['plan_id'] == plan_id and workout['day'] == day:
                return dict(workout)
        return None

    def update_workout(self, workout_id, **updates):
        workout = self._workouts.get(workout_id)
        if workout is None:
            return None
        changes = _pick(updates, WORKOUT_FIELDS)
        if changes.get('is_completed') and not workout['is_completed']:
            changes['completed_at'] = _now()
        workout.update(changes)
        return dict(workout)

    def create_exercise(self, workout_id, name, sets, reps, notes):
        exercise_id = next(self._exercise_ids)
        self._exercises[exercise_id] = {
            'id': exercise_id, 'workout_id': workout_id, 'name': name, 'sets': sets,
            'reps': reps, 'notes': notes, 'is_completed': False,
        }
        return dict(self._exercises[exercise_id])

    def get_exercise(self, exercise_id):
        exercise = self._exercises.get(exercise_id)
        return dict(exercise) if exercise else None

    def list_exercises(self, workout_id):
        return [dict(e) for e in self._exercises.values() if e['workout_id'] == workout_id]

    def update_exercise(self, exercise_id, **updates):
        exercise = self._exercises.get(exercise_id)
        if exercise is None:
            return None
        exercise.update(_pick(updates, EXERCISE_FIELDS))
        return dict(exercise)

    def create_progress(self, plan_id):
        progress_id = next(self._progress_ids)
        self._progress[progress_id] = {
            'id': progress_id, 'plan_id': plan_id, 'current_day': 1, 'completed_days': 0,
            'current_streak': 0, 'longest_streak': 0, 'last_completed_at': None,
        }
        return dict(self._progress[progress_id])

    def get_progress(self, plan_id):
        for progress in self._progress.values():
            if progress['plan_id'] == plan_id:
                return dict(progress)
        return None

    def update_progress(self, progress_id, **updates):
        progress = self._progress.get(progress_id)
        if progress is None:
            return None
        changes = _pick(updates, PROGRESS_FIELDS)
        if changes.get('completed_days', 0) > progress['completed_days']:
            changes['last_completed_at'] = _now()
        if 'current_streak' in changes or 'longest_streak' in changes:
            changes['longest_streak'] = max(
                progress['longest_streak'],
                changes.get('longest_streak', 0),
                changes.get('current_streak', 0),
            )
        progress.update(changes)
        return dict(progress)


class SqliteStorage(Storage):
    """SQLite-backed store; a new connection is opened for each operation."""

    def __init__(self, database: str) -> None:
        super().__init__()
        self.database = database
        self.init_db()

    def get_db_connection(self) -> sqlite3.Connection:
        """Return a new database connection with a Row factory for dict-like access."""
        conn = sqlite3.connect(self.database)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    def init_db(self) -> None:
        """Create the tables if they don't already exist."""
        directory = os.path.dirname(self.database)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = self.get_db_connection()
        with conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS workout_plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    total_days INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id INTEGER NOT NULL,
                    day INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    notes TEXT,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    FOREIGN KEY (plan_id) REFERENCES workout_plans (id) ON DELETE CASCADE
                );
                CREATE TABLE IF NOT EXISTS exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    sets INTEGER NOT NULL,
                    reps TEXT NOT NULL,
                    notes TEXT,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (workout_id) REFERENCES workouts (id) ON DELETE CASCADE
                );
                CREATE TABLE IF NOT EXISTS user_progress (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id INTEGER NOT NULL UNIQUE,
                    current_day INTEGER NOT NULL DEFAULT 1,
                    completed_days INTEGER NOT NULL DEFAULT 0,
                    current_streak INTEGER NOT NULL DEFAULT 0,
                    longest_streak INTEGER NOT NULL DEFAULT 0,
                    last_completed_at TEXT,
                    FOREIGN KEY (plan_id) REFERENCES workout_plans (id) ON DELETE CASCADE
                );
                """
            )
        conn.close()
        logger.info("SQLite storage ready at %s", self.database)

    def _fetch_one(self, query: str, params: tuple) -> Optional[Dict]:
        conn = self.get_db_connection()
        row = conn.execute(query, params).fetchone()
        conn.close()
        return dict(row) if row else None

    def _fetch_all(self, query: str, params: tuple = ()) -> List[Dict]:
        conn = self.get_db_connection()
        rows = conn.execute(query, params).fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def _insert(self, query: str, params: tuple) -> int:
        conn = self.get_db_connection()
        with conn:
            cur = conn.execute(query, params)
            new_id = cur.lastrowid
        conn.close()
        return new_id

    def _update(self, table: str, row_id: int, changes: Dict) -> None:
        if not changes:
            return
        fields = [f"{key}=?" for key in changes]
        values = list(changes.values()) + [row_id]
        conn = self.get_db_connection()
        with conn:
            conn.execute(f"UPDATE {table} SET {', '.join(fields)} WHERE id=?", tuple(values))
        conn.close()

    @staticmethod
    def _with_flag(record: Optional[Dict]) -> Optional[Dict]:
        if record is not None:
            record['is_completed'] = bool(record['is_completed'])
        return record

    def import_plan(self, plan: PlanFile) -> Dict:
        """Store the whole plan in one transaction; nothing is kept if any row fails."""
        conn = self.get_db_connection()
        try:
            with conn:
                plan_id = conn.execute(
                    'INSERT INTO workout_plans (name, total_days, created_at) VALUES (?, ?, ?)',
                    (plan.name, plan.total_days, _now()),
                ).lastrowid
                for day in plan.workouts:
                    workout_id = conn.execute(
                        'INSERT INTO workouts (plan_id, day, name, notes) VALUES (?, ?, ?, ?)',
                        (plan_id, day.day, day.name, day.notes),
                    ).lastrowid
                    conn.executemany(
                        'INSERT INTO exercises (workout_id, name, sets, reps, notes) VALUES (?, ?, ?, ?, ?)',
                        [(workout_id, e.name, e.sets, e.reps, e.notes) for e in day.exercises],
                    )
                conn.execute('INSERT INTO user_progress (plan_id) VALUES (?)', (plan_id,))
        finally:
            conn.close()
        logger.info("Stored plan %d %r (%d day(s) of %d)",
                    plan_id, plan.name, len(plan.workouts), plan.total_days)
        return self.get_plan(plan_id)

    def create_plan(self, name, total_days):
        new_id = self._insert(
            'INSERT INTO workout_plans (name, total_days, created_at) VALUES (?, ?, ?)',
            (name, total_days, _now()),
        )
        return self.get_plan(new_id)

    def get_plan(self, plan_id):
        return self._fetch_one('SELECT * FROM workout_plans WHERE id=?', (plan_id,))

    def list_plans(self):
        return self._fetch_all('SELECT * FROM workout_plans ORDER BY id')

    def create_workout(self, plan_id, day, name, notes):
        new_id = self._insert(
            'INSERT INTO workouts (plan_id, day, name, notes) VALUES (?, ?, ?, ?)',
            (plan_id, day, name, notes),
        )
        return self.get_workout(new_id)

    def get_workout(self, workout_id):
        return self._with_flag(self._fetch_one('SELECT * FROM workouts WHERE id=?', (workout_id,)))

    def list_workouts(self, plan_id):
        rows = self._fetch_all('SELECT * FROM workouts WHERE plan_id=? ORDER BY day, id', (plan_id,))
        return [self._with_flag(row) for row in rows]

    def get_workout_by_day(self, plan_id, day):
        return self._with_flag(self._fetch_one(
            'SELECT * FROM workouts WHERE plan_id=? AND day=? ORDER BY id LIMIT 1', (plan_id, day)
        ))

    def update_workout(self, workout_id, **updates):
        workout = self.get_workout(workout_id)
        if workout is None:
            return None
        changes = _pick(updates, WORKOUT_FIELDS)
        if changes.get('is_completed') and not workout['is_completed']:
            changes['completed_at'] = _now()
        self._update('workouts', workout_id, changes)
        return self.get_workout(workout_id)

    def create_exercise(self, workout_id, name, sets, reps, notes):
        new_id = self._insert(
            'INSERT INTO exercises (workout_id, name, sets, reps, notes) VALUES (?, ?, ?, ?, ?)',
            (workout_id, name, sets, reps, notes),
        )
        return self.get_exercise(new_id)

    def get_exercise(self, exercise_id):
        return self._with_flag(self._fetch_one('SELECT * FROM exercises WHERE id=?', (exercise_id,)))

    def list_exercises(self, workout_id):
        rows = self._fetch_all('SELECT * FROM exercises WHERE workout_id=? ORDER BY id', (workout_id,))
        return [self._with_flag(row) for row in rows]

    def update_exercise(self, exercise_id, **updates):
        if self.get_exercise(exercise_id) is None:
            return None
        self._update('exercises', exercise_id, _pick(updates, EXERCISE_FIELDS))
        return self.get_exercise(exercise_id)

    def create_progress(self, plan_id):
        self._insert('INSERT INTO user_progress (plan_id) VALUES (?)', (plan_id,))
        return self.get_progress(plan_id)

    def get_progress(self, plan_id):
        return self._fetch_one('SELECT * FROM user_progress WHERE plan_id=?', (plan_id,))

    def update_progress(self, progress_id, **updates):
        progress = self._fetch_one('SELECT * FROM user_progress WHERE id=?', (progress_id,))
        if progress is None:
            return None
        changes = _pick(updates, PROGRESS_FIELDS)
        if changes.get('completed_days', 0) > progress['completed_days']:
            changes['last_completed_at'] = _now()
        if 'current_streak' in changes or 'longest_streak' in changes:
            changes['longest_streak'] = max(
                progress['longest_streak'],
                changes.get('longest_streak', 0),
                changes.get('current_streak', 0),
            )
        self._update('user_progress', progress_id, changes)
        return self._fetch_one('SELECT * FROM user_progress WHERE id=?', (progress_id,))


def create_storage(backend: str, database: Optional[str] = None) -> Storage:
    """Build the store named by ``backend`` (``memory`` or ``sqlite``)."""
    if backend == 'memory':
        logger.info("Using in-memory storage")
        return MemoryStorage()
    if backend == 'sqlite':
        if not database:
            raise ValueError('SQLite storage needs a database path')
        return SqliteStorage(database)
    raise ValueError(f'Unknown storage backend: {backend!r}')
