"""
Fitness Plan Tracker (FastAPI)
==============================

This module provides a FastAPI web application that serves both a REST API and
HTML pages for a self-hosted, single-user workout plan tracker. Plans are
uploaded as JSON/CSV files or entered by hand, browsed day by day, and marked
complete; the tracker keeps completion counts and streaks per plan. Jinja2 is
used to render the HTML templates.

The application is built by a factory so the store is created explicitly at
startup. To start the server:

    $ export PLAN_TRACKER_STORAGE=sqlite PLAN_TRACKER_DB=./data/fitness.db
    $ uvicorn plan_tracker.server:create_app --factory --host 0.0.0.0 --port 5000

Set ``PLAN_TRACKER_STORAGE=memory`` to keep everything in process memory.
"""

import logging
import os
from typing import Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from plan_tracker import config
from plan_tracker.ingest import PlanFileError, parse_plan_upload
from plan_tracker.progress import week_and_weekday
from plan_tracker.schemas import format_validation_error, validate_plan
from plan_tracker.storage import Storage, create_storage

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(__file__)

# Configure templates
templates = Jinja2Templates(directory=os.path.join(BASE_DIR, 'templates'))


def get_store(request: Request) -> Storage:
    return request.app.state.store


def _require_plan(store: Storage, plan_id: int) -> Dict:
    plan = store.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail='Workout plan not found')
    return plan


def create_app(store: Optional[Storage] = None) -> FastAPI:
    """Build the application around ``store``, or the configured backend when omitted."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )
    if store is None:
        store = create_storage(config.STORAGE_BACKEND, config.DATABASE)

    app = FastAPI(title='Fitness Plan Tracker')
    app.state.store = store

    # Mount static files (CSS/JS)
    app.mount('/static', StaticFiles(directory=os.path.join(BASE_DIR, 'static')), name='static')

    @app.get('/', response_class=HTMLResponse)
    async def index(request: Request):
        plans = get_store(request).list_plans()
        return templates.TemplateResponse(request, 'index.html', {'plans': plans})

    @app.get('/plans/{plan_id}', response_class=HTMLResponse)
    async def plan_page(request: Request, plan_id: int, day: int = Query(default=0)):
        store = get_store(request)
        plan = _require_plan(store, plan_id)
        summary = store.progress_summary(plan_id, recent=config.RECENT_WORKOUTS)
        workouts = store.list_workouts(plan_id)
        if day <= 0:
            day = summary['progress']['current_day'] if summary else 1
        workout = store.get_workout_by_day(plan_id, day)
        exercises = store.list_exercises(workout['id']) if workout else []
        week, weekday = week_and_weekday(day)
        return templates.TemplateResponse(request, 'plan.html', {
            'plan': plan,
            'summary': summary,
            'workouts': workouts,
            'day': day,
            'week': week,
            'weekday': weekday,
            'workout': workout,
            'exercises': exercises,
        })

    # API endpoints

    @app.get('/api/health')
    async def api_health() -> Dict:
        return {'status': 'ok'}

    @app.get('/api/workout-plans')
    async def api_get_plans(request: Request) -> List[Dict]:
        return get_store(request).list_plans()

    @app.post('/api/workout-plans', status_code=201)
    async def api_create_plan(request: Request, payload: Dict = Body(...)) -> Dict:
        try:
            plan = validate_plan(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400,
                detail=f'Invalid workout plan data: {format_validation_error(exc)}',
            ) from exc
        return get_store(request).import_plan(plan)

    @app.post('/api/workout-plans/upload', status_code=201)
    async def api_upload_plan(request: Request, filename: str = Query(...)) -> Dict:
        content = await request.body()
        if not content:
            raise HTTPException(status_code=400, detail='Empty file.')
        try:
            plan = parse_plan_upload(filename, content)
        except PlanFileError as exc:
            logger.info("Rejected upload %s: %s", filename, exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return get_store(request).import_plan(plan)

    @app.get('/api/workout-plans/{plan_id}')
    async def api_get_plan(request: Request, plan_id: int) -> Dict:
        return _require_plan(get_store(request), plan_id)

    @app.get('/api/workout-plans/{plan_id}/export')
    async def api_export_plan(request: Request, plan_id: int):
        plan = get_store(request).export_plan(plan_id)
        if plan is None:
            raise HTTPException(status_code=404, detail='Workout plan not found')
        return JSONResponse(plan.to_document())

    @app.get('/api/workout-plans/{plan_id}/workouts')
    async def api_get_workouts(request: Request, plan_id: int) -> List[Dict]:
        return get_store(request).list_workouts(plan_id)

    @app.get('/api/workout-plans/{plan_id}/workouts/day/{day}')
    async def api_get_workout_for_day(request: Request, plan_id: int, day: int) -> Dict:
        store = get_store(request)
        workout = store.get_workout_by_day(plan_id, day)
        if workout is None:
            raise HTTPException(status_code=404, detail='Workout not found')
        week, weekday = week_and_weekday(day)
        return {
            'workout': workout,
            'exercises': store.list_exercises(workout['id']),
            'week': week,
            'weekday': weekday,
        }

    @app.put('/api/workouts/{workout_id}/complete')
    async def api_complete_workout(request: Request, workout_id: int) -> Dict:
        workout = get_store(request).complete_workout(workout_id)
        if workout is None:
            raise HTTPException(status_code=404, detail='Workout not found')
        return workout

    @app.put('/api/exercises/{exercise_id}/complete')
    async def api_complete_exercise(request: Request, exercise_id: int) -> Dict:
        exercise = get_store(request).complete_exercise(exercise_id)
        if exercise is None:
            raise HTTPException(status_code=404, detail='Exercise not found')
        return exercise

    @app.get('/api/workout-plans/{plan_id}/progress')
    async def api_get_progress(request: Request, plan_id: int) -> Dict:
        store = get_store(request)
        _require_plan(store, plan_id)
        summary = store.progress_summary(plan_id, recent=config.RECENT_WORKOUTS)
        if summary is None:
            raise HTTPException(status_code=404, detail='Progress not found')
        return summary

    logger.info("Plan tracker ready (%s)", type(store).__name__)
    return app
