"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the course platform backend
and wires the exercise synchronization job into the application
lifecycle. Controllers are intentionally thin: they accept requests,
delegate to services, and return JSON responses.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- GET /lessons
- POST /lessons
- GET /lessons/{slug}
- POST /lessons/{lesson_id}/complete
- GET /progress
- GET /exercises
- GET /exercises/{slug}
- POST /exercises/sync
- GET /health
"""

from contextlib import asynccontextmanager
from typing import List, Optional
import json
import logging
import os
import threading
import time
import uuid

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlmodel import Session

from .database import engine, create_db_and_tables, get_session
from . import services, repositories, models
from .auth import get_current_user
from .config import settings
from .events import LessonCompletedEvent, event_bus
from .exercise_sync import ExerciseSyncError, ExerciseSyncService
from .schemas import ExerciseOut, LessonIn, LessonOut, ProgressOut, RegisterIn, SyncOut, TokenOut
from .utils.sync_scheduler import SyncScheduler

logger = logging.getLogger("coursehub.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

_sync_service: Optional[ExerciseSyncService] = None
_sync_service_lock = threading.Lock()


def get_sync_service() -> ExerciseSyncService:
    """Return the process-wide sync service, creating it on first use."""
    global _sync_service
    with _sync_service_lock:
        if _sync_service is None:
            store = services.ScopedExerciseStore(lambda: Session(engine))
            _sync_service = ExerciseSyncService(settings, store, events=event_bus)
        return _sync_service


def _record_lesson_completion(event: LessonCompletedEvent) -> None:
    with Session(engine) as session:
        services.ProgressTrackingService(session).on_lesson_completed(event)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    scheduler = None
    if settings.EXERCISES_SYNC_ENABLED:
        sync = get_sync_service()
        scheduler = SyncScheduler(sync.scheduled_sync, settings.sync_interval_seconds, initial_job=sync.initialize_exercises)
        scheduler.start()
        logger.info("Exercise sync scheduled every %.0fs", settings.sync_interval_seconds)
    else:
        logger.info("Exercise sync disabled (EXERCISES_SYNC_ENABLED is not set)")
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop(timeout=5)


app = FastAPI(title="Course Platform API", lifespan=lifespan)

create_db_and_tables()
event_bus.subscribe(LessonCompletedEvent, _record_lesson_completion)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps({"request_id": req_id, "path": request.url.path, "method": request.method, "duration_ms": elapsed_ms}),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith("/exercises/sync"):
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                }
            ),
        )
    return response


@app.post('/auth/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user (idempotent).

    Returns the existing user if the username is already taken so that
    automation and tests can call it repeatedly.
    """
    existing = repositories.UserRepository(db).get_by_username(payload.username)
    if existing:
        return {'id': existing.id, 'username': existing.username}
    user = services.AuthService(db).register(payload.username, payload.password)
    return {'id': user.id, 'username': user.username}


@app.post('/auth/login', response_model=TokenOut)
def login(payload: RegisterIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token."""
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.get('/lessons', response_model=List[LessonOut])
def list_lessons(page: int = 0, size: int = 20, db: Session = Depends(get_session)):
    """List published lessons, newest first."""
    try:
        return services.LessonService(db).list_lessons(page, size)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post('/lessons', response_model=LessonOut)
def create_lesson(payload: LessonIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.LessonService(db)
    try:
        return svc.create_lesson(payload.name, payload.content, payload.credits, payload.is_published)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get('/lessons/{slug}', response_model=LessonOut)
def get_lesson(slug: str, db: Session = Depends(get_session)):
    try:
        return services.LessonService(db).get_by_slug(slug)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post('/lessons/{lesson_id}/complete')
def complete_lesson(lesson_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Mark a lesson completed for the authenticated user.

    Completion is published as an event; progress tracking records it.
    """
    try:
        services.LessonService(db).complete_lesson(lesson_id, user.id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {'status': 'ok', 'lesson_id': lesson_id}


@app.get('/progress', response_model=ProgressOut)
def get_progress(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.ProgressTrackingService(db).get_progress(user.id)


@app.get('/exercises', response_model=List[ExerciseOut])
def list_exercises(page: int = 0, size: int = 100, db: Session = Depends(get_session)):
    try:
        return services.ExerciseService(db).list_exercises(page, size)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get('/exercises/{slug}', response_model=ExerciseOut)
def get_exercise(slug: str, db: Session = Depends(get_session)):
    try:
        return services.ExerciseService(db).get_by_slug(slug)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post('/exercises/sync', response_model=SyncOut)
def trigger_exercise_sync(user: models.User = Depends(get_current_user)):
    """Run the scheduled sync now instead of waiting for the next tick.

    Returns 409 if another sync of the same mirror is in progress and 502
    when the repository could not be updated.
    """
    sync = get_sync_service()
    try:
        outcome = sync.scheduled_sync()
    except ExerciseSyncError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if outcome.status == 'busy':
        raise HTTPException(status_code=409, detail='exercise sync already running')
    return outcome.as_dict()


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
