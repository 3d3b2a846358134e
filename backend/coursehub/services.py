"""Business logic services used by HTTP controllers and the sync job.

This module holds small service classes that coordinate repositories,
the event bus and auxiliary logic. Services are intentionally thin: they
perform validation, execute domain logic and persist aggregates via
repositories.
"""

from datetime import datetime, timedelta, timezone
import logging
from passlib.context import CryptContext
import jwt
import os
from typing import Callable, List, Optional
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session
from . import models, repositories
from .config import settings
from .events import EventBus, LessonCompletedEvent, event_bus
from .utils.slugs import generate_unique_slug

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
JWT_SECRET = settings.JWT_SECRET
JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
JWT_EXPIRE_HOURS = int(os.getenv('JWT_EXPIRE_HOURS', '24'))

logger = logging.getLogger("coursehub.services")


class StoreError(Exception):
    """An exercise could not be written to the store."""


class StoreUnavailableError(StoreError):
    """The store itself is unreachable; further writes would fail too."""


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed)
        return self.user_repo.create(u)

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "exp": int(expire.timestamp())}
        return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


class LessonService:
    """Create, look up and complete lessons."""
    def __init__(self, session: Session, events: Optional[EventBus] = None):
        self.session = session
        self.lesson_repo = repositories.LessonRepository(session)
        self.events = events if events is not None else event_bus

    def create_lesson(self, name: str, content: str = "", credits: int = 0, is_published: bool = True) -> models.Lesson:
        """Create a lesson with a slug derived from `name`."""
        if not name or not name.strip():
            raise ValueError("lesson name must not be empty")
        if credits < 0:
            raise ValueError("credits must be >= 0")
        slug = generate_unique_slug(name, lambda s: self.lesson_repo.get_by_slug(s) is not None)
        lesson = models.Lesson(name=name.strip(), slug=slug, content=content, credits=credits, is_published=is_published)
        return self.lesson_repo.save(lesson)

    def list_lessons(self, page: int = 0, size: int = 20) -> List[models.Lesson]:
        if page < 0 or size <= 0:
            raise ValueError("page must be >= 0 and size > 0")
        return self.lesson_repo.list_published(offset=page * size, limit=size)

    def get_by_slug(self, slug: str) -> models.Lesson:
        lesson = self.lesson_repo.get_by_slug(slug)
        if not lesson:
            raise LookupError(f"lesson not found: {slug}")
        return lesson

    def complete_lesson(self, lesson_id: int, user_id: int) -> None:
        """Mark a lesson complete by publishing `LessonCompletedEvent`.

        Progress tracking is a subscriber; this service does not know who
        consumes the event.
        """
        if not self.lesson_repo.get(lesson_id):
            raise LookupError(f"lesson not found: {lesson_id}")
        self.events.publish(LessonCompletedEvent(lesson_id=lesson_id, user_id=user_id))


class ExerciseService:
    """Exercise store used by the synchronization service.

    Implements the three calls the sync job relies on: the two
    precondition predicates and a name-keyed upsert.
    """
    def __init__(self, session: Session):
        self.session = session
        self.exercise_repo = repositories.ExerciseRepository(session)
        self.lesson_repo = repositories.LessonRepository(session)

    def are_lessons_available(self) -> bool:
        return self.lesson_repo.count() > 0

    def is_exercise_repository_empty(self) -> bool:
        return self.exercise_repo.count() == 0

    def update_or_create_exercise(self, name: str, path: str, instructions: str, hints: str) -> models.Exercise:
        """Upsert an exercise by `name`.

        Existing rows have their path and content overwritten; missing
        rows are created with a fresh slug. Database failures are rolled
        back and re-raised as `StoreUnavailableError` (connection level)
        or `StoreError` (anything else).
        """
        try:
            exercise = self.exercise_repo.get_by_name(name)
            if exercise is None:
                slug = generate_unique_slug(name, self.exercise_repo.exists_by_slug)
                exercise = models.Exercise(name=name, slug=slug, github_path=path)
            exercise.github_path = path
            exercise.instructions = instructions
            exercise.hints = hints
            exercise.updated_at = datetime.now(timezone.utc)
            return self.exercise_repo.save(exercise)
        except OperationalError as exc:
            self.session.rollback()
            raise StoreUnavailableError(f"exercise store unavailable while saving {name}") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"failed to save exercise {name}") from exc

    def list_exercises(self, page: int = 0, size: int = 100) -> List[models.Exercise]:
        if page < 0 or size <= 0:
            raise ValueError("page must be >= 0 and size > 0")
        return self.exercise_repo.list_all(offset=page * size, limit=size)

    def get_by_slug(self, slug: str) -> models.Exercise:
        exercise = self.exercise_repo.get_by_slug(slug)
        if not exercise:
            raise LookupError(f"exercise not found: {slug}")
        return exercise


class ScopedExerciseStore:
    """Exercise store that opens a fresh session for every call.

    Used by the long-running sync scheduler, which must not hold one
    session across ticks.
    """
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def are_lessons_available(self) -> bool:
        with self.session_factory() as session:
            return ExerciseService(session).are_lessons_available()

    def is_exercise_repository_empty(self) -> bool:
        with self.session_factory() as session:
            return ExerciseService(session).is_exercise_repository_empty()

    def update_or_create_exercise(self, name: str, path: str, instructions: str, hints: str) -> None:
        with self.session_factory() as session:
            ExerciseService(session).update_or_create_exercise(name, path, instructions, hints)


class ProgressTrackingService:
    """Record lesson completions delivered through the event bus."""
    def __init__(self, session: Session):
        self.session = session
        self.progress_repo = repositories.ProgressRepository(session)

    def on_lesson_completed(self, event: LessonCompletedEvent) -> models.LessonCompletion:
        """Store the completion once; repeated events return the existing row."""
        existing = self.progress_repo.get_completion(event.user_id, event.lesson_id)
        if existing:
            return existing
        completion = models.LessonCompletion(user_id=event.user_id, lesson_id=event.lesson_id)
        logger.info("user %s completed lesson %s", event.user_id, event.lesson_id)
        return self.progress_repo.add_completion(completion)

    def get_progress(self, user_id: int) -> dict:
        lesson_ids = self.progress_repo.list_completed_lesson_ids(user_id)
        return {'completed_lessons': len(lesson_ids), 'lesson_ids': lesson_ids}
