"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
lessons, exercises, lesson completions). Repositories return SQLModel
objects and perform commits/refreshes where appropriate.
"""

from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class LessonRepository:
    """CRUD operations for `Lesson` records."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, lesson: models.Lesson) -> models.Lesson:
        self.session.add(lesson)
        self.session.commit()
        self.session.refresh(lesson)
        return lesson

    def get(self, lesson_id: int) -> Optional[models.Lesson]:
        return self.session.get(models.Lesson, lesson_id)

    def get_by_slug(self, slug: str) -> Optional[models.Lesson]:
        stmt = select(models.Lesson).where(models.Lesson.slug == slug)
        return self.session.exec(stmt).first()

    def list_published(self, offset: int = 0, limit: int = 50) -> List[models.Lesson]:
        """Return published lessons, newest first."""
        stmt = (
            select(models.Lesson)
            .where(models.Lesson.is_published == True)  # noqa: E712
            .order_by(models.Lesson.created_at.desc(), models.Lesson.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Lesson)).one()


class ExerciseRepository:
    """Persistence for synchronized `Exercise` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_name(self, name: str) -> Optional[models.Exercise]:
        stmt = select(models.Exercise).where(models.Exercise.name == name)
        return self.session.exec(stmt).first()

    def get_by_slug(self, slug: str) -> Optional[models.Exercise]:
        stmt = select(models.Exercise).where(models.Exercise.slug == slug)
        return self.session.exec(stmt).first()

    def exists_by_slug(self, slug: str) -> bool:
        stmt = select(models.Exercise.id).where(models.Exercise.slug == slug)
        return self.session.exec(stmt).first() is not None

    def list_all(self, offset: int = 0, limit: int = 100) -> List[models.Exercise]:
        stmt = select(models.Exercise).order_by(models.Exercise.name).offset(offset).limit(limit)
        return self.session.exec(stmt).all()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Exercise)).one()

    def save(self, exercise: models.Exercise) -> models.Exercise:
        self.session.add(exercise)
        self.session.commit()
        self.session.refresh(exercise)
        return exercise


class ProgressRepository:
    """Lesson completion records per user."""
    def __init__(self, session: Session):
        self.session = session

    def get_completion(self, user_id: int, lesson_id: int) -> Optional[models.LessonCompletion]:
        stmt = select(models.LessonCompletion).where(
            models.LessonCompletion.user_id == user_id,
            models.LessonCompletion.lesson_id == lesson_id
        )
        return self.session.exec(stmt).first()

    def add_completion(self, completion: models.LessonCompletion) -> models.LessonCompletion:
        self.session.add(completion)
        self.session.commit()
        self.session.refresh(completion)
        return completion

    def list_completed_lesson_ids(self, user_id: int) -> List[int]:
        stmt = (
            select(models.LessonCompletion.lesson_id)
            .where(models.LessonCompletion.user_id == user_id)
            .order_by(models.LessonCompletion.completed_at)
        )
        return list(self.session.exec(stmt).all())
