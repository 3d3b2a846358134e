"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Exercises are written by the synchronization service; lessons and
completions belong to the education side of the platform.
"""

from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=_utcnow)


class Lesson(SQLModel, table=True):
    """A lesson that exercises are attached to."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    content: str = ""
    credits: int = 0
    is_published: bool = True
    created_at: datetime = Field(default_factory=_utcnow)


class Exercise(SQLModel, table=True):
    """A coding exercise mirrored from the exercises repository.

    `github_path` is the path of the exercise directory relative to the
    repository root (e.g. `exercises/python/practice/two-fer`) and stays
    stable across re-scans on the same platform.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    slug: str = Field(index=True, unique=True)
    github_path: str
    instructions: str = ""
    hints: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class LessonCompletion(SQLModel, table=True):
    """One user's completion of one lesson."""
    __table_args__ = (UniqueConstraint("user_id", "lesson_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    lesson_id: int = Field(foreign_key='lesson.id')
    completed_at: datetime = Field(default_factory=_utcnow)
