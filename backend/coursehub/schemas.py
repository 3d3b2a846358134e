"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests.
"""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class RegisterIn(BaseModel):
    """Payload for user registration/login endpoints."""
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class LessonIn(BaseModel):
    """Request body for creating a lesson."""
    name: str = Field(min_length=1)
    content: str = ""
    credits: int = Field(default=0, ge=0)
    is_published: bool = True


class LessonOut(BaseModel):
    id: int
    name: str
    slug: str
    content: str
    credits: int
    is_published: bool


class ExerciseOut(BaseModel):
    id: int
    name: str
    slug: str
    github_path: str
    instructions: str
    hints: str
    updated_at: Optional[datetime] = None


class ProgressOut(BaseModel):
    completed_lessons: int
    lesson_ids: List[int]


class SyncOut(BaseModel):
    """Result of one exercise synchronization run."""
    status: str
    updated: int = 0
    commit: Optional[str] = None
