"""Apply scanned exercise descriptors to the exercise store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Protocol

from ..services import StoreError, StoreUnavailableError
from .exercise_scanner import ExerciseDescriptor

_LOGGER = logging.getLogger("coursehub.sync")


class ExerciseStore(Protocol):
    def are_lessons_available(self) -> bool: ...

    def is_exercise_repository_empty(self) -> bool: ...

    def update_or_create_exercise(self, name: str, path: str, instructions: str, hints: str): ...


@dataclass
class ReconcileResult:
    updated: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated)


def reconcile_exercises(descriptors: Iterable[ExerciseDescriptor], store: ExerciseStore) -> ReconcileResult:
    """Upsert each descriptor into `store` independently.

    A `StoreError` on one exercise is logged and the pass continues; a
    `StoreUnavailableError` aborts the remaining batch by propagating.
    """
    result = ReconcileResult()
    for descriptor in descriptors:
        if not descriptor.has_content:
            _LOGGER.warning("Skipping exercise %s as both instructions and hints are empty", descriptor.name)
            continue
        _LOGGER.info("Updating exercise: %s (%s)", descriptor.name, descriptor.path)
        try:
            store.update_or_create_exercise(descriptor.name, descriptor.path, descriptor.instructions, descriptor.hints)
        except StoreUnavailableError:
            _LOGGER.error("Exercise store unavailable; aborting after %d updates", result.updated_count)
            raise
        except StoreError:
            _LOGGER.exception("Failed to update exercise %s", descriptor.name)
            result.failed.append(descriptor.name)
            continue
        result.updated.append(descriptor.name)
    _LOGGER.info("Updated or created %d exercises (%d failed)", result.updated_count, len(result.failed))
    return result
