"""Discover exercises in a mirrored exercises repository.

The layout is fixed: `exercises/<language>/practice/<exercise>/` with the
exercise text under `.docs/instructions.md` and `.docs/hints.md`. The
scanner walks exactly those two directory levels rather than recursing.
"""

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import List

_LOGGER = logging.getLogger("coursehub.scanner")

INSTRUCTIONS_FILE = Path('.docs') / 'instructions.md'
HINTS_FILE = Path('.docs') / 'hints.md'


@dataclass(frozen=True)
class ExerciseDescriptor:
    """One exercise found on disk during a scan pass."""
    name: str
    language: str
    path: str
    instructions: str = ""
    hints: str = ""

    @property
    def has_content(self) -> bool:
        return bool(self.instructions) or bool(self.hints)


def _is_hidden(entry: Path) -> bool:
    """Return True for dot-entries and entries flagged hidden by the OS."""
    if entry.name.startswith('.'):
        return True
    attrs = getattr(entry.stat(), 'st_file_attributes', 0)
    return bool(attrs & getattr(stat, 'FILE_ATTRIBUTE_HIDDEN', 0))


def _visible_subdirs(directory: Path) -> List[Path]:
    return sorted(p for p in directory.iterdir() if p.is_dir() and not _is_hidden(p))


def _read_doc(exercise_dir: Path, relative: Path) -> str:
    """Return the file's text, or an empty string if missing or unreadable."""
    file_path = exercise_dir / relative
    if not file_path.is_file():
        return ""
    try:
        return file_path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError):
        _LOGGER.exception("Error reading file: %s", file_path)
        return ""


def scan_exercises(root: Path) -> List[ExerciseDescriptor]:
    """Return descriptors for every exercise with content under `root`.

    Exercises whose instructions and hints are both empty are dropped
    with a warning. A language without a `practice` directory contributes
    nothing. A fresh list is built on every call.
    """
    exercises_dir = Path(root) / 'exercises'
    if not exercises_dir.is_dir():
        _LOGGER.warning("Exercises directory does not exist or is not a directory: %s", exercises_dir)
        return []

    found: List[ExerciseDescriptor] = []
    for language_dir in _visible_subdirs(exercises_dir):
        practice_dir = language_dir / 'practice'
        if not practice_dir.is_dir():
            _LOGGER.warning("Practice directory does not exist or is not a directory: %s", practice_dir)
            continue
        _LOGGER.info("Processing language directory: %s", language_dir.name)
        for exercise_dir in _visible_subdirs(practice_dir):
            descriptor = ExerciseDescriptor(
                name=exercise_dir.name,
                language=language_dir.name,
                # host separator, so the key matches what earlier scans on this platform stored
                path=os.path.join('exercises', language_dir.name, 'practice', exercise_dir.name),
                instructions=_read_doc(exercise_dir, INSTRUCTIONS_FILE),
                hints=_read_doc(exercise_dir, HINTS_FILE),
            )
            _LOGGER.debug(
                "Exercise %s: instructions length %d, hints length %d",
                descriptor.name, len(descriptor.instructions), len(descriptor.hints),
            )
            if not descriptor.has_content:
                _LOGGER.warning("Skipping exercise %s as both instructions and hints are empty", descriptor.name)
                continue
            found.append(descriptor)
    return found
