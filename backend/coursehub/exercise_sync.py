"""Exercise synchronization from the exercises git repository.

`ExerciseSyncService` decides when the mirror is updated and when the
working copy is scanned and reconciled into the exercise store:

- startup (`initialize_exercises`): with an empty store the mirror is
  cloned if needed and everything is reconciled unconditionally;
  otherwise it behaves like a scheduled run.
- scheduled (`scheduled_sync` / `sync_exercises`): fetch, and only scan
  and reconcile when the remote branch has new commits.

Nothing runs unless lessons exist. Runs against the same mirror path are
serialized: an invocation that finds another one in flight returns
`busy` without touching the working copy.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import Settings
from .events import EventBus, ExercisesSyncedEvent
from .services import StoreUnavailableError
from .utils.exercise_scanner import ExerciseDescriptor, scan_exercises
from .utils.git_mirror import GitMirrorClient, MirrorError
from .utils.reconcile import ExerciseStore, reconcile_exercises

logger = logging.getLogger("coursehub.sync")

_PATH_LOCKS: Dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(Path(path).resolve())
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.Lock()
        return lock


class ExerciseSyncError(Exception):
    """A synchronization attempt failed and was abandoned."""


@dataclass
class SyncOutcome:
    status: str
    updated: int = 0
    commit: Optional[str] = None

    def as_dict(self) -> dict:
        return {'status': self.status, 'updated': self.updated, 'commit': self.commit}


class ExerciseSyncService:
    def __init__(
        self,
        settings: Settings,
        store: ExerciseStore,
        mirror: Optional[GitMirrorClient] = None,
        scanner: Callable[[Path], List[ExerciseDescriptor]] = scan_exercises,
        events: Optional[EventBus] = None,
    ):
        self.local_path = Path(settings.EXERCISES_LOCAL_PATH)
        self.store = store
        self.mirror = mirror if mirror is not None else GitMirrorClient(
            settings.EXERCISES_REPO_URL,
            settings.EXERCISES_BRANCH,
            self.local_path,
            timeout_s=settings.EXERCISES_GIT_TIMEOUT_SECONDS,
        )
        self.scanner = scanner
        self.events = events
        self.bootstrapped = False

    def initialize_exercises(self) -> SyncOutcome:
        """Startup entry point."""
        if not self.store.are_lessons_available():
            logger.warning("No lessons found in the database. Skipping exercise initialization.")
            return SyncOutcome('no_lessons')
        if self.bootstrapped or not self.store.is_exercise_repository_empty():
            logger.info("Exercises already exist. Proceeding with normal sync.")
            return self.sync_exercises()

        logger.info("Exercise repository is empty but lessons are available. Initializing exercises...")
        outcome = self.force_update_exercises()
        if outcome.status != 'busy':
            self.bootstrapped = True
            outcome.status = 'bootstrapped'
        return outcome

    def force_update_exercises(self) -> SyncOutcome:
        """Clone if needed, then reconcile the whole working copy.

        Skips change detection entirely; used for bootstrap and by the
        operator CLI.
        """
        lock = _lock_for(self.local_path)
        if not lock.acquire(blocking=False):
            logger.info("Sync already running for %s; skipping forced update", self.local_path)
            return SyncOutcome('busy')
        try:
            try:
                self.mirror.ensure_cloned(self.local_path)
            except MirrorError as exc:
                logger.exception("Failed to clone exercises repository")
                raise ExerciseSyncError("Failed to clone repository") from exc
            logger.info("Forcing update of all exercises from local repository")
            updated = self._scan_and_reconcile()
            return SyncOutcome('forced', updated=updated, commit=self.mirror.last_synced_commit)
        finally:
            lock.release()

    def scheduled_sync(self) -> SyncOutcome:
        """Timer entry point."""
        if not self.store.are_lessons_available():
            logger.warning("No lessons found in the database. Skipping scheduled sync.")
            return SyncOutcome('no_lessons')
        if not self.bootstrapped and self.store.is_exercise_repository_empty():
            # startup bootstrap failed or never ran
            logger.info("Exercise repository is still empty. Retrying bootstrap instead of a scheduled pull.")
            return self.initialize_exercises()
        logger.info("Starting scheduled sync of exercises")
        return self.sync_exercises()

    def sync_exercises(self) -> SyncOutcome:
        """Pull new commits and reconcile only if the remote moved."""
        lock = _lock_for(self.local_path)
        if not lock.acquire(blocking=False):
            logger.info("Sync already running for %s; skipping this run", self.local_path)
            return SyncOutcome('busy')
        try:
            logger.info("Checking for updates in repository at %s", self.local_path)
            try:
                changed = self.mirror.check_and_pull(self.local_path)
            except MirrorError as exc:
                logger.exception("Failed to sync exercises")
                raise ExerciseSyncError("Failed to sync exercises") from exc
            if not changed:
                logger.info("No new changes in the repository. Skipping update.")
                return SyncOutcome('unchanged', commit=self.mirror.last_synced_commit)
            updated = self._scan_and_reconcile()
            return SyncOutcome('synced', updated=updated, commit=self.mirror.last_synced_commit)
        finally:
            lock.release()

    def _scan_and_reconcile(self) -> int:
        logger.info("Updating exercises from local repository")
        descriptors = self.scanner(self.local_path)
        try:
            result = reconcile_exercises(descriptors, self.store)
        except StoreUnavailableError as exc:
            logger.exception("Exercise store became unavailable during reconciliation")
            raise ExerciseSyncError("Exercise store unavailable") from exc
        if self.events is not None:
            self.events.publish(ExercisesSyncedEvent(updated=result.updated_count, commit=self.mirror.last_synced_commit))
        return result.updated_count
