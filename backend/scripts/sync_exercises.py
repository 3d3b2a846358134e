"""CLI script to synchronize exercises from the configured git repository.
Usage: python scripts/sync_exercises.py [--force]

Without flags it runs the startup path (bootstrap when the exercise table
is empty, otherwise check-and-pull). `--force` clones if needed and
reconciles the whole working copy regardless of new commits.
"""
import sys
import argparse
import logging
import os
import pathlib
# Ensure `backend/` is on sys.path so `coursehub` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from coursehub.config import settings
from coursehub.database import engine, create_db_and_tables
from coursehub import services
from coursehub.exercise_sync import ExerciseSyncError, ExerciseSyncService


def main(force: bool = False) -> int:
    """Run one synchronization and print a summary.

    Returns a process exit code: 0 on success, 1 on a sync failure.
    """
    create_db_and_tables()
    store = services.ScopedExerciseStore(lambda: Session(engine))
    sync = ExerciseSyncService(settings, store)
    print(f'Exercises repository: {settings.EXERCISES_REPO_URL or "(not set)"} [{settings.EXERCISES_BRANCH}]')
    print(f'Local mirror: {sync.local_path}')
    try:
        outcome = sync.force_update_exercises() if force else sync.initialize_exercises()
    except ExerciseSyncError as e:
        print(f'Sync failed: {e} ({e.__cause__})')
        return 1
    print(f'Status: {outcome.status}, updated {outcome.updated}, commit {outcome.commit or "-"}')
    return 1 if outcome.status == 'busy' else 0


if __name__ == '__main__':
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    parser = argparse.ArgumentParser()
    parser.add_argument('--force', action='store_true', help='Reconcile every exercise even if nothing changed upstream')
    args = parser.parse_args()
    sys.exit(main(force=args.force))
