import shutil

import pytest

from coursehub import services
from coursehub.events import EventBus, ExercisesSyncedEvent
from coursehub.exercise_sync import ExerciseSyncError, ExerciseSyncService, _lock_for
from coursehub.services import ExerciseService, StoreUnavailableError
from coursehub.utils.exercise_scanner import ExerciseDescriptor
from coursehub.utils.git_mirror import MirrorError
from conftest import commit_all, requires_git, write_exercise


class FakeMirror:
    def __init__(self, changed=False, error=None):
        self.changed = changed
        self.error = error
        self.calls = []
        self.last_synced_commit = "abc123"

    def ensure_cloned(self, local_path=None):
        self.calls.append("ensure_cloned")
        if self.error:
            raise self.error
        return True

    def check_and_pull(self, local_path=None):
        self.calls.append("check_and_pull")
        if self.error:
            raise self.error
        return self.changed


class FakeStore:
    def __init__(self, lessons=True, empty=False, unavailable=False):
        self.lessons = lessons
        self.empty = empty
        self.unavailable = unavailable
        self.upserts = []

    def are_lessons_available(self):
        return self.lessons

    def is_exercise_repository_empty(self):
        return self.empty

    def update_or_create_exercise(self, name, path, instructions, hints):
        if self.unavailable:
            raise StoreUnavailableError("down")
        self.upserts.append((name, path, instructions, hints))


class FakeScanner:
    def __init__(self, descriptors=None):
        self.calls = 0
        self.descriptors = descriptors if descriptors is not None else [
            ExerciseDescriptor("two-fer", "python", "exercises/python/practice/two-fer", "Instructions", ""),
        ]

    def __call__(self, root):
        self.calls += 1
        return list(self.descriptors)


def _service(make_settings, store, mirror, scanner, events=None):
    return ExerciseSyncService(make_settings(repo_url="unused"), store, mirror=mirror, scanner=scanner, events=events)


def test_no_lessons_means_no_work(make_settings):
    store, mirror, scanner = FakeStore(lessons=False, empty=True), FakeMirror(changed=True), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    assert sync.initialize_exercises().status == "no_lessons"
    assert sync.scheduled_sync().status == "no_lessons"
    assert mirror.calls == []
    assert scanner.calls == 0
    assert store.upserts == []


def test_bootstrap_forces_reconcile_without_change_check(make_settings):
    store, mirror, scanner = FakeStore(empty=True), FakeMirror(changed=False), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    outcome = sync.initialize_exercises()
    assert outcome.status == "bootstrapped"
    assert outcome.updated == 1
    assert mirror.calls == ["ensure_cloned"]
    assert scanner.calls == 1
    assert store.upserts == [("two-fer", "exercises/python/practice/two-fer", "Instructions", "")]


def test_startup_with_populated_store_uses_change_detection(make_settings):
    store, mirror, scanner = FakeStore(empty=False), FakeMirror(changed=False), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    assert sync.initialize_exercises().status == "unchanged"
    assert mirror.calls == ["check_and_pull"]
    assert scanner.calls == 0
    assert store.upserts == []


def test_second_startup_after_bootstrap_is_scheduled_path(make_settings):
    store, mirror, scanner = FakeStore(empty=True), FakeMirror(changed=False), FakeScanner(descriptors=[])
    sync = _service(make_settings, store, mirror, scanner)
    sync.initialize_exercises()
    assert sync.initialize_exercises().status == "unchanged"
    assert mirror.calls == ["ensure_cloned", "check_and_pull"]


def test_scheduled_sync_reconciles_on_new_commits(make_settings):
    store, mirror, scanner = FakeStore(), FakeMirror(changed=True), FakeScanner()
    bus = EventBus()
    seen = []
    bus.subscribe(ExercisesSyncedEvent, seen.append)
    sync = _service(make_settings, store, mirror, scanner, events=bus)
    outcome = sync.scheduled_sync()
    assert (outcome.status, outcome.updated, outcome.commit) == ("synced", 1, "abc123")
    assert len(store.upserts) == 1
    assert seen == [ExercisesSyncedEvent(updated=1, commit="abc123")]


def test_mirror_failure_is_wrapped(make_settings):
    store, mirror, scanner = FakeStore(), FakeMirror(error=MirrorError("fetch failed")), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    with pytest.raises(ExerciseSyncError) as info:
        sync.scheduled_sync()
    assert isinstance(info.value.__cause__, MirrorError)
    assert scanner.calls == 0


def test_clone_failure_during_bootstrap_is_wrapped(make_settings):
    store, mirror, scanner = FakeStore(empty=True), FakeMirror(error=MirrorError("unreachable")), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    with pytest.raises(ExerciseSyncError):
        sync.initialize_exercises()
    assert sync.bootstrapped is False
    assert scanner.calls == 0


def test_store_unavailable_aborts_sync(make_settings):
    store, mirror, scanner = FakeStore(unavailable=True), FakeMirror(changed=True), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    with pytest.raises(ExerciseSyncError):
        sync.scheduled_sync()


def test_overlapping_sync_on_same_path_is_skipped(make_settings):
    store, mirror, scanner = FakeStore(), FakeMirror(changed=True), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    lock = _lock_for(sync.local_path)
    assert lock.acquire(blocking=False)
    try:
        assert sync.scheduled_sync().status == "busy"
    finally:
        lock.release()
    assert mirror.calls == []
    assert sync.scheduled_sync().status == "synced"


@requires_git
def test_first_run_clones_and_stores_exercise(remote_repo, make_settings, session):
    services.LessonService(session, events=EventBus()).create_lesson("Python basics")
    store = ExerciseService(session)
    sync = ExerciseSyncService(make_settings(repo_url=remote_repo), store)

    outcome = sync.initialize_exercises()
    assert outcome.status == "bootstrapped"
    assert sync.local_path.is_dir()
    exercises = store.list_exercises()
    assert [(e.name, e.github_path, e.instructions, e.hints) for e in exercises] == [
        ("two-fer", "exercises/python/practice/two-fer", "Instructions", ""),
    ]

    assert sync.scheduled_sync().status == "unchanged"

    write_exercise(remote_repo, "python", "two-fer", instructions="Instructions v2", hints="Use f-strings")
    commit_all(remote_repo, "update two-fer")
    outcome = sync.scheduled_sync()
    assert outcome.status == "synced"
    exercise = store.get_by_slug("two-fer")
    session.refresh(exercise)
    assert (exercise.instructions, exercise.hints) == ("Instructions v2", "Use f-strings")


def test_failed_bootstrap_is_retried_by_scheduled_sync(make_settings):
    store, mirror, scanner = FakeStore(empty=True), FakeMirror(error=MirrorError("unreachable")), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    with pytest.raises(ExerciseSyncError):
        sync.initialize_exercises()

    mirror.error = None
    outcome = sync.scheduled_sync()
    assert outcome.status == "bootstrapped"
    assert mirror.calls == ["ensure_cloned", "ensure_cloned"]
    assert store.upserts == [("two-fer", "exercises/python/practice/two-fer", "Instructions", "")]

    assert sync.scheduled_sync().status == "unchanged"
    assert mirror.calls[-1] == "check_and_pull"


def test_force_update_reports_forced(make_settings):
    store, mirror, scanner = FakeStore(empty=False), FakeMirror(changed=False), FakeScanner()
    sync = _service(make_settings, store, mirror, scanner)
    outcome = sync.force_update_exercises()
    assert (outcome.status, outcome.updated) == ("forced", 1)
    assert mirror.calls == ["ensure_cloned"]
    assert sync.bootstrapped is False


@requires_git
def test_scheduled_sync_bootstraps_once_remote_becomes_reachable(remote_repo, make_settings, session, tmp_path):
    services.LessonService(session, events=EventBus()).create_lesson("Python basics")
    store = ExerciseService(session)
    late_remote = tmp_path / "late-remote"
    sync = ExerciseSyncService(make_settings(repo_url=late_remote), store)

    with pytest.raises(ExerciseSyncError):
        sync.initialize_exercises()
    assert not sync.local_path.exists()

    shutil.copytree(remote_repo, late_remote)
    assert sync.scheduled_sync().status == "bootstrapped"
    assert [e.name for e in store.list_exercises()] == ["two-fer"]
    assert sync.scheduled_sync().status == "unchanged"
