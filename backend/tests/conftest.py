from pathlib import Path
from types import SimpleNamespace
import os
import shutil
import subprocess
import tempfile
import pytest

# Point the app at a throwaway database before any coursehub module is imported.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="coursehub_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'app.db'}"
os.environ.setdefault("EXERCISES_LOCAL_PATH", str(_TEST_DIR / "exercises-repo"))
os.environ["EXERCISES_SYNC_ENABLED"] = "false"

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def run_git(cwd, *args):
    return subprocess.run(
        ["git", "-c", "user.name=Test User", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    ).stdout.strip()


def write_exercise(root: Path, language: str, name: str, instructions=None, hints=None) -> Path:
    exercise_dir = root / "exercises" / language / "practice" / name
    docs = exercise_dir / ".docs"
    docs.mkdir(parents=True, exist_ok=True)
    if instructions is not None:
        (docs / "instructions.md").write_text(instructions, encoding="utf-8")
    if hints is not None:
        (docs / "hints.md").write_text(hints, encoding="utf-8")
    return exercise_dir


def commit_all(repo: Path, message: str) -> str:
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "-m", message)
    return run_git(repo, "rev-parse", "HEAD")


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Remove the throwaway database directory when the session ends."""
    yield
    shutil.rmtree(_TEST_DIR, ignore_errors=True)


@pytest.fixture
def remote_repo(tmp_path):
    """A local git repository on `main` holding one python exercise."""
    repo = tmp_path / "remote"
    repo.mkdir()
    run_git(repo, "init")
    run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    write_exercise(repo, "python", "two-fer", instructions="Instructions")
    commit_all(repo, "add two-fer")
    return repo


@pytest.fixture
def session():
    """In-memory database session with all tables created."""
    from coursehub import models  # noqa: F401
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


@pytest.fixture
def make_settings(tmp_path):
    def _make(repo_url="", branch="main", local_path=None):
        return SimpleNamespace(
            EXERCISES_REPO_URL=str(repo_url),
            EXERCISES_BRANCH=branch,
            EXERCISES_LOCAL_PATH=Path(local_path) if local_path else tmp_path / "mirror",
            EXERCISES_GIT_TIMEOUT_SECONDS=30.0,
        )
    return _make
