"""Local mirror of one branch of a remote git repository.

The client shells out to the `git` executable. Every call runs with a
bounded timeout and any failure (non-zero exit, timeout, missing git
binary) is raised as `MirrorError`. Pulls are fast-forward only, so a
failed pull leaves the working copy at its previous commit.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

_LOGGER = logging.getLogger("coursehub.mirror")


class MirrorError(Exception):
    """Clone, fetch, pull or remote configuration failed."""


@dataclass
class RemoteMirrorState:
    local_path: Path
    remote_url: str
    branch: str
    last_synced_commit: Optional[str] = None


class GitMirrorClient:
    def __init__(self, remote_url: str, branch: str, local_path: Path, timeout_s: float = 120.0):
        self.state = RemoteMirrorState(local_path=Path(local_path), remote_url=remote_url, branch=branch)
        self.timeout_s = timeout_s

    @property
    def last_synced_commit(self) -> Optional[str]:
        return self.state.last_synced_commit

    def ensure_cloned(self, local_path: Optional[Path] = None) -> bool:
        """Clone the configured branch into `local_path` if it does not exist.

        The clone is made in a sibling `<name>.tmp` directory and moved into
        place only once it succeeded, so a failed or killed clone never
        leaves a partial working copy at `local_path`. Returns True when a
        clone happened.
        """
        path = Path(local_path) if local_path is not None else self.state.local_path
        if path.exists():
            return False
        if not self.state.remote_url:
            raise MirrorError("no remote URL configured for the exercises repository")
        path.parent.mkdir(parents=True, exist_ok=True)
        staging = path.with_name(path.name + ".tmp")
        shutil.rmtree(staging, ignore_errors=True)
        _LOGGER.info("Cloning %s (branch %s) into %s", self.state.remote_url, self.state.branch, path)
        try:
            self._git(["clone", "--branch", self.state.branch, "--", self.state.remote_url, str(staging)])
            os.replace(staging, path)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise MirrorError(f"could not move clone into {path}: {exc}") from exc
        except MirrorError:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        self.state.last_synced_commit = self.head_commit(path)
        _LOGGER.info("Latest commit after cloning: %s", self.state.last_synced_commit)
        return True

    def check_and_pull(self, local_path: Optional[Path] = None) -> bool:
        """Fetch from origin and pull when the tracked branch moved.

        Returns True if new commits were pulled, False when local HEAD
        already matches the remote branch.
        """
        path = Path(local_path) if local_path is not None else self.state.local_path
        if not (path / ".git").exists():
            raise MirrorError(f"no git working copy at {path}")
        branch = self.state.branch
        tracking_ref = f"refs/remotes/origin/{branch}"

        self._ensure_origin(path)
        self._git(["fetch", "origin"], cwd=path)

        old_head = self._resolve(path, "HEAD")
        remote_head = self._resolve(path, tracking_ref)
        if remote_head is None:
            _LOGGER.warning("Remote branch origin/%s not tracked locally; setting upstream", branch)
            self._ensure_fetch_refspec(path, f"+refs/heads/{branch}:{tracking_ref}")
            self._git(["fetch", "origin"], cwd=path)
            self._git(["checkout", "-B", branch, "--track", f"origin/{branch}"], cwd=path)
            remote_head = self._resolve(path, tracking_ref)
            if remote_head is None:
                raise MirrorError(f"branch {branch} not found on origin")

        if remote_head != old_head:
            self._git(["pull", "--ff-only", "origin", branch], cwd=path)
            new_head = self.head_commit(path)
            if new_head == old_head:
                # local HEAD is ahead of origin/<branch>; nothing was applied
                _LOGGER.info("Local HEAD %s is not behind origin/%s; nothing pulled.", old_head, branch)
                return False
            self.state.last_synced_commit = new_head
            _LOGGER.info("New changes detected. Latest commit: %s", new_head)
            return True

        _LOGGER.info("No new changes detected in the remote repository.")
        return False

    def head_commit(self, local_path: Optional[Path] = None) -> Optional[str]:
        path = Path(local_path) if local_path is not None else self.state.local_path
        return self._resolve(path, "HEAD")

    def _ensure_origin(self, path: Path) -> None:
        result = self._git(["config", "--get", "remote.origin.url"], cwd=path, check=False)
        if result.returncode == 0 and result.stdout.strip():
            return
        if not self.state.remote_url:
            raise MirrorError("remote 'origin' is not configured and no remote URL is set")
        _LOGGER.warning("Remote 'origin' not configured. Adding it.")
        self._git(["remote", "add", "origin", self.state.remote_url], cwd=path)
        _LOGGER.info("Added remote 'origin' with URL: %s", self.state.remote_url)

    def _ensure_fetch_refspec(self, path: Path, refspec: str) -> None:
        # single-branch clones only fetch their own branch; --track needs a matching refspec
        result = self._git(["config", "--get-all", "remote.origin.fetch"], cwd=path, check=False)
        if refspec in result.stdout.split():
            return
        self._git(["config", "--add", "remote.origin.fetch", refspec], cwd=path)

    def _resolve(self, path: Path, ref: str) -> Optional[str]:
        result = self._git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=path, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def _git(self, args: List[str], cwd: Optional[Path] = None, check: bool = True) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                env=env,
            )
        except subprocess.TimeoutExpired as exc:
            raise MirrorError(f"`{' '.join(cmd)}` timed out after {self.timeout_s:.0f}s") from exc
        except OSError as exc:
            raise MirrorError(f"could not run git: {exc}") from exc
        if check and result.returncode != 0:
            raise MirrorError(f"`{' '.join(cmd)}` failed ({result.returncode}): {result.stderr.strip()}")
        return result
