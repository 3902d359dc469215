"""
git.py

Responsibility: Run local `git` commands.

Every operation takes the repository directory explicitly (`cwd`); this module never
changes the process working directory.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from forkrelink.gitmodules import GITMODULES_FILE, SUBMODULE_KEYS_REGEXP, SubmoduleEntry, parse_config_listing

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    pass


class GitClient:
    def __init__(self, *, git_executable: str = "git", timeout_seconds: float = 600.0) -> None:
        self._git_executable = git_executable
        self._timeout_seconds = timeout_seconds

    def _exec(self, args: Sequence[str], *, cwd: Path, check: bool) -> subprocess.CompletedProcess[str]:
        cmd = [self._git_executable, *args]
        logger.debug("running git", extra={"event": "git.run", "command": " ".join(cmd), "cwd": str(cwd)})
        try:
            return subprocess.run(
                cmd,
                cwd=str(cwd),
                check=check,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as e:
            raise GitError(f"Git executable '{self._git_executable}' was not found in PATH") from e
        except subprocess.TimeoutExpired as e:
            raise GitError(f"Git command timed out after {self._timeout_seconds}s: {' '.join(cmd)}") from e
        except subprocess.CalledProcessError as e:
            details = (e.stderr or "").strip() or (e.stdout or "").strip() or "No command output"
            raise GitError(f"Command failed ({e.returncode}): {' '.join(cmd)}\n\n{details}") from e

    def _run(self, args: Sequence[str], *, cwd: Path) -> str:
        """
        Run a git command, raising GitError on failure. Returns stripped stdout.
        """
        return (self._exec(args, cwd=cwd, check=True).stdout or "").strip()

    def read_submodules(self, cwd: Path) -> list[SubmoduleEntry] | None:
        """
        Return the `.gitmodules` entries of a checkout as git reads them, or None when
        the checkout has no `.gitmodules`.
        """
        if not (cwd / GITMODULES_FILE).is_file():
            return None
        result = self._exec(
            ["config", "-f", GITMODULES_FILE, "--null", "--get-regexp", SUBMODULE_KEYS_REGEXP],
            cwd=cwd,
            check=False,
        )
        # Exit status 1 means no key matched.
        if result.returncode == 1:
            return []
        if result.returncode != 0:
            details = (result.stderr or "").strip() or "No command output"
            raise GitError(f"Could not read {GITMODULES_FILE} in {cwd}: {details}")
        return parse_config_listing(result.stdout or "")

    def set_submodule_url(self, cwd: Path, name: str, url: str) -> None:
        self._run(["config", "-f", GITMODULES_FILE, f"submodule.{name}.url", url], cwd=cwd)

    def clone(self, url: str, destination: Path) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        self._run(["clone", url, str(destination)], cwd=destination.parent)

    def current_branch(self, cwd: Path) -> str:
        branch = self._run(["branch", "--show-current"], cwd=cwd)
        if not branch:
            raise GitError(f"Repository at {cwd} is not on a branch (detached HEAD)")
        return branch

    def add(self, cwd: Path, *paths: str) -> None:
        self._run(["add", "--", *paths], cwd=cwd)

    def commit(self, cwd: Path, message: str) -> None:
        self._run(["commit", "-m", message], cwd=cwd)

    def push(self, cwd: Path, branch: str, *, remote: str = "origin") -> None:
        self._run(["push", remote, branch], cwd=cwd)

    def submodule_sync(self, cwd: Path, path: str) -> None:
        """
        Copy the `.gitmodules` url of `path` into `.git/config` (no-op for uninitialized submodules).
        """
        self._run(["submodule", "sync", "--", path], cwd=cwd)

    def submodule_deinit_all(self, cwd: Path) -> None:
        """
        Deinitialize every submodule and drop the cached module repositories under `.git/modules`.
        """
        self._run(["submodule", "deinit", "--all", "-f"], cwd=cwd)
        modules_dir = cwd / ".git" / "modules"
        if modules_dir.is_dir():
            shutil.rmtree(modules_dir)
