from __future__ import annotations

import random
from dataclasses import replace
from pathlib import Path

import pytest

from forkrelink.config import Config
from forkrelink.github_client import GitHubError, RepoInfo
from forkrelink.gitmodules import SubmoduleEntry
from forkrelink.urls import RepoRef
from forkrelink.workflow import RunContext


def repo_info(owner: str, name: str, default_branch: str = "main") -> RepoInfo:
    return RepoInfo(
        owner=owner,
        name=name,
        html_url=f"https://github.com/{owner}/{name}",
        clone_url=f"https://github.com/{owner}/{name}.git",
        ssh_url=f"git@github.com:{owner}/{name}.git",
        default_branch=default_branch,
    )


class FakeProvider:
    """In-memory stand-in for GitHubClient that records every call."""

    def __init__(self, login: str = "alice") -> None:
        self.login = login
        self.permissions: dict[str, str] = {}
        self.viewable: set[str] = set()
        self.fork_failures: dict[str, int] = {}
        self.rename_fails = False
        self.create_ref_error: GitHubError | None = None
        self.branch_shas: dict[tuple[str, str], str] = {}
        self.calls: list[tuple] = []

    def get_viewer_login(self) -> str:
        self.calls.append(("get_viewer_login",))
        return self.login

    def get_permission(self, repo: RepoRef, user: str) -> str:
        self.calls.append(("get_permission", repo.full_name, user))
        return self.permissions.get(repo.full_name, "none")

    def fork_repo(self, repo: RepoRef) -> RepoInfo:
        self.calls.append(("fork_repo", repo.full_name))
        remaining = self.fork_failures.get(repo.full_name, 0)
        if remaining:
            self.fork_failures[repo.full_name] = remaining - 1
            raise GitHubError("fork failed", status_code=502)
        return repo_info(self.login, repo.name)

    def rename_repo(self, repo: RepoRef, new_name: str) -> RepoInfo:
        self.calls.append(("rename_repo", repo.full_name, new_name))
        if self.rename_fails:
            raise GitHubError("name already exists on this account", status_code=422)
        return repo_info(repo.owner, new_name)

    def create_ref(self, repo: RepoRef, ref: str, sha: str) -> None:
        self.calls.append(("create_ref", repo.full_name, ref, sha))
        if self.create_ref_error is not None:
            raise self.create_ref_error

    def get_branch_sha(self, repo: RepoRef, branch: str) -> str:
        self.calls.append(("get_branch_sha", repo.full_name, branch))
        try:
            return self.branch_shas[(repo.full_name, branch)]
        except KeyError:
            raise GitHubError("Not Found", status_code=404) from None

    def get_repo(self, repo: RepoRef) -> RepoInfo | None:
        self.calls.append(("get_repo", repo.full_name))
        return repo_info(repo.owner, repo.name)

    def can_view(self, repo: RepoRef) -> bool:
        self.calls.append(("can_view", repo.full_name))
        return repo.full_name in self.viewable

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeGit:
    """Records git commands and keeps `.gitmodules` entries in memory."""

    def __init__(self, submodules: list[SubmoduleEntry] | None = None, branch: str = "main") -> None:
        self.submodules = list(submodules) if submodules is not None else None
        self.branch = branch
        self.calls: list[tuple] = []

    def clone(self, url: str, destination: Path) -> None:
        self.calls.append(("clone", url, destination))
        destination.mkdir(parents=True)

    def read_submodules(self, cwd: Path) -> list[SubmoduleEntry] | None:
        return None if self.submodules is None else list(self.submodules)

    def set_submodule_url(self, cwd: Path, name: str, url: str) -> None:
        self.calls.append(("set_submodule_url", cwd, name, url))
        self.submodules = [replace(e, url=url) if e.name == name else e for e in self.submodules]

    def url_of(self, name: str) -> str:
        return next(e.url for e in self.submodules if e.name == name)

    def current_branch(self, cwd: Path) -> str:
        self.calls.append(("current_branch", cwd))
        return self.branch

    def add(self, cwd: Path, *paths: str) -> None:
        self.calls.append(("add", cwd, paths))

    def commit(self, cwd: Path, message: str) -> None:
        self.calls.append(("commit", cwd, message))

    def push(self, cwd: Path, branch: str, *, remote: str = "origin") -> None:
        self.calls.append(("push", cwd, branch, remote))

    def submodule_sync(self, cwd: Path, path: str) -> None:
        self.calls.append(("submodule_sync", cwd, path))

    def submodule_deinit_all(self, cwd: Path) -> None:
        self.calls.append(("submodule_deinit_all", cwd))

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_ctx(tmp_path, provider, sleeps):
    def _make(git: FakeGit | None = None, **config_kwargs) -> RunContext:
        config_kwargs.setdefault("target_repo", RepoRef("acme", "vertical"))
        config_kwargs.setdefault("workdir", tmp_path)
        return RunContext(
            identity=provider.login,
            provider=provider,
            git=git or FakeGit(),
            config=Config(**config_kwargs),
            sleep=sleeps.append,
            rng=random.Random(1234),
        )

    return _make
