"""
workflow.py

Responsibility: The run stages, wired together by `cli.py`.

Path A (branch):  has_write_access -> create_user_branch
Path B (fork):    fork_and_clone -> relink_submodules -> clean_submodules

Stages receive everything through a `RunContext` (identity, provider, git, config, clock,
random source) so each one can be driven in isolation with fakes.
"""

from __future__ import annotations

import logging
import random
import secrets
import string
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

from forkrelink.config import Config
from forkrelink.github_client import GitHubError, RepoInfo
from forkrelink.git import GitError
from forkrelink.gitmodules import GITMODULES_FILE, SubmoduleEntry, matches_path_filter
from forkrelink.urls import RepoRef, UnsupportedURLError, build_remote_url, parse_remote_url

logger = logging.getLogger(__name__)

FORK_SUFFIX_ALPHABET = string.ascii_letters + string.digits
FORK_SUFFIX_LENGTH = 8
BRANCH_PREFIX = "instance/"
RELINK_COMMIT_MESSAGE = "Relinked accessible submodules to forked versions"


class ForkError(RuntimeError):
    pass


class Provider(Protocol):
    def get_viewer_login(self) -> str: ...
    def get_permission(self, repo: RepoRef, user: str) -> str: ...
    def fork_repo(self, repo: RepoRef) -> RepoInfo: ...
    def rename_repo(self, repo: RepoRef, new_name: str) -> RepoInfo: ...
    def create_ref(self, repo: RepoRef, ref: str, sha: str) -> None: ...
    def get_branch_sha(self, repo: RepoRef, branch: str) -> str: ...
    def get_repo(self, repo: RepoRef) -> RepoInfo | None: ...
    def can_view(self, repo: RepoRef) -> bool: ...


class VersionControl(Protocol):
    def clone(self, url: str, destination: Path) -> None: ...
    def current_branch(self, cwd: Path) -> str: ...
    def add(self, cwd: Path, *paths: str) -> None: ...
    def commit(self, cwd: Path, message: str) -> None: ...
    def push(self, cwd: Path, branch: str, *, remote: str = "origin") -> None: ...
    def read_submodules(self, cwd: Path) -> list[SubmoduleEntry] | None: ...
    def set_submodule_url(self, cwd: Path, name: str, url: str) -> None: ...
    def submodule_sync(self, cwd: Path, path: str) -> None: ...
    def submodule_deinit_all(self, cwd: Path) -> None: ...


@dataclass
class RunContext:
    identity: str
    provider: Provider
    git: VersionControl
    config: Config
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=secrets.SystemRandom)


@dataclass(frozen=True)
class BranchResult:
    repo: RepoRef
    ref: str
    accessible: bool
    created: bool = False
    sha: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ForkResult:
    original: RepoRef
    forked_name: str
    owner: str
    local_path: Path
    host: str = "github.com"

    @property
    def fork(self) -> RepoRef:
        return RepoRef(owner=self.owner, name=self.forked_name)

    @property
    def html_url(self) -> str:
        return f"https://{self.host}/{self.fork.full_name}"


@dataclass
class RelinkResult:
    relinked: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)
    no_submodules: bool = False
    committed: bool = False
    pushed: bool = False
    branch: str | None = None


# ---- Access / branch (path A) ----


def has_write_access(provider: Provider, repo: RepoRef, identity: str) -> bool:
    try:
        permission = provider.get_permission(repo, identity)
    except GitHubError as e:
        logger.warning(
            "permission lookup for %s on %s failed: %s",
            identity,
            repo,
            e,
            extra={"event": "access.lookup.failed", "repo": repo.full_name},
        )
        return False
    return permission in ("write", "admin")


def create_user_branch(ctx: RunContext, repo: RepoRef) -> BranchResult:
    """
    Create `instance/<identity>` in `repo` from the head of the default branch.

    Failures are reported in the result; nothing is rolled back.
    """
    ref = f"{BRANCH_PREFIX}{ctx.identity}"

    if not has_write_access(ctx.provider, repo, ctx.identity):
        logger.warning(
            "%s does not have write access to %s; not creating branch %s",
            ctx.identity,
            repo,
            ref,
            extra={"event": "branch.inaccessible", "repo": repo.full_name},
        )
        return BranchResult(repo=repo, ref=ref, accessible=False)

    sha: str | None = None
    try:
        base_branch = ctx.config.default_branch
        if not base_branch:
            info = ctx.provider.get_repo(repo)
            if info is None:
                raise GitHubError(f"Repository {repo} is not accessible")
            base_branch = info.default_branch
        sha = ctx.provider.get_branch_sha(repo, base_branch)
        logger.info("creating branch %s from %s@%s", ref, base_branch, sha[:12])
        ctx.provider.create_ref(repo, f"refs/heads/{ref}", sha)
    except GitHubError as e:
        logger.error(
            "could not create branch %s in %s: %s",
            ref,
            repo,
            e,
            extra={"event": "branch.create.failed", "repo": repo.full_name},
        )
        return BranchResult(repo=repo, ref=ref, accessible=True, sha=sha, error=str(e))

    logger.info("branch %s created in %s", ref, repo, extra={"event": "branch.create.success"})
    return BranchResult(repo=repo, ref=ref, accessible=True, created=True, sha=sha)


# ---- Fork and clone (path B, stage 1) ----


def generate_fork_name(repo_name: str, rng: random.Random) -> str:
    suffix = "".join(rng.choice(FORK_SUFFIX_ALPHABET) for _ in range(FORK_SUFFIX_LENGTH))
    return f"{repo_name}-fork-{suffix}"


def unique_directory(base_dir: Path, name: str) -> Path:
    """
    `base_dir/name`, or `base_dir/name-<n>` for the smallest unused n >= 1.
    """
    candidate = base_dir / name
    n = 0
    while candidate.exists():
        n += 1
        candidate = base_dir / f"{name}-{n}"
    return candidate


def _fork_with_retry(ctx: RunContext, repo: RepoRef) -> RepoInfo:
    delay = ctx.config.fork_retry_delay
    try:
        return ctx.provider.fork_repo(repo)
    except GitHubError as first:
        logger.warning(
            "fork of %s failed (%s); retrying in %ss",
            repo,
            first,
            delay,
            extra={"event": "fork.retry", "repo": repo.full_name},
        )
    ctx.sleep(delay)
    try:
        return ctx.provider.fork_repo(repo)
    except GitHubError as second:
        raise ForkError(f"Forking {repo} failed after retry: {second}") from second


def fork_and_clone(ctx: RunContext, target: RepoRef) -> ForkResult:
    candidate = generate_fork_name(target.name, ctx.rng)

    logger.info("forking %s", target, extra={"event": "fork.start", "repo": target.full_name})
    info = _fork_with_retry(ctx, target)
    owner = info.owner or ctx.identity
    forked_name = info.name

    logger.info("renaming fork %s/%s to %s", owner, forked_name, candidate)
    try:
        renamed = ctx.provider.rename_repo(RepoRef(owner=owner, name=forked_name), candidate)
        forked_name = renamed.name or candidate
    except GitHubError as e:
        logger.warning(
            "rename failed (%s); continuing with fork name %s",
            e,
            forked_name,
            extra={"event": "fork.rename.failed", "repo": f"{owner}/{forked_name}"},
        )

    fork = RepoRef(owner=owner, name=forked_name)
    local_path = unique_directory(ctx.config.workdir, forked_name)
    clone_url = build_remote_url(fork, scheme=ctx.config.url_scheme, host=ctx.config.host)

    logger.info("cloning %s into %s", clone_url, local_path, extra={"event": "fork.clone"})
    ctx.git.clone(clone_url, local_path)

    return ForkResult(
        original=target,
        forked_name=forked_name,
        owner=owner,
        local_path=local_path,
        host=ctx.config.host,
    )


# ---- Submodule relink (path B, stage 2) ----


def relink_submodules(ctx: RunContext, fork: ForkResult) -> RelinkResult:
    """
    Fork every viewable submodule and point its `.gitmodules` url at the fork.

    The url is rewritten in place through `git config -f .gitmodules` and
    `git submodule sync` refreshes local config; the recorded submodule commits are
    left as they are.
    """
    result = RelinkResult()
    repo_dir = fork.local_path
    host = ctx.config.host.lower()

    entries = ctx.git.read_submodules(repo_dir)
    if not entries:
        logger.info("No submodules found. Nothing to fork or relink.", extra={"event": "relink.none"})
        result.no_submodules = True
        return result

    path_filter = ctx.config.submodule_path_filter

    for entry in entries:
        if not matches_path_filter(entry.path, path_filter):
            logger.debug("submodule %s outside path filter %s", entry.path, path_filter)
            continue

        logger.info("processing submodule at path: %s", entry.path)
        try:
            url_host, upstream = parse_remote_url(entry.url)
        except UnsupportedURLError:
            logger.warning(
                "unsupported submodule URL format for %s: %s",
                entry.path,
                entry.url,
                extra={"event": "relink.unsupported_url", "submodule": entry.path},
            )
            result.skipped.append((entry.path, "unsupported url"))
            continue

        if url_host != host:
            logger.warning(
                "submodule %s is hosted on %s, not %s; keeping original link",
                entry.path,
                url_host,
                host,
                extra={"event": "relink.unsupported_host", "submodule": entry.path},
            )
            result.skipped.append((entry.path, "unsupported host"))
            continue

        if not ctx.provider.can_view(upstream):
            logger.info(
                "submodule %s is inaccessible (private or no access); keeping original link",
                upstream,
                extra={"event": "relink.inaccessible", "submodule": entry.path},
            )
            result.skipped.append((entry.path, "inaccessible"))
            continue

        logger.info("forking accessible submodule %s", upstream)
        try:
            sub_fork = ctx.provider.fork_repo(upstream)
        except GitHubError as e:
            logger.warning(
                "fork of submodule %s failed: %s",
                upstream,
                e,
                extra={"event": "relink.fork.failed", "submodule": entry.path},
            )
            result.skipped.append((entry.path, "fork failed"))
            continue

        forked = RepoRef(owner=sub_fork.owner or ctx.identity, name=sub_fork.name)
        new_url = build_remote_url(forked, scheme=ctx.config.url_scheme, host=ctx.config.host)
        if new_url == entry.url:
            logger.info("submodule %s already points at %s", entry.path, new_url)
            result.skipped.append((entry.path, "already linked"))
            continue

        ctx.git.set_submodule_url(repo_dir, entry.name, new_url)
        result.relinked.append((entry.path, new_url))
        try:
            ctx.git.submodule_sync(repo_dir, entry.path)
        except GitError as e:
            logger.warning("git submodule sync failed for %s: %s", entry.path, e, extra={"event": "relink.sync.failed"})

    if not result.relinked:
        logger.info("No submodules were relinked.", extra={"event": "relink.unchanged"})
        return result

    result.branch = ctx.git.current_branch(repo_dir)
    logger.info("committing changes to relink submodules")
    ctx.git.add(repo_dir, GITMODULES_FILE)
    ctx.git.commit(repo_dir, RELINK_COMMIT_MESSAGE)
    result.committed = True

    if ctx.config.push:
        logger.info("pushing %s to %s", result.branch, fork.fork, extra={"event": "relink.push"})
        ctx.git.push(repo_dir, result.branch)
        result.pushed = True
    else:
        logger.info("push skipped; commit left on local branch %s", result.branch)

    return result


# ---- Cleanup (path B, stage 3) ----


def clean_submodules(ctx: RunContext, fork: ForkResult) -> None:
    """
    Deinitialize local submodule checkouts, leaving a freshly cloned, uninitialized state.
    """
    logger.info("deinitializing local submodule checkouts in %s", fork.local_path)
    ctx.git.submodule_deinit_all(fork.local_path)


def run_fork_pipeline(ctx: RunContext) -> tuple[ForkResult, RelinkResult]:
    fork = fork_and_clone(ctx, ctx.config.target_repo)
    relink = relink_submodules(ctx, fork)
    if ctx.config.clean_submodules and relink.pushed:
        clean_submodules(ctx, fork)
    return fork, relink
