"""
github_client.py

Responsibility: Isolate all direct GitHub REST API interaction.

This module must be the only place that:
- Constructs GitHub REST endpoints
- Sends HTTP requests to api.github.com
- Interprets GitHub API responses / error payloads

Everything else (forking workflow, git commands, CLI behavior) should use this client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from forkrelink import __version__
from forkrelink.urls import RepoRef

logger = logging.getLogger(__name__)

PERMISSION_LEVELS = ("none", "read", "write", "admin")


class GitHubError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RepoInfo:
    owner: str
    name: str
    html_url: str
    clone_url: str
    ssh_url: str
    default_branch: str

    @property
    def ref(self) -> RepoRef:
        return RepoRef(owner=self.owner, name=self.name)


def _repo_info(data: dict[str, Any]) -> RepoInfo:
    owner = data.get("owner") or {}
    return RepoInfo(
        owner=str(owner.get("login") or ""),
        name=str(data["name"]),
        html_url=str(data.get("html_url") or ""),
        clone_url=str(data.get("clone_url") or ""),
        ssh_url=str(data.get("ssh_url") or ""),
        default_branch=data.get("default_branch") or "main",
    )


class GitHubClient:
    def __init__(self, token: str, api_base: str = "https://api.github.com", timeout: float = 30.0) -> None:
        if not token.strip():
            raise GitHubError("GitHub token is required.")
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"fork-relink/{__version__}",
        }

    def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> Any:
        url = f"{self._api_base}{path}"
        logger.debug("github request", extra={"event": "github.request", "method": method, "path": path})
        try:
            r = requests.request(method, url, headers=self._headers(), json=json_body, timeout=self._timeout)
        except requests.RequestException as e:
            raise GitHubError(f"GitHub API request failed {method} {path}: {e}") from e
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            message = payload.get("message", payload) if isinstance(payload, dict) else payload
            raise GitHubError(
                f"GitHub API error {r.status_code} {method} {path}: {message}",
                status_code=r.status_code,
            )
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    def get_viewer_login(self) -> str:
        """
        Return the login of the authenticated user ("who am I").
        """
        viewer = self._request("GET", "/user")
        return str((viewer or {}).get("login") or "").strip()

    def get_repo(self, repo: RepoRef) -> RepoInfo | None:
        """
        Return RepoInfo if the repo exists and is accessible; otherwise None.
        """
        try:
            data = self._request("GET", f"/repos/{repo.owner}/{repo.name}")
        except GitHubError as e:
            if e.status_code in (403, 404):
                return None
            raise
        return _repo_info(data)

    def can_view(self, repo: RepoRef) -> bool:
        """
        Accessibility check: True when the repo is public or shared with the viewer.
        """
        try:
            return self.get_repo(repo) is not None
        except GitHubError as e:
            logger.warning(
                "repository visibility check failed: %s",
                e,
                extra={"event": "github.can_view.failed", "repo": repo.full_name},
            )
            return False

    def get_permission(self, repo: RepoRef, user: str) -> str:
        """
        Return the collaborator permission of `user` on `repo`: none, read, write or admin.

        GitHub also reports `triage` and `maintain` roles through `role_name`; only the
        legacy `permission` field is consulted, which folds those into read/write.
        """
        data = self._request("GET", f"/repos/{repo.owner}/{repo.name}/collaborators/{user}/permission")
        permission = str((data or {}).get("permission") or "none").lower()
        return permission if permission in PERMISSION_LEVELS else "none"

    def fork_repo(self, repo: RepoRef) -> RepoInfo:
        """
        Fork `repo` into the authenticated user's account.

        GitHub creates forks asynchronously and returns the (possibly pre-existing)
        fork immediately; its name is initially the upstream's name.
        """
        data = self._request("POST", f"/repos/{repo.owner}/{repo.name}/forks", json_body={})
        return _repo_info(data)

    def rename_repo(self, repo: RepoRef, new_name: str) -> RepoInfo:
        data = self._request("PATCH", f"/repos/{repo.owner}/{repo.name}", json_body={"name": new_name})
        return _repo_info(data)

    def get_branch_sha(self, repo: RepoRef, branch: str) -> str:
        data = self._request("GET", f"/repos/{repo.owner}/{repo.name}/git/ref/heads/{branch}")
        sha = str(((data or {}).get("object") or {}).get("sha") or "")
        if not sha:
            raise GitHubError(f"No commit SHA returned for {repo.full_name}@{branch}")
        return sha

    def create_ref(self, repo: RepoRef, ref: str, sha: str) -> None:
        """
        Create `ref` (e.g. `refs/heads/instance/alice`) pointing at `sha`.

        GitHub answers HTTP 422 "Reference already exists" when the ref is taken.
        """
        self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/git/refs",
            json_body={"ref": ref, "sha": sha},
        )
