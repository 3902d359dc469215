"""
auth.py

Responsibility: Resolve who is acting.

- `GhCliSession` wraps the `gh` CLI for interactive (browser) login and token lookup.
- `resolve_token` picks the API token from flag, environment or the `gh` session.
- `resolve_identity` asks the GitHub API for the authenticated login.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Mapping, Protocol

from forkrelink.github_client import GitHubError

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


class AuthError(RuntimeError):
    pass


class IdentityProvider(Protocol):
    def get_viewer_login(self) -> str: ...


class GhCliSession:
    def __init__(self, gh_executable: str = "gh") -> None:
        self._gh = gh_executable

    def relogin(self) -> None:
        """
        Discard the current `gh` session and start a browser-based login.
        """
        logout = self._call(["auth", "logout"], interactive=True)
        if logout.returncode != 0:
            logger.warning("gh auth logout failed; continuing with login", extra={"event": "auth.logout.failed"})
        login = self._call(["auth", "login", "--web"], interactive=True)
        if login.returncode != 0:
            raise AuthError("gh auth login failed")

    def token(self) -> str | None:
        result = self._call(["auth", "token"], interactive=False)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def _call(self, args: list[str], *, interactive: bool) -> subprocess.CompletedProcess[str]:
        cmd = [self._gh, *args]
        try:
            # Interactive commands inherit the terminal so `gh` can prompt the user.
            return subprocess.run(cmd, check=False, text=True, capture_output=not interactive)
        except FileNotFoundError as e:
            raise AuthError(f"'{self._gh}' executable was not found in PATH") from e


def resolve_token(explicit: str | None, env: Mapping[str, str], session: GhCliSession | None) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    for name in TOKEN_ENV_VARS:
        value = (env.get(name) or "").strip()
        if value:
            return value
    if session is not None:
        token = session.token()
        if token:
            return token
    raise AuthError(
        "GitHub token is required (use --github-token, set GITHUB_TOKEN, or log in with `gh auth login`)"
    )


def resolve_identity(provider: IdentityProvider) -> str:
    try:
        login = provider.get_viewer_login()
    except GitHubError as e:
        raise AuthError(f"Could not determine GitHub username: {e}") from e
    if not login:
        raise AuthError("Could not determine GitHub username. Ensure you are authenticated.")
    return login
