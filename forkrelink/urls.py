"""
urls.py

Responsibility: Translate between remote git URLs and `owner/name` repository references.

Supported URL encodings:
- scp-like SSH:   git@github.com:owner/repo.git
- SSH URL:        ssh://git@github.com/owner/repo.git
- HTTP(S):        https://github.com/owner/repo.git

The `.git` suffix is optional when parsing and always present when building.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

URL_SCHEMES = ("https", "ssh")

_SCP_RE = re.compile(r"^(?P<user>[^@/\s]+)@(?P<host>[^:/\s]+):/?(?P<path>[^\s]+)$")
_URL_RE = re.compile(r"^(?P<scheme>https?|ssh)://(?:[^@/\s]+@)?(?P<host>[^/\s]+)/(?P<path>[^\s]+)$")
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class UnsupportedURLError(ValueError):
    pass


@dataclass(frozen=True)
class RepoRef:
    """A repository addressed as `owner/name` on the hosting service."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name

    @classmethod
    def parse(cls, value: str) -> "RepoRef":
        """
        Parse an `owner/name` string. Raises ValueError when the shape is wrong.
        """
        parts = value.strip().strip("/").split("/")
        if len(parts) != 2 or not all(_NAME_RE.match(p) for p in parts):
            raise ValueError(f"Expected a repository reference of the form owner/name, got: {value!r}")
        return cls(owner=parts[0], name=parts[1])


def _strip_git_suffix(path: str) -> str:
    path = path.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path


def parse_remote_url(url: str) -> tuple[str, RepoRef]:
    """
    Recover the host and the `owner/name` pair from a remote URL.

    The host is lower-cased and stripped of any port. Raises UnsupportedURLError for
    anything that is not one of the supported encodings (local paths, relative submodule
    URLs such as `../sibling.git`, nested group paths).
    """
    raw = url.strip()
    match = _URL_RE.match(raw) or _SCP_RE.match(raw)
    if match is None:
        raise UnsupportedURLError(f"Unsupported remote URL format: {url}")

    host = match.group("host").split(":", 1)[0].lower()
    try:
        return host, RepoRef.parse(_strip_git_suffix(match.group("path")))
    except ValueError as e:
        raise UnsupportedURLError(f"Unsupported remote URL format: {url}") from e


def build_remote_url(repo: RepoRef, *, scheme: str, host: str = "github.com") -> str:
    """
    Build the clone URL for `repo` under the preferred scheme (`https` or `ssh`).
    """
    if scheme == "ssh":
        return f"git@{host}:{repo.full_name}.git"
    if scheme == "https":
        return f"https://{host}/{repo.full_name}.git"
    raise ValueError(f"Unknown URL scheme {scheme!r}; expected one of: {', '.join(URL_SCHEMES)}")
