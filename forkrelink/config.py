"""
config.py

Responsibility: Load run settings into a typed, immutable model.

Sources, highest precedence first:
1) CLI flags
2) Environment variables (FORK_RELINK_*)
3) YAML config file (optional)
4) Built-in defaults

The workflow and CLI should treat the resulting `Config` as the single source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from forkrelink.urls import URL_SCHEMES, RepoRef

DEFAULT_CONFIG_FILE = "fork-relink.yml"
FORK_RETRY_DELAY_SECONDS = 10.0

_ENV_KEYS = {
    "target_repo": "FORK_RELINK_REPO",
    "url_scheme": "FORK_RELINK_URL_SCHEME",
    "default_branch": "FORK_RELINK_DEFAULT_BRANCH",
    "submodule_path_filter": "FORK_RELINK_PATH_FILTER",
    "host": "FORK_RELINK_HOST",
    "api_base": "GITHUB_API_URL",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    """Settings shared by every stage of a run."""

    target_repo: RepoRef
    url_scheme: str = "https"
    default_branch: str | None = None
    submodule_path_filter: str | None = None
    host: str = "github.com"
    api_base: str = "https://api.github.com"
    workdir: Path = Path(".")
    fork_retry_delay: float = FORK_RETRY_DELAY_SECONDS
    clean_submodules: bool = False
    push: bool = True


def _load_yaml_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError("Config file must be a mapping/object at the top level.")
    return data


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_config(
    *,
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """
    Build a `Config` from file, environment and CLI overrides.

    Recognised keys (file, overrides):
    - target_repo: str `owner/name` (required)
    - url_scheme: `https` | `ssh`
    - default_branch: str (defaults to the repository's own default branch)
    - submodule_path_filter: str path prefix
    - host, api_base: str
    - workdir: str directory the fork is cloned under
    - fork_retry_delay: float seconds
    - clean_submodules, push: bool
    """
    env = env or {}
    overrides = overrides or {}

    file_data: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file does not exist: {path}")
        file_data = _load_yaml_file(path)
    elif Path(DEFAULT_CONFIG_FILE).is_file():
        file_data = _load_yaml_file(Path(DEFAULT_CONFIG_FILE))

    def pick(key: str) -> Any:
        if overrides.get(key) is not None:
            return overrides[key]
        env_name = _ENV_KEYS.get(key)
        if env_name and _clean(env.get(env_name)):
            return env[env_name]
        return file_data.get(key)

    raw_repo = _clean(pick("target_repo"))
    if not raw_repo:
        raise ConfigError("Target repository is not set (use --repo, FORK_RELINK_REPO, or `target_repo` in the config file)")
    try:
        target_repo = RepoRef.parse(raw_repo)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    url_scheme = (_clean(pick("url_scheme")) or "https").lower()
    if url_scheme not in URL_SCHEMES:
        raise ConfigError(f"`url_scheme` must be one of: {', '.join(URL_SCHEMES)} (got {url_scheme!r})")

    raw_delay = pick("fork_retry_delay")
    try:
        fork_retry_delay = float(raw_delay) if raw_delay is not None else FORK_RETRY_DELAY_SECONDS
    except (TypeError, ValueError) as e:
        raise ConfigError("`fork_retry_delay` must be a number") from e
    if fork_retry_delay < 0:
        raise ConfigError("`fork_retry_delay` must be >= 0")

    push = pick("push")
    return Config(
        target_repo=target_repo,
        url_scheme=url_scheme,
        default_branch=_clean(pick("default_branch")),
        submodule_path_filter=_clean(pick("submodule_path_filter")),
        host=_clean(pick("host")) or "github.com",
        api_base=_clean(pick("api_base")) or "https://api.github.com",
        workdir=Path(_clean(pick("workdir")) or ".").expanduser(),
        fork_retry_delay=fork_retry_delay,
        clean_submodules=bool(pick("clean_submodules")),
        push=True if push is None else bool(push),
    )
