"""
cli.py

Responsibility: CLI entrypoint for fork-relink.

High-level flow (single command):
1) Load configuration -> `Config`
2) Ask which path to take: (1) per-user branch, (2) fork and relink submodules
3) Optionally re-authenticate through `gh`, then resolve the acting identity
4) Path A: create `instance/<user>` in the target repository
   Path B: fork, rename, clone, relink submodules, commit, push, optional cleanup

This module should orchestrate behavior but keep concerns isolated:
- Configuration: `config.py`
- Identity/token: `auth.py`
- GitHub API: `github_client.py`
- Local git: `git.py`
- Stages: `workflow.py`
"""

from __future__ import annotations

import argparse
import logging
import os
import time
from typing import Callable, Mapping

from forkrelink import __version__
from forkrelink.auth import AuthError, GhCliSession, resolve_identity, resolve_token
from forkrelink.config import Config, ConfigError, load_config
from forkrelink.git import GitClient, GitError
from forkrelink.github_client import GitHubClient, GitHubError
from forkrelink.logging_utils import configure_logging
from forkrelink.workflow import (
    BranchResult,
    ForkError,
    ForkResult,
    Provider,
    RelinkResult,
    RunContext,
    VersionControl,
    create_user_branch,
    run_fork_pipeline,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

MODE_CHOICES = {"1": "branch", "2": "fork", "branch": "branch", "fork": "fork"}
SUBMODULE_INIT_COMMAND = "git submodule update --init --recursive"

Prompt = Callable[[str], str]


class CLIError(RuntimeError):
    pass


def _read_answer(prompt: Prompt, text: str) -> str:
    try:
        return prompt(text).strip()
    except EOFError:
        # Closed stdin answers nothing.
        print()
        return ""


def _ask_mode(prompt: Prompt) -> str:
    answer = _read_answer(
        prompt,
        "Choose an action:\n"
        "  1) Create a branch named instance/<your-username> in the target repository\n"
        "  2) Fork the repository and relink its submodules to forks\n"
        "Enter 1 or 2: ",
    )
    mode = MODE_CHOICES.get(answer.lower())
    if mode is None:
        raise CLIError(f"Invalid choice: {answer!r}. Expected 1 or 2.")
    return mode


def _ask_relogin(prompt: Prompt) -> bool:
    print("To fork the repository, you may need a different account if you own the parent or already have a fork.")
    answer = _read_answer(
        prompt,
        "Do you want to authenticate with a different GitHub account? "
        "This will log out the current session and open a browser for SSO login. (y/n) ",
    )
    return answer.lower() in ("y", "yes")


def _print_branch_result(result: BranchResult) -> None:
    if not result.accessible:
        print(f"You do not have write access to {result.repo}; branch {result.ref} was not created.")
    elif result.created:
        print(f"Branch {result.ref} created in {result.repo} at {result.sha}.")
    else:
        print(f"Branch {result.ref} was not created in {result.repo}: {result.error}")


def _print_fork_result(fork: ForkResult, relink: RelinkResult) -> None:
    print(f"Local clone: {fork.local_path}")
    if relink.no_submodules:
        print("No submodules found.")
    elif not relink.relinked:
        print("No submodules were relinked.")
    for path, url in relink.relinked:
        print(f"- relinked {path} -> {url}")
    for path, reason in relink.skipped:
        print(f"- kept {path} ({reason})")
    if relink.committed and not relink.pushed:
        print(f"Changes committed on {relink.branch} but not pushed.")
    print(
        f"Process complete. Forked repository: {fork.html_url} "
        f"(run '{SUBMODULE_INIT_COMMAND}' in {fork.local_path} if needed)"
    )


def run(
    args: argparse.Namespace,
    *,
    prompt: Prompt = input,
    env: Mapping[str, str] | None = None,
    session: GhCliSession | None = None,
    provider_factory: Callable[[str, Config], Provider] | None = None,
    git: VersionControl | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    env = os.environ if env is None else env

    config = load_config(
        config_path=args.config,
        env=env,
        overrides={
            "target_repo": args.repo,
            "url_scheme": args.url_scheme,
            "default_branch": args.default_branch,
            "submodule_path_filter": args.path_filter,
            "host": args.host,
            "api_base": args.api_base,
            "workdir": args.workdir,
            "clean_submodules": args.clean_submodules or None,
            "push": False if args.skip_push else None,
        },
    )

    mode = MODE_CHOICES[args.mode] if args.mode else _ask_mode(prompt)

    session = session or GhCliSession()
    relogin = args.relogin if args.relogin is not None else _ask_relogin(prompt)
    if relogin:
        session.relogin()
        token = resolve_token(None, {}, session)
    else:
        token = resolve_token(args.github_token, env, session)

    if provider_factory is None:
        provider: Provider = GitHubClient(token, api_base=config.api_base)
    else:
        provider = provider_factory(token, config)

    identity = resolve_identity(provider)
    logger.info("acting as %s", identity, extra={"event": "auth.identity", "identity": identity})

    ctx = RunContext(identity=identity, provider=provider, git=git or GitClient(), config=config, sleep=sleep)

    if mode == "branch":
        _print_branch_result(create_user_branch(ctx, config.target_repo))
        return EXIT_OK

    fork, relink = run_fork_pipeline(ctx)
    _print_fork_result(fork, relink)
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="fork-relink",
        description="Fork a GitHub repository and relink its submodules to forks, or create a per-user branch",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (default: ./fork-relink.yml if present)")
    p.add_argument("--repo", default=None, help="Target repository owner/name (or set FORK_RELINK_REPO)")
    p.add_argument("--mode", choices=sorted(MODE_CHOICES), default=None, help="1/branch or 2/fork (prompted if omitted)")
    p.add_argument("--url-scheme", choices=["https", "ssh"], default=None, help="URL scheme for clone and submodule URLs")
    p.add_argument("--default-branch", default=None, help="Base branch for the per-user branch (default: repo default)")
    p.add_argument("--path-filter", default=None, help="Only relink submodules at or below this path")
    p.add_argument("--host", default=None, help="Git host used in URLs (default: github.com)")
    p.add_argument("--api-base", default=None, help="GitHub API base URL (or set GITHUB_API_URL)")
    p.add_argument("--workdir", default=None, help="Directory to clone the fork into (default: current directory)")
    p.add_argument("--github-token", default=None, help="GitHub token (or set GITHUB_TOKEN / use gh auth)")

    p.add_argument("--relogin", dest="relogin", action="store_true", default=None, help="Re-authenticate via gh first")
    p.add_argument("--no-relogin", dest="relogin", action="store_false", default=None, help="Use the current session")

    p.add_argument("--skip-push", action="store_true", help="Commit the relink locally but do not push")
    p.add_argument(
        "--clean-submodules",
        action="store_true",
        help="After a pushed relink, deinitialize local submodule checkouts",
    )

    p.add_argument("--log-level", default=None, help="Logging level (or set LOG_LEVEL; default: INFO)")
    p.add_argument("--log-json", action="store_true", help="Emit JSON log records")
    return p


def main(argv: list[str] | None = None, **run_kwargs) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    env = run_kwargs.get("env")
    env = os.environ if env is None else env
    configure_logging(args.log_level or env.get("LOG_LEVEL", "INFO"), json_output=args.log_json)

    try:
        return run(args, **run_kwargs)
    except (ConfigError, CLIError) as e:
        logger.error("%s", e, extra={"event": "cli.usage.error"})
        return EXIT_USAGE
    except (AuthError, ForkError, GitError, GitHubError) as e:
        logger.error("%s", e, extra={"event": "cli.execution.failed"})
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
