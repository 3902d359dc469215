"""
forkrelink package

This package implements fork-relink as a CLI-first utility.

Key responsibilities are split across modules:
- `config.py`: load YAML/env/flag settings into a typed configuration
- `auth.py`: `gh` session handling, token lookup and identity resolution
- `github_client.py`: isolated GitHub REST API interactions (fork / rename / refs / permissions)
- `git.py`: local git commands, always run against an explicit directory
- `gitmodules.py`: lossless `.gitmodules` parsing and url rewriting
- `urls.py`: remote URL <-> `owner/name` conversion
- `workflow.py`: branch creation and the fork -> clone -> relink -> push stages
- `cli.py`: CLI entrypoint and orchestration (prompt -> auth -> dispatch -> report)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
