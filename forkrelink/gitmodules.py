"""
gitmodules.py

Responsibility: Model `.gitmodules` entries and decode what `git config` reports about them.

The file itself is only ever read and written by git (`git config -f .gitmodules ...`, see
`git.py`), which addresses each submodule through the dotted keys
`submodule.<name>.path` / `submodule.<name>.url`. This module turns the
`--null --get-regexp` listing into entries and decides which entries a path filter selects.
"""

from __future__ import annotations

from dataclasses import dataclass

GITMODULES_FILE = ".gitmodules"
SUBMODULE_KEYS_REGEXP = r"^submodule\..*\.(path|url)$"


@dataclass(frozen=True)
class SubmoduleEntry:
    """One `[submodule "<name>"]` section."""

    name: str
    path: str
    url: str


def parse_config_listing(output: str) -> list[SubmoduleEntry]:
    """
    Decode `git config --null --get-regexp` output into entries, in file order.

    Each record is `<key>\\n<value>\\0`. Submodule names may contain dots, so the
    field is split off the right end of the key. Sections missing either `path` or
    `url` are ignored, matching how git itself refuses to work with such entries.
    """
    fields: dict[str, dict[str, str]] = {}
    for record in output.split("\0"):
        if not record:
            continue
        key, _, value = record.partition("\n")
        if not key.startswith("submodule."):
            continue
        name, _, field = key[len("submodule.") :].rpartition(".")
        if not name:
            continue
        fields.setdefault(name, {})[field] = value

    return [
        SubmoduleEntry(name=name, path=values["path"], url=values["url"])
        for name, values in fields.items()
        if values.get("path") and values.get("url")
    ]


def matches_path_filter(path: str, prefix: str | None) -> bool:
    """
    True when no filter is set, or when `path` equals `prefix` or lies beneath it.
    """
    if not prefix:
        return True

    def _norm(p: str) -> str:
        p = p.strip()
        while p.startswith("./"):
            p = p[2:]
        return p.strip("/")

    wanted = _norm(prefix)
    actual = _norm(path)
    if not wanted:
        return True
    return actual == wanted or actual.startswith(wanted + "/")
