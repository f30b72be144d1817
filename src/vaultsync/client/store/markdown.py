"""Markdown file helpers shared by the local stores.

This module provides:
- split_frontmatter / join_frontmatter: YAML frontmatter handling
- atomic_write: write-to-temp then rename, so readers never see half a file
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml

_FRONTMATTER = re.compile(r"\A---\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into (frontmatter, body).

    Documents without frontmatter, or whose frontmatter is not a mapping,
    yield an empty dict and the full text.
    """
    match = _FRONTMATTER.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}, text
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end():]


def join_frontmatter(frontmatter: dict[str, Any], body: str) -> str:
    """Render frontmatter and body back into one document."""
    dumped = yaml.safe_dump(
        frontmatter,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    body = body.lstrip("\n")
    return f"---\n{dumped}---\n\n{body}"


def atomic_write(path: Path, content: str) -> None:
    """Write text to path atomically (temp file in the same dir + os.replace)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
