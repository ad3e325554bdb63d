from __future__ import annotations

import fnmatch
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .fileops import is_artifact
from .formats import is_supported


class DiscoveryError(Exception):
    """Candidate files could not be listed (usually a git problem)."""


def parse_ignore(text: Optional[str]) -> List[str]:
    """Split a comma-separated --ignore value. A leading "!" is tolerated."""
    if not text:
        return []
    patterns = []
    for part in text.split(","):
        part = part.strip().lstrip("!").strip()
        if part:
            patterns.append(part.replace("\\", "/"))
    return patterns


def is_ignored(rel_path: str, patterns: Sequence[str]) -> bool:
    """
    Match a root-relative posix path against ignore patterns.

    A pattern may be an exact path, a directory prefix ("media", "media/",
    "media/*") or a glob ("**/*.gif").
    """
    if rel_path.startswith("./"):
        rel_path = rel_path[2:]
    for pattern in patterns:
        pattern = pattern[2:] if pattern.startswith("./") else pattern
        if rel_path == pattern:
            return True
        prefix = pattern.rstrip("*").rstrip("/")
        if prefix and rel_path.startswith(prefix + "/"):
            return True
        if fnmatch.fnmatchcase(rel_path, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatchcase(rel_path, pattern[3:]):
            return True
    return False


def _git(root: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(root),
        capture_output=True,
        text=True,
        check=True,
    )
    return proc.stdout


def _split_z(output: str) -> List[str]:
    return [s for s in output.split("\0") if s.strip()]


def _filter(root: Path, rel_paths: Iterable[str], ignore: Sequence[str]) -> List[Path]:
    found: List[Path] = []
    for rel in rel_paths:
        rel = rel.replace("\\", "/")
        if not is_supported(Path(rel)) or is_artifact(Path(rel)):
            continue
        if is_ignored(rel, ignore):
            continue
        p = root / rel
        if not p.is_file():
            continue
        found.append(p)
    return sorted(set(found))


def _walk(root: Path) -> Iterable[str]:
    for f in root.rglob("*"):
        if ".git" in f.relative_to(root).parts:
            continue
        if f.is_file():
            yield f.relative_to(root).as_posix()


def find_images(root: Path, ignore: Sequence[str] = ()) -> List[Path]:
    """
    All images under root, honouring .gitignore when root is in a git work tree.

    Outside git (or without a git binary) the tree is walked directly.
    """
    root = Path(root)
    try:
        listed = _git(root, "ls-files", "-z", "--cached", "--others", "--exclude-standard")
    except (OSError, subprocess.CalledProcessError):
        return _filter(root, _walk(root), ignore)
    return _filter(root, _split_z(listed), ignore)


def staged_images(root: Path, ignore: Sequence[str] = ()) -> List[Path]:
    """Images staged for commit (added, copied, modified, renamed, type-changed)."""
    root = Path(root)
    try:
        # Paths from diff are relative to the top level, not the cwd.
        top = Path(_git(root, "rev-parse", "--show-toplevel").strip())
        listed = _git(top, "diff", "-z", "--name-only", "--cached", "--diff-filter=ACMRT")
    except FileNotFoundError as e:
        raise DiscoveryError("git is not installed") from e
    except subprocess.CalledProcessError as e:
        raise DiscoveryError((e.stderr or str(e)).strip()) from e
    return _filter(top, _split_z(listed), ignore)
