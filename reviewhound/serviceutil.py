"""Locating the enclosing git repository without running git."""

from __future__ import annotations

import os


def git_rel_workdir() -> str:
    """Return the current directory relative to the repository root.

    The result ends with a path separator unless it is empty, like the output
    of ``git rev-parse --show-prefix``.
    """
    cwd = os.getcwd()
    root = find_git_root(cwd)
    if not cwd.startswith(root):
        raise RuntimeError(f"cannot get git relative workdir: cwd={cwd!r}, root={root!r}")
    path = cwd[len(root):].strip(os.sep)
    return path + os.sep if path else path


def find_git_root(path: str) -> str:
    """Return the root directory of the repository that contains ``path``."""
    return os.path.dirname(_find_dot_git_path(path))


def _find_dot_git_path(path: str) -> str:
    path = os.path.abspath(path)
    while True:
        dot_git = os.path.join(path, ".git")
        try:
            is_dir = os.path.isdir(dot_git) if os.stat(dot_git) else False
        except FileNotFoundError:
            pass
        else:
            if not is_dir:
                raise NotADirectoryError(".git exist but is not a directory")
            return dot_git

        if _is_git_dir(path):
            return path

        parent = os.path.dirname(path)
        if parent == path:
            raise FileNotFoundError(".git not found")
        path = parent


def _is_git_dir(path: str) -> bool:
    """Tell whether ``path`` looks like a bare repository."""
    for marker in ("HEAD", "objects", "refs"):
        try:
            os.stat(os.path.join(path, marker))
        except FileNotFoundError:
            return False
    return True