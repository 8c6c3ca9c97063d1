"""Comment and diff services for Gerrit changes."""

from __future__ import annotations

import json
import os
import subprocess
import threading
from typing import Any
from urllib.parse import quote

import requests

from reviewhound.core import BulkCommentService, Comment, DiffService
from reviewhound.serviceutil import git_rel_workdir

STRIP_DIFF_RESULT = 1

_TIMEOUT = 30


def _encode(value: Any) -> str:
    return quote(str(value), safe="")


def _decode(response: requests.Response) -> Any:
    """Decode a Gerrit JSON body, skipping its anti-XSSI first line."""
    head, newline, rest = response.text.partition("\n")
    if not newline:
        raise ValueError(f"unexpected Gerrit response without JSON prefix: {head!r}")
    return json.loads(rest) if rest.strip() else {}


class GerritClient:
    """A minimal client for the Gerrit REST API."""

    def __init__(self, base_url: str, auth: tuple[str, str] | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.auth = auth
        if auth is not None:
            self.session.auth = auth

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        # Authenticated requests go through the "/a/" prefix.
        prefix = "a/" if self.auth is not None else ""
        response = self.session.request(
            method, f"{self.base_url}/{prefix}{path}", timeout=_TIMEOUT, **kwargs
        )
        response.raise_for_status()
        return _decode(response)

    def get_change_detail(self, change_id: str, fields: list[str] | None = None) -> dict[str, Any]:
        """Return the details of a change, with the requested extra fields."""
        params = {"o": list(fields)} if fields else None
        return self._request("GET", f"changes/{_encode(change_id)}/detail", params=params)

    def set_review(self, change_id: str, revision_id: str, review: dict[str, Any]) -> Any:
        """Post a review on a revision of a change."""
        return self._request(
            "POST",
            f"changes/{_encode(change_id)}/revisions/{_encode(revision_id)}/review",
            json=review,
        )


def _run_git(*args: str) -> bytes:
    completed = subprocess.run(["git", *args], check=True, capture_output=True)
    return completed.stdout


def _join_workdir(workdir: str, path: str) -> str:
    joined = os.path.join(workdir, path)
    return os.path.normpath(joined) if joined else ""


class ChangeDiff(DiffService):
    """Diff service for a Gerrit change; runs ``git`` locally."""

    def __init__(self, client: GerritClient | None, branch: str, change_id: str) -> None:
        try:
            self.workdir = git_rel_workdir()
        except OSError as err:
            raise RuntimeError(f"ChangeDiff needs a git repository: {err}") from err
        self.client = client
        self.branch = branch
        self.change_id = change_id

    def diff(self) -> bytes:
        change = self.client.get_change_detail(self.change_id, ["CURRENT_REVISION"])
        return self._git_diff(change["current_revision"], self.branch)

    @staticmethod
    def _git_diff(base_sha: str, target_sha: str) -> bytes:
        try:
            merge_base = _run_git("merge-base", target_sha, base_sha).decode().strip("\n")
        except (OSError, subprocess.CalledProcessError) as err:
            raise RuntimeError(f"failed to get merge-base commit: {err}") from err
        try:
            return _run_git("diff", "--find-renames", merge_base, base_sha)
        except (OSError, subprocess.CalledProcessError) as err:
            raise RuntimeError(f"failed to run git diff: {err}") from err

    def strip(self) -> int:
        return STRIP_DIFF_RESULT


class ChangeReviewCommenter(BulkCommentService):
    """Posts comments as one review on a Gerrit change revision."""

    def __init__(self, client: GerritClient | None, change_id: str, revision_id: str) -> None:
        try:
            self.workdir = git_rel_workdir()
        except OSError as err:
            raise RuntimeError(
                f"ChangeReviewCommenter needs a git repository: {err}"
            ) from err
        self.client = client
        self.change_id = change_id
        self.revision_id = revision_id
        self._lock = threading.Lock()
        self._pending: list[Comment] = []

    def post(self, comment: Comment) -> None:
        """Hold a comment; ``flush`` sends held comments as one review."""
        location = comment.result.diagnostic.location
        location.path = _join_workdir(self.workdir, location.path)
        with self._lock:
            self._pending.append(comment)

    def flush(self) -> None:
        with self._lock:
            comments: dict[str, list[dict[str, Any]]] = {}
            for comment in self._pending:
                if not comment.result.in_diff_file:
                    continue
                diagnostic = comment.result.diagnostic
                location = diagnostic.location
                comments.setdefault(location.path, []).append(
                    {"line": location.range.start.line, "message": diagnostic.message}
                )
            self.client.set_review(self.change_id, self.revision_id, {"comments": comments})