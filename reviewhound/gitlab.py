"""Comment and diff services for GitLab merge requests."""

from __future__ import annotations

import os
import subprocess
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import quote

import requests

from reviewhound.commentutil import PostedComments, get_code_fence_length, markdown_comment
from reviewhound.core import BulkCommentService, Comment, DiffService, Suggestion
from reviewhound.serviceutil import git_rel_workdir

DEFAULT_BASE_URL = "https://gitlab.com/api/v4"
INVALID_SUGGESTION_PRE = "<details><summary>reviewhound suggestion error</summary>"
INVALID_SUGGESTION_POST = "</details>"

_TIMEOUT = 30


def _encode(value: Any) -> str:
    return quote(str(value), safe="")


class GitLabClient:
    """A minimal client for the GitLab REST API (v4)."""

    def __init__(self, token: str | None = None, base_url: str = DEFAULT_BASE_URL) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        if token:
            self.session.headers["PRIVATE-TOKEN"] = token

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        response = self.session.request(
            method, f"{self.base_url}/{path}", timeout=_TIMEOUT, **kwargs
        )
        response.raise_for_status()
        return response

    def get_merge_request(self, project: str | int, mr: int) -> dict[str, Any]:
        """Return a merge request."""
        return self._request("GET", f"projects/{_encode(project)}/merge_requests/{mr}").json()

    def get_branch(self, project: str | int, branch: str) -> dict[str, Any]:
        """Return a branch of a project."""
        return self._request(
            "GET", f"projects/{_encode(project)}/repository/branches/{_encode(branch)}"
        ).json()

    def get_merge_request_commits(self, project: str | int, mr: int) -> list[dict[str, Any]]:
        """Return the commits of a merge request."""
        return self._request(
            "GET", f"projects/{_encode(project)}/merge_requests/{mr}/commits"
        ).json()

    def get_commit_comments(self, project: str | int, sha: str) -> list[dict[str, Any]]:
        """Return the comments on a commit."""
        return self._request(
            "GET", f"projects/{_encode(project)}/repository/commits/{_encode(sha)}/comments"
        ).json()

    def post_commit_comment(
        self, project: str | int, sha: str, comment: dict[str, Any]
    ) -> dict[str, Any]:
        """Post a comment on a commit."""
        return self._request(
            "POST",
            f"projects/{_encode(project)}/repository/commits/{_encode(sha)}/comments",
            json=comment,
        ).json()

    def list_merge_request_discussions(
        self, project: str | int, mr: int, page: int | None = None, per_page: int = 100
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of discussions and the next page number (0 if none)."""
        params: dict[str, int] = {"per_page": per_page}
        if page:
            params["page"] = page
        response = self._request(
            "GET",
            f"projects/{_encode(project)}/merge_requests/{mr}/discussions",
            params=params,
        )
        next_page = response.headers.get("X-Next-Page", "").strip()
        return response.json(), int(next_page) if next_page else 0

    def create_merge_request_discussion(
        self, project: str | int, mr: int, discussion: dict[str, Any]
    ) -> dict[str, Any]:
        """Start a new discussion on a merge request."""
        return self._request(
            "POST",
            f"projects/{_encode(project)}/merge_requests/{mr}/discussions",
            json=discussion,
        ).json()


def _run_git(*args: str) -> str:
    completed = subprocess.run(["git", *args], check=True, capture_output=True)
    return completed.stdout.decode()


def _join_workdir(workdir: str, path: str) -> str:
    joined = os.path.join(workdir, path)
    if not joined:
        return ""
    return os.path.normpath(joined).replace(os.sep, "/")


def _workdir_for(service_name: str) -> str:
    try:
        return git_rel_workdir()
    except OSError as err:
        raise RuntimeError(f"{service_name} needs a git repository: {err}") from err


def _hold(lock: threading.Lock, pending: list[Comment], workdir: str, comment: Comment) -> None:
    location = comment.result.diagnostic.location
    location.path = _join_workdir(workdir, location.path)
    with lock:
        pending.append(comment)


def _run_all(tasks: Iterable[Callable[[], None]]) -> None:
    """Run tasks concurrently, wait for all of them and raise the first error."""
    with ThreadPoolExecutor() as pool:
        futures = [pool.submit(task) for task in tasks]
    for future in futures:
        error = future.exception()
        if error is not None:
            raise error


def _start_line(comment: Comment) -> int:
    return comment.result.diagnostic.location.range.start.line


class MergeRequestCommitCommenter(BulkCommentService):
    """Posts comments on the commits of a GitLab merge request."""

    def __init__(
        self, client: GitLabClient | None, owner: str, repo: str, pr: int, sha: str
    ) -> None:
        self.workdir = _workdir_for("MergeRequestCommitCommenter")
        self.client = client
        self.pr = pr
        self.sha = sha
        self.project = f"{owner}/{repo}"
        self._lock = threading.Lock()
        self._pending: list[Comment] = []

    def post(self, comment: Comment) -> None:
        """Hold a comment; ``flush`` sends held comments concurrently."""
        _hold(self._lock, self._pending, self.workdir, comment)

    def flush(self) -> None:
        with self._lock:
            posted = self._posted_comments()
            self._post_each(posted)

    def _posted_comments(self) -> PostedComments:
        posted = PostedComments()
        for item in self._existing_comments():
            line, path, note = item.get("line"), item.get("path"), item.get("note")
            # Skips resolved comments and those without a path or a body.
            if not line or not path or not note:
                continue
            posted.add_posted_comment(path, line, note)
        return posted

    def _existing_comments(self) -> list[dict[str, Any]]:
        comments: list[dict[str, Any]] = []
        for commit in self.client.get_merge_request_commits(self.project, self.pr):
            try:
                comments.extend(self.client.get_commit_comments(self.project, commit["id"]))
            except requests.RequestException:
                continue
        return comments

    def _last_commit_id(self, path: str, line: int) -> str:
        output = _run_git("blame", "-l", "-L", f"{line},{line}", path)
        return output.split(" ")[0]

    def _post_each(self, posted: PostedComments) -> None:
        tasks = []
        for comment in self._pending:
            line = _start_line(comment)
            body = markdown_comment(comment)
            if not comment.result.in_diff_file or line == 0 or posted.is_posted(
                comment, line, body
            ):
                continue
            tasks.append(self._poster(comment.result.diagnostic.location.path, line, body))
        _run_all(tasks)

    def _poster(self, path: str, line: int, body: str) -> Callable[[], None]:
        def send() -> None:
            try:
                commit_id = self._last_commit_id(path, line)
            except (OSError, subprocess.CalledProcessError):
                commit_id = self.sha
            self.client.post_commit_comment(
                self.project,
                commit_id,
                {"note": body, "path": path, "line": line, "line_type": "new"},
            )

        return send


class MergeRequestDiff(DiffService):
    """Diff service for a GitLab merge request.

    The diff is produced by a local ``git diff --find-renames`` against the
    merge base, because the diff GitLab serves ignores renames.
    """

    def __init__(
        self, client: GitLabClient | None, owner: str, repo: str, pr: int, sha: str
    ) -> None:
        self.workdir = _workdir_for("MergeRequestDiff")
        self.client = client
        self.pr = pr
        self.sha = sha
        self.project = f"{owner}/{repo}"

    def diff(self) -> bytes:
        mr = self.client.get_merge_request(self.project, self.pr)
        branch = self.client.get_branch(mr["target_project_id"], mr["target_branch"])
        return self._git_diff(self.sha, branch["commit"]["id"])

    @staticmethod
    def _git_diff(base_sha: str, target_sha: str) -> bytes:
        try:
            merge_base = _run_git("merge-base", target_sha, base_sha).strip("\n")
        except (OSError, subprocess.CalledProcessError) as err:
            raise RuntimeError(f"failed to get merge-base commit: {err}") from err
        try:
            completed = subprocess.run(
                ["git", "diff", "--find-renames", merge_base, base_sha],
                check=True,
                capture_output=True,
            )
        except (OSError, subprocess.CalledProcessError) as err:
            raise RuntimeError(f"failed to run git diff: {err}") from err
        return completed.stdout

    def strip(self) -> int:
        return 1


def _build_single_suggestion(suggestion: Suggestion) -> str:
    # More than three backticks are needed when the text holds a fence itself.
    text = suggestion.text
    fence = "`" * get_code_fence_length(text)
    rng = suggestion.range
    lines = rng.end.line - rng.start.line
    content = f"{text}\n" if text else ""
    return f"{fence}suggestion:-0+{lines}\n{content}{fence}"


def build_suggestions(comment: Comment) -> str:
    """Build GitLab suggestion blocks; suggestions without a full range are skipped."""
    parts = []
    for suggestion in comment.result.diagnostic.suggestions:
        rng = suggestion.range
        if rng is None or rng.start is None or rng.end is None:
            continue
        try:
            parts.append(_build_single_suggestion(suggestion) + "\n")
        except ValueError as err:
            parts.append(f"{INVALID_SUGGESTION_PRE}{err}{INVALID_SUGGESTION_POST}\n")
    return "".join(parts)


class MergeRequestDiscussionCommenter(BulkCommentService):
    """Posts comments as discussions on a GitLab merge request."""

    def __init__(
        self, client: GitLabClient | None, owner: str, repo: str, pr: int, sha: str
    ) -> None:
        self.workdir = _workdir_for("MergeRequestDiscussionCommenter")
        self.client = client
        self.pr = pr
        self.sha = sha
        self.project = f"{owner}/{repo}"
        self._lock = threading.Lock()
        self._pending: list[Comment] = []

    def post(self, comment: Comment) -> None:
        """Hold a comment; ``flush`` sends held comments concurrently."""
        _hold(self._lock, self._pending, self.workdir, comment)

    def flush(self) -> None:
        with self._lock:
            try:
                posted = self._posted_comments()
            except requests.RequestException as err:
                raise RuntimeError(f"failed to create posted comments: {err}") from err
            self._post_each(posted)

    def _all_discussions(self) -> list[dict[str, Any]]:
        discussions: list[dict[str, Any]] = []
        page: int | None = None
        while True:
            batch, next_page = self.client.list_merge_request_discussions(
                self.project, self.pr, page=page, per_page=100
            )
            discussions.extend(batch)
            if not next_page:
                return discussions
            page = next_page

    def _posted_comments(self) -> PostedComments:
        posted = PostedComments()
        for discussion in self._all_discussions():
            for note in discussion.get("notes") or []:
                position = note.get("position")
                body = note.get("body")
                if not position or not body:
                    continue
                path, line = position.get("new_path"), position.get("new_line")
                if not path or not line:
                    continue
                posted.add_posted_comment(path, line, body)
        return posted

    def _post_each(self, posted: PostedComments) -> None:
        try:
            mr = self.client.get_merge_request(self.project, self.pr)
        except requests.RequestException as err:
            raise RuntimeError(f"failed to get merge request: {err}") from err
        branch = self.client.get_branch(mr["target_project_id"], mr["target_branch"])
        target_sha = branch["commit"]["id"]

        tasks = []
        for comment in self._pending:
            line = _start_line(comment)
            body = markdown_comment(comment)
            suggestion = build_suggestions(comment)
            if suggestion:
                body = f"{body}\n\n{suggestion}"
            if not comment.result.in_diff_file or line == 0 or posted.is_posted(
                comment, line, body
            ):
                continue
            position: dict[str, Any] = {
                "start_sha": target_sha,
                "head_sha": self.sha,
                "base_sha": target_sha,
                "position_type": "text",
                "new_path": comment.result.diagnostic.location.path,
                "new_line": line,
            }
            if comment.result.old_path and comment.result.old_line:
                position["old_path"] = comment.result.old_path
                position["old_line"] = comment.result.old_line
            tasks.append(self._poster({"body": body, "position": position}))
        _run_all(tasks)

    def _poster(self, discussion: dict[str, Any]) -> Callable[[], None]:
        def send() -> None:
            try:
                self.client.create_merge_request_discussion(self.project, self.pr, discussion)
            except requests.RequestException as err:
                raise RuntimeError(
                    f"failed to create merge request discussion: {err}"
                ) from err

        return send