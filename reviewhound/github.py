"""Comment and diff service for GitHub pull requests."""

from __future__ import annotations

import os
import threading
from typing import Any
from urllib.parse import parse_qs, urlparse

import requests

from reviewhound.commentutil import PostedComments, get_code_fence_length, markdown_comment
from reviewhound.core import BulkCommentService, Comment, DiffService, Range, Suggestion
from reviewhound.githubutils import linked_markdown_diagnostic, report_as_github_actions_log
from reviewhound.serviceutil import git_rel_workdir

DEFAULT_BASE_URL = "https://api.github.com/"
MAX_COMMENTS_PER_REQUEST = 30
INVALID_SUGGESTION_PRE = "<details><summary>reviewhound suggestion error</summary>"
INVALID_SUGGESTION_POST = "</details>"

_TIMEOUT = 30


def _next_page(response: requests.Response) -> int:
    link = response.links.get("next")
    if not link:
        return 0
    pages = parse_qs(urlparse(link["url"]).query).get("page")
    return int(pages[0]) if pages else 0


class GitHubClient:
    """A minimal client for the GitHub REST API."""

    def __init__(self, token: str | None = None, base_url: str = DEFAULT_BASE_URL) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.session = requests.Session()
        self.session.headers["Accept"] = "application/vnd.github.v3+json"
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    def list_pull_request_comments(
        self, owner: str, repo: str, pr: int, page: int | None = None, per_page: int = 100
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of review comments and the next page number (0 if none)."""
        params: dict[str, int] = {"per_page": per_page}
        if page:
            params["page"] = page
        response = self.session.get(
            self._url(f"repos/{owner}/{repo}/pulls/{pr}/comments"),
            params=params,
            timeout=_TIMEOUT,
        )
        response.raise_for_status()
        return response.json(), _next_page(response)

    def create_review(self, owner: str, repo: str, pr: int, review: dict[str, Any]) -> dict[str, Any]:
        """Create a pull request review."""
        response = self.session.post(
            self._url(f"repos/{owner}/{repo}/pulls/{pr}/reviews"),
            json=review,
            timeout=_TIMEOUT,
        )
        response.raise_for_status()
        return response.json() if response.content else {}

    def get_pull_request_diff(self, owner: str, repo: str, pr: int) -> bytes:
        """Return the raw diff of a pull request."""
        response = self.session.get(
            self._url(f"repos/{owner}/{repo}/pulls/{pr}"),
            headers={"Accept": "application/vnd.github.v3.diff"},
            timeout=_TIMEOUT,
        )
        response.raise_for_status()
        return response.content


def _in_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def _join_workdir(workdir: str, path: str) -> str:
    joined = os.path.join(workdir, path)
    if not joined:
        return ""
    return os.path.normpath(joined).replace(os.sep, "/")


def _line_range(rng: Range | None) -> tuple[int, int]:
    if rng is None:
        return 0, 0
    start = rng.start.line
    end = rng.end.line if rng.end is not None else 0
    return start, end or start


def _comment_line_range(comment: Comment) -> tuple[int, int]:
    """Return the line range the comment covers on GitHub.

    The first suggestion's range wins when it lies in the diff context, so the
    suggestion can be posted even when its range differs from the location.
    """
    result = comment.result
    suggestions = result.diagnostic.suggestions
    if result.first_suggestion_in_diff_context and suggestions:
        return _line_range(suggestions[0].range)
    return _line_range(result.diagnostic.location.range)


def _comment_line(comment: Comment) -> int:
    return _comment_line_range(comment)[1]


def _build_draft_review_comment(comment: Comment, body: str) -> dict[str, Any]:
    start, end = _comment_line_range(comment)
    draft: dict[str, Any] = {
        "path": comment.result.diagnostic.location.path,
        "side": "RIGHT",
        "body": body,
        "line": end,
    }
    # GitHub requires the start line to precede the end line.
    if start < end:
        draft["start_side"] = "RIGHT"
        draft["start_line"] = start
    return draft


def _fenced_suggestion(text: str, with_empty_line: bool) -> str:
    fence = "`" * get_code_fence_length(text)
    content = f"{text}\n" if (text or with_empty_line) else ""
    return f"{fence}suggestion\n{content}{fence}"


def _source_line(source_lines: dict[int, str], line: int) -> str:
    try:
        return source_lines[line]
    except KeyError:
        raise ValueError(
            f"source line (L={line}) is not available for this suggestion"
        ) from None


def _build_non_line_based_suggestion(comment: Comment, suggestion: Suggestion) -> str:
    source_lines = comment.result.source_lines
    if not source_lines:
        raise ValueError("source lines are not available")
    rng = suggestion.range
    start = rng.start
    end_line = rng.end.line if rng.end is not None else 0
    end_column = rng.end.column if rng.end is not None else 0
    start_content = _source_line(source_lines, start.line)
    end_content = _source_line(source_lines, end_line)
    text = (
        start_content[: max(start.column - 1, 0)]
        + suggestion.text
        + end_content[max(end_column - 1, 0):]
    )
    return _fenced_suggestion(text, with_empty_line=True)


def _build_single_suggestion(comment: Comment, suggestion: Suggestion) -> str:
    start_line, end_line = _line_range(suggestion.range)
    comment_start, comment_end = _comment_line_range(comment)
    if (start_line, end_line) != (comment_start, comment_end):
        raise ValueError(
            "GitHub comment range and suggestion line range must be same. "
            f"L{comment_start}-L{comment_end} v.s. L{start_line}-L{end_line}"
        )
    rng = suggestion.range
    start_column = rng.start.column if rng is not None else 0
    end_column = rng.end.column if rng is not None and rng.end is not None else 0
    if start_column > 0 or end_column > 0:
        return _build_non_line_based_suggestion(comment, suggestion)
    return _fenced_suggestion(suggestion.text, with_empty_line=False)


def build_suggestions(comment: Comment) -> str:
    """Build GitHub suggestion blocks; invalid ones become error notes."""
    parts = []
    for suggestion in comment.result.diagnostic.suggestions:
        try:
            parts.append(_build_single_suggestion(comment, suggestion) + "\n")
        except ValueError as err:
            parts.append(f"{INVALID_SUGGESTION_PRE}{err}{INVALID_SUGGESTION_POST}\n")
    return "".join(parts)


def build_body(comment: Comment) -> str:
    """Build the full review comment body, suggestions included."""
    body = markdown_comment(comment)
    suggestion = build_suggestions(comment)
    if suggestion:
        body += "\n" + suggestion
    return body


class PullRequest(BulkCommentService, DiffService):
    """Comment and diff service for a GitHub pull request."""

    def __init__(
        self, client: GitHubClient | None, owner: str, repo: str, pr: int, sha: str
    ) -> None:
        try:
            self.workdir = git_rel_workdir()
        except OSError as err:
            raise RuntimeError(f"PullRequest needs a git repository: {err}") from err
        self.client = client
        self.owner = owner
        self.repo = repo
        self.pr = pr
        self.sha = sha
        self._lock = threading.Lock()
        self._pending: list[Comment] = []
        self._posted = PostedComments()

    def post(self, comment: Comment) -> None:
        """Hold a comment; ``flush`` sends held comments as one review."""
        location = comment.result.diagnostic.location
        location.path = _join_workdir(self.workdir, location.path)
        with self._lock:
            self._pending.append(comment)

    def flush(self) -> None:
        with self._lock:
            self._load_posted_comments()
            self._post_as_review()

    def _load_posted_comments(self) -> None:
        self._posted = PostedComments()
        for item in self._list_all_comments():
            line, path, body = item.get("line"), item.get("path"), item.get("body")
            if line is None or path is None or body is None:
                continue
            self._posted.add_posted_comment(path, line, body)

    def _list_all_comments(self) -> list[dict[str, Any]]:
        comments: list[dict[str, Any]] = []
        page: int | None = None
        while True:
            batch, next_page = self.client.list_pull_request_comments(
                self.owner, self.repo, self.pr, page=page, per_page=100
            )
            comments.extend(batch)
            if not next_page:
                return comments
            page = next_page

    def _post_as_review(self) -> None:
        drafts: list[dict[str, Any]] = []
        remaining: list[Comment] = []
        for comment in self._pending:
            if not comment.result.in_diff_context:
                # The review API cannot report outside the diff; fall back to
                # the Actions log when running there.
                if _in_github_actions():
                    report_as_github_actions_log(
                        comment.tool_name, "warning", comment.result.diagnostic
                    )
                continue
            body = build_body(comment)
            if self._posted.is_posted(comment, _comment_line(comment), body):
                continue
            # Limit comments per request to avoid GitHub abuse detection.
            if len(drafts) >= MAX_COMMENTS_PER_REQUEST:
                remaining.append(comment)
                continue
            drafts.append(_build_draft_review_comment(comment, body))

        if not drafts:
            return
        review = {
            "commit_id": self.sha,
            "event": "COMMENT",
            "comments": drafts,
            "body": self._remaining_comments_summary(remaining),
        }
        self.client.create_review(self.owner, self.repo, self.pr, review)

    def _remaining_comments_summary(self, remaining: list[Comment]) -> str:
        if not remaining:
            return ""
        per_tool: dict[str, list[Comment]] = {}
        for comment in remaining:
            per_tool.setdefault(comment.tool_name, []).append(comment)
        lines = [
            "Remaining comments which cannot be posted as a review comment "
            "to avoid GitHub Rate Limit\n",
            "\n",
        ]
        for tool, comments in per_tool.items():
            lines.append("<details>\n")
            lines.append(f"<summary>{tool}</summary>\n")
            lines.append("\n")
            for comment in comments:
                lines.append(
                    linked_markdown_diagnostic(
                        self.owner, self.repo, self.sha, comment.result.diagnostic
                    )
                    + "\n"
                )
            lines.append("</details>\n")
        return "".join(lines)

    def diff(self) -> bytes:
        return self.client.get_pull_request_diff(self.owner, self.repo, self.pr)

    def strip(self) -> int:
        return 1