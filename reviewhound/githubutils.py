"""Reporting through GitHub Actions logging commands and GitHub links."""

from __future__ import annotations

import sys
import threading
from typing import TextIO

from reviewhound.core import BulkCommentService, Comment, Diagnostic, Severity

MAX_LOGGING_ANNOTATIONS_PER_STEP = 10

_TOO_MANY_ANNOTATIONS = """reviewhound: Too many results (annotations) in diff.
You may miss some annotations due to GitHub limitation for annotation created by logging command.
Please check GitHub Actions log console to see all results.

Limitation:
- 10 warning annotations and 10 error annotations per step
- 50 annotations per job (sum of annotations from all the steps)
- 50 annotations per run (separate from the job annotations, these annotations aren't created by users)"""

_warned_too_many = False
_warn_lock = threading.Lock()


def _escape_data(text: str) -> str:
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(text: str) -> str:
    return _escape_data(text).replace(":", "%3A").replace(",", "%2C")


def _issue_command(
    stream: TextIO | None,
    command: str,
    message: str,
    file: str = "",
    line: int = 0,
    col: int = 0,
) -> None:
    """Write one workflow command such as ``::error file=a.go,line=3::msg``."""
    properties = []
    if file:
        properties.append(f"file={_escape_property(file)}")
    if line > 0:
        properties.append(f"line={line}")
    if col > 0:
        properties.append(f"col={col}")
    head = f"::{command}"
    if properties:
        head += " " + ",".join(properties)
    out = sys.stdout if stream is None else stream
    out.write(f"{head}::{_escape_data(message)}\n")


def report_as_github_actions_log(
    tool_name: str,
    default_level: str,
    diagnostic: Diagnostic,
    stream: TextIO | None = None,
) -> None:
    """Report a diagnostic as a GitHub Actions annotation."""
    message = (
        f"[{tool_name}] reported by reviewhound \U0001f436\n"
        f"{diagnostic.message}\n\nRaw Output:\n{diagnostic.original_output}"
    )
    location = diagnostic.location
    start = location.range.start
    options = {"file": location.path, "line": start.line, "col": start.column}

    level = default_level
    if diagnostic.severity == Severity.ERROR:
        level = "error"
    elif diagnostic.severity in (Severity.INFO, Severity.WARNING):
        level = "warning"

    # There is no info command that carries location data.
    if level in ("warning", "info"):
        _issue_command(stream, "warning", message, **options)
    elif level in ("error", ""):
        _issue_command(stream, "error", message, **options)
    else:
        _issue_command(stream, "error", f"Unknown level: {level}")
        _issue_command(stream, "error", message, **options)


def warn_too_many_annotation_once(stream: TextIO | None = None) -> None:
    """Warn, once per process, that GitHub limits the number of annotations."""
    global _warned_too_many
    with _warn_lock:
        if _warned_too_many:
            return
        _warned_too_many = True
    _issue_command(stream, "error", _TOO_MANY_ANNOTATIONS)


class GitHubActionLogWriter(BulkCommentService):
    """Reports comments through logging commands that create annotations."""

    def __init__(self, level: str = "", stream: TextIO | None = None) -> None:
        self.level = level
        self.report_count = 0
        self._stream = stream

    def post(self, comment: Comment) -> None:
        self.report_count += 1
        if self.report_count == MAX_LOGGING_ANNOTATIONS_PER_STEP:
            warn_too_many_annotation_once(self._stream)
        report_as_github_actions_log(
            comment.tool_name, self.level, comment.result.diagnostic, self._stream
        )

    def flush(self) -> None:
        """Raise RuntimeError if more annotations were reported than GitHub shows."""
        if self.report_count > MAX_LOGGING_ANNOTATIONS_PER_STEP - 1:
            raise RuntimeError(
                "GitHubActionLogWriter: reported too many annotation "
                f"(N={self.report_count})"
            )


def path_link(owner: str, repo: str, sha: str, path: str, line: int) -> str:
    """Build a link to a file, and optionally a line, at a commit on GitHub."""
    sha = sha or "master"
    fragment = f"#L{line}" if line > 0 else ""
    return f"http://github.com/{owner}/{repo}/blob/{sha}/{path}{fragment}"


def basic_location_format(diagnostic: Diagnostic) -> str:
    """Format the location as ``path|line col column|``."""
    location = diagnostic.location
    start = location.range.start
    out = location.path + "|"
    if start.line != 0:
        out += str(start.line)
        if start.column != 0:
            out += f" col {start.column}"
    return out + "|"


def linked_markdown_diagnostic(
    owner: str, repo: str, sha: str, diagnostic: Diagnostic
) -> str:
    """Return Markdown with a link to the diagnostic's location and its message."""
    path = diagnostic.location.path
    message = diagnostic.message
    if not path:
        return message
    location = basic_location_format(diagnostic)
    link = path_link(owner, repo, sha, path, diagnostic.location.range.start.line)
    return f"[{location}]({link}) {message}"