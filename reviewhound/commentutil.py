"""Helpers for building review comment bodies."""

from __future__ import annotations

import logging
from typing import TextIO

from reviewhound.core import Comment, Severity

logger = logging.getLogger(__name__)

BODY_PREFIX = "<sub>reported by reviewhound :dog:</sub><br>"

_SEVERITY_MARKS = {
    Severity.ERROR: "\U0001f6ab",
    Severity.WARNING: "\u26a0\ufe0f",
    Severity.INFO: "\U0001f4dd",
}


def _count_backticks(text: str) -> int:
    """Return the longest run of backticks that starts a line."""
    return max(
        (len(line) - len(line.lstrip("`")) for line in text.split("\n")),
        default=0,
    )


def get_code_fence_length(code: str) -> int:
    """Return the number of backticks needed for a fence that wraps ``code``.

    A fence is at least three backticks and longer than any fence inside.
    """
    return max(_count_backticks(code) + 1, 3)


def write_code_fence(stream: TextIO, length: int) -> None:
    """Write a code fence of ``length`` backticks to ``stream``."""
    stream.write("`" * length)


class PostedComments(dict):
    """Comments already posted: path to line to list of bodies."""

    def is_posted(self, comment: Comment, line: int, body: str) -> bool:
        """Tell whether a comment with this path, line and body was posted."""
        path = comment.result.diagnostic.location.path
        return body in self.get(path, {}).get(line, ())

    def add_posted_comment(self, path: str, line: int, body: str) -> None:
        """Record a posted comment."""
        self.setdefault(path, {}).setdefault(line, []).append(body)

    def debug_log(self) -> None:
        """Log every posted location at debug level."""
        for path, lines in self.items():
            for line in lines:
                logger.debug("posted: %s:%d", path, line)


def _tool_name(comment: Comment) -> str:
    source = comment.result.diagnostic.source
    if source is not None and source.name:
        return source.name
    return comment.tool_name


def markdown_comment(comment: Comment) -> str:
    """Build the Markdown body of a comment."""
    diagnostic = comment.result.diagnostic
    parts: list[str] = []
    mark = _SEVERITY_MARKS.get(diagnostic.severity)
    if mark:
        parts.append(f"{mark} ")
    tool = _tool_name(comment)
    if tool:
        parts.append(f"**[{tool}]** ")
    code = diagnostic.code
    if code is not None and code.value:
        if code.url:
            parts.append(f"<[{code.value}]({code.url})> ")
        else:
            parts.append(f"<{code.value}> ")
    parts.append(BODY_PREFIX)
    parts.append(diagnostic.message)
    return "".join(parts)