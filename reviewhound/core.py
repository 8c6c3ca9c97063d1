"""Diagnostic data model and the loop that reports filtered results."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field


class Severity(enum.IntEnum):
    """Severity of a diagnostic."""

    UNKNOWN_SEVERITY = 0
    ERROR = 1
    WARNING = 2
    INFO = 3


@dataclass
class Position:
    """A position in a file; zero means the value is not known."""

    line: int = 0
    column: int = 0


@dataclass
class Range:
    """A span in a file. ``end`` is None when only the start is known."""

    start: Position = field(default_factory=Position)
    end: Position | None = None


@dataclass
class Location:
    """A file path together with a range in that file."""

    path: str = ""
    range: Range = field(default_factory=Range)


@dataclass
class Source:
    """The tool that produced a diagnostic."""

    name: str = ""
    url: str = ""


@dataclass
class Code:
    """A rule code, optionally with a link to its documentation."""

    value: str = ""
    url: str = ""


@dataclass
class Suggestion:
    """A suggested replacement text for a range."""

    range: Range | None = None
    text: str = ""


@dataclass
class Diagnostic:
    """A single finding reported by a linter or compiler."""

    message: str = ""
    location: Location = field(default_factory=Location)
    severity: Severity = Severity.UNKNOWN_SEVERITY
    source: Source | None = None
    code: Code | None = None
    suggestions: list[Suggestion] = field(default_factory=list)
    original_output: str = ""


@dataclass
class FilteredDiagnostic:
    """A diagnostic together with what is known about it relative to a diff."""

    diagnostic: Diagnostic = field(default_factory=Diagnostic)
    should_report: bool = False
    in_diff_file: bool = False
    in_diff_context: bool = False
    first_suggestion_in_diff_context: bool = False
    source_lines: dict[int, str] = field(default_factory=dict)
    old_path: str = ""
    old_line: int = 0


@dataclass
class Comment:
    """A result to be reported as a comment."""

    result: FilteredDiagnostic
    tool_name: str = ""


class ViolationsFound(Exception):
    """Raised when results were reported and failing on them was requested."""

    def __init__(self, message: str = "input data has violations") -> None:
        super().__init__(message)


class CommentService(ABC):
    """Something that accepts comments."""

    @abstractmethod
    def post(self, comment: Comment) -> None:
        """Post or hold a single comment."""


class BulkCommentService(CommentService):
    """A comment service that sends everything at once on ``flush``."""

    @abstractmethod
    def flush(self) -> None:
        """Send every held comment."""


class DiffService(ABC):
    """Something that provides a unified diff."""

    @abstractmethod
    def diff(self) -> bytes:
        """Return the diff text."""

    @abstractmethod
    def strip(self) -> int:
        """Return the number of leading path components to strip."""


def report(
    service: CommentService,
    checks: Iterable[FilteredDiagnostic],
    tool_name: str,
    fail_on_error: bool = False,
) -> list[Comment]:
    """Post every check that should be reported and return the posted comments.

    A bulk service is flushed once all comments were posted. When
    ``fail_on_error`` is set and anything was posted, ViolationsFound is raised
    after flushing.
    """
    posted: list[Comment] = []
    for check in checks:
        if not check.should_report:
            continue
        comment = Comment(result=check, tool_name=tool_name)
        service.post(comment)
        posted.append(comment)

    if isinstance(service, BulkCommentService):
        service.flush()

    if fail_on_error and posted:
        raise ViolationsFound()
    return posted