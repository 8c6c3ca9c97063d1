"""Requests, client interface and helpers for Bitbucket Code Insights."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from reviewhound.core import Comment, Diagnostic, Severity

HTTP_TIMEOUT = 10.0

REPORT_TYPE_BUG = "BUG"

REPORT_RESULT_PASSED = "PASSED"
REPORT_RESULT_FAILED = "FAILED"
REPORT_RESULT_PENDING = "PENDING"

ANNOTATION_TYPE_CODE_SMELL = "CODE_SMELL"

ANNOTATION_SEVERITY_HIGH = "HIGH"
ANNOTATION_SEVERITY_MEDIUM = "MEDIUM"
ANNOTATION_SEVERITY_LOW = "LOW"


@dataclass
class ReportRequest:
    """Parameters used to create or update a report."""

    owner: str = ""
    repository: str = ""
    commit: str = ""
    report_id: str = ""
    report_type: str = ""
    title: str = ""
    reporter: str = ""
    result: str = ""
    details: str = ""
    logo_url: str = ""


@dataclass
class AnnotationsRequest:
    """Parameters used to create or update annotations of a report."""

    owner: str = ""
    repository: str = ""
    commit: str = ""
    report_id: str = ""
    comments: list[Comment] = field(default_factory=list)


class APIClient(ABC):
    """A client for the Bitbucket Code Insights API."""

    @abstractmethod
    def create_or_update_report(self, request: ReportRequest) -> None:
        """Create or update the report described by ``request``."""

    @abstractmethod
    def create_or_update_annotations(self, request: AnnotationsRequest) -> None:
        """Create or update the annotations described by ``request``."""


class UnexpectedResponseError(Exception):
    """Raised when the Code Insights API answers with an unexpected status."""

    def __init__(self, code: int, body: bytes = b"") -> None:
        self.code = code
        self.body = body
        message = f"received unexpected {code} code from Bitbucket API"
        if body:
            message += " with message:\n" + body.decode("utf-8", errors="replace")
        super().__init__(message)


def external_id_from_diagnostic(diagnostic: Diagnostic) -> str:
    """Return a stable identifier for a diagnostic: a hash of its content."""
    try:
        data = json.dumps(
            dataclasses.asdict(diagnostic), sort_keys=True, ensure_ascii=False
        ).encode("utf-8")
    except (TypeError, ValueError):
        data = diagnostic.original_output.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def report_id(*ids: str) -> str:
    """Join ids into a lower case report id without spaces."""
    return "-".join(ids).lower().replace(" ", "_")


def report_title(tool: str, reporter: str) -> str:
    """Return the title of the report of ``tool``."""
    return f"[{tool}] {reporter} report"


_SEVERITIES = {
    Severity.INFO: ANNOTATION_SEVERITY_LOW,
    Severity.WARNING: ANNOTATION_SEVERITY_MEDIUM,
    Severity.ERROR: ANNOTATION_SEVERITY_HIGH,
}


def convert_severity(severity: Severity) -> str:
    """Map a diagnostic severity to an annotation severity, or '' if unknown."""
    return _SEVERITIES.get(severity, "")