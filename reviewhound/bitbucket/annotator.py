"""Comment service that reports to Bitbucket Code Insights."""

from __future__ import annotations

import logging
import os
import threading

from reviewhound.bitbucket.api import (
    REPORT_RESULT_FAILED,
    REPORT_RESULT_PASSED,
    REPORT_RESULT_PENDING,
    REPORT_TYPE_BUG,
    AnnotationsRequest,
    APIClient,
    ReportRequest,
    external_id_from_diagnostic,
    report_id,
    report_title,
)
from reviewhound.core import BulkCommentService, Comment

logger = logging.getLogger(__name__)

REPORTER = "reviewhound"
# Maximum number of annotations sent in one call.
ANNOTATIONS_BATCH_SIZE = 100

_DETAILS = {
    REPORT_RESULT_PASSED: "Great news! Reviewhound couldn't spot any issues!",
    REPORT_RESULT_PENDING: "Please wait for Reviewhound to finish checking your code for issues.",
}
_DEFAULT_DETAILS = "Woof-Woof! This report generated for you by reviewhound."


def _join_workdir(workdir: str, path: str) -> str:
    joined = os.path.join(workdir, path)
    if not joined:
        return ""
    return os.path.normpath(joined).replace(os.sep, "/")


class ReportAnnotator(BulkCommentService):
    """Holds comments and reports them as one Code Insights report per tool."""

    logo_url = ""

    def __init__(
        self, client: APIClient, owner: str, repo: str, sha: str, runners: list[str] | None
    ) -> None:
        self.client = client
        self.owner = owner
        self.repo = repo
        self.sha = sha
        # Working directory relative to the repository root.
        self.workdir = ""
        self._lock = threading.Lock()
        self._comments: dict[str, list[Comment]] = {}
        self._seen: set[str] = set()

        # Known runners get a report even when they find nothing.
        for runner in runners or ():
            if not runner:
                continue
            self._comments[runner] = []
            try:
                self._create_or_update_report(
                    report_id(runner, REPORTER),
                    report_title(runner, REPORTER),
                    REPORT_RESULT_PENDING,
                )
            except Exception as err:  # a missing pending report is not fatal
                logger.debug("failed to create pending report for %s: %s", runner, err)

    def post(self, comment: Comment) -> None:
        """Hold a comment; duplicates of an already held comment are dropped."""
        location = comment.result.diagnostic.location
        location.path = _join_workdir(self.workdir, location.path)
        with self._lock:
            # Bitbucket rejects annotations with a duplicated external id.
            comment_id = external_id_from_diagnostic(comment.result.diagnostic)
            if comment_id in self._seen:
                return
            self._seen.add(comment_id)
            self._comments.setdefault(comment.tool_name, []).append(comment)

    def flush(self) -> None:
        """Create or update one report per tool and send its annotations."""
        with self._lock:
            for tool, comments in self._comments.items():
                rid = report_id(tool, REPORTER)
                title = report_title(tool, REPORTER)
                if not comments:
                    self._create_or_update_report(rid, title, REPORT_RESULT_PASSED)
                    continue

                self._create_or_update_report(rid, title, REPORT_RESULT_FAILED)
                # Batches keep requests under the API's payload size limit.
                for start in range(0, len(comments), ANNOTATIONS_BATCH_SIZE):
                    request = AnnotationsRequest(
                        owner=self.owner,
                        repository=self.repo,
                        commit=self.sha,
                        report_id=rid,
                        comments=comments[start:start + ANNOTATIONS_BATCH_SIZE],
                    )
                    try:
                        self.client.create_or_update_annotations(request)
                    except Exception as err:
                        raise RuntimeError(f"failed to post annotations: {err}") from err

    def _create_or_update_report(self, rid: str, title: str, status: str) -> None:
        request = ReportRequest(
            report_id=rid,
            owner=self.owner,
            repository=self.repo,
            commit=self.sha,
            report_type=REPORT_TYPE_BUG,
            title=title,
            reporter=REPORTER,
            result=status,
            details=_DETAILS.get(status, _DEFAULT_DETAILS),
            logo_url=self.logo_url,
        )
        self.client.create_or_update_report(request)