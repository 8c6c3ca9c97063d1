import pytest

from reviewhound.bitbucket.annotator import REPORTER, ReportAnnotator
from reviewhound.bitbucket.api import (
    REPORT_RESULT_FAILED,
    REPORT_RESULT_PASSED,
    REPORT_RESULT_PENDING,
    REPORT_TYPE_BUG,
    AnnotationsRequest,
    APIClient,
    ReportRequest,
    report_id,
    report_title,
)
from reviewhound.core import Comment, Diagnostic, FilteredDiagnostic, Location, Position, Range

OWNER = "test-owner"
REPO = "test-repo"
SHA = "test-commit"
RUNNERS = ["runner1", "runner2"]

DETAILS = {
    REPORT_RESULT_PASSED: "Great news! Reviewhound couldn't spot any issues!",
    REPORT_RESULT_PENDING: "Please wait for Reviewhound to finish checking your code for issues.",
    REPORT_RESULT_FAILED: "Woof-Woof! This report generated for you by reviewhound.",
}


class FakeClient(APIClient):
    def __init__(self, annotations_error=None):
        self.reports = []
        self.annotations = []
        self.annotations_error = annotations_error

    def create_or_update_report(self, request):
        self.reports.append(request)

    def create_or_update_annotations(self, request):
        if self.annotations_error is not None:
            raise self.annotations_error
        self.annotations.append(request)


def report_req(runner, result):
    return ReportRequest(
        report_id=report_id(runner, REPORTER),
        owner=OWNER,
        repository=REPO,
        commit=SHA,
        report_type=REPORT_TYPE_BUG,
        title=report_title(runner, REPORTER),
        reporter=REPORTER,
        result=result,
        details=DETAILS[result],
        logo_url="",
    )


def annotations_req(runner, comments):
    return AnnotationsRequest(
        owner=OWNER,
        repository=REPO,
        commit=SHA,
        report_id=report_id(runner, REPORTER),
        comments=comments,
    )


def build_comment(tool, line):
    return Comment(
        tool_name=tool,
        result=FilteredDiagnostic(
            diagnostic=Diagnostic(
                message="test message",
                location=Location(path="main.go", range=Range(start=Position(line=line))),
            )
        ),
    )


def test_empty_runners_list():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, None)
    annotator.flush()
    assert client.reports == []
    assert client.annotations == []


def test_empty_runner_names_are_skipped():
    client = FakeClient()
    ReportAnnotator(client, OWNER, REPO, SHA, ["", "runner1"])
    assert client.reports == [report_req("runner1", REPORT_RESULT_PENDING)]


def test_no_comments():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, RUNNERS)
    assert client.reports == [report_req(r, REPORT_RESULT_PENDING) for r in RUNNERS]
    annotator.flush()
    assert client.reports[2:] == [report_req(r, REPORT_RESULT_PASSED) for r in RUNNERS]
    assert client.annotations == []


def test_one_comment():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, RUNNERS)
    comment = build_comment("runner2", 1)
    annotator.post(comment)
    annotator.flush()
    assert client.reports[2:] == [
        report_req("runner1", REPORT_RESULT_PASSED),
        report_req("runner2", REPORT_RESULT_FAILED),
    ]
    assert client.annotations == [annotations_req("runner2", [comment])]


def test_duplicate_comments():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, RUNNERS)
    first = build_comment("runner2", 1)
    annotator.post(first)
    annotator.post(build_comment("runner2", 1))
    annotator.flush()
    assert client.annotations == [annotations_req("runner2", [first])]


def test_many_comments_are_batched():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, RUNNERS)
    comments = [build_comment("runner2", i) for i in range(333)]
    for c in comments:
        annotator.post(c)
    annotator.flush()
    assert client.annotations == [
        annotations_req("runner2", comments[0:100]),
        annotations_req("runner2", comments[100:200]),
        annotations_req("runner2", comments[200:300]),
        annotations_req("runner2", comments[300:333]),
    ]
    assert client.reports[-1] == report_req("runner2", REPORT_RESULT_FAILED)


def test_unknown_tool_gets_report():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, None)
    comment = build_comment("other", 3)
    annotator.post(comment)
    annotator.flush()
    assert client.reports == [report_req("other", REPORT_RESULT_FAILED)]
    assert client.annotations == [annotations_req("other", [comment])]


def test_annotation_failure_is_wrapped():
    client = FakeClient(annotations_error=ValueError("boom"))
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, RUNNERS)
    annotator.post(build_comment("runner1", 1))
    with pytest.raises(RuntimeError, match="failed to post annotations: boom"):
        annotator.flush()


def test_post_normalises_path():
    client = FakeClient()
    annotator = ReportAnnotator(client, OWNER, REPO, SHA, None)
    comment = build_comment("t", 1)
    comment.result.diagnostic.location.path = "./a/../main.go"
    annotator.post(comment)
    assert comment.result.diagnostic.location.path == "main.go"