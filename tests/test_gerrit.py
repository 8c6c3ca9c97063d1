import json
import subprocess
from unittest import mock

import pytest
import requests
import responses

from reviewhound.core import Comment, Diagnostic, FilteredDiagnostic, Location, Position, Range
from reviewhound.gerrit import ChangeDiff, ChangeReviewCommenter, GerritClient

BASE = "http://gerrit.example.com"


@pytest.fixture
def repo(tmp_path, monkeypatch):
    (tmp_path / ".git").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _comment(path, line, message, in_diff_file=True):
    return Comment(
        result=FilteredDiagnostic(
            diagnostic=Diagnostic(
                message=message,
                location=Location(path=path, range=Range(start=Position(line=line))),
            ),
            in_diff_file=in_diff_file,
        )
    )


def _fake_git(args, **kwargs):
    if args[1] == "merge-base":
        return subprocess.CompletedProcess(args, 0, stdout=b"base123\n", stderr=b"")
    return subprocess.CompletedProcess(args, 0, stdout=b"diff --git a/x b/x\n", stderr=b"")


def test_change_diff_diff(repo):
    client = GerritClient(BASE)
    with responses.RequestsMock() as rsps, mock.patch(
        "reviewhound.gerrit.subprocess.run", side_effect=_fake_git
    ) as run:
        rsps.add(
            responses.GET,
            f"{BASE}/changes/changeID/detail",
            body=')]}\n{"current_revision": "HEAD"}',
        )
        g = ChangeDiff(client, "HEAD^", "changeID")
        out = g.diff()
        assert len(rsps.calls) == 1
        assert "o=CURRENT_REVISION" in rsps.calls[0].request.url
    assert out == b"diff --git a/x b/x\n"
    calls = [c.args[0] for c in run.call_args_list]
    assert calls[0] == ["git", "merge-base", "HEAD^", "HEAD"]
    assert calls[1] == ["git", "diff", "--find-renames", "base123", "HEAD"]


def test_change_diff_git_failure(repo):
    client = GerritClient(BASE)
    error = subprocess.CalledProcessError(128, ["git"])
    with responses.RequestsMock() as rsps, mock.patch(
        "reviewhound.gerrit.subprocess.run", side_effect=error
    ):
        rsps.add(
            responses.GET,
            f"{BASE}/changes/changeID/detail",
            body=')]}\n{"current_revision": "HEAD"}',
        )
        g = ChangeDiff(client, "HEAD^", "changeID")
        with pytest.raises(RuntimeError, match="failed to get merge-base commit"):
            g.diff()


def test_change_diff_strip(repo):
    assert ChangeDiff(None, "main", "id").strip() == 1


def test_change_review_post_flush(repo):
    client = GerritClient(BASE)
    comments = [
        _comment("file.go", 14, "new comment"),
        _comment("file2.go", 15, "new comment 2"),
        _comment("file3.go", 14, "comment outside diff", in_diff_file=False),
    ]
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            f"{BASE}/changes/testChangeID/revisions/testRevisionID/review",
            body=")]}\n{}",
        )
        g = ChangeReviewCommenter(client, "testChangeID", "testRevisionID")
        for c in comments:
            g.post(c)
        g.flush()
        assert len(rsps.calls) == 1
        got = json.loads(rsps.calls[0].request.body)
    assert len(got["comments"]) == len(comments) - 1
    assert got["comments"]["file.go"] == [{"line": 14, "message": "new comment"}]
    assert got["comments"]["file2.go"] == [{"line": 15, "message": "new comment 2"}]


def test_change_review_post_joins_workdir(repo, monkeypatch):
    sub = repo / "cmd"
    sub.mkdir()
    monkeypatch.chdir(sub)
    g = ChangeReviewCommenter(None, "c", "r")
    assert g.workdir == "cmd/"
    comment = _comment("a/b/c", 1, "m")
    g.post(comment)
    assert comment.result.diagnostic.location.path == "cmd/a/b/c"


def test_change_review_flush_http_error(repo):
    client = GerritClient(BASE)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            f"{BASE}/changes/c/revisions/r/review",
            status=500,
        )
        g = ChangeReviewCommenter(client, "c", "r")
        g.post(_comment("file.go", 1, "m"))
        with pytest.raises(requests.HTTPError):
            g.flush()


def test_authenticated_client_uses_a_prefix():
    client = GerritClient(BASE, auth=("user", "placeholder"))
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"{BASE}/a/changes/x/detail",
            body=')]}\n{"current_revision": "abc"}',
        )
        detail = client.get_change_detail("x")
    assert detail == {"current_revision": "abc"}