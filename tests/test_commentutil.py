import io
import logging

import pytest

from reviewhound.commentutil import (
    BODY_PREFIX,
    PostedComments,
    get_code_fence_length,
    markdown_comment,
    write_code_fence,
)
from reviewhound.core import (
    Code,
    Comment,
    Diagnostic,
    FilteredDiagnostic,
    Location,
    Severity,
    Source,
)


@pytest.mark.parametrize(
    "code, want",
    [
        ("", 3),
        ("`inline code`", 3),
        ("``foo`bar``", 3),
        ('func main() {\nprintln("Hello World")\n}\n', 3),
        ("```\nLook! You can see my backticks.\n```\n", 4),
        ('```go\nfunc main() {\nprintln("Hello World")\n}\n```', 4),
        ('```go\nfunc main() {\nprintln("Hello World")\n}\n`````', 6),
        ("`````\n````\n```", 6),
    ],
)
def test_get_code_fence_length(code, want):
    assert get_code_fence_length(code) == want


class WriteOnly:
    def __init__(self):
        self.chunks = []

    def write(self, text):
        self.chunks.append(text)
        return len(text)


def test_write_code_fence_plain_writer():
    stream = WriteOnly()
    write_code_fence(stream, 10)
    assert "".join(stream.chunks) == "``````````"


def test_write_code_fence_string_io():
    stream = io.StringIO()
    write_code_fence(stream, 10)
    assert stream.getvalue() == "``````````"


def comment(diagnostic, tool_name=""):
    return Comment(result=FilteredDiagnostic(diagnostic=diagnostic), tool_name=tool_name)


PREFIX = "<sub>reported by reviewhound :dog:</sub><br>"


@pytest.mark.parametrize(
    "given, want",
    [
        (
            comment(Diagnostic(message="test message 1"), "tool-name"),
            "**[tool-name]** " + PREFIX + "test message 1",
        ),
        (
            comment(Diagnostic(message="test message 2 (no tool)")),
            PREFIX + "test message 2 (no tool)",
        ),
        (
            comment(
                Diagnostic(message="test message 3", source=Source(name="custom-tool-name")),
                "global-tool-name",
            ),
            "**[custom-tool-name]** " + PREFIX + "test message 3",
        ),
        (
            comment(
                Diagnostic(
                    message="test message 4",
                    source=Source(name="tool-name"),
                    severity=Severity.WARNING,
                )
            ),
            "\u26a0\ufe0f **[tool-name]** " + PREFIX + "test message 4",
        ),
        (
            comment(
                Diagnostic(
                    message="test message 5 (code)",
                    source=Source(name="tool-name"),
                    code=Code(value="CODE14"),
                )
            ),
            "**[tool-name]** <CODE14> " + PREFIX + "test message 5 (code)",
        ),
        (
            comment(
                Diagnostic(
                    message="test message 6 (code with URL)",
                    source=Source(name="tool-name"),
                    code=Code(value="CODE14", url="https://example.com/#CODE14"),
                )
            ),
            "**[tool-name]** <[CODE14](https://example.com/#CODE14)> "
            + PREFIX
            + "test message 6 (code with URL)",
        ),
    ],
)
def test_markdown_comment(given, want):
    assert markdown_comment(given) == want


def test_body_prefix_starts_plain_comment_bodies():
    body = markdown_comment(comment(Diagnostic(message="plain")))
    assert body == BODY_PREFIX + "plain"
    assert body == PREFIX + "plain"


def test_markdown_comment_error_and_info_marks():
    error = comment(Diagnostic(message="m", severity=Severity.ERROR))
    info = comment(Diagnostic(message="m", severity=Severity.INFO))
    assert markdown_comment(error) == "\U0001f6ab " + PREFIX + "m"
    assert markdown_comment(info) == "\U0001f4dd " + PREFIX + "m"


def test_posted_comments():
    posted = PostedComments()
    posted.add_posted_comment("a.go", 3, "body")
    posted.add_posted_comment("a.go", 3, "other body")
    c = comment(Diagnostic(message="m", location=Location(path="a.go")))
    assert posted.is_posted(c, 3, "body")
    assert posted.is_posted(c, 3, "other body")
    assert not posted.is_posted(c, 4, "body")
    assert not posted.is_posted(c, 3, "unknown")
    elsewhere = comment(Diagnostic(message="m", location=Location(path="b.go")))
    assert not posted.is_posted(elsewhere, 3, "body")


def test_posted_comments_debug_log(caplog):
    posted = PostedComments()
    posted.add_posted_comment("a.go", 3, "body")
    with caplog.at_level(logging.DEBUG, logger="reviewhound.commentutil"):
        posted.debug_log()
    assert "posted: a.go:3" in caplog.text