# reviewhound

reviewhound takes findings of linters and compilers that concern the code
under review and posts them where reviewers will see them:

- GitHub pull request reviews (`reviewhound.github.PullRequest`, talking to
  the API through `reviewhound.github.GitHubClient`). Code suggestions are
  rendered as suggestion blocks. At most 30 comments go into one review, and
  the rest are listed in the review body.
- GitHub Actions log annotations (`reviewhound.githubutils.GitHubActionLogWriter`),
  written as workflow commands to standard output or to a given stream.
- GitLab merge request discussions and commit comments
  (`reviewhound.gitlab.MergeRequestDiscussionCommenter`,
  `reviewhound.gitlab.MergeRequestCommitCommenter`), plus a diff service
  (`reviewhound.gitlab.MergeRequestDiff`), all using
  `reviewhound.gitlab.GitLabClient`.
- Gerrit change reviews (`reviewhound.gerrit.ChangeReviewCommenter`) and a diff
  service (`reviewhound.gerrit.ChangeDiff`), using `reviewhound.gerrit.GerritClient`.
- Bitbucket Code Insights reports and annotations
  (`reviewhound.bitbucket.annotator.ReportAnnotator`). It creates one report per
  tool and sends annotations in batches of 100 through any implementation of
  `reviewhound.bitbucket.api.APIClient`.

Comments that were already posted on GitHub and GitLab are recognised and are
not posted again.

## Installing

```
pip install reviewhound
```

Python 3.10 or newer is required. The GitLab and Gerrit diff services, and the
GitLab commit commenter, run `git` locally, so `git` must be on `PATH` for
them. Every service looks for the enclosing git repository when it is created.

## Reporting findings

Findings are `reviewhound.core.FilteredDiagnostic` objects. Each one wraps a
`Diagnostic` with its location, message, severity and optional suggestions,
together with flags that say how it relates to the diff (`should_report`,
`in_diff_file`, `in_diff_context`, ...).

`reviewhound.core.report` posts every finding whose `should_report` is set. It
then flushes services that post in bulk and returns the posted comments. When
`fail_on_error` is true and anything was posted, it raises `ViolationsFound`:

```python
from reviewhound.core import (
    Diagnostic, FilteredDiagnostic, Location, Position, Range, report,
)
from reviewhound.github import GitHubClient, PullRequest

checks = [
    FilteredDiagnostic(
        diagnostic=Diagnostic(
            message="line too long",
            location=Location(path="app.py", range=Range(start=Position(line=12))),
        ),
        should_report=True,
        in_diff_context=True,
    ),
]

token = "token"
client = GitHubClient(token=token)
service = PullRequest(client, "my-org", "my-repo", 14, "0123abc")

report(service, checks, tool_name="flake8", fail_on_error=True)
```

Paths in findings are taken as relative to the current directory. They are
joined with that directory's place inside the git work tree (see
`reviewhound.serviceutil.git_rel_workdir`), so run from wherever the linter ran.

## Helpers

`reviewhound.commentutil.markdown_comment` renders a finding as the Markdown
body used for review comments. `get_code_fence_length` picks a fence long
enough to wrap text that contains backticks itself:

```python
>>> from reviewhound.commentutil import get_code_fence_length
>>> get_code_fence_length("```\nLook! You can see my backticks.\n```\n")
4
```

`reviewhound.githubutils.linked_markdown_diagnostic` formats a finding as a
Markdown link to its line on GitHub.

Results from several concurrent linter runs can be collected in the
thread-safe `reviewhound.results.ResultMap` and `FilteredResultMap`.

## What is not included

- reviewhound does not run linters, parse their output, or match findings
  against a diff. You must build the `FilteredDiagnostic` objects and set their
  flags before you call `report`.
- There is no command-line front end for reporting. The services are used from
  Python.
- No HTTP client for Bitbucket Cloud or Bitbucket Server is included.
  `ReportAnnotator` needs an `APIClient` implementation that you supply, which
  sends the `ReportRequest` and `AnnotationsRequest` objects it builds.

## Triggering dependency updates

The `reviewhound-trigger-depup` command sends a `depup` repository-dispatch
event to each repository of an organisation whose name starts with `action-`.
It only looks at the 100 most recently updated repositories. It reads the API
token from the `DEPUP_GITHUB_API_TOKEN` environment variable, and `--org`
defaults to `reviewhound`:

```
DEPUP_GITHUB_API_TOKEN=token reviewhound-trigger-depup --org my-org
```

It exits with status 1 if the token is missing or any request fails.

## Running the tests

```
pip install -e ".[test]"
pytest
```