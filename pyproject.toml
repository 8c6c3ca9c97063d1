[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "reviewhound"
version = "0.1.0"
description = "Post linter and compiler findings as review comments on GitHub, GitLab, Gerrit and Bitbucket."
requires-python = ">=3.10"
keywords = [
    "code review",
    "linter",
    "pull request",
    "merge request",
    "github",
    "gitlab",
    "gerrit",
    "bitbucket",
    "code insights",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Quality Assurance",
    "Typing :: Typed",
]
dependencies = [
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
reviewhound-trigger-depup = "reviewhound.trigger_depup:main"

[tool.hatch.build.targets.wheel]
packages = ["reviewhound"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
