"""Post linter and compiler findings as code review comments."""

__version__ = "0.1.0"