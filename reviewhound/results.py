"""Thread-safe stores for results produced by concurrent jobs."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from reviewhound.core import Diagnostic, FilteredDiagnostic


@dataclass
class Result:
    """Diagnostics produced by one named job."""

    name: str
    level: str = ""
    diagnostics: list[Diagnostic] = field(default_factory=list)
    # A failed command does not mean failure: linters commonly exit non-zero
    # when they find problems.
    cmd_error: BaseException | None = None

    def check_unexpected_failure(self) -> None:
        """Raise RuntimeError if the command failed and produced no findings."""
        if self.cmd_error is not None and not self.diagnostics:
            raise RuntimeError(
                f"{self.name} failed with zero findings: The command itself "
                f"failed ({self.cmd_error}) or reviewhound cannot parse the results"
            ) from self.cmd_error


@dataclass
class FilteredResult:
    """Filtered diagnostics produced by one job."""

    level: str = ""
    filtered_diagnostics: list[FilteredDiagnostic] = field(default_factory=list)


class ResultNotFoundError(LookupError):
    """Raised when a key is missing from a result map."""

    def __init__(self, key: str) -> None:
        super().__init__(f"fail to get the value of key {key!r} from results")
        self.key = key


def _check_type(value: object, expected: type, owner: str) -> None:
    if not isinstance(value, expected):
        raise TypeError(
            f"stored type in {owner} is invalid: {type(value).__name__}"
        )


class ResultMap:
    """A thread-safe map from job name to Result."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, Result] = {}

    def store(self, key: str, result: Result) -> None:
        """Save a result under ``key``."""
        _check_type(result, Result, "ResultMap")
        with self._lock:
            self._data[key] = result

    def load(self, key: str) -> Result:
        """Return the result stored under ``key``."""
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise ResultNotFoundError(key) from None

    def items(self) -> list[tuple[str, Result]]:
        """Return a snapshot of the stored key and result pairs."""
        with self._lock:
            return list(self._data.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class FilteredResultMap:
    """A thread-safe map from job name to FilteredResult."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, FilteredResult] = {}

    def store(self, key: str, result: FilteredResult) -> None:
        """Save a filtered result under ``key``."""
        _check_type(result, FilteredResult, "FilteredResultMap")
        with self._lock:
            self._data[key] = result

    def load(self, key: str) -> FilteredResult:
        """Return the filtered result stored under ``key``."""
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise ResultNotFoundError(key) from None

    def items(self) -> list[tuple[str, FilteredResult]]:
        """Return a snapshot of the stored key and result pairs."""
        with self._lock:
            return list(self._data.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)