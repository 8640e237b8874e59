"""Error taxonomy for zero-shot classification runs."""

from __future__ import annotations

from typing import Any


class ZeroShotError(Exception):
    """Base error naming its kind and, when known, the offending record."""

    def __init__(self, detail: str, sequence_id: Any = None) -> None:
        self.detail = detail
        self.sequence_id = sequence_id
        super().__init__(self._render())

    @property
    def kind(self) -> str:
        return type(self).__name__

    def _render(self) -> str:
        where = "input" if self.sequence_id is None else f"record {self.sequence_id}"
        return f"{self.kind} ({where}): {self.detail}"


class InvalidInput(ZeroShotError, ValueError):
    """Empty or malformed text, labels or hypothesis template."""


class ModelUnavailable(ZeroShotError, RuntimeError):
    """External classification capability could not be loaded or reached."""

    def __init__(self, detail: str, model_identifier: str, sequence_id: Any = None) -> None:
        self.model_identifier = model_identifier
        super().__init__(detail, sequence_id=sequence_id)

    def _render(self) -> str:
        return f"{super()._render()} [model={self.model_identifier}]"


class MalformedOutput(ZeroShotError):
    """External pipeline answered with labels or scores that do not match the request."""


class PartialBatchFailure(ZeroShotError):
    """One or more records failed while classifying a batch."""

    def __init__(self, failures: list, results: list | None = None) -> None:
        self.failures = list(failures)
        self.results = list(results or [])
        first = self.failures[0] if self.failures else None
        if first is None:
            detail = "no failures recorded"
            sequence_id = None
        elif len(self.failures) == 1:
            detail = f"{first.kind}: {first.message}"
            sequence_id = first.sequence_id
        else:
            failed_ids = ", ".join(str(failure.sequence_id) for failure in self.failures)
            detail = f"{len(self.failures)} records failed: {failed_ids}"
            sequence_id = None
        super().__init__(detail, sequence_id=sequence_id)


class InconsistentSchema(ZeroShotError):
    """Label keys cannot be reconciled while reshaping results."""
