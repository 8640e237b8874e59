"""Pydantic schemas for records, results and run settings."""

from __future__ import annotations

from typing import Any, Literal, Union

from omegaconf import OmegaConf
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator

from zeroshot_pipeline.errors import InvalidInput, PartialBatchFailure

SequenceId = Union[int, str]


class InputRecord(BaseModel):
    """Single text to classify."""

    model_config = ConfigDict(frozen=True)

    sequence_id: SequenceId
    text: str


class CandidateLabel(BaseModel):
    """Short label key and the phrase substituted into the hypothesis template."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class ScoredLabel(BaseModel):
    """Probability assigned to one label."""

    model_config = ConfigDict(frozen=True)

    label: str
    score: float = Field(..., ge=0.0, le=1.0)
    description: str | None = None


class ClassificationResult(BaseModel):
    """Scored labels for one input record."""

    model_config = ConfigDict(frozen=True)

    sequence_id: SequenceId
    scored_labels: tuple[ScoredLabel, ...]

    @property
    def top_label(self) -> str | None:
        if not self.scored_labels:
            return None
        return max(self.scored_labels, key=lambda item: item.score).label

    def score_map(self) -> dict[str, float]:
        """Label key to score, first occurrence wins."""
        scores: dict[str, float] = {}
        for item in self.scored_labels:
            scores.setdefault(item.label, item.score)
        return scores


class OutputRow(BaseModel):
    """Flat row: one score column per label key."""

    model_config = ConfigDict(frozen=True)

    sequence_id: SequenceId
    scores: dict[str, float]


class RecordFailure(BaseModel):
    """Record skipped during a run together with the reason."""

    model_config = ConfigDict(frozen=True)

    sequence_id: SequenceId | None
    kind: str
    message: str

    @classmethod
    def from_error(cls, sequence_id: SequenceId | None, error: Exception) -> "RecordFailure":
        kind = getattr(error, "kind", type(error).__name__)
        message = getattr(error, "detail", str(error))
        return cls(sequence_id=sequence_id, kind=kind, message=message)


class RunResult(BaseModel):
    """Outcome of a batch run."""

    results: list[ClassificationResult] = Field(default_factory=list)
    failures: list[RecordFailure] = Field(default_factory=list)
    complete: bool = True
    processed: int = 0

    @property
    def ok(self) -> bool:
        return self.complete and not self.failures

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure when any record was skipped."""
        if self.failures:
            raise PartialBatchFailure(self.failures, results=self.results)


class RunSettings(BaseModel):
    """Validated configuration surface of a classification run."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_identifier: str = Field(..., min_length=1)
    hypothesis_template: str
    labels: tuple[CandidateLabel, ...]
    multi_label: bool
    batch_size: PositiveInt = 8
    device: Literal["cpu", "accelerator"] = "cpu"
    failure_policy: Literal["fail_fast", "collect"]
    key_pattern: str = r"^\w+"

    @field_validator("labels")
    @classmethod
    def _labels_not_empty(cls, value: tuple[CandidateLabel, ...]) -> tuple[CandidateLabel, ...]:
        if not value:
            raise ValueError("at least one candidate label is required")
        return value


class ClassifyRequest(BaseModel):
    """API request for a single text."""

    text: str


class ClassifyResponse(BaseModel):
    """API response with ranked scores."""

    top_label: str | None
    scores: list[ScoredLabel]


def settings_from_config(cfg: Any) -> RunSettings:
    """Build RunSettings from the composed Hydra config."""
    classify = cfg.classify
    labels = OmegaConf.to_container(cfg.labels.candidates, resolve=True)
    payload = {
        "model_identifier": cfg.model.identifier,
        "hypothesis_template": cfg.labels.hypothesis_template,
        "labels": labels,
        "multi_label": classify.get("multi_label"),
        "batch_size": classify.get("batch_size"),
        "device": classify.get("device"),
        "failure_policy": classify.get("failure_policy"),
        "key_pattern": classify.get("key_pattern"),
    }
    payload = {key: value for key, value in payload.items() if value is not None}
    try:
        return RunSettings.model_validate(payload)
    except ValidationError as error:
        raise InvalidInput(f"invalid run configuration: {error}") from error
