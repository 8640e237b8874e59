"""Adapter around the transformers zero-shot-classification pipeline."""

from __future__ import annotations

import gc
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from string import Formatter
from typing import Any

import torch
from transformers import pipeline as hf_pipeline

from zeroshot_pipeline.data.schema import CandidateLabel, RunSettings, ScoredLabel, SequenceId
from zeroshot_pipeline.errors import InvalidInput, MalformedOutput, ModelUnavailable

logger = logging.getLogger(__name__)

TEMPLATE_SLOT = "{}"
SCORE_TOLERANCE = 1e-6

# Callable with the call signature of a transformers zero-shot pipeline.
Backend = Callable[..., Any]


def validate_text(text: str, sequence_id: SequenceId | None = None) -> None:
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput("text is empty", sequence_id=sequence_id)


def validate_labels(labels: Sequence[CandidateLabel]) -> None:
    if not labels:
        raise InvalidInput("no candidate labels given")
    keys = [label.key for label in labels]
    descriptions = [label.description for label in labels]
    if len(set(keys)) != len(keys):
        raise InvalidInput(f"label keys are not unique: {keys}")
    if len(set(descriptions)) != len(descriptions):
        raise InvalidInput(f"label descriptions are not unique: {descriptions}")


def validate_template(hypothesis_template: str) -> None:
    if not isinstance(hypothesis_template, str):
        raise InvalidInput(f"hypothesis template must be a string: {hypothesis_template!r}")
    try:
        fields = [
            name for _, name, _, _ in Formatter().parse(hypothesis_template) if name is not None
        ]
        hypothesis_template.format("label")
    except (IndexError, KeyError, ValueError) as error:
        raise InvalidInput(
            f"hypothesis template cannot be formatted: {hypothesis_template!r}"
        ) from error
    # "{{" and "}}" are escaped braces, not slots; "{0}" is the positional slot spelled out.
    if len(fields) != 1 or fields[0] not in ("", "0"):
        raise InvalidInput(
            f"hypothesis template needs exactly one '{TEMPLATE_SLOT}' slot: {hypothesis_template!r}"
        )


def resolve_device(device: str) -> str:
    """Map the configured device to a torch device string."""
    if device == "cpu":
        return "cpu"
    if device != "accelerator":
        raise InvalidInput(f"unknown device: {device}")
    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():
        return "mps"
    logger.warning("No accelerator available, falling back to cpu")
    return "cpu"


def load_backend(model_identifier: str, device: str = "cpu", batch_size: int = 8) -> Backend:
    """Load the zero-shot pipeline, raising ModelUnavailable on failure."""
    torch_device = resolve_device(device)
    logger.info("Loading zero-shot pipeline %s on %s", model_identifier, torch_device)
    try:
        return hf_pipeline(
            "zero-shot-classification",
            model=model_identifier,
            device=torch_device,
            batch_size=batch_size,
        )
    except (OSError, ValueError, ImportError, RuntimeError) as error:
        raise ModelUnavailable(
            f"could not load zero-shot pipeline: {error}", model_identifier=model_identifier
        ) from error


class ZeroShotClassifier:
    """Score texts against candidate labels with an entailment model."""

    def __init__(self, backend: Backend, model_identifier: str = "custom") -> None:
        self._backend: Backend | None = backend
        self.model_identifier = model_identifier

    @property
    def closed(self) -> bool:
        return self._backend is None

    def classify(
        self,
        text: str,
        labels: Sequence[CandidateLabel],
        hypothesis_template: str,
        multi_label: bool,
        sequence_id: SequenceId | None = None,
    ) -> list[ScoredLabel]:
        """Return (label, score) pairs for one text, highest score first."""
        validate_text(text, sequence_id=sequence_id)
        validate_labels(labels)
        validate_template(hypothesis_template)
        return self._score([text], labels, hypothesis_template, multi_label)[0]

    def classify_batch(
        self,
        texts: Sequence[str],
        labels: Sequence[CandidateLabel],
        hypothesis_template: str,
        multi_label: bool,
    ) -> list[list[ScoredLabel]]:
        """Score several texts with one pipeline call."""
        for text in texts:
            validate_text(text)
        validate_labels(labels)
        validate_template(hypothesis_template)
        if not texts:
            return []
        return self._score(texts, labels, hypothesis_template, multi_label)

    def close(self) -> None:
        """Drop the pipeline and free accelerator memory."""
        if self._backend is None:
            return
        self._backend = None
        gc.collect()
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
        logger.info("Released zero-shot pipeline %s", self.model_identifier)

    def _score(
        self,
        texts: Sequence[str],
        labels: Sequence[CandidateLabel],
        hypothesis_template: str,
        multi_label: bool,
    ) -> list[list[ScoredLabel]]:
        if self._backend is None:
            raise ModelUnavailable("classifier is closed", model_identifier=self.model_identifier)
        try:
            raw = self._backend(
                list(texts),
                candidate_labels=[label.description for label in labels],
                hypothesis_template=hypothesis_template,
                multi_label=multi_label,
            )
        except (ConnectionError, TimeoutError) as error:
            raise ModelUnavailable(
                f"zero-shot pipeline unreachable: {error}", model_identifier=self.model_identifier
            ) from error
        outputs = [raw] if isinstance(raw, dict) else list(raw)
        if len(outputs) != len(texts):
            raise MalformedOutput(f"expected {len(texts)} outputs, got {len(outputs)}")
        return [self._parse_output(output, labels, multi_label) for output in outputs]

    @staticmethod
    def _parse_output(
        output: dict, labels: Sequence[CandidateLabel], multi_label: bool
    ) -> list[ScoredLabel]:
        key_by_description = {label.description: label.key for label in labels}
        returned = list(output.get("labels", []))
        scores = [float(score) for score in output.get("scores", [])]
        if len(returned) != len(scores) or sorted(returned) != sorted(key_by_description):
            raise MalformedOutput(
                f"pipeline returned labels {returned}, expected {list(key_by_description)}"
            )
        if not multi_label:
            # The pipeline scores a lone label as entailment vs contradiction;
            # a distribution over one label is always 1.
            if len(scores) == 1:
                scores = [1.0]
            elif abs(sum(scores) - 1.0) > SCORE_TOLERANCE:
                raise MalformedOutput(f"single-label scores sum to {sum(scores)}, expected 1")
        scored = []
        for description, score in zip(returned, scores):
            if not -SCORE_TOLERANCE <= score <= 1.0 + SCORE_TOLERANCE:
                raise MalformedOutput(f"score for {description!r} out of range: {score}")
            scored.append(
                ScoredLabel(
                    label=key_by_description[description],
                    description=description,
                    score=min(max(score, 0.0), 1.0),
                )
            )
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored


@contextmanager
def open_classifier(settings: RunSettings) -> Iterator[ZeroShotClassifier]:
    """Load the configured pipeline once and release it when the block exits."""
    backend = load_backend(settings.model_identifier, settings.device, settings.batch_size)
    classifier = ZeroShotClassifier(backend, model_identifier=settings.model_identifier)
    try:
        yield classifier
    finally:
        classifier.close()
