"""Batch runner applying the zero-shot adapter over ordered records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import Literal

from zeroshot_pipeline.classification.adapter import (
    ZeroShotClassifier,
    validate_labels,
    validate_template,
    validate_text,
)
from zeroshot_pipeline.data.schema import (
    CandidateLabel,
    ClassificationResult,
    InputRecord,
    RecordFailure,
    RunResult,
    RunSettings,
)
from zeroshot_pipeline.errors import InvalidInput, ModelUnavailable, PartialBatchFailure

logger = logging.getLogger(__name__)

FailurePolicy = Literal["fail_fast", "collect"]
FAILURE_POLICIES = ("fail_fast", "collect")


def iter_batches(records: Sequence[InputRecord], batch_size: int) -> Iterator[list[InputRecord]]:
    """Yield consecutive groups of at most batch_size records."""
    if batch_size < 1:
        raise InvalidInput(f"batch_size must be positive, got {batch_size}")
    for start in range(0, len(records), batch_size):
        yield list(records[start : start + batch_size])


class BatchRunner:
    """Classify records batch by batch, preserving input order.

    The partial-failure policy has no default: ``fail_fast`` stops at the
    first failing record, ``collect`` skips it and reports it in
    ``RunResult.failures``.
    """

    def __init__(self, classifier: ZeroShotClassifier) -> None:
        self.classifier = classifier

    def run(
        self,
        records: Sequence[InputRecord],
        labels: Sequence[CandidateLabel],
        hypothesis_template: str,
        multi_label: bool,
        batch_size: int,
        failure_policy: FailurePolicy,
        should_stop: Callable[[], bool] | None = None,
    ) -> RunResult:
        if failure_policy not in FAILURE_POLICIES:
            raise InvalidInput(f"unknown failure policy: {failure_policy}")
        validate_labels(labels)
        validate_template(hypothesis_template)

        outcome = RunResult()
        batches = list(iter_batches(records, batch_size))
        for index, batch in enumerate(batches, start=1):
            if should_stop is not None and should_stop():
                logger.warning(
                    "Run stopped after %d of %d records", outcome.processed, len(records)
                )
                outcome.complete = False
                return outcome
            self._run_batch(batch, labels, hypothesis_template, multi_label, failure_policy, outcome)
            outcome.processed += len(batch)
            logger.info(
                "Batch %d/%d done: %d results, %d failures",
                index,
                len(batches),
                len(outcome.results),
                len(outcome.failures),
            )
        return outcome

    def _run_batch(
        self,
        batch: list[InputRecord],
        labels: Sequence[CandidateLabel],
        hypothesis_template: str,
        multi_label: bool,
        failure_policy: FailurePolicy,
        outcome: RunResult,
    ) -> None:
        scored_by_position: dict[int, ClassificationResult] = {}
        valid: list[tuple[int, InputRecord]] = []
        for position, record in enumerate(batch):
            try:
                validate_text(record.text, sequence_id=record.sequence_id)
            except InvalidInput as error:
                if failure_policy == "fail_fast":
                    raise
                outcome.failures.append(RecordFailure.from_error(record.sequence_id, error))
                continue
            valid.append((position, record))

        try:
            scored = self.classifier.classify_batch(
                [record.text for _, record in valid], labels, hypothesis_template, multi_label
            )
        except ModelUnavailable:
            raise
        except Exception as error:
            logger.warning("Batch call failed (%s), retrying record by record", error)
            scored = None

        if scored is not None:
            for (position, record), scored_labels in zip(valid, scored):
                scored_by_position[position] = ClassificationResult(
                    sequence_id=record.sequence_id, scored_labels=scored_labels
                )
        else:
            for position, record in valid:
                try:
                    scored_labels = self.classifier.classify(
                        record.text,
                        labels,
                        hypothesis_template,
                        multi_label,
                        sequence_id=record.sequence_id,
                    )
                except ModelUnavailable as error:
                    raise ModelUnavailable(
                        error.detail,
                        model_identifier=error.model_identifier,
                        sequence_id=record.sequence_id,
                    ) from error
                except Exception as error:
                    failure = RecordFailure.from_error(record.sequence_id, error)
                    if failure_policy == "fail_fast":
                        partial = outcome.results + [
                            scored_by_position[key] for key in sorted(scored_by_position)
                        ]
                        raise PartialBatchFailure([failure], results=partial) from error
                    outcome.failures.append(failure)
                    continue
                scored_by_position[position] = ClassificationResult(
                    sequence_id=record.sequence_id, scored_labels=scored_labels
                )

        outcome.results.extend(scored_by_position[key] for key in sorted(scored_by_position))


def run_with_settings(
    classifier: ZeroShotClassifier,
    records: Sequence[InputRecord],
    settings: RunSettings,
    should_stop: Callable[[], bool] | None = None,
) -> RunResult:
    """Run the batch runner with a validated settings object."""
    return BatchRunner(classifier).run(
        records,
        labels=settings.labels,
        hypothesis_template=settings.hypothesis_template,
        multi_label=settings.multi_label,
        batch_size=settings.batch_size,
        failure_policy=settings.failure_policy,
        should_stop=should_stop,
    )
