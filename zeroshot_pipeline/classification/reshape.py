"""Pivot nested label/score results into a wide table."""

from __future__ import annotations

import re
from collections.abc import Sequence

import pandas as pd

from zeroshot_pipeline.data.schema import ClassificationResult, OutputRow, ScoredLabel, SequenceId
from zeroshot_pipeline.errors import InconsistentSchema, MalformedOutput


def label_key(description: str, key_pattern: str | re.Pattern) -> str:
    """Extract the short key from a verbose label description.

    Uses the first capture group when the pattern has one, else the whole match.
    """
    pattern = re.compile(key_pattern) if isinstance(key_pattern, str) else key_pattern
    match = pattern.search(description)
    if match is None:
        raise InconsistentSchema(f"no label key in description {description!r}")
    key = match.group(1) if pattern.groups else match.group(0)
    if not key:
        raise InconsistentSchema(f"empty label key in description {description!r}")
    return key


def results_from_pipeline_output(
    outputs: Sequence[dict],
    sequence_ids: Sequence[SequenceId],
    key_pattern: str = r"^\w+",
) -> list[ClassificationResult]:
    """Convert raw pipeline outputs (sequence/labels/scores) into results."""
    if len(outputs) != len(sequence_ids):
        raise MalformedOutput(f"{len(outputs)} outputs for {len(sequence_ids)} sequence ids")
    pattern = re.compile(key_pattern)
    results = []
    for sequence_id, output in zip(sequence_ids, outputs):
        descriptions = list(output["labels"])
        scores = list(output["scores"])
        if len(descriptions) != len(scores):
            raise MalformedOutput("labels and scores differ in length", sequence_id=sequence_id)
        try:
            scored = [
                ScoredLabel(
                    label=label_key(description, pattern),
                    description=description,
                    score=float(score),
                )
                for description, score in zip(descriptions, scores)
            ]
        except InconsistentSchema as error:
            raise InconsistentSchema(error.detail, sequence_id=sequence_id) from error
        results.append(ClassificationResult(sequence_id=sequence_id, scored_labels=scored))
    return results


def reshape(
    results: Sequence[ClassificationResult],
    label_order: Sequence[str] | None = None,
) -> list[OutputRow]:
    """Pivot results to one row per sequence id and one column per label key.

    Columns follow ``label_order`` first, then first appearance. A repeated
    (sequence id, key) pair keeps its first score. Rows keep the order in
    which their sequence id first appears.
    """
    observed: list[str] = []
    description_keys: dict[str, tuple[str, SequenceId]] = {}
    rows: dict[SequenceId, dict[str, float]] = {}

    for result in results:
        row = rows.setdefault(result.sequence_id, {})
        for item in result.scored_labels:
            if item.description is not None:
                known_key, first_id = description_keys.setdefault(
                    item.description, (item.label, result.sequence_id)
                )
                if known_key != item.label:
                    raise InconsistentSchema(
                        f"description {item.description!r} maps to {known_key!r} "
                        f"(record {first_id}) and {item.label!r}",
                        sequence_id=result.sequence_id,
                    )
            if item.label not in observed:
                observed.append(item.label)
            row.setdefault(item.label, item.score)

    preferred = [key for key in dict.fromkeys(label_order or []) if key in observed]
    columns = preferred + [key for key in observed if key not in preferred]
    output = []
    for sequence_id, scores in rows.items():
        missing = [column for column in columns if column not in scores]
        if missing:
            raise InconsistentSchema(f"no score for labels {missing}", sequence_id=sequence_id)
        output.append(
            OutputRow(sequence_id=sequence_id, scores={column: scores[column] for column in columns})
        )
    return output


def rows_to_results(rows: Sequence[OutputRow]) -> list[ClassificationResult]:
    """Turn wide rows back into results, keeping column order."""
    return [
        ClassificationResult(
            sequence_id=row.sequence_id,
            scored_labels=[ScoredLabel(label=key, score=score) for key, score in row.scores.items()],
        )
        for row in rows
    ]


def to_dataframe(rows: Sequence[OutputRow], id_column: str = "sequence_id") -> pd.DataFrame:
    """Wide dataframe: id column plus one score column per label key."""
    columns = [id_column] + (list(rows[0].scores) if rows else [])
    if id_column in columns[1:]:
        raise InconsistentSchema(f"label key collides with id column {id_column!r}")
    records = [{id_column: row.sequence_id, **row.scores} for row in rows]
    return pd.DataFrame.from_records(records, columns=columns)


def long_dataframe(results: Sequence[ClassificationResult]) -> pd.DataFrame:
    """Long dataframe with one (sequence_id, label, description, score) row per pair."""
    records = [
        {
            "sequence_id": result.sequence_id,
            "label": item.label,
            "description": item.description,
            "score": item.score,
        }
        for result in results
        for item in result.scored_labels
    ]
    return pd.DataFrame.from_records(
        records, columns=["sequence_id", "label", "description", "score"]
    )
