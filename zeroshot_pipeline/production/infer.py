"""Config-driven zero-shot classification of single texts and tables."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import mlflow
import pandas as pd
from omegaconf import OmegaConf

from zeroshot_pipeline.classification.adapter import open_classifier
from zeroshot_pipeline.classification.reshape import (
    long_dataframe,
    reshape,
    results_from_pipeline_output,
    to_dataframe,
)
from zeroshot_pipeline.classification.runner import run_with_settings
from zeroshot_pipeline.data.io import read_table, records_from_dataframe, write_table
from zeroshot_pipeline.data.schema import ClassifyResponse, RunResult, RunSettings, settings_from_config
from zeroshot_pipeline.errors import InconsistentSchema, InvalidInput
from zeroshot_pipeline.utils.git import get_commit_id
from zeroshot_pipeline.utils.logging import init_mlflow, log_resolved_config, save_score_distribution
from zeroshot_pipeline.utils.paths import plots_dir, project_root
from zeroshot_pipeline.utils.seeding import seed_everything

logger = logging.getLogger(__name__)


def _flatten_dict(values: dict, prefix: str = "") -> dict[str, str]:
    flattened: dict[str, str] = {}
    for key, value in values.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flattened.update(_flatten_dict(value, full_key))
        else:
            flattened[full_key] = str(value)
    return flattened


def _sibling_path(path: Path, suffix_name: str) -> Path:
    return path.with_name(f"{path.stem}_{suffix_name}.csv")


def classify_text(cfg, text: str) -> dict:
    """Score one text against the configured labels."""
    settings = settings_from_config(cfg)
    with open_classifier(settings) as classifier:
        scored = classifier.classify(
            text, settings.labels, settings.hypothesis_template, settings.multi_label
        )
    top_label = None if settings.multi_label else scored[0].label
    return ClassifyResponse(top_label=top_label, scores=scored).model_dump()


def _resolve_id_column(dataframe: pd.DataFrame, id_column: str | None, configured: str | None):
    if id_column is not None:
        return id_column
    if configured and configured in dataframe.columns:
        return configured
    if configured:
        logger.info("Id column %s not in input, using row positions", configured)
    return None


def _write_outcome(
    outcome: RunResult,
    settings: RunSettings,
    output_file: Path,
    id_name: str,
) -> pd.DataFrame:
    if outcome.failures:
        failures = pd.DataFrame([failure.model_dump() for failure in outcome.failures])
        failures_path = _sibling_path(output_file, "failures")
        write_table(failures, failures_path)
        logger.warning("%d records failed, see %s", len(outcome.failures), failures_path)
    try:
        rows = reshape(outcome.results, label_order=[label.key for label in settings.labels])
    except InconsistentSchema:
        raw_path = _sibling_path(output_file, "raw")
        write_table(long_dataframe(outcome.results), raw_path)
        logger.error("Reshape failed, raw scores kept in %s", raw_path)
        raise
    table = to_dataframe(rows, id_column=id_name)
    write_table(table, output_file)
    return table


def _track_run(cfg, outcome: RunResult, table: pd.DataFrame, output_file: Path) -> None:
    mlflow.log_metrics(
        {
            "records_processed": float(outcome.processed),
            "records_classified": float(len(outcome.results)),
            "records_failed": float(len(outcome.failures)),
        }
    )
    mlflow.set_tag("run_complete", str(outcome.complete).lower())
    mlflow.log_artifact(str(output_file), "outputs")
    label_columns = list(table.columns[1:])
    if cfg.logging.plot_scores and len(table) and label_columns:
        plot_path = plots_dir() / "score_distribution.png"
        save_score_distribution(table, label_columns, plot_path)
        mlflow.log_artifact(str(plot_path), "plots")


def classify_table(
    cfg,
    input_path: str | None = None,
    output_path: str | None = None,
    text_column: str | None = None,
    id_column: str | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> str:
    """Classify every row of a CSV/Parquet/JSON-lines table into a wide score table."""
    settings = settings_from_config(cfg)
    seed_everything(int(cfg.seed))
    input_file = Path(input_path or cfg.data.raw_path)
    output_file = Path(output_path or cfg.data.output_path)
    dataframe = read_table(input_file)
    id_column = _resolve_id_column(dataframe, id_column, cfg.data.get("id_column"))
    records = records_from_dataframe(
        dataframe, text_column=text_column or cfg.data.text_column, id_column=id_column
    )
    id_name = id_column or "sequence_id"
    logger.info("Classifying %d records from %s", len(records), input_file)

    def _run() -> tuple[RunResult, pd.DataFrame]:
        with open_classifier(settings) as classifier:
            outcome = run_with_settings(classifier, records, settings, should_stop=should_stop)
        if not outcome.complete:
            logger.warning("Run incomplete: %d of %d records", outcome.processed, len(records))
        return outcome, _write_outcome(outcome, settings, output_file, id_name)

    if cfg.logging.enable:
        init_mlflow(cfg)
        with mlflow.start_run(run_name=cfg.logging.run_name):
            resolved_cfg_dict = OmegaConf.to_container(cfg, resolve=True)
            mlflow.log_params(_flatten_dict(resolved_cfg_dict))
            mlflow.set_tag("git_commit_id", get_commit_id(project_root()))
            log_resolved_config(cfg)
            outcome, table = _run()
            _track_run(cfg, outcome, table, output_file)
    else:
        outcome, table = _run()

    logger.info("Wrote %d rows to %s", len(table), output_file)
    return str(output_file)


def pivot_table(
    cfg,
    input_path: str,
    output_path: str,
    description_column: str = "description",
    score_column: str = "score",
    id_column: str = "sequence_id",
) -> str:
    """Pivot a long (id, description, score) table to wide, deriving keys with key_pattern."""
    dataframe = read_table(Path(input_path))
    missing = {id_column, description_column, score_column} - set(dataframe.columns)
    if missing:
        raise InvalidInput(f"missing columns: {sorted(missing)}")
    outputs = []
    sequence_ids = []
    grouped = dataframe.groupby(id_column, sort=False)
    for sequence_id in dataframe[id_column].drop_duplicates().tolist():
        group = grouped.get_group(sequence_id)
        sequence_ids.append(sequence_id)
        outputs.append(
            {
                "labels": group[description_column].astype(str).tolist(),
                "scores": group[score_column].astype(float).tolist(),
            }
        )
    results = results_from_pipeline_output(
        outputs, sequence_ids, key_pattern=cfg.classify.key_pattern
    )
    label_order = [item["key"] for item in OmegaConf.to_container(cfg.labels.candidates)]
    table = to_dataframe(reshape(results, label_order=label_order), id_column=id_column)
    output_file = Path(output_path)
    write_table(table, output_file)
    return str(output_file)
