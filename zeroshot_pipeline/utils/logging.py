"""Logging setup and MLflow helper utilities."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import matplotlib.pyplot as plt
import mlflow
import pandas as pd
import seaborn as sns
from mlflow.tracking import MlflowClient
from omegaconf import OmegaConf

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | int = "INFO") -> None:
    """Configure root logging to stdout."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout, force=True)


def init_mlflow(cfg: Any) -> None:
    """Configure and validate MLflow tracking URI."""
    if not cfg.logging.enable:
        return
    tracking_uri = cfg.logging.mlflow_uri
    mlflow.set_tracking_uri(tracking_uri)
    try:
        client = MlflowClient(tracking_uri=tracking_uri)
        client.search_experiments(max_results=1)
    except Exception as error:
        if cfg.logging.allow_local_fallback:
            local_uri = f"file://{(Path.cwd() / 'mlruns').resolve()}"
            logging.getLogger(__name__).warning(
                "MLflow server unavailable at %s, logging to %s", tracking_uri, local_uri
            )
            mlflow.set_tracking_uri(local_uri)
            mlflow.set_experiment(cfg.logging.experiment_name)
            return
        raise RuntimeError(
            f"MLflow server is unavailable at {tracking_uri}. "
            "Set logging.allow_local_fallback=true to use local mlruns."
        ) from error
    mlflow.set_experiment(cfg.logging.experiment_name)


def log_resolved_config(cfg: Any, artifact_name: str = "resolved_config.yaml") -> str:
    """Log fully resolved Hydra config as text artifact."""
    resolved = OmegaConf.to_yaml(cfg, resolve=True)
    mlflow.log_text(resolved, artifact_name)
    return resolved


def save_score_distribution(
    table: pd.DataFrame,
    label_columns: list[str],
    output_path: Path,
    title: str = "Zero-shot score distribution",
) -> None:
    """Save per-label histogram of scores from a wide output table."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    long_scores = table.melt(
        value_vars=label_columns, var_name="label", value_name="score"
    )
    plt.figure(figsize=(10, 6))
    sns.histplot(
        data=long_scores,
        x="score",
        hue="label",
        bins=20,
        binrange=(0.0, 1.0),
        element="step",
    )
    plt.title(title)
    plt.xlabel("Score")
    plt.ylabel("Records")
    plt.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()
