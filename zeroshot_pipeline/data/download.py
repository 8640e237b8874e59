"""Make the input dataset available: local file, download or built-in sample."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd
import requests

from zeroshot_pipeline.data.io import write_table

logger = logging.getLogger(__name__)

SAMPLE_TEXTS = [
    "Many American jobs are shipped to Chinese factories.",
    "Tariffs on imported steel raise prices for consumers.",
    "The government should spend more money on public schools.",
    "Taxes are too high and federal spending should be cut.",
    "Free trade agreements have hollowed out manufacturing towns.",
    "Health insurance premiums keep going up every year.",
    "We need more investment in roads, bridges and broadband.",
    "Immigration policy should prioritize skilled workers.",
]


def download_data(source_url: str, destination: Path) -> Path:
    """Download raw data from configured source URL."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    response = requests.get(source_url, timeout=120)
    response.raise_for_status()
    if source_url.endswith(".json"):
        write_table(pd.DataFrame(response.json()), destination)
        return destination
    if destination.suffix.lower() == ".csv":
        destination.write_text(response.text, encoding="utf-8")
    else:
        destination.write_bytes(response.content)
    return destination


def create_sample_data(destination: Path, text_column: str = "text") -> Path:
    """Write the small built-in sample of open-ended survey answers."""
    dataframe = pd.DataFrame(
        {
            "doc_id": [f"doc-{index}" for index in range(1, len(SAMPLE_TEXTS) + 1)],
            text_column: SAMPLE_TEXTS,
        }
    )
    write_table(dataframe, destination)
    logger.info("Wrote %d sample records to %s", len(dataframe), destination)
    return destination


def ensure_data(cfg) -> Path:
    """Ensure the input table exists via download or the built-in sample."""
    destination = Path(cfg.data.raw_path)
    if destination.exists():
        return destination

    source_url = cfg.data.get("source_url")
    if source_url:
        try:
            return download_data(source_url, destination)
        except requests.RequestException as error:
            if not cfg.data.sample_fallback:
                raise
            logger.warning("Download from %s failed: %s", source_url, error)
    return create_sample_data(destination, text_column=cfg.data.text_column)
