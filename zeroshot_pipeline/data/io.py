"""CSV/Parquet/JSON-lines I/O and record loading."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
from pydantic import ValidationError

from zeroshot_pipeline.data.schema import InputRecord
from zeroshot_pipeline.errors import InvalidInput

JSONL_SUFFIXES = {".jsonl", ".ndjson"}
PARQUET_SUFFIXES = {".parquet", ".pq"}


def read_table(path: Path) -> pd.DataFrame:
    """Read CSV, Parquet or JSON-lines file by suffix."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in PARQUET_SUFFIXES:
        return pd.read_parquet(path)
    if suffix in JSONL_SUFFIXES:
        return pd.read_json(path, lines=True)
    raise InvalidInput(f"unsupported file format: {path}")


def write_table(dataframe: pd.DataFrame, path: Path) -> None:
    """Write dataframe to CSV, Parquet or JSON-lines by suffix."""
    suffix = path.suffix.lower()
    if suffix not in {".csv"} | PARQUET_SUFFIXES | JSONL_SUFFIXES:
        raise InvalidInput(f"unsupported file format: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".csv":
        dataframe.to_csv(path, index=False)
    elif suffix in PARQUET_SUFFIXES:
        dataframe.to_parquet(path, index=False)
    else:
        dataframe.to_json(path, orient="records", lines=True)


def records_from_dataframe(
    dataframe: pd.DataFrame,
    text_column: str,
    id_column: str | None = None,
) -> list[InputRecord]:
    """Turn table rows into InputRecords, keeping row order.

    Without ``id_column`` the sequence id is the row position. Missing text
    becomes an empty string so the runner can report it per record.
    """
    if text_column not in dataframe.columns:
        raise InvalidInput(f"text column not found: {text_column}")
    if id_column is not None and id_column not in dataframe.columns:
        raise InvalidInput(f"id column not found: {id_column}")

    texts = dataframe[text_column].fillna("").astype(str).tolist()
    if id_column is None:
        identifiers = list(range(len(texts)))
    else:
        identifiers = dataframe[id_column].tolist()
        duplicated = dataframe[id_column][dataframe[id_column].duplicated()].tolist()
        if duplicated:
            raise InvalidInput(f"duplicate ids in column {id_column}: {duplicated[:5]}")
    records = []
    for position, (identifier, text) in enumerate(zip(identifiers, texts)):
        try:
            records.append(InputRecord(sequence_id=identifier, text=text))
        except ValidationError as error:
            raise InvalidInput(
                f"invalid id {identifier!r} in column {id_column} at row {position}"
            ) from error
    return records


def load_records(path: Path, text_column: str, id_column: str | None = None) -> list[InputRecord]:
    """Read a table and convert it to InputRecords."""
    return records_from_dataframe(read_table(path), text_column=text_column, id_column=id_column)
