"""End-to-end tests for config-driven classification with a fake pipeline."""

from pathlib import Path

import pandas as pd
import pytest

from zeroshot_pipeline.data.download import SAMPLE_TEXTS, ensure_data
from zeroshot_pipeline.data.io import read_table, write_table
from zeroshot_pipeline.data.schema import settings_from_config
from zeroshot_pipeline.errors import InvalidInput, PartialBatchFailure
from zeroshot_pipeline.production.infer import classify_table, classify_text, pivot_table


def test_settings_from_default_config(make_cfg):
    settings = settings_from_config(make_cfg())

    assert settings.model_identifier == "facebook/bart-large-mnli"
    assert [label.key for label in settings.labels] == ["jobs", "trade"]
    assert settings.hypothesis_template.count("{}") == 1
    assert settings.failure_policy == "collect"


def test_failure_policy_must_be_configured(make_cfg):
    cfg = make_cfg("~classify.failure_policy")

    with pytest.raises(InvalidInput, match="failure_policy"):
        settings_from_config(cfg)


def test_invalid_device_rejected(make_cfg):
    with pytest.raises(InvalidInput, match="device"):
        settings_from_config(make_cfg("classify.device=tpu"))


def test_ensure_data_writes_sample(make_cfg):
    cfg = make_cfg()

    path = ensure_data(cfg)

    table = read_table(path)
    assert table["text"].tolist() == SAMPLE_TEXTS
    assert ensure_data(cfg) == path


def test_classify_table_writes_wide_scores(make_cfg, fake_backend_loader):
    cfg = make_cfg()
    ensure_data(cfg)

    output = classify_table(cfg)

    table = read_table(Path(output))
    assert list(table.columns) == ["doc_id", "jobs", "trade"]
    assert table["doc_id"].tolist() == [f"doc-{index}" for index in range(1, 9)]
    assert table[["jobs", "trade"]].apply(lambda column: column.between(0, 1).all()).all()
    assert fake_backend_loader == [("facebook/bart-large-mnli", "cpu", 8)]


def test_classify_table_collects_failures(tmp_path, make_cfg, fake_backend_loader):
    input_path = tmp_path / "survey.csv"
    write_table(
        pd.DataFrame({"text": ["Factories moved to China.", "", "Tariffs hurt trade."]}),
        input_path,
    )
    output_path = tmp_path / "out" / "survey_scores.csv"

    classify_table(make_cfg(), input_path=str(input_path), output_path=str(output_path))

    table = read_table(output_path)
    assert table["sequence_id"].tolist() == [0, 2]
    failures = read_table(tmp_path / "out" / "survey_scores_failures.csv")
    assert failures["sequence_id"].tolist() == [1]
    assert failures["kind"].tolist() == ["InvalidInput"]


def test_classify_table_fail_fast(tmp_path, make_cfg, fake_backend_loader, backend):
    backend.fail_on.add("broken")
    input_path = tmp_path / "survey.csv"
    write_table(pd.DataFrame({"text": ["Factories moved to China.", "broken"]}), input_path)

    with pytest.raises(PartialBatchFailure, match="record 1"):
        classify_table(
            make_cfg("classify.failure_policy=fail_fast"),
            input_path=str(input_path),
            output_path=str(tmp_path / "scores.csv"),
        )


def test_classify_table_stops_between_batches(tmp_path, make_cfg, fake_backend_loader):
    cfg = make_cfg("classify.batch_size=3")
    ensure_data(cfg)
    output_path = tmp_path / "partial.csv"
    calls = []

    def should_stop():
        calls.append(None)
        return len(calls) > 1

    classify_table(cfg, output_path=str(output_path), should_stop=should_stop)

    assert len(read_table(output_path)) == 3


def test_classify_text_single_label(make_cfg, fake_backend_loader):
    cfg = make_cfg("labels=spending", "classify=single_label")

    prediction = classify_text(cfg, "The government should spend more money on public schools.")

    assert prediction["top_label"] == "more"
    assert sum(item["score"] for item in prediction["scores"]) == pytest.approx(1.0, abs=1e-6)


def test_classify_text_multi_label_has_no_winner(make_cfg, fake_backend_loader):
    prediction = classify_text(make_cfg(), "Many American jobs are shipped to Chinese factories.")

    assert prediction["top_label"] is None
    assert {item["label"] for item in prediction["scores"]} == {"jobs", "trade"}


def test_pivot_table_derives_keys(tmp_path, make_cfg):
    long_path = tmp_path / "long.csv"
    write_table(
        pd.DataFrame(
            {
                "sequence_id": [5, 5, 9, 9],
                "description": ["trade concerns", "jobs concerns", "jobs concerns", "trade concerns"],
                "score": [0.7, 0.2, 0.6, 0.1],
            }
        ),
        long_path,
    )

    output = pivot_table(make_cfg(), input_path=str(long_path), output_path=str(tmp_path / "w.csv"))

    table = read_table(tmp_path / "w.csv")
    assert output.endswith("w.csv")
    assert list(table.columns) == ["sequence_id", "jobs", "trade"]
    assert table.to_dict("records") == [
        {"sequence_id": 5, "jobs": 0.2, "trade": 0.7},
        {"sequence_id": 9, "jobs": 0.6, "trade": 0.1},
    ]
