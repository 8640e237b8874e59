"""Shared fixtures: a deterministic entailment backend and composed configs."""

from __future__ import annotations

import math
import re
import zlib

import pytest

from zeroshot_pipeline.classification.adapter import ZeroShotClassifier
from zeroshot_pipeline.commands import compose_config
from zeroshot_pipeline.data.schema import CandidateLabel, InputRecord

JOBS_TEXT = "Many American jobs are shipped to Chinese factories."


class FakeEntailmentBackend:
    """Stand-in for a transformers zero-shot pipeline.

    Entailment logits come from word overlap between premise and hypothesis
    plus a stable per-pair offset, so scores depend only on the pair.
    """

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.calls: list[list[str]] = []

    def __call__(
        self,
        sequences,
        candidate_labels,
        hypothesis_template="This example is {}.",
        multi_label=False,
    ):
        single = isinstance(sequences, str)
        texts = [sequences] if single else list(sequences)
        self.calls.append(texts)
        outputs = [
            self._score(text, list(candidate_labels), hypothesis_template, multi_label)
            for text in texts
        ]
        return outputs[0] if single else outputs

    def _score(self, text, labels, hypothesis_template, multi_label):
        if text in self.fail_on:
            raise RuntimeError(f"cannot score {text!r}")
        logits = [self._logit(text, hypothesis_template.format(label)) for label in labels]
        if multi_label:
            scores = [1.0 / (1.0 + math.exp(-logit)) for logit in logits]
        else:
            peak = max(logits)
            exps = [math.exp(logit - peak) for logit in logits]
            total = sum(exps)
            scores = [value / total for value in exps]
        order = sorted(range(len(labels)), key=lambda index: scores[index], reverse=True)
        return {
            "sequence": text,
            "labels": [labels[index] for index in order],
            "scores": [scores[index] for index in order],
        }

    @staticmethod
    def _logit(premise: str, hypothesis: str) -> float:
        premise_words = set(re.findall(r"\w+", premise.lower()))
        hypothesis_words = re.findall(r"\w+", hypothesis.lower())
        overlap = sum(
            1 for word in hypothesis_words if word in premise_words or f"{word}s" in premise_words
        )
        offset = zlib.crc32(f"{premise}|{hypothesis}".encode("utf-8")) % 1000 / 1000.0
        return 1.5 * overlap - 1.0 + offset


@pytest.fixture
def backend() -> FakeEntailmentBackend:
    return FakeEntailmentBackend()


@pytest.fixture
def classifier(backend) -> ZeroShotClassifier:
    return ZeroShotClassifier(backend, model_identifier="fake/entailment")


@pytest.fixture
def trade_labels() -> list[CandidateLabel]:
    return [
        CandidateLabel(key="jobs", description="job concerns"),
        CandidateLabel(key="trade", description="trade concerns"),
    ]


@pytest.fixture
def spending_labels() -> list[CandidateLabel]:
    return [
        CandidateLabel(key="more", description="more"),
        CandidateLabel(key="less", description="less"),
    ]


@pytest.fixture
def records() -> list[InputRecord]:
    texts = [
        JOBS_TEXT,
        "Tariffs on imported steel raise prices for consumers.",
        "The government should spend more money on public schools.",
        "Taxes are too high and federal spending should be cut.",
        "Free trade agreements have hollowed out manufacturing towns.",
        "Health insurance premiums keep going up every year.",
        "We need more investment in roads, bridges and broadband.",
    ]
    return [InputRecord(sequence_id=index, text=text) for index, text in enumerate(texts, 1)]


@pytest.fixture
def fake_backend_loader(monkeypatch, backend):
    """Route pipeline loading to the fake backend and record load arguments."""
    loads = []

    def _load(model_identifier, device="cpu", batch_size=8):
        loads.append((model_identifier, device, batch_size))
        return backend

    monkeypatch.setattr("zeroshot_pipeline.classification.adapter.load_backend", _load)
    return loads


@pytest.fixture
def make_cfg(tmp_path):
    def _make(*overrides: str):
        base = [
            f"data.raw_path={tmp_path / 'raw' / 'sample.csv'}",
            f"data.output_path={tmp_path / 'out' / 'scores.csv'}",
            "logging.enable=false",
        ]
        return compose_config(base + list(overrides))

    return _make
