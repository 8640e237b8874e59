"""Tests for the FastAPI service."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from conftest import JOBS_TEXT
from zeroshot_pipeline.errors import ModelUnavailable
from zeroshot_pipeline.production import api


@pytest.fixture
def loads():
    return []


@pytest.fixture
def client(monkeypatch, backend, loads):
    def _load(*args, **kwargs):
        loads.append(args)
        return backend

    monkeypatch.setattr(api, "load_backend", _load)
    with TestClient(api.create_app()) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_classify_returns_scores_for_configured_labels(client):
    response = client.post("/classify", json={"text": JOBS_TEXT})

    assert response.status_code == 200
    payload = response.json()
    assert payload["top_label"] is None
    assert {item["label"] for item in payload["scores"]} == {"jobs", "trade"}
    assert all(0.0 <= item["score"] <= 1.0 for item in payload["scores"])


def test_classify_empty_text_is_unprocessable(client, backend):
    response = client.post("/classify", json={"text": ""})

    assert response.status_code == 422
    assert "InvalidInput" in response.json()["detail"]
    assert backend.calls == []


def test_model_loaded_once_for_concurrent_requests(client, loads):
    with ThreadPoolExecutor(max_workers=4) as pool:
        responses = list(
            pool.map(lambda _: client.post("/classify", json={"text": JOBS_TEXT}), range(8))
        )

    assert [response.status_code for response in responses] == [200] * 8
    assert len(loads) == 1


def test_classifier_released_at_shutdown(monkeypatch, backend):
    monkeypatch.setattr(api, "load_backend", lambda *args, **kwargs: backend)
    app = api.create_app()
    with TestClient(app):
        classifier = app.state.classifier
        assert not classifier.closed

    assert classifier.closed
    assert app.state.classifier is None


def test_unavailable_model_is_service_unavailable(monkeypatch):
    def broken(*args, **kwargs):
        raise ModelUnavailable("could not load", model_identifier="facebook/bart-large-mnli")

    monkeypatch.setattr(api, "load_backend", broken)
    with TestClient(api.create_app()) as test_client:
        assert test_client.get("/health").status_code == 200
        response = test_client.post("/classify", json={"text": JOBS_TEXT})

    assert response.status_code == 503
    assert "facebook/bart-large-mnli" in response.json()["detail"]
