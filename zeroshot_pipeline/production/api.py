"""FastAPI service for zero-shot classification of single texts."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request

from zeroshot_pipeline.classification.adapter import ZeroShotClassifier, load_backend
from zeroshot_pipeline.commands import compose_config
from zeroshot_pipeline.data.schema import (
    ClassifyRequest,
    ClassifyResponse,
    RunSettings,
    settings_from_config,
)
from zeroshot_pipeline.errors import InvalidInput, ModelUnavailable, ZeroShotError

logger = logging.getLogger(__name__)


def _build_classifier() -> tuple[ZeroShotClassifier, RunSettings]:
    settings = settings_from_config(compose_config([]))
    backend = load_backend(settings.model_identifier, settings.device, settings.batch_size)
    return ZeroShotClassifier(backend, model_identifier=settings.model_identifier), settings


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Loaded once before serving; requests never race to load the model.
    app.state.classifier = None
    app.state.settings = None
    app.state.load_error = None
    try:
        app.state.classifier, app.state.settings = _build_classifier()
    except ModelUnavailable as error:
        logger.error("Serving without a model: %s", error)
        app.state.load_error = error
    try:
        yield
    finally:
        if app.state.classifier is not None:
            app.state.classifier.close()
            app.state.classifier = None


def create_app() -> FastAPI:
    """Create FastAPI application instance."""
    app = FastAPI(title="Zero-shot Classification API", version="0.1.0", lifespan=_lifespan)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Healthcheck endpoint."""
        return {"status": "ok"}

    @app.post("/classify", response_model=ClassifyResponse)
    def classify(payload: ClassifyRequest, request: Request) -> ClassifyResponse:
        """Score the text against the configured candidate labels."""
        state = request.app.state
        try:
            if state.classifier is None:
                raise state.load_error or ModelUnavailable("classifier is not loaded")
            classifier, settings = state.classifier, state.settings
            scored = classifier.classify(
                payload.text,
                settings.labels,
                settings.hypothesis_template,
                settings.multi_label,
            )
        except InvalidInput as error:
            raise HTTPException(status_code=422, detail=str(error)) from error
        except ModelUnavailable as error:
            raise HTTPException(status_code=503, detail=str(error)) from error
        except ZeroShotError as error:
            raise HTTPException(status_code=500, detail=str(error)) from error
        top_label = None if settings.multi_label else scored[0].label
        return ClassifyResponse(top_label=top_label, scores=scored)

    return app
