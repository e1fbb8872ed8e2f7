# -*- coding: utf-8 -*-

import csv
import json
import logging
import os
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import ValidationError

from manyshot import __version__
from manyshot.backends import BackendConfigError, BackendError, build_backend
from manyshot.catalog import ModelCatalog
from manyshot.config import get_settings
from manyshot.extraction import ExtractionError
from manyshot.models import (
    ModelDescriptor,
    PredictionRequest,
    RunCreateRequest,
    RunSnapshot,
    SinglePredictRequest,
)
from manyshot.sampling import RunInProgressError, RunRegistry

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

SETTINGS = get_settings()
CATALOG = ModelCatalog.from_settings(SETTINGS)

app = FastAPI(title="Many-Shot Predictor", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _resolve_backend(model: ModelDescriptor):
    return build_backend(model, SETTINGS)


RUN_REGISTRY = RunRegistry(
    _resolve_backend,
    delay_seconds=SETTINGS.run_delay_seconds,
    enforce_options=SETTINGS.enforce_answer_options,
    ttl_seconds=SETTINGS.run_ttl_seconds,
)

EXPORT_COLUMNS = ["run_id", "iteration", "model_id", "prediction"]


def _validation_detail(exc: ValidationError) -> str:
    messages: List[str] = []
    for error in exc.errors():
        message = str(error.get("msg", "Invalid value"))
        # pydantic prefixes messages raised from validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request."


def _require_snapshot(run_id: str) -> RunSnapshot:
    snapshot = RUN_REGISTRY.get(run_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Run not found or expired.")
    return snapshot


def _results_to_csv(snapshot: RunSnapshot) -> str:
    buffer = StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for result in snapshot.results:
        writer.writerow(
            {
                "run_id": result.run_id,
                "iteration": result.iteration,
                "model_id": result.model_id,
                "prediction": result.prediction.prediction,
            }
        )
    return buffer.getvalue()


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/")
async def root():
    return {"message": "Many-Shot Predictor API", "version": __version__}


@app.get("/api/models")
async def list_models(provider: Optional[str] = None):
    models = CATALOG.list(provider)
    return {"models": [model.model_dump(mode="json") | {"backend_kind": model.backend_kind.value} for model in models]}


@app.post("/api/predict/{provider}")
async def predict(provider: str, payload: Dict[str, Any] = Body(...)):
    try:
        request = SinglePredictRequest.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=_validation_detail(exc)) from exc

    model = CATALOG.find(request.model)
    if model is None:
        raise HTTPException(status_code=400, detail=f"Unknown model: {request.model}")
    if model.provider != provider:
        raise HTTPException(
            status_code=400,
            detail=f"Model {model.id} is served by '{model.provider}', not '{provider}'.",
        )

    try:
        backend = _resolve_backend(model)
        if request.prompt is not None:
            raw_text = await run_in_threadpool(backend.generate, request.prompt, model)
        else:
            prediction_request = PredictionRequest(
                question=request.question,
                answer_options=request.answer_options,
            )
            raw_text = await run_in_threadpool(backend.predict, prediction_request, model)
        prediction = backend.extract(raw_text)
    except (BackendError, ExtractionError) as exc:
        logger.exception("Single prediction failed (provider=%s, model=%s)", provider, model.id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return prediction.model_dump()


@app.get("/api/runs")
async def list_runs():
    return {"runs": [snapshot.model_dump(mode="json", exclude={"results"}) for snapshot in RUN_REGISTRY.list()]}


@app.post("/api/runs")
async def create_run(payload: Dict[str, Any] = Body(...)):
    try:
        request = RunCreateRequest.model_validate(payload)
        prediction_request = request.to_prediction_request()
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=_validation_detail(exc)) from exc

    if request.runs > SETTINGS.max_runs:
        raise HTTPException(
            status_code=400,
            detail=f"runs must be between 1 and {SETTINGS.max_runs}.",
        )

    model = CATALOG.find(request.model)
    if model is None:
        raise HTTPException(status_code=404, detail=f"Unknown model: {request.model}")

    try:
        run_id = RUN_REGISTRY.start(prediction_request, model, request.runs)
    except RunInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except BackendConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return _require_snapshot(run_id).model_dump(mode="json")


@app.get("/api/runs/{run_id}")
async def get_run(run_id: str):
    return _require_snapshot(run_id).model_dump(mode="json")


@app.post("/api/runs/{run_id}/stop")
async def stop_run(run_id: str):
    if not RUN_REGISTRY.stop(run_id):
        raise HTTPException(status_code=404, detail="Run not found or expired.")
    return _require_snapshot(run_id).model_dump(mode="json")


@app.get("/api/runs/{run_id}/export")
async def export_run(run_id: str, format: str = "json"):
    snapshot = _require_snapshot(run_id)
    format_normalized = (format or "json").lower()
    timestamp = datetime.now(timezone.utc).astimezone().strftime("%Y%m%d")
    basename = f"run-{run_id[:8]}-{timestamp}"

    if format_normalized == "json":
        content = json.dumps(snapshot.model_dump(mode="json"), ensure_ascii=False, indent=2)
        return Response(
            content=content,
            media_type="application/json; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename=\"{basename}.json\""},
        )

    if format_normalized == "csv":
        return Response(
            content=_results_to_csv(snapshot),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename=\"{basename}.csv\""},
        )

    raise HTTPException(status_code=400, detail="Unsupported format. Use 'json' or 'csv'.")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
