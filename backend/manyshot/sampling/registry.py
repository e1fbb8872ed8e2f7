# -*- coding: utf-8 -*-
"""In-memory registry of sampling runs executed on worker threads."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from manyshot.backends.base import PredictionBackend
from manyshot.models import (
    ModelDescriptor,
    PredictionRequest,
    RunOutcome,
    RunResult,
    RunSnapshot,
    RunStatus,
)
from manyshot.sampling.aggregation import (
    build_chart_data,
    compute_frequency,
    percentages_from_frequency,
)
from manyshot.sampling.runner import DEFAULT_DELAY_SECONDS, RunInProgressError, SamplingRunner

logger = logging.getLogger(__name__)

BackendResolver = Callable[[ModelDescriptor], PredictionBackend]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RunRegistry:
    """Start runs in the background and expose their live progress.

    Only one run may be active at a time; finished runs are kept for
    ``ttl_seconds`` so that clients can read the final table.
    """

    def __init__(
        self,
        backend_resolver: BackendResolver,
        *,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        enforce_options: bool = True,
        ttl_seconds: int = 6 * 3600,
    ) -> None:
        self._resolve_backend = backend_resolver
        self._delay_seconds = delay_seconds
        self._enforce_options = enforce_options
        self._ttl = timedelta(seconds=ttl_seconds)
        self._lock = Lock()
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._threads: Dict[str, Thread] = {}

    def _purge_expired(self) -> None:
        now = _now()
        expired: List[str] = []
        for run_id, entry in self._entries.items():
            finished_at: Optional[datetime] = entry.get("finished_at")
            if finished_at is not None and now - finished_at > self._ttl:
                expired.append(run_id)
        for run_id in expired:
            self._entries.pop(run_id, None)
            self._threads.pop(run_id, None)

    def active_run_id(self) -> Optional[str]:
        with self._lock:
            return self._active_run_id()

    def _active_run_id(self) -> Optional[str]:
        for run_id, entry in self._entries.items():
            if entry["status"] is RunStatus.RUNNING:
                return run_id
        return None

    def start(self, request: PredictionRequest, model: ModelDescriptor, total_iterations: int) -> str:
        """Register a new run and execute it on a worker thread."""

        if total_iterations < 1:
            raise ValueError("total_iterations must be at least 1.")

        backend = self._resolve_backend(model)
        runner = SamplingRunner(
            backend,
            delay_seconds=self._delay_seconds,
            enforce_options=self._enforce_options,
        )
        cancel_event = Event()
        run_id = uuid4().hex
        now = _now()

        with self._lock:
            self._purge_expired()
            active = self._active_run_id()
            if active is not None:
                raise RunInProgressError(f"Run {active} is still in progress.")
            self._entries[run_id] = {
                "run_id": run_id,
                "status": RunStatus.RUNNING,
                "model": model,
                "request": request,
                "total_iterations": total_iterations,
                "completed_iterations": 0,
                "progress": 0.0,
                "results": [],
                "error": None,
                "cancel_event": cancel_event,
                "started_at": now,
                "updated_at": now,
                "finished_at": None,
            }
            thread = Thread(
                target=self._execute,
                args=(runner, run_id, request, model, total_iterations, cancel_event),
                name=f"sampling-run-{run_id[:8]}",
                daemon=True,
            )
            self._threads[run_id] = thread

        logger.info("Run %s registered (model=%s, iterations=%s)", run_id, model.id, total_iterations)
        thread.start()
        return run_id

    def _execute(
        self,
        runner: SamplingRunner,
        run_id: str,
        request: PredictionRequest,
        model: ModelDescriptor,
        total_iterations: int,
        cancel_event: Event,
    ) -> None:
        def _on_partial_result(results: List[RunResult]) -> None:
            self._update(run_id, results=results)

        def _on_progress(fraction: float) -> None:
            self._update(run_id, progress=fraction)

        try:
            outcome = runner.run(
                request,
                model,
                total_iterations,
                on_progress=_on_progress,
                on_partial_result=_on_partial_result,
                cancel_token=cancel_event,
                run_id=run_id,
            )
        except Exception as exc:  # pragma: no cover - unexpected failure surface
            logger.exception("Run %s crashed", run_id)
            self._finalize(run_id, status=RunStatus.FAILED, error=str(exc))
            return

        self._finalize(run_id, status=outcome.status, error=outcome.error, outcome=outcome)

    def _update(
        self,
        run_id: str,
        *,
        results: Optional[List[RunResult]] = None,
        progress: Optional[float] = None,
    ) -> None:
        with self._lock:
            entry = self._entries.get(run_id)
            if entry is None:
                return
            if results is not None:
                entry["results"] = list(results)
                entry["completed_iterations"] = len(results)
            if progress is not None:
                entry["progress"] = progress
            entry["updated_at"] = _now()

    def _finalize(
        self,
        run_id: str,
        *,
        status: RunStatus,
        error: Optional[str] = None,
        outcome: Optional[RunOutcome] = None,
    ) -> None:
        now = _now()
        with self._lock:
            entry = self._entries.get(run_id)
            if entry is None:
                return
            if outcome is not None:
                entry["results"] = list(outcome.results)
                entry["completed_iterations"] = len(outcome.results)
            entry.update(
                {
                    "status": status,
                    "error": error,
                    "updated_at": now,
                    "finished_at": now,
                }
            )
        logger.info("Run %s finalized with status=%s", run_id, status.value)

    def get(self, run_id: str) -> Optional[RunSnapshot]:
        with self._lock:
            self._purge_expired()
            entry = self._entries.get(run_id)
            if entry is None:
                return None
            return self._snapshot(entry)

    def list(self) -> List[RunSnapshot]:
        with self._lock:
            self._purge_expired()
            entries = sorted(self._entries.values(), key=lambda item: item["started_at"], reverse=True)
            return [self._snapshot(entry) for entry in entries]

    def stop(self, run_id: str) -> bool:
        """Request cancellation; returns False for unknown runs."""

        with self._lock:
            entry = self._entries.get(run_id)
            if entry is None:
                return False
            cancel_event: Event = entry["cancel_event"]
            running = entry["status"] is RunStatus.RUNNING
        if running:
            logger.info("Stop requested for run %s", run_id)
            cancel_event.set()
        return True

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[RunSnapshot]:
        """Block until the run's worker thread finishes (or ``timeout`` passes)."""

        with self._lock:
            thread = self._threads.get(run_id)
        if thread is not None:
            thread.join(timeout)
        return self.get(run_id)

    @staticmethod
    def _snapshot(entry: Dict[str, Any]) -> RunSnapshot:
        results: List[RunResult] = list(entry["results"])
        frequency = compute_frequency(results)
        request: PredictionRequest = entry["request"]
        model: ModelDescriptor = entry["model"]
        finished_at: Optional[datetime] = entry.get("finished_at")
        return RunSnapshot(
            run_id=entry["run_id"],
            status=entry["status"],
            model_id=model.id,
            question=request.question,
            answer_options=list(request.answer_options),
            total_iterations=entry["total_iterations"],
            completed_iterations=entry["completed_iterations"],
            progress=round(float(entry["progress"]), 4),
            results=results,
            frequency=frequency,
            percentages=percentages_from_frequency(frequency),
            chart=build_chart_data(frequency),
            error=entry.get("error"),
            started_at=entry["started_at"].isoformat(),
            updated_at=entry["updated_at"].isoformat(),
            finished_at=finished_at.isoformat() if finished_at else None,
        )


__all__ = ["RunRegistry"]
