# -*- coding: utf-8 -*-
"""Repeated-sampling loop: call one backend N times and collect the answers."""

from __future__ import annotations

import logging
from threading import Event, Lock
from typing import Callable, List, Optional
from uuid import uuid4

from manyshot.backends.base import BackendError, PredictionBackend
from manyshot.extraction import ExtractionError, match_option
from manyshot.models import (
    ModelDescriptor,
    Prediction,
    PredictionRequest,
    RunOutcome,
    RunResult,
    RunState,
    RunStatus,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
PartialResultCallback = Callable[[List[RunResult]], None]

DEFAULT_DELAY_SECONDS = 0.5


class RunInProgressError(RuntimeError):
    """Raised when a run is started while another one is still active."""


class SamplingRunner:
    """Issue sequential prediction calls and aggregate them into a run.

    A runner executes one run at a time. Iterations never overlap; the
    cancellation token is checked only between iterations and the first
    backend or extraction failure ends the run, keeping the results gathered
    so far.
    """

    def __init__(
        self,
        backend: PredictionBackend,
        *,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        enforce_options: bool = True,
    ) -> None:
        self.backend = backend
        self.delay_seconds = max(float(delay_seconds), 0.0)
        self.enforce_options = enforce_options
        self._lock = Lock()
        self._state = RunState()
        self._active_token: Optional[Event] = None

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state.model_copy()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._state.status is RunStatus.RUNNING

    def stop(self) -> None:
        """Ask the active run to stop before its next iteration."""

        with self._lock:
            if self._state.status is not RunStatus.RUNNING:
                return
            self._state.cancel_requested = True
            token = self._active_token
        if token is not None:
            token.set()

    def _sample(self, request: PredictionRequest, model: ModelDescriptor) -> Prediction:
        raw_text = self.backend.predict(request, model)
        prediction = self.backend.extract(raw_text)
        if self.enforce_options:
            prediction = match_option(prediction, request.answer_options)
        return prediction

    @staticmethod
    def _notify(callback: Optional[Callable], payload) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception("Run callback failed")

    def _reset(self) -> None:
        with self._lock:
            self._state = RunState()
            self._active_token = None

    def run(
        self,
        request: PredictionRequest,
        model: ModelDescriptor,
        total_iterations: int,
        on_progress: Optional[ProgressCallback] = None,
        on_partial_result: Optional[PartialResultCallback] = None,
        cancel_token: Optional[Event] = None,
        run_id: Optional[str] = None,
    ) -> RunOutcome:
        """Run ``total_iterations`` predictions and return the terminal outcome."""

        if total_iterations < 1:
            raise ValueError("total_iterations must be at least 1.")

        token = cancel_token if cancel_token is not None else Event()
        with self._lock:
            if self._state.status is RunStatus.RUNNING:
                raise RunInProgressError("A run is already in progress.")
            self._state = RunState(status=RunStatus.RUNNING, total=total_iterations)
            self._active_token = token

        run_id = run_id or uuid4().hex
        results: List[RunResult] = []
        status = RunStatus.COMPLETED
        error: Optional[str] = None

        logger.info(
            "Run %s started (model=%s, iterations=%s)",
            run_id,
            model.id,
            total_iterations,
        )

        try:
            for iteration in range(1, total_iterations + 1):
                if token.is_set():
                    status = RunStatus.STOPPED
                    break

                with self._lock:
                    self._state.current_iteration = iteration

                try:
                    prediction = self._sample(request, model)
                except (BackendError, ExtractionError) as exc:
                    error = str(exc)
                    status = RunStatus.FAILED
                    with self._lock:
                        self._state.last_error = error
                    logger.warning("Run %s failed at iteration %s: %s", run_id, iteration, error)
                    break

                results.append(
                    RunResult(
                        run_id=run_id,
                        iteration=iteration,
                        model_id=model.id,
                        prediction=prediction,
                    )
                )
                logger.debug("Run %s iteration %s -> %s", run_id, iteration, prediction.prediction)

                self._notify(on_partial_result, list(results))
                self._notify(on_progress, iteration / total_iterations)

                if iteration < total_iterations and self.delay_seconds > 0:
                    # wakes early on cancellation, which is then honoured at the loop head
                    token.wait(self.delay_seconds)
        finally:
            self._reset()

        logger.info(
            "Run %s finished with status=%s (%s/%s results)",
            run_id,
            status.value,
            len(results),
            total_iterations,
        )
        return RunOutcome(run_id=run_id, status=status, results=results, error=error)


__all__ = ["RunInProgressError", "SamplingRunner"]
