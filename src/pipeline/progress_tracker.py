"""Run progress tracking with callback-based listener notification.

Keeps the step counter for each run and broadcasts every
:class:`~src.models.pipeline.ProgressEvent` to the listeners registered for
that run.  Listeners are keyed by run id so concurrent runs never see each
other's events.

    Orchestrator --publish()--> ProgressTracker --callback(event)--> NDJSON stream
                                                                 --> CLI printer

Publishing is best-effort: a listener that raises (typically because the
HTTP client already disconnected) is logged and skipped, and the pipeline
carries on.  Both sync and async callbacks are supported.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from src.models.pipeline import (
    PipelineStep,
    ProgressEvent,
    ProgressEventType,
    ResultsPayload,
)
from src.utils.logging import get_logger


@dataclass
class _RunStatus:
    """Internal counters for one run (mutable, never serialized)."""

    current_step: int = 0
    total_steps: int = 0
    step: PipelineStep = PipelineStep.STARTING
    message: str = ""


class ProgressTracker:
    """Counts steps per run and fans events out to listeners."""

    def __init__(self) -> None:
        self._statuses: dict[str, _RunStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Step accounting
    # ------------------------------------------------------------------

    def start_run(self, run_id: str, total_steps: int) -> None:
        """Reset the counter for *run_id* with an initial total estimate."""
        self._statuses[run_id] = _RunStatus(total_steps=max(0, total_steps))

    def set_total_steps(self, run_id: str, total_steps: int) -> None:
        """Correct the total once the true slice counts are known."""
        status = self._statuses.setdefault(run_id, _RunStatus())
        status.total_steps = max(0, total_steps)
        self._logger.debug("total_steps_updated", run_id=run_id, total_steps=total_steps)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(
        self,
        run_id: str,
        step: PipelineStep,
        message: str,
        *,
        filename: str | None = None,
        chunk_id: str | None = None,
        kind: ProgressEventType = ProgressEventType.PROGRESS,
        results: ResultsPayload | None = None,
        error: str | None = None,
    ) -> ProgressEvent:
        """Build the next event for *run_id* and notify its listeners.

        Counted steps advance the counter; a completion event pins it to
        the total.  Never raises because of a listener.
        """
        status = self._statuses.setdefault(run_id, _RunStatus())
        if kind is ProgressEventType.COMPLETION:
            status.current_step = status.total_steps
        elif step.advances:
            status.current_step += 1
        # An estimate that turned out low must not report more than 100%.
        status.total_steps = max(status.total_steps, status.current_step)
        status.step = step
        status.message = message

        event = ProgressEvent(
            type=kind,
            step=step,
            message=message,
            filename=filename,
            chunk_id=chunk_id,
            current_step=status.current_step,
            total_steps=status.total_steps,
            results=results,
            error=error,
        )
        self._logger.debug(
            "progress_update",
            run_id=run_id,
            step=step.value,
            current_step=event.current_step,
            total_steps=event.total_steps,
            message=message,
        )
        await self._notify_listeners(run_id, event)
        return event

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------

    def register_listener(self, run_id: str, callback: Callable) -> None:
        """Register an async or sync callable accepting ``(event)``."""
        listeners = self._listeners.setdefault(run_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                run_id=run_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, run_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(run_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                run_id=run_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(run_id, None)

    def get_status(self, run_id: str) -> dict:
        """Return ``step``, ``message``, ``current_step`` and ``total_steps``."""
        status = self._statuses.get(run_id) or _RunStatus()
        return {
            "step": status.step.value,
            "message": status.message,
            "current_step": status.current_step,
            "total_steps": status.total_steps,
        }

    def forget(self, run_id: str) -> None:
        """Drop counters and listeners for a finished run."""
        self._statuses.pop(run_id, None)
        self._listeners.pop(run_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, run_id: str, event: ProgressEvent) -> None:
        """Invoke all listeners for *run_id*; failures are logged and skipped."""
        for callback in list(self._listeners.get(run_id, [])):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    run_id=run_id,
                    step=event.step.value,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
