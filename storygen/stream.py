"""Progress Event Emitter — builds every outward event of a generation session.

Events are plain dicts `{"type", "timestamp", "data"}` with camelCase payload
keys so they can be serialized as-is by whatever transport carries them.
Graph nodes hand them to the langgraph custom stream writer in transition
order; `storygen.session.generate` yields them unchanged.
"""

import time
from typing import Literal, TypedDict

from storygen.state import Diagnostics

EventType = Literal["intent", "progress", "validation", "retry", "completion", "error"]

TOTAL_STEPS = 8

PHASE_STEPS = {
    "config_loaded": 1,
    "components_discovered": 2,
    "prompt_built": 3,
    "llm_thinking": 4,
    "code_extracted": 5,
    "validating": 6,
    "post_processing": 7,
    "saving": 8,
}


class StreamEvent(TypedDict):
    type: EventType
    timestamp: int  # milliseconds since the epoch
    data: dict


class ValidationPayload(TypedDict, total=False):
    isValid: bool
    errors: list[str]
    warnings: list[str]
    autoFixApplied: bool
    fixDetails: list[str]


class SessionMetrics(TypedDict):
    totalTimeMs: int
    llmCallsCount: int


def create_event(event_type: EventType, data: dict) -> StreamEvent:
    return {"type": event_type, "timestamp": int(time.time() * 1000), "data": data}


def session_metrics(started_at: float, llm_calls: int) -> SessionMetrics:
    """Elapsed wall time since `started_at` (time.monotonic()) plus the call count."""
    return {
        "totalTimeMs": int((time.monotonic() - started_at) * 1000),
        "llmCallsCount": llm_calls,
    }


def intent_event(intent: dict) -> StreamEvent:
    return create_event("intent", intent)


def progress_event(phase: str, message: str, details: dict | None = None) -> StreamEvent:
    data = {
        "step": PHASE_STEPS[phase],
        "totalSteps": TOTAL_STEPS,
        "phase": phase,
        "message": message,
    }
    if details:
        data["details"] = details
    return create_event("progress", data)


def validation_payload(diagnostics: Diagnostics) -> ValidationPayload:
    payload: ValidationPayload = {
        "isValid": diagnostics.is_clean,
        "errors": diagnostics.all_errors(),
        "warnings": list(diagnostics.warnings),
        "autoFixApplied": diagnostics.auto_fix_applied,
    }
    if diagnostics.auto_fix_applied and diagnostics.warnings:
        payload["fixDetails"] = list(diagnostics.warnings)
    return payload


def validation_event(diagnostics: Diagnostics) -> StreamEvent:
    return create_event("validation", dict(validation_payload(diagnostics)))


def retry_event(attempt: int, max_attempts: int, reason: str, errors: list[str]) -> StreamEvent:
    return create_event(
        "retry",
        {
            "attempt": attempt,
            "maxAttempts": max_attempts,
            "reason": reason,
            "errors": list(errors),
        },
    )


def completion_event(completion: dict, metrics: SessionMetrics) -> StreamEvent:
    return create_event("completion", {**completion, "metrics": metrics})


def error_event(payload: dict, metrics: SessionMetrics) -> StreamEvent:
    """Terminal error. `payload` is a GenerationError.to_payload() dict."""
    return create_event("error", {**payload, "metrics": metrics})
