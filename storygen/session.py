"""Generation session — one request in, one ordered event stream out.

A session owns its state for the lifetime of one graph run; the compiled
graph is the only thing shared between concurrent sessions.
"""

import logging
import time
from typing import AsyncIterator

from storygen.context import GenerationContext
from storygen.errors import GenerationError, SessionCancelled
from storygen.graph import graph
from storygen.state import GenerationRequest, GenerationState
from storygen.stream import StreamEvent, error_event, session_metrics
from storygen.utils.validator import validate_request

logger = logging.getLogger(__name__)

# Graph steps one attempt can take: calling_model, extracting, validating,
# retry_deciding, augmenting/clarifying
_STEPS_PER_ATTEMPT = 5


def new_session_state(request: GenerationRequest, started_at: float | None = None) -> GenerationState:
    return {
        "request": request,
        "started_at": started_at if started_at is not None else time.monotonic(),
        "messages": [],
        "capabilities": None,
        "attempts": [],
        "ordinal": 0,
        "llm_calls": 0,
        "reply": "",
        "artifact": None,
        "decision": None,
        "error": None,
    }


async def generate(
    request: GenerationRequest,
    context: GenerationContext | None = None,
) -> AsyncIterator[StreamEvent]:
    """Run one generation session and yield its events in transition order.

    The stream always ends with exactly one `completion` or `error` event,
    unless the caller disconnects, in which case it just stops. Closing this
    generator early closes the underlying graph stream.
    """
    started_at = time.monotonic()

    try:
        request = validate_request(request)
        context = context or GenerationContext.from_config()
    except GenerationError as e:
        yield error_event(e.to_payload(), session_metrics(started_at, 0))
        return

    state = new_session_state(request, started_at)
    run_config = {
        "configurable": {"context": context},
        "recursion_limit": _STEPS_PER_ATTEMPT * context.max_attempts + 10,
    }

    latest = state
    stream = graph.astream(state, run_config, stream_mode=["custom", "values"])
    try:
        async for mode, chunk in stream:
            if mode == "custom":
                yield chunk
            else:
                latest = chunk
    except SessionCancelled:
        logger.info("Session cancelled after %d model call(s)", latest["llm_calls"])
    except Exception as e:
        logger.exception("Generation failed")
        payload = GenerationError(str(e) or "Story generation failed").to_payload()
        yield error_event(payload, session_metrics(started_at, latest["llm_calls"]))
    finally:
        await stream.aclose()
