"""Finalizer — picks the artifact to ship, names it, persists it and reports the outcome."""

import logging

from langchain_core.runnables import RunnableConfig
from langgraph.types import StreamWriter

from storygen.context import get_context
from storygen.errors import GenerationError, PersistenceError
from storygen.state import GenerationRequest, GenerationState
from storygen.stream import completion_event, error_event, progress_event, session_metrics
from storygen.utils.analysis import analyze_generated_code
from storygen.utils.diagnostics import format_errors_for_log
from storygen.utils.formatter import apply_title, clean_prompt_for_title, story_identity
from storygen.utils.policy import select_best_attempt

logger = logging.getLogger(__name__)

AUTO_FIX_SUGGESTION = "Some automatic fixes were applied. Review the generated code."
DEFECTS_SUGGESTION = "Some validation issues could not be fixed automatically. Review the generated code."


def story_title(request: GenerationRequest) -> str:
    """Original title for modifications; otherwise derived from the first user prompt."""
    if request.is_modification and request.original_title:
        return request.original_title
    source = request.prompt
    if request.is_modification:
        first_user = next((t for t in request.conversation if t.get("role") == "user"), None)
        if first_user and first_user.get("content"):
            source = first_user["content"]
    return clean_prompt_for_title(source)


def _summary(request: GenerationRequest) -> dict:
    excerpt = request.prompt[:100] + ("..." if len(request.prompt) > 100 else "")
    if request.is_modification:
        return {"action": "updated", "description": f'Updated story based on your request: "{excerpt}"'}
    return {"action": "created", "description": f'Created new story for: "{excerpt}"'}


def _final_validation(diagnostics) -> dict:
    """Leftover content defects are reported as warnings."""
    return {
        "isValid": diagnostics.is_clean,
        "errors": [],
        "warnings": [*diagnostics.warnings, *diagnostics.all_errors()],
        "autoFixApplied": diagnostics.auto_fix_applied,
    }


def _suggestions(diagnostics, capabilities) -> list[str]:
    suggestions = []
    if not diagnostics.is_clean:
        suggestions.append(DEFECTS_SUGGESTION)
    if diagnostics.reference_errors:
        suggestions.append(f"Your available components include: {capabilities.component_summary()}.")
    if diagnostics.auto_fix_applied:
        suggestions.append(AUTO_FIX_SUGGESTION)
    return suggestions


async def done_node(state: GenerationState, config: RunnableConfig, writer: StreamWriter) -> dict:
    """Done node: choose the final artifact, post-process, persist, emit completion."""
    context = get_context(config)
    request = state["request"]
    attempts = state["attempts"]

    latest = attempts[-1] if attempts else None
    final = latest if latest is not None and latest.is_clean else select_best_attempt(attempts)

    if final is None:
        logger.warning("No artifact produced in %d attempt(s)", len(attempts))
        error = GenerationError(
            "The model did not produce any code",
            code="NO_CODE_GENERATED",
            details=f"{len(attempts)} attempt(s) returned no code block",
            recoverable=True,
            suggestion="Try rephrasing your request with more detail.",
        )
        return {"error": error.to_payload()}

    if final is not latest:
        logger.info(
            "Selected attempt %d with %d error(s): %s",
            final.ordinal,
            final.diagnostics.total,
            format_errors_for_log(final.diagnostics),
        )

    writer(progress_event("post_processing", "Applying finishing touches..."))
    code = final.artifact
    if context.postprocess is not None:
        code = context.postprocess(code)

    title = story_title(request)
    file_name, story_id = story_identity(request, title)
    code = apply_title(code, title, context.config.get("story_prefix", ""))

    await context.ensure_connected()
    writer(progress_event("saving", "Saving your story..."))

    try:
        output_path = await context.store.save(file_name, code, overwrite=request.is_modification)
    except GenerationError as e:
        return {"error": e.to_payload()}
    except Exception as e:
        logger.error("Persisting %s failed: %r", file_name, e)
        return {"error": PersistenceError(f"Could not save {file_name}", details=str(e)).to_payload()}

    diagnostics = final.diagnostics
    completion = {
        "success": True,
        "title": title,
        "fileName": file_name,
        "storyId": story_id,
        "summary": _summary(request),
        **analyze_generated_code(code, state["capabilities"].import_path),
        "validation": _final_validation(diagnostics),
        "artifact": code,
        "outputPath": output_path,
    }
    suggestions = _suggestions(diagnostics, state["capabilities"])
    if suggestions:
        completion["suggestions"] = suggestions

    writer(completion_event(completion, session_metrics(state["started_at"], state["llm_calls"])))
    return {"artifact": code}


async def aborted_node(state: GenerationState, writer: StreamWriter) -> dict:
    """Aborted node: emit the terminal error event."""
    payload = state["error"]
    logger.error("Session aborted: %s (%s)", payload.get("message"), payload.get("code"))
    writer(error_event(payload, session_metrics(state["started_at"], state["llm_calls"])))
    return {}
