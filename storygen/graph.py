"""LangGraph StateGraph definition for the self-healing generation loop.

init → calling_model → extracting → validating → (done | retry_deciding)
retry_deciding → augmenting | clarifying → calling_model, or → done
Any node that records `error` routes to `aborted`.
"""

import logging

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph
from langgraph.types import StreamWriter

from storygen.agents.finalizer import aborted_node, done_node
from storygen.agents.generator import calling_model_node, init_node
from storygen.agents.healer import augmenting_node, clarifying_node
from storygen.context import get_context
from storygen.state import Attempt, Diagnostics, GenerationState
from storygen.stream import progress_event, validation_event
from storygen.utils.diagnostics import format_errors_for_log, validate_artifact
from storygen.utils.parsing import extract_code_block
from storygen.utils.patterns import rules_from_config
from storygen.utils.policy import diagnostics_history, should_continue_retrying
from storygen.utils.references import DenyList

logger = logging.getLogger(__name__)


async def _extracting(state: GenerationState, writer: StreamWriter) -> dict:
    """Pull the artifact out of the latest reply. No artifact is still an attempt."""
    ordinal = state["ordinal"]
    artifact = extract_code_block(state["reply"])

    if artifact is None:
        logger.warning("Attempt %d: no code block in reply", ordinal)
        attempt = Attempt(ordinal=ordinal, artifact=None, diagnostics=Diagnostics(), reply=state["reply"])
        return {"attempts": [*state["attempts"], attempt], "artifact": None}

    writer(progress_event("code_extracted", "Processing generated code...", {"attempt": ordinal}))
    return {"artifact": artifact}


async def _validating(state: GenerationState, config: RunnableConfig, writer: StreamWriter) -> dict:
    """Run the validator set and archive the diagnosed attempt."""
    settings = get_context(config).config
    ordinal = state["ordinal"]

    writer(progress_event("validating", "Validating generated code...", {"attempt": ordinal}))
    artifact, diagnostics = validate_artifact(
        state["artifact"],
        state["capabilities"],
        rules=rules_from_config(settings.get("pattern_rules")),
        deny=DenyList.from_config(settings.get("deny_list")),
        require_react_import=settings.get("require_react_import", True),
    )

    if diagnostics.is_clean:
        logger.info("Attempt %d: validation passed", ordinal)
    else:
        logger.info("Attempt %d validation errors: %s", ordinal, format_errors_for_log(diagnostics))
    writer(validation_event(diagnostics))

    attempt = Attempt(ordinal=ordinal, artifact=artifact, diagnostics=diagnostics, reply=state["reply"])
    return {"attempts": [*state["attempts"], attempt], "artifact": artifact}


async def _retry_deciding(state: GenerationState, config: RunnableConfig) -> dict:
    decision = should_continue_retrying(
        state["ordinal"],
        get_context(config).max_attempts,
        diagnostics_history(state["attempts"]),
    )
    if not decision.should_retry:
        logger.info("Stopping retries: %s", decision.reason)
    return {"decision": decision}


def _route_after_init(state: GenerationState) -> str:
    return "aborted" if state.get("error") else "calling_model"


def _route_after_call(state: GenerationState) -> str:
    return "aborted" if state.get("error") else "extracting"


def _route_after_extract(state: GenerationState) -> str:
    return "validating" if state.get("artifact") is not None else "retry_deciding"


def _route_after_validation(state: GenerationState) -> str:
    """Clean latest attempt → done, anything else goes through the retry policy."""
    return "done" if state["attempts"][-1].is_clean else "retry_deciding"


def _route_after_decision(state: GenerationState) -> str:
    """Conditional edge after the retry policy.

    1. stop → done (best attempt is picked there)
    2. latest attempt had an artifact → augmenting (correction turn)
    3. otherwise → clarifying (ask for a code block)
    """
    if not state["decision"].should_retry:
        return "done"
    if state["attempts"][-1].has_artifact:
        return "augmenting"
    return "clarifying"


def _route_after_done(state: GenerationState) -> str:
    return "aborted" if state.get("error") else "end"


# --- Build the graph ---

workflow = StateGraph(GenerationState)

workflow.add_node("init", init_node)
workflow.add_node("calling_model", calling_model_node)
workflow.add_node("extracting", _extracting)
workflow.add_node("validating", _validating)
workflow.add_node("retry_deciding", _retry_deciding)
workflow.add_node("augmenting", augmenting_node)
workflow.add_node("clarifying", clarifying_node)
workflow.add_node("done", done_node)
workflow.add_node("aborted", aborted_node)

workflow.set_entry_point("init")

workflow.add_conditional_edges(
    "init", _route_after_init, {"calling_model": "calling_model", "aborted": "aborted"}
)
workflow.add_conditional_edges(
    "calling_model", _route_after_call, {"extracting": "extracting", "aborted": "aborted"}
)
workflow.add_conditional_edges(
    "extracting",
    _route_after_extract,
    {"validating": "validating", "retry_deciding": "retry_deciding"},
)
workflow.add_conditional_edges(
    "validating", _route_after_validation, {"done": "done", "retry_deciding": "retry_deciding"}
)
workflow.add_conditional_edges(
    "retry_deciding",
    _route_after_decision,
    {"done": "done", "augmenting": "augmenting", "clarifying": "clarifying"},
)

workflow.add_edge("augmenting", "calling_model")
workflow.add_edge("clarifying", "calling_model")
workflow.add_conditional_edges("done", _route_after_done, {"end": END, "aborted": "aborted"})
workflow.add_edge("aborted", END)

graph = workflow.compile()
