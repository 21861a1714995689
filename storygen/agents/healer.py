"""Healer Agent — turns diagnostics into a corrective follow-up turn.

The previous assistant reply stays in the transcript, immediately followed by
a user turn that lists every error, so the next call sees both the mistake
and the exact fix list.
"""

import logging

from langchain_core.runnables import RunnableConfig
from langgraph.types import StreamWriter

from storygen.context import get_context
from storygen.state import Diagnostics, GenerationState
from storygen.stream import retry_event

logger = logging.getLogger(__name__)

MAX_LISTED_COMPONENTS = 20

HEALING_REASON = "AI self-healing: fixing validation errors"
CLARIFYING_REASON = "No code block in the reply; asking for the complete story"

CLARIFICATION_PROMPT = (
    "You did not provide a code block. "
    "Please provide the complete story in a single `tsx` code block."
)


def build_correction_prompt(
    artifact: str,
    diagnostics: Diagnostics,
    ordinal: int,
    max_attempts: int,
    capabilities,
) -> str:
    """Build the corrective user turn: one bullet per error, the faulty code, and fix instructions."""
    import_path = capabilities.import_path
    sections = [
        f"## CODE CORRECTION REQUIRED (Attempt {ordinal} of {max_attempts})",
        "",
        "Your previous code contained errors. Please fix them while preserving the original intent.",
        "",
    ]

    if diagnostics.syntax_errors:
        sections.append("### TypeScript Syntax Errors")
        sections.append("These prevent the code from compiling:")
        sections.extend(f"- {e}" for e in diagnostics.syntax_errors)
        sections.append("")

    if diagnostics.pattern_errors:
        sections.append("### Forbidden Patterns")
        sections.append("These patterns are not allowed in this codebase:")
        sections.extend(f"- {e}" for e in diagnostics.pattern_errors)
        sections.append("")

    if diagnostics.reference_errors:
        sections.append("### Import Errors")
        sections.append(f'These components do not exist in "{import_path}":')
        sections.extend(f"- {e}" for e in diagnostics.reference_errors)
        sections.append("")

        components = list(capabilities.components)
        if components:
            sections.append("**Available components include:**")
            sections.append(", ".join(components[:MAX_LISTED_COMPONENTS]))
            if len(components) > MAX_LISTED_COMPONENTS:
                sections.append(f"... and {len(components) - MAX_LISTED_COMPONENTS} more")
            sections.append("")

    sections.extend([
        "### Original Code (with errors)",
        "```tsx",
        artifact,
        "```",
        "",
        "### Correction Instructions",
        "1. Fix ALL errors listed above",
        "2. Keep the same component structure and layout",
        "3. Do NOT add new features - only fix the errors",
        "4. Ensure all JSX elements are properly opened and closed",
        f'5. Only import components that exist in "{import_path}"',
        "6. Return the COMPLETE corrected code in a ```tsx code block",
        "7. Do NOT include any explanation - just the corrected code block",
    ])
    return "\n".join(sections)


def augment_transcript(messages: list[dict], reply: str, prompt: str) -> list[dict]:
    """Return a new transcript with the assistant reply and the follow-up user turn appended."""
    return [
        *messages,
        {"role": "assistant", "content": reply},
        {"role": "user", "content": prompt},
    ]


async def augmenting_node(state: GenerationState, config: RunnableConfig, writer: StreamWriter) -> dict:
    """Augmenting node: append a correction turn built from the latest diagnostics."""
    context = get_context(config)
    latest = state["attempts"][-1]

    prompt = build_correction_prompt(
        latest.artifact,
        latest.diagnostics,
        latest.ordinal,
        context.max_attempts,
        state["capabilities"],
    )
    writer(retry_event(latest.ordinal + 1, context.max_attempts, HEALING_REASON, latest.diagnostics.all_errors()))
    logger.info("Self-healing attempt %d/%d", latest.ordinal + 1, context.max_attempts)

    return {"messages": augment_transcript(state["messages"], state["reply"], prompt)}


async def clarifying_node(state: GenerationState, config: RunnableConfig, writer: StreamWriter) -> dict:
    """Clarifying node: the last reply had no artifact, so ask for one."""
    context = get_context(config)
    ordinal = state["ordinal"]

    writer(retry_event(ordinal + 1, context.max_attempts, CLARIFYING_REASON, []))
    logger.info("No code block in reply %d; asking again", ordinal)

    return {"messages": augment_transcript(state["messages"], state["reply"], CLARIFICATION_PROMPT)}
