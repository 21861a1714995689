"""Generator Agent — assembles the initial transcript and calls the model.

The system prompt pins the model to the discovered capability context; the
user turn carries the request, optional conversation context and previous
code for modifications, and any reference images.
"""

import base64
import binascii
import logging

from langchain_core.runnables import RunnableConfig
from langgraph.types import StreamWriter

from storygen.config import validate_config
from storygen.context import get_context, require_credentials
from storygen.errors import ConfigurationError, DiscoveryError, GenerationError, ModelCallError
from storygen.state import GenerationRequest, GenerationState, ImageInput
from storygen.stream import intent_event, progress_event
from storygen.utils.intent import analyze_intent
from storygen.utils.parsing import TIMEOUT_ERRORS

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert UI developer writing Storybook stories for a {framework} design system.

Write ONE complete, self-contained story file in TypeScript (TSX) for the user's request.

Available components (import ONLY these, ONLY from "{import_path}"):
{components}
{icons}
Rules:
- Import components with a single named import: import {{ Button, Card }} from '{import_path}';
- NEVER import from deep paths such as '{import_path}/Button'.
- NEVER invent components, wrappers or styled variants. If something is missing, compose it from the components above.
- Do NOT use the `UNSAFE_style` or `UNSAFE_className` props.
- Do NOT use the Text component for headings; use Heading.
- Export a default `meta` object with a `title` and `component`, plus at least one named story export.
- Return the complete file in a single ```tsx code block. No explanation outside the code block.
"""

CONVERSATION_HEADER = "CONVERSATION CONTEXT (for modifications/updates):"

MODIFICATION_INSTRUCTIONS = """\
CRITICAL INSTRUCTIONS FOR MODIFICATIONS:
1. DO NOT regenerate the entire story from scratch
2. PRESERVE all existing styling, components, and structure
3. ONLY change what the user specifically requests"""


def build_system_prompt(capabilities, considerations: str = "") -> str:
    icons = ""
    if capabilities.icon_package:
        icons = (
            f"\nAvailable icons (import ONLY these, ONLY from \"{capabilities.icon_package}\"):\n"
            f"{', '.join(capabilities.icons) or '(none)'}\n"
        )
    prompt = SYSTEM_PROMPT.format(
        framework=capabilities.framework,
        import_path=capabilities.import_path,
        components=", ".join(capabilities.components),
        icons=icons,
    )
    if considerations:
        prompt += f"\n## Design System Considerations\n{considerations.strip()}\n"
    return prompt


def build_user_prompt(request: GenerationRequest) -> str:
    """Construct the user turn from the request."""
    parts = []

    # The last conversation entry is the current request itself
    history = request.conversation[:-1] if len(request.conversation) > 1 else ()
    if history:
        lines = [
            f"{'User' if turn.get('role') == 'user' else 'Assistant'}: {turn.get('content', '')}"
            for turn in history
        ]
        parts.append(CONVERSATION_HEADER + "\n" + "\n\n".join(lines))

    if request.previous_code:
        parts.append(
            "PREVIOUS GENERATED CODE (this is what you're modifying):\n"
            f"```tsx\n{request.previous_code}\n```\n\n{MODIFICATION_INSTRUCTIONS}"
        )

    if request.is_modification or history:
        parts.append(
            "IMPORTANT: The user is asking to modify/update the story based on the above context.\n\n"
            f"Current modification request: {request.prompt}"
        )
    else:
        parts.append(f"User request: {request.prompt}")

    return "\n\n".join(parts)


def _image_block(image: ImageInput) -> dict:
    if image.type == "url":
        return {"type": "image_url", "image_url": {"url": image.url}}
    try:
        base64.b64decode(image.data, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise GenerationError(
            "Failed to process images",
            code="IMAGE_PROCESSING_ERROR",
            details=f"Invalid base64 image data: {e}",
            recoverable=True,
            suggestion="Try again without images or use a different format",
        ) from e
    return {"type": "image_url", "image_url": {"url": f"data:{image.media_type};base64,{image.data}"}}


def build_initial_messages(request: GenerationRequest, capabilities, considerations: str = "") -> list[dict]:
    """System turn + first user turn. Images become content blocks on the user turn."""
    user_prompt = build_user_prompt(request)
    if request.images:
        content = [{"type": "text", "text": user_prompt}]
        content.extend(_image_block(image) for image in request.images)
    else:
        content = user_prompt

    return [
        {"role": "system", "content": build_system_prompt(capabilities, considerations)},
        {"role": "user", "content": content},
    ]


async def init_node(state: GenerationState, config: RunnableConfig, writer: StreamWriter) -> dict:
    """Init node: check config and credentials, discover capabilities, build the transcript."""
    context = get_context(config)
    request = state["request"]

    writer(progress_event("config_loaded", "Loading configuration..."))
    problems = validate_config(context.config)
    try:
        if problems:
            raise ConfigurationError(
                "Configuration validation failed",
                details="; ".join(problems),
            )
        if context.model is None:
            require_credentials(context.config)

        writer(progress_event("components_discovered", "Discovering available components..."))
        try:
            capabilities = await context.discovery.discover()
        except GenerationError:
            raise
        except Exception as e:
            raise DiscoveryError("Component discovery failed", details=str(e)) from e

        writer(progress_event(
            "components_discovered",
            f"Found {len(capabilities.components)} components from {capabilities.import_path}",
            {"componentCount": len(capabilities.components)},
        ))

        intent = analyze_intent(request, capabilities)
        writer(intent_event(intent))

        considerations = request.considerations or context.config.get("considerations") or ""
        messages = build_initial_messages(request, capabilities, considerations)
    except GenerationError as e:
        logger.error("Session init failed: %s (%s)", e.message, e.code)
        return {"error": e.to_payload()}

    writer(progress_event(
        "prompt_built",
        "Building generation prompt...",
        {"framework": intent["framework"], "hasContext": intent["analysisFlags"]["hasConversationContext"]},
    ))
    return {"capabilities": capabilities, "messages": messages}


async def calling_model_node(state: GenerationState, config: RunnableConfig, writer: StreamWriter) -> dict:
    """Calling-model node: one call with the full transcript. Any failure aborts the session."""
    context = get_context(config)
    await context.ensure_connected()

    ordinal = state["ordinal"] + 1
    llm_calls = state["llm_calls"] + 1
    if ordinal == 1:
        writer(progress_event("llm_thinking", "AI is generating your story..."))
    logger.info("Model call %d/%d", ordinal, context.max_attempts)

    try:
        reply = await context.model_client().complete(state["messages"])
    except TIMEOUT_ERRORS as e:
        error = ModelCallError(
            "The model call timed out",
            code="LLM_TIMEOUT",
            details=str(e) or type(e).__name__,
            suggestion="Try again, or raise llm_timeout_seconds in config.yaml.",
        )
        return {"ordinal": ordinal, "llm_calls": llm_calls, "error": error.to_payload()}
    except GenerationError as e:
        return {"ordinal": ordinal, "llm_calls": llm_calls, "error": e.to_payload()}
    except Exception as e:
        logger.error("Model call failed: %r", e)
        error = ModelCallError("The model call failed", details=str(e) or type(e).__name__)
        return {"ordinal": ordinal, "llm_calls": llm_calls, "error": error.to_payload()}

    return {"ordinal": ordinal, "llm_calls": llm_calls, "reply": reply or ""}
