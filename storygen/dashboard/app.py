"""Story Generator — Streamlit UI that runs one generation session and renders it live."""

import sys
from pathlib import Path

# Add project root to path so 'storygen' package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

import asyncio

import streamlit as st

from storygen.config import load_config
from storygen.context import GenerationContext
from storygen.errors import GenerationError
from storygen.session import generate
from storygen.state import GenerationRequest

st.set_page_config(page_title="Story Generator", layout="wide")
st.title("Story Generator")
st.markdown(
    "Turns a plain-language description into a validated Storybook story. Each "
    "model reply is checked for syntax, forbidden patterns and unknown components; "
    "failures are fed back to the model until the story is clean or the attempt "
    "cap is reached."
)

st.divider()

prompt = st.text_area(
    "Describe the story:",
    height=150,
    placeholder="A login form with email, password and a primary submit button...",
)

considerations = st.text_area(
    "Design considerations (optional):",
    height=80,
    placeholder="Prefer outlined buttons; cards use medium padding...",
)


# ---------------------------------------------------------------------------
# Helper renderers
# ---------------------------------------------------------------------------


def _render_error_list(errors: list[str]) -> str:
    if not errors:
        return "*No errors.*"
    return "\n".join(f"- {e}" for e in errors)


def _render_choices(data: dict) -> str:
    """Markdown summary of components, layouts and styles used."""
    lines = []
    components = data.get("componentsUsed", [])
    if components:
        lines.append("**Components:**")
        for c in components:
            reason = f" — {c['reason']}" if c.get("reason") else ""
            lines.append(f"- `{c['name']}`{reason}")
        lines.append("")
    layouts = data.get("layoutChoices", [])
    if layouts:
        lines.append("**Layout:**")
        lines.extend(f"- {l['pattern']}: {l['reason']}" for l in layouts)
        lines.append("")
    styles = data.get("styleChoices", [])
    if styles:
        lines.append("**Style:**")
        lines.extend(f"- {s['property']}=`{s['value']}`: {s.get('reason', '')}" for s in styles)
    return "\n".join(lines) or "*No analysis available.*"


def _render_completion(data: dict) -> None:
    validation = data["validation"]
    metrics = data["metrics"]
    if validation["isValid"]:
        st.success(f"Story ready: **{data['title']}**")
    else:
        st.warning(f"Story saved with {len(validation['warnings'])} unresolved issue(s): **{data['title']}**")
        with st.expander("View unresolved issues", expanded=True):
            st.markdown(_render_error_list(validation["warnings"]))

    st.caption(
        f"{metrics['llmCallsCount']} model call(s) · {metrics['totalTimeMs'] / 1000:.1f}s · "
        f"`{data['outputPath']}`"
    )
    for suggestion in data.get("suggestions", []):
        st.info(suggestion)

    st.code(data["artifact"], language="tsx")
    st.download_button(
        label=f"Download {data['fileName']}",
        data=data["artifact"],
        file_name=data["fileName"],
        mime="text/plain",
    )
    with st.expander("What was generated"):
        st.markdown(_render_choices(data))


async def _run_session(request: GenerationRequest, context: GenerationContext) -> None:
    progress_bar = st.progress(0.0, text="Starting...")
    log = st.container()

    async for event in generate(request, context):
        data = event["data"]
        kind = event["type"]

        if kind == "progress":
            progress_bar.progress(data["step"] / data["totalSteps"], text=data["message"])
        elif kind == "intent":
            log.markdown(f"**Plan:** {data['strategy']}")
        elif kind == "validation":
            if data["isValid"]:
                log.markdown("Validation passed.")
            else:
                with log.expander(f"Validation: {len(data['errors'])} error(s)"):
                    st.markdown(_render_error_list(data["errors"]))
        elif kind == "retry":
            log.markdown(f"**Retry {data['attempt']}/{data['maxAttempts']}:** {data['reason']}")
        elif kind == "completion":
            progress_bar.progress(1.0, text="Done")
            _render_completion(data)
        elif kind == "error":
            st.error(f"{data['message']} ({data['code']})")
            if data.get("details"):
                st.caption(data["details"])
            if data.get("suggestion"):
                st.info(data["suggestion"])


if st.button("Generate", type="primary", disabled=not prompt.strip()):
    try:
        config = load_config()
    except GenerationError as e:
        st.error(f"{e.message}: {e.details}")
        st.stop()

    request = GenerationRequest(prompt=prompt, considerations=considerations or None)
    asyncio.run(_run_session(request, GenerationContext.from_config(config)))
