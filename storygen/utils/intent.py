"""Intent preview — what the session plans to do, derived from the request before any model call."""

from storygen.state import GenerationRequest

TARGET_KEYWORDS = {
    "button": ["button", "click", "submit", "action", "cta"],
    "card": ["card", "panel", "tile", "box"],
    "form": ["form", "input", "field", "submit", "login", "signup", "register"],
    "table": ["table", "list", "data", "grid", "rows"],
    "modal": ["modal", "dialog", "popup", "overlay"],
    "navigation": ["nav", "menu", "header", "sidebar", "footer"],
    "layout": ["layout", "page", "section", "container", "grid", "stack"],
    "pricing": ["pricing", "price", "plan", "subscription", "tier"],
    "dashboard": ["dashboard", "analytics", "stats", "metrics", "chart"],
    "profile": ["profile", "user", "avatar", "account"],
}

# import_path fragment → design system name
DESIGN_SYSTEMS = [
    ("mantine", "mantine"),
    ("chakra", "chakra-ui"),
    ("mui", "material-ui"),
    ("antd", "ant-design"),
]


def estimate_targets(prompt: str) -> list[str]:
    lowered = prompt.lower()
    return [
        target
        for target, keywords in TARGET_KEYWORDS.items()
        if any(kw in lowered for kw in keywords)
    ]


def detect_design_system(import_path: str) -> str | None:
    for fragment, name in DESIGN_SYSTEMS:
        if fragment in (import_path or ""):
            return name
    return None


def _strategy(request: GenerationRequest, targets: list[str]) -> str:
    if request.previous_code:
        return "Modifying existing story - preserving structure"
    if request.images:
        return "Analyzing visual reference to generate matching component"
    if "dashboard" in targets:
        return "Creating multi-section dashboard layout"
    if "form" in targets:
        return "Building form with validation-ready structure"
    return "Creating new component story"


def analyze_intent(request: GenerationRequest, capabilities) -> dict:
    """Build the `intent` event payload."""
    targets = estimate_targets(request.prompt)
    return {
        "requestType": "modification" if request.is_modification else "new",
        "framework": capabilities.framework,
        "detectedCapabilityContext": detect_design_system(capabilities.import_path),
        "strategy": _strategy(request, targets),
        "estimatedTargets": targets,
        "analysisFlags": {
            "hasVisionInput": bool(request.images),
            "hasConversationContext": len(request.conversation) > 1,
            "hasPreviousCode": bool(request.previous_code),
        },
    }
