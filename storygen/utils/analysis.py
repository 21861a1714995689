"""Post-generation analysis: which components, layouts and styles the final story uses."""

import re

from storygen.utils.references import extract_named_imports

COMPONENT_INSIGHTS = {
    # Layout
    "Box": "base container for custom layouts",
    "Container": "centered content with max-width",
    "Stack": "vertical flow with consistent spacing",
    "HStack": "horizontal alignment",
    "VStack": "vertical alignment",
    "Flex": "flexible positioning",
    "Grid": "multi-column responsive layout",
    "SimpleGrid": "auto-sizing grid columns",
    "Group": "inline element grouping",
    "Center": "centered content",
    "Divider": "visual section separation",
    # Typography
    "Text": "text with theme styling",
    "Title": "semantic heading",
    "Heading": "hierarchical heading",
    # Feedback
    "Alert": "contextual user notifications",
    "Badge": "status indicators",
    "Progress": "task completion feedback",
    "Skeleton": "loading placeholder",
    "Spinner": "loading animation",
    # Actions
    "Button": "primary user actions",
    "IconButton": "icon-only actions",
    "Menu": "contextual options",
    "Tooltip": "hover information",
    # Forms
    "Input": "text input field",
    "TextInput": "text entry",
    "Textarea": "multi-line text",
    "Select": "dropdown selection",
    "Checkbox": "binary toggle",
    "Switch": "on/off toggle",
    "Radio": "single selection",
    # Data display
    "Card": "content container with elevation",
    "Table": "tabular data display",
    "List": "sequential items",
    "Avatar": "user representation",
    "Image": "visual content",
    # Navigation
    "Tabs": "content organization",
    "Breadcrumb": "navigation hierarchy",
    "Pagination": "paged navigation",
    # Overlay
    "Modal": "focused interaction",
    "Dialog": "user confirmation",
    "Drawer": "side panel content",
    "Popover": "contextual overlay",
}

VARIANT_REASONS = {
    "filled": "high visual emphasis",
    "outlined": "secondary emphasis",
    "subtle": "minimal visual weight",
    "light": "soft background emphasis",
    "gradient": "eye-catching visual treatment",
    "contained": "solid button style",
    "text": "inline text action",
}

SEMANTIC_COLORS = {
    "primary": "brand identity emphasis",
    "secondary": "supporting visual accent",
    "success": "positive outcome indication",
    "error": "error state signaling",
    "warning": "caution indication",
    "info": "informational context",
    "green": "success/positive state",
    "red": "error/danger state",
    "blue": "informational emphasis",
    "yellow": "warning indication",
    "orange": "attention drawing",
}

_VARIANT_RE = re.compile(r"""variant[=:]\s*["']([^"']+)["']""", re.IGNORECASE)
_COLOR_RE = re.compile(r"""color[=:]\s*["']([^"']+)["']""", re.IGNORECASE)


def imported_components(code: str, import_path: str) -> list[str]:
    """Capitalized names imported from the component library, in source order, without duplicates."""
    names = extract_named_imports(code, import_path)
    return [name for name in dict.fromkeys(names) if name[:1].isupper()]


def _layout_choices(code: str) -> list[dict]:
    choices = []
    has_grid = "Grid" in code
    has_stack = "Stack" in code
    has_flex = "Flex" in code or re.search(r"display:\s*['\"]?flex", code, re.IGNORECASE) is not None

    if has_grid:
        columns = re.search(r"columns?[=:]\s*[{]?\s*(\d+|[{][^}]+[}])", code, re.IGNORECASE)
        label = "responsive columns" if columns else "auto columns"
        choices.append({"pattern": "Grid", "reason": f"{label} for organized content arrangement"})

    if has_stack and not has_grid:
        horizontal = "HStack" in code or 'direction="row"' in code or "direction='row'" in code
        choices.append({
            "pattern": "Horizontal Stack" if horizontal else "Vertical Stack",
            "reason": (
                "inline element alignment with automatic spacing"
                if horizontal
                else "stacked sections with consistent gaps"
            ),
        })

    if has_flex and not has_stack and not has_grid:
        precise = re.search(r"justify", code, re.IGNORECASE) and re.search(r"align", code, re.IGNORECASE)
        choices.append({
            "pattern": "Flexbox",
            "reason": (
                "precise control over element distribution and alignment"
                if precise
                else "flexible element positioning"
            ),
        })

    if "Container" in code:
        choices.append({"pattern": "Container", "reason": "centered content with readable max-width"})
    return choices


def _style_choices(code: str) -> list[dict]:
    choices = []

    variants = list(dict.fromkeys(_VARIANT_RE.findall(code)))
    for variant in variants[:2]:
        if variant in VARIANT_REASONS:
            choices.append({"property": "variant", "value": variant, "reason": VARIANT_REASONS[variant]})

    colors = list(dict.fromkeys(_COLOR_RE.findall(code)))
    for color in colors[:2]:
        lowered = color.lower()
        for key, reason in SEMANTIC_COLORS.items():
            if key in lowered:
                choices.append({"property": "color", "value": color, "reason": reason})
                break
    return choices


def analyze_generated_code(code: str, import_path: str) -> dict:
    """Return `componentsUsed`, `layoutChoices` and `styleChoices` for the completion payload."""
    components = []
    for name in imported_components(code, import_path):
        entry = {"name": name}
        if name in COMPONENT_INSIGHTS:
            entry["reason"] = COMPONENT_INSIGHTS[name]
        components.append(entry)

    return {
        "componentsUsed": components,
        "layoutChoices": _layout_choices(code),
        "styleChoices": _style_choices(code),
    }
