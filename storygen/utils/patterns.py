"""Convention rules — props and element usages the target design system forbids.

Rules are matched against parsed JSX attributes. Plain line scanning is only
used when the artifact does not parse, or for rules that only define a regex.
"""

import re
from dataclasses import dataclass

from storygen.utils.parsing import iter_nodes, node_text, parse_tsx

_ELEMENT_TYPES = {"jsx_opening_element", "jsx_self_closing_element"}


@dataclass(frozen=True)
class PatternRule:
    message: str
    attribute: str | None = None  # JSX prop name
    element: str | None = None  # restrict to this element name
    value: re.Pattern | None = None  # prop value must match (quotes stripped)
    line_pattern: re.Pattern | None = None  # fallback / regex-only rule


@dataclass(frozen=True)
class PatternViolation:
    line: int
    message: str


DEFAULT_RULES = (
    PatternRule(
        message="The `UNSAFE_style` prop is strictly forbidden. Do not use it for any reason.",
        attribute="UNSAFE_style",
        line_pattern=re.compile(r"UNSAFE_style\s*=\s*\{", re.IGNORECASE),
    ),
    PatternRule(
        message="The `UNSAFE_className` prop is forbidden.",
        attribute="UNSAFE_className",
        line_pattern=re.compile(r"UNSAFE_className\s*=\s*['\"{]", re.IGNORECASE),
    ),
    PatternRule(
        message=(
            'Text component does not support heading elements (h1-h6) in the "as" prop. '
            "Use Heading component instead."
        ),
        attribute="as",
        element="Text",
        value=re.compile(r"^h[1-6]$", re.IGNORECASE),
        line_pattern=re.compile(r"<Text\s+as\s*=\s*[\"']h[1-6][\"']", re.IGNORECASE),
    ),
)


def rules_from_config(entries: list[dict] | None) -> tuple[PatternRule, ...]:
    """Build DEFAULT_RULES plus any `pattern_rules` entries from config."""
    rules = list(DEFAULT_RULES)
    for entry in entries or []:
        rules.append(
            PatternRule(
                message=entry["message"],
                attribute=entry.get("attribute"),
                element=entry.get("element"),
                value=re.compile(entry["value"]) if entry.get("value") else None,
                line_pattern=re.compile(entry["pattern"]) if entry.get("pattern") else None,
            )
        )
    return tuple(rules)


def _attribute_parts(attr_node) -> tuple[str, str | None]:
    named = attr_node.named_children
    name = node_text(named[0]) if named else ""
    value = None
    if len(named) > 1:
        value = node_text(named[1]).strip()
        if len(value) >= 2 and value[0] in "\"'" and value[-1] == value[0]:
            value = value[1:-1]
    return name, value


def _element_name(element_node) -> str:
    name_node = element_node.child_by_field_name("name")
    return node_text(name_node) if name_node is not None else ""


def _scan_attributes(root, rule: PatternRule) -> list[PatternViolation]:
    violations = []
    for node in iter_nodes(root):
        if node.type not in _ELEMENT_TYPES:
            continue
        if rule.element and _element_name(node) != rule.element:
            continue
        for child in node.named_children:
            if child.type != "jsx_attribute":
                continue
            name, value = _attribute_parts(child)
            if name != rule.attribute:
                continue
            if rule.value is not None and (value is None or not rule.value.search(value)):
                continue
            violations.append(PatternViolation(line=child.start_point[0] + 1, message=rule.message))
    return violations


def _scan_lines(lines: list[str], rule: PatternRule) -> list[PatternViolation]:
    return [
        PatternViolation(line=index, message=rule.message)
        for index, line in enumerate(lines, 1)
        if rule.line_pattern.search(line)
    ]


def check_patterns(artifact: str, rules=DEFAULT_RULES) -> list[PatternViolation]:
    """Return line-tagged convention violations, ordered by line."""
    root = parse_tsx(artifact).root_node
    parsed = not root.has_error
    lines = artifact.split("\n")

    violations = []
    for rule in rules:
        if parsed and rule.attribute:
            violations.extend(_scan_attributes(root, rule))
        elif rule.line_pattern is not None:
            violations.extend(_scan_lines(lines, rule))

    return sorted(violations, key=lambda v: v.line)
