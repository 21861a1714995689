"""Reference validation — every imported name must exist in the capability context."""

import difflib
import re
from dataclasses import dataclass, field

from storygen.utils.parsing import iter_nodes, node_text, parse_tsx

_IMPORT_BLOCK_RE = r"""import\s+(?:type\s+)?(?:[\w$]+\s*,\s*)?\{([^}]*)\}\s*from\s*['"]%s['"]"""


@dataclass(frozen=True)
class DenyList:
    names: frozenset = frozenset()
    patterns: tuple = ()
    replacements: dict = field(default_factory=dict)

    @classmethod
    def from_config(cls, entry: dict | None) -> "DenyList":
        entry = entry or {}
        return cls(
            names=frozenset(entry.get("names") or ()),
            patterns=tuple(re.compile(p) for p in entry.get("patterns") or ()),
            replacements=dict(entry.get("replacements") or {}),
        )

    def matches(self, name: str, allowed) -> bool:
        """Allow-listed names are never denied."""
        if name in allowed:
            return False
        if name in self.names:
            return True
        return any(p.search(name) for p in self.patterns)

    def remediation(self, name: str, kind: str = "component") -> str:
        replacement = self.replacements.get(name)
        if replacement:
            return f'"{name}" is not allowed. Use {replacement} instead.'
        return f'"{name}" appears to be a story export or made-up {kind}. Use standard {kind} names.'


def _imports_from_tree(root, module: str) -> list[str]:
    names = []
    for node in iter_nodes(root):
        if node.type != "import_statement":
            continue
        source = node.child_by_field_name("source")
        if source is None or node_text(source).strip("'\"") != module:
            continue
        for spec in iter_nodes(node):
            if spec.type == "import_specifier":
                name_node = spec.child_by_field_name("name")
                if name_node is not None:
                    names.append(node_text(name_node))
    return names


def _imports_from_text(code: str, module: str) -> list[str]:
    names = []
    for match in re.finditer(_IMPORT_BLOCK_RE % re.escape(module), code):
        for item in match.group(1).split(","):
            name = re.sub(r"^type\s+", "", item.strip()).split(" as ")[0].strip()
            if name:
                names.append(name)
    return names


def extract_named_imports(code: str, module: str) -> list[str]:
    """Names imported from `module`, in source order.

    Uses the parse tree when the code parses; otherwise scans the text.
    """
    if not module:
        return []
    root = parse_tsx(code).root_node
    if root.has_error:
        return _imports_from_text(code, module)
    return _imports_from_tree(root, module)


def suggest_name(name: str, allowed) -> str | None:
    """Nearest allowed name: case-insensitive match, then fuzzy match, then substring."""
    candidates = sorted(allowed)
    lowered = {c.lower(): c for c in candidates}
    if name.lower() in lowered:
        return lowered[name.lower()]

    close = difflib.get_close_matches(name, candidates, n=1, cutoff=0.6)
    if close:
        return close[0]

    target = name.lower()
    for candidate in candidates:
        if len(candidate) > 2 and (candidate.lower() in target or target in candidate.lower()):
            return candidate
    return None


def _check_names(names, allowed, deny: DenyList, kind: str) -> list[str]:
    errors = []
    label = kind.capitalize()
    for name in names:
        if deny.matches(name, allowed):
            errors.append(f"Blacklisted {kind} detected: {deny.remediation(name, kind)}")
        elif name not in allowed:
            suggestion = suggest_name(name, allowed)
            if suggestion:
                errors.append(f'Invalid {kind}: "{name}" does not exist. Did you mean "{suggestion}"?')
            else:
                errors.append(f'Invalid {kind}: "{name}" does not exist.')
    return errors


def check_references(code: str, capabilities, deny: DenyList | None = None) -> list[str]:
    """Check imported component (and icon) names against the allow- and deny-lists."""
    deny = deny or DenyList()
    errors = _check_names(
        extract_named_imports(code, capabilities.import_path),
        set(capabilities.components),
        deny,
        "component",
    )
    if capabilities.icon_package:
        errors.extend(
            _check_names(
                extract_named_imports(code, capabilities.icon_package),
                set(capabilities.icons),
                DenyList(),
                "icon",
            )
        )
    return errors
