"""Structural validation — parses the artifact and repairs what it safely can.

A repaired variant is only offered when it parses cleanly; the caller is
expected to substitute it before running the remaining validators.
"""

import logging
import re
from dataclasses import dataclass, field

from storygen.utils.parsing import iter_nodes, node_text, parse_tsx

logger = logging.getLogger(__name__)

_JSX_NODE_TYPES = {"jsx_element", "jsx_self_closing_element"}
_REACT_IMPORT_RE = re.compile(r"import\s+React\b|\*\s+as\s+React\b")
_OPEN_TAG_AT_END_RE = re.compile(r"<[A-Za-z][^>]*$")
_CLOSERS = {"{": "}", "(": ")", "[": "]"}
_MAX_REPORTED_ERRORS = 10


@dataclass
class StructuralResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    fixed_artifact: str | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors


def collect_syntax_errors(root) -> list[str]:
    """Return `Line L, Column C: ...` messages for ERROR and MISSING nodes."""
    errors = []
    if not root.has_error:
        return errors

    stack = [root]
    while stack and len(errors) < _MAX_REPORTED_ERRORS:
        node = stack.pop()
        row, column = node.start_point
        if node.is_missing:
            errors.append(f"Line {row + 1}, Column {column + 1}: Missing '{node.type}'")
            continue
        if node.type == "ERROR":
            snippet = node_text(node).strip().splitlines()
            near = snippet[0][:40] if snippet else ""
            errors.append(f"Line {row + 1}, Column {column + 1}: Unexpected syntax near '{near}'")
            continue
        if node.has_error:
            stack.extend(reversed(node.children))
    return errors


def _looks_truncated(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    if stripped.count('"') % 2 or stripped.count("'") % 2:
        return True
    return bool(_OPEN_TAG_AT_END_RE.search(stripped))


def _drop_truncated_tail(code: str) -> str:
    lines = code.rstrip().split("\n")
    if len(lines) > 1 and _looks_truncated(lines[-1]):
        return "\n".join(lines[:-1])
    return code


def _close_brackets(code: str) -> str:
    """Append closers for brackets left open, skipping string literals and line comments."""
    stack = []
    quote = None
    i = 0
    while i < len(code):
        ch = code[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "\"'`":
            quote = ch
        elif code.startswith("//", i):
            newline = code.find("\n", i)
            i = len(code) if newline == -1 else newline
            continue
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ")]}" and stack and _CLOSERS[stack[-1]] == ch:
            stack.pop()
        i += 1

    if not stack:
        return code
    return code.rstrip() + "\n" + "".join(_CLOSERS[ch] for ch in reversed(stack)) + "\n"


def attempt_repair(code: str) -> str:
    """Best-effort syntax repair: drop a truncated last line, close open brackets."""
    return _close_brackets(_drop_truncated_tail(code))


def _has_jsx(root) -> bool:
    return any(node.type in _JSX_NODE_TYPES for node in iter_nodes(root))


def add_react_import(code: str) -> str:
    first_import = re.search(r"^import\b", code, re.MULTILINE)
    if first_import:
        pos = first_import.start()
        return code[:pos] + "import React from 'react';\n" + code[pos:]
    return "import React from 'react';\n\n" + code


def rewrite_deep_imports(code: str, import_path: str) -> tuple[str, list[str]]:
    """Point `from '<import_path>/Sub/Path'` at `<import_path>` itself."""
    if not import_path:
        return code, []

    pattern = re.compile(r"""(from\s+)(['"])(%s/[^'"]+)\2""" % re.escape(import_path.rstrip("/")))
    notes = []

    def _replace(match):
        notes.append(f"Rewrote deep import '{match.group(3)}' to '{import_path}'")
        return f"{match.group(1)}{match.group(2)}{import_path}{match.group(2)}"

    return pattern.sub(_replace, code), notes


def _normalize(code: str, root, framework: str, import_path: str, require_react_import: bool):
    """Corrections applied to code that already parses. Returns (code, notes)."""
    notes = []
    code, deep_notes = rewrite_deep_imports(code, import_path)
    notes.extend(deep_notes)

    if framework == "react" and require_react_import:
        if not _REACT_IMPORT_RE.search(code) and _has_jsx(root):
            code = add_react_import(code)
            notes.append("Added missing React import")
    return code, notes


def check_structure(
    artifact: str,
    *,
    framework: str = "react",
    import_path: str = "",
    require_react_import: bool = True,
) -> StructuralResult:
    """Parse the artifact as TSX and report syntax errors.

    On a parse failure a repaired variant is attempted and returned in
    `fixed_artifact` only if it parses cleanly; the original errors are then
    cleared. On success, import normalizations may still produce a
    `fixed_artifact`.
    """
    result = StructuralResult()
    root = parse_tsx(artifact).root_node
    code = artifact

    if root.has_error:
        errors = collect_syntax_errors(root)
        repaired = attempt_repair(artifact)
        repaired_root = parse_tsx(repaired).root_node if repaired != artifact else None

        if repaired_root is None or repaired_root.has_error:
            result.errors = errors
            return result

        logger.info("Auto-fix repaired %d syntax error(s)", len(errors))
        result.warnings.append("Code was automatically fixed for syntax errors")
        code, root = repaired, repaired_root

    code, notes = _normalize(code, root, framework, import_path, require_react_import)
    result.warnings.extend(notes)

    if code != artifact:
        result.fixed_artifact = code
    return result
