"""Error aggregation — merges the three validators into one Diagnostics value."""

from storygen.state import Diagnostics
from storygen.utils.patterns import DEFAULT_RULES, PatternViolation, check_patterns
from storygen.utils.references import DenyList, check_references
from storygen.utils.syntax import StructuralResult, check_structure


def aggregate_diagnostics(
    structure: StructuralResult | None,
    violations: list[PatternViolation] | None,
    reference_errors: list[str] | None,
) -> Diagnostics:
    """Merge validator outputs. Every error stays distinct; nothing is deduplicated."""
    structure = structure or StructuralResult()
    return Diagnostics(
        syntax_errors=tuple(structure.errors),
        pattern_errors=tuple(f"Line {v.line}: {v.message}" for v in violations or ()),
        reference_errors=tuple(reference_errors or ()),
        warnings=tuple(structure.warnings),
        auto_fix_applied=structure.fixed_artifact is not None,
    )


def validate_artifact(
    artifact: str,
    capabilities,
    *,
    rules=DEFAULT_RULES,
    deny: DenyList | None = None,
    require_react_import: bool = True,
) -> tuple[str, Diagnostics]:
    """Run the full validator set on one artifact.

    The structural check runs first; if it offers a corrected variant, that
    variant is substituted before the pattern and reference checks. Returns
    the (possibly corrected) artifact and its diagnostics.
    """
    structure = check_structure(
        artifact,
        framework=capabilities.framework,
        import_path=capabilities.import_path,
        require_react_import=require_react_import,
    )
    effective = structure.fixed_artifact or artifact

    violations = check_patterns(effective, rules)
    reference_errors = check_references(effective, capabilities, deny)

    return effective, aggregate_diagnostics(structure, violations, reference_errors)


def format_errors_for_log(diagnostics: Diagnostics) -> str:
    """Compact per-category counts, e.g. `Syntax(1), Reference(2)`."""
    parts = []
    if diagnostics.syntax_errors:
        parts.append(f"Syntax({len(diagnostics.syntax_errors)})")
    if diagnostics.pattern_errors:
        parts.append(f"Pattern({len(diagnostics.pattern_errors)})")
    if diagnostics.reference_errors:
        parts.append(f"Reference({len(diagnostics.reference_errors)})")
    return ", ".join(parts) if parts else "None"
