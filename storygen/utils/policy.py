"""Retry policy and best-attempt selection for the self-healing loop."""

from storygen.state import Attempt, Diagnostics, RetryDecision

CAP_REACHED = "attempt cap reached"
NO_PROGRESS = "no progress between attempts"


def should_continue_retrying(
    ordinal: int,
    max_attempts: int,
    history: list[Diagnostics],
) -> RetryDecision:
    """Decide whether another model call is warranted.

    First match wins:
    1. ordinal >= max_attempts → stop (cap reached)
    2. the latest two diagnostics carry the same non-empty error multiset → stop
    3. otherwise → continue

    Only the immediately preceding attempt is compared against the latest.
    """
    if ordinal >= max_attempts:
        return RetryDecision(should_retry=False, reason=CAP_REACHED)

    if len(history) >= 2:
        current = history[-1].error_multiset()
        previous = history[-2].error_multiset()
        if current and current == previous:
            return RetryDecision(should_retry=False, reason=NO_PROGRESS)

    return RetryDecision(should_retry=True)


def diagnostics_history(attempts: list[Attempt]) -> list[Diagnostics]:
    """Diagnostics of the attempts that produced an artifact, in ordinal order."""
    return [a.diagnostics for a in attempts if a.has_artifact]


def select_best_attempt(attempts: list[Attempt]) -> Attempt | None:
    """Pick the artifact-bearing attempt with the fewest errors.

    Ties go to the earliest ordinal. Returns None if no attempt produced an
    artifact.
    """
    candidates = [a for a in attempts if a.has_artifact]
    if not candidates:
        return None
    return min(candidates, key=lambda a: (a.diagnostics.total, a.ordinal))
