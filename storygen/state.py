"""Session state — the single source of truth passed through the graph."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, TypedDict


@dataclass(frozen=True)
class Diagnostics:
    """Validation outcome for one artifact.

    Clean iff all three error tuples are empty. `warnings` and
    `auto_fix_applied` are informational only.
    """

    syntax_errors: tuple[str, ...] = ()
    pattern_errors: tuple[str, ...] = ()
    reference_errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    auto_fix_applied: bool = False

    @property
    def is_clean(self) -> bool:
        return not (self.syntax_errors or self.pattern_errors or self.reference_errors)

    @property
    def total(self) -> int:
        return len(self.syntax_errors) + len(self.pattern_errors) + len(self.reference_errors)

    def all_errors(self) -> list[str]:
        return [*self.syntax_errors, *self.pattern_errors, *self.reference_errors]

    def error_multiset(self) -> Counter:
        return Counter(self.all_errors())


@dataclass(frozen=True)
class Attempt:
    """One model call + extraction + validation cycle. Immutable once diagnosed."""

    ordinal: int
    artifact: str | None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    reply: str = ""

    @property
    def has_artifact(self) -> bool:
        return self.artifact is not None

    @property
    def is_clean(self) -> bool:
        return self.has_artifact and self.diagnostics.is_clean


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    reason: str = ""


@dataclass(frozen=True)
class ImageInput:
    """Reference image attached to a request (base64 payload or URL)."""

    type: str  # "base64" | "url"
    data: str | None = None
    url: str | None = None
    media_type: str = "image/png"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    file_name: str | None = None
    story_id: str | None = None
    is_update: bool = False
    original_title: str | None = None
    previous_code: str | None = None
    conversation: tuple[dict, ...] = ()  # role-tagged turns from the chat UI
    images: tuple[ImageInput, ...] = ()
    considerations: str | None = None

    @property
    def is_modification(self) -> bool:
        return bool(self.previous_code) or self.is_update


class GenerationState(TypedDict):
    request: GenerationRequest  # Immutable after init.
    started_at: float  # time.monotonic() at session start.
    messages: list[dict]  # Role-tagged transcript sent to the model.
    capabilities: Any  # CapabilityContext once discovery has run.
    attempts: list[Attempt]  # Attempt archive, in ordinal order.
    ordinal: int  # Ordinal of the latest model call. Starts at 0.
    llm_calls: int  # Monotonic model-call counter.
    reply: str  # Raw text of the latest model reply.
    artifact: str | None  # Latest extracted (then auto-corrected) artifact.
    decision: RetryDecision | None
    error: dict | None  # Terminal error payload; routes to `aborted`.
