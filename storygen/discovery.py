"""Capability context — the set of names a generated artifact may reference.

Discovery itself is a black box behind `CapabilityDiscovery`; the static
implementation below serves the names listed in config.yaml.
"""

from dataclasses import dataclass
from typing import Protocol

from storygen.errors import DiscoveryError


@dataclass(frozen=True)
class CapabilityContext:
    framework: str
    import_path: str
    components: tuple[str, ...]
    icon_package: str | None = None
    icons: tuple[str, ...] = ()

    def component_summary(self, limit: int = 5) -> str:
        """`Box, Stack, Text and 3 more` style listing for suggestions."""
        if not self.components:
            return "no components"
        sample = ", ".join(self.components[:limit])
        extra = len(self.components) - limit
        return f"{sample} and {extra} more" if extra > 0 else sample


class CapabilityDiscovery(Protocol):
    async def discover(self) -> CapabilityContext: ...


class StaticCapabilityDiscovery:
    """Serves the component and icon lists straight from config."""

    def __init__(self, config: dict):
        self._config = config

    async def discover(self) -> CapabilityContext:
        components = tuple(dict.fromkeys(self._config.get("components") or ()))
        if not components:
            raise DiscoveryError(
                "No components configured.",
                details=f"import_path: {self._config.get('import_path') or '(unset)'}",
                suggestion="List the available components under `components` in config.yaml.",
            )
        return CapabilityContext(
            framework=self._config.get("framework", "react"),
            import_path=self._config.get("import_path", ""),
            components=components,
            icon_package=self._config.get("icon_package") or None,
            icons=tuple(self._config.get("icons") or ()),
        )
