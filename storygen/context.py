"""Session collaborators — injected once at session start instead of read from globals.

Every suspension point of a session (capability discovery, model call,
persistence, disconnect check) sits behind one of these, so tests can fake
each independently.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from langchain_anthropic import ChatAnthropic
from langchain_google_genai import ChatGoogleGenerativeAI

from storygen.config import PROVIDER_KEY_ENV, load_config, provider_api_key
from storygen.discovery import CapabilityDiscovery, StaticCapabilityDiscovery
from storygen.errors import ConfigurationError, SessionCancelled
from storygen.utils.formatter import FileStoryStore
from storygen.utils.parsing import ainvoke_with_retry

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    async def complete(self, messages: list[dict]) -> str: ...


class StoryStore(Protocol):
    async def save(self, file_name: str, content: str, *, overwrite: bool = False) -> str: ...


def _reply_text(content) -> str:
    """Flatten an AIMessage content (str or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainModelClient:
    """ModelClient over a LangChain chat model, with transient-error retries and a per-call timeout."""

    def __init__(self, llm, max_retries: int = 2, timeout: float | None = None):
        self.llm = llm
        self.max_retries = max_retries
        self.timeout = timeout

    async def complete(self, messages: list[dict]) -> str:
        response = await ainvoke_with_retry(
            self.llm, messages, self.max_retries, timeout=self.timeout
        )
        return _reply_text(response.content)


def require_credentials(config: dict) -> None:
    provider = config.get("provider")
    if not provider_api_key(config):
        env_name = PROVIDER_KEY_ENV.get(provider, "an API key")
        raise ConfigurationError(
            f"No credentials configured for provider '{provider}'.",
            code="PROVIDER_NOT_CONFIGURED",
            suggestion=f"Set {env_name} in your environment or .env file.",
        )


def build_chat_model(config: dict):
    """Instantiate the configured provider's chat model. Raises ConfigurationError without an API key."""
    require_credentials(config)

    provider = config.get("provider")
    if provider == "anthropic":
        return ChatAnthropic(
            model=config["model"],
            temperature=0,
            max_tokens=config.get("max_tokens", 8192),
        )
    if provider == "gemini":
        return ChatGoogleGenerativeAI(
            model=config["model"],
            temperature=0,
            max_output_tokens=config.get("max_tokens", 8192),
        )
    raise ConfigurationError(f"Unsupported provider '{provider}'.")


def build_model_client(config: dict) -> LangChainModelClient:
    return LangChainModelClient(
        build_chat_model(config),
        max_retries=config.get("llm_max_retries", 2),
        timeout=config.get("llm_timeout_seconds"),
    )


@dataclass
class GenerationContext:
    config: dict
    discovery: CapabilityDiscovery
    store: StoryStore
    model: ModelClient | None = None  # None → built from config per call
    postprocess: Callable[[str], str] | None = None
    is_disconnected: Callable[[], Awaitable[bool]] | None = None

    @classmethod
    def from_config(cls, config: dict | None = None, **overrides) -> "GenerationContext":
        """Context backed by config.yaml: static discovery, file store, LangChain model."""
        config = config if config is not None else load_config()
        fields = {
            "discovery": StaticCapabilityDiscovery(config),
            "store": FileStoryStore(config.get("output_path", "./generated/stories")),
        }
        fields.update(overrides)
        return cls(config=config, **fields)

    def model_client(self) -> ModelClient:
        return self.model if self.model is not None else build_model_client(self.config)

    @property
    def max_attempts(self) -> int:
        # Invalid values are reported by validate_config during init
        value = self.config.get("max_attempts")
        return value if isinstance(value, int) and value > 0 else 3

    async def ensure_connected(self) -> None:
        """Raise SessionCancelled if the caller has gone away."""
        if self.is_disconnected is not None and await self.is_disconnected():
            logger.info("Client disconnected; abandoning session")
            raise SessionCancelled()


def get_context(config) -> GenerationContext:
    """Pull the session's GenerationContext out of a node's RunnableConfig."""
    return config["configurable"]["context"]
