"""Shared parsing and LLM utilities: code-block extraction, TSX parsing, retrying model calls."""

import asyncio
import logging
import re
from functools import lru_cache

import anthropic
import httpx
import tree_sitter_typescript as ts_typescript
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from tree_sitter import Language, Parser

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)
_BARE_SOURCE_RE = re.compile(r"^(?:import|export)\b", re.MULTILINE)


def extract_code_block(text: str) -> str | None:
    """Pull the artifact out of a model reply.

    Prefers the first fenced block; falls back to source text that starts at
    a line beginning with `import` or `export`. Returns None if neither exists.
    """
    if not text:
        return None

    match = _FENCE_RE.search(text)
    if match:
        code = match.group(1).strip()
        return code or None

    bare = _BARE_SOURCE_RE.search(text)
    if bare:
        return text[bare.start():].strip()

    return None


@lru_cache(maxsize=1)
def _tsx_parser() -> Parser:
    parser = Parser()
    parser.language = Language(ts_typescript.language_tsx())
    return parser


def parse_tsx(source: str):
    """Parse TSX source and return the tree-sitter Tree."""
    return _tsx_parser().parse(source.encode("utf-8"))


def iter_nodes(node):
    """Yield `node` and all its descendants, depth first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def node_text(node) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text else ""


# 529 is Anthropic's "overloaded"
TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 529)

# Everything a model call can raise when it runs out of time
TIMEOUT_ERRORS = (asyncio.TimeoutError, httpx.TimeoutException, anthropic.APITimeoutError)


def _is_transient(exc: BaseException) -> bool:
    """Return True if the exception is a transient HTTP/network error worth retrying.

    Covers raw httpx errors and the Anthropic SDK's wrappers around them
    (APITimeoutError is a subclass of APIConnectionError).
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, anthropic.APIConnectionError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    if isinstance(exc, anthropic.APIStatusError):
        return exc.status_code in TRANSIENT_STATUS_CODES
    return False


async def ainvoke_with_retry(
    llm,
    messages,
    max_retries: int = 2,
    *,
    timeout: float | None = None,
    wait_min: float = 2,
    wait_max: float = 16,
):
    """Await llm.ainvoke(messages) with exponential backoff on transient errors.

    Retries on HTTP 429/500/502/503/529, connection errors, and timeouts.
    Non-transient errors (auth failures, bad requests) are raised immediately.
    `timeout` bounds each individual call; exceeding it raises TimeoutError
    without a retry.
    """

    def _log_retry(state):
        logger.warning(
            "Transient error: %r. Retrying in %.0fs (attempt %d/%d)...",
            state.outcome.exception(),
            state.next_action.sleep,
            state.attempt_number,
            max_retries,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),  # +1 because first attempt counts
        wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
        retry=retry_if_exception(_is_transient),
        reraise=True,
        before_sleep=_log_retry,
    )

    async for attempt in retrying:
        with attempt:
            if timeout:
                return await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
            return await llm.ainvoke(messages)
