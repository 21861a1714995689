"""Entry point: reads the request, runs one generation session, reports progress on stderr."""

import asyncio
import logging
import sys
from pathlib import Path

from storygen.config import load_config
from storygen.context import GenerationContext
from storygen.errors import GenerationError
from storygen.session import generate
from storygen.state import GenerationRequest

USAGE = "Usage: storygen [--config PATH] [--update FILE] [prompt ...]"


def _configure_logging() -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[storygen] %(message)s"))
    root = logging.getLogger("storygen")
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def _print_event(event: dict) -> None:
    """One line per event on stderr."""
    data = event["data"]
    kind = event["type"]

    if kind == "progress":
        print(f"[storygen] [{data['step']}/{data['totalSteps']}] {data['message']}", file=sys.stderr)
    elif kind == "intent":
        print(f"[storygen] Strategy: {data['strategy']}", file=sys.stderr)
    elif kind == "validation":
        status = "passed" if data["isValid"] else f"{len(data['errors'])} error(s)"
        print(f"[storygen] Validation {status}", file=sys.stderr)
        for error in data["errors"]:
            print(f"    - {error}", file=sys.stderr)
    elif kind == "retry":
        print(
            f"[storygen] Retry {data['attempt']}/{data['maxAttempts']}: {data['reason']}",
            file=sys.stderr,
        )
    elif kind == "completion":
        metrics = data["metrics"]
        print(f"[storygen] Title: {data['title']}", file=sys.stderr)
        print(
            f"[storygen] {metrics['llmCallsCount']} model call(s) in {metrics['totalTimeMs']} ms",
            file=sys.stderr,
        )
        for warning in data["validation"]["warnings"]:
            print(f"    ! {warning}", file=sys.stderr)
    elif kind == "error":
        print(f"[storygen] Error [{data['code']}]: {data['message']}", file=sys.stderr)
        if data.get("details"):
            print(f"    {data['details']}", file=sys.stderr)
        if data.get("suggestion"):
            print(f"    {data['suggestion']}", file=sys.stderr)


def _update_request(prompt: str, path: Path, story_prefix: str = "") -> GenerationRequest:
    """Modification request for an existing story file."""
    previous = path.read_text(encoding="utf-8")
    title = None
    for line in previous.splitlines():
        stripped = line.strip()
        if stripped.startswith("title:"):
            title = stripped.split(":", 1)[1].strip().strip(",").strip("'\"")
            break
    return GenerationRequest(
        prompt=prompt,
        file_name=path.name,
        is_update=True,
        original_title=title.removeprefix(story_prefix) if title else None,
        previous_code=previous,
    )


async def run(request: GenerationRequest, context: GenerationContext) -> int:
    """Drive one session to its terminal event. Returns the process exit code."""
    exit_code = 1
    async for event in generate(request, context):
        _print_event(event)
        if event["type"] == "completion":
            print(event["data"]["outputPath"])
            exit_code = 0
    return exit_code


def main() -> None:
    """CLI entry point — accepts the prompt as arguments or from stdin."""
    args = sys.argv[1:]
    config_path = None
    update_path = None

    if "-h" in args or "--help" in args:
        print(USAGE)
        return

    if "--config" in args:
        i = args.index("--config")
        if i + 1 >= len(args):
            sys.exit(USAGE)
        config_path = args[i + 1]
        del args[i:i + 2]

    if "--update" in args:
        i = args.index("--update")
        if i + 1 >= len(args):
            sys.exit(USAGE)
        update_path = Path(args[i + 1])
        del args[i:i + 2]

    if args:
        prompt = " ".join(args)
    else:
        print("Describe the story to generate (Ctrl+D / Ctrl+Z to submit):", file=sys.stderr)
        prompt = sys.stdin.read()

    _configure_logging()

    try:
        config = load_config(config_path)
    except GenerationError as e:
        sys.exit(f"[storygen] {e.message}: {e.details}")

    if update_path is not None:
        if not update_path.is_file():
            sys.exit(f"[storygen] No such story file: {update_path}")
        request = _update_request(prompt, update_path, config.get("story_prefix", ""))
        config = {**config, "output_path": str(update_path.parent)}
    else:
        request = GenerationRequest(prompt=prompt)

    context = GenerationContext.from_config(config)
    sys.exit(asyncio.run(run(request, context)))


if __name__ == "__main__":
    main()
