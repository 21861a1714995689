"""Output Formatter — story titles, file naming, and writing the final artifact to disk."""

import asyncio
import hashlib
import logging
import re
import time
from pathlib import Path

from storygen.errors import PersistenceError
from storygen.state import GenerationRequest

logger = logging.getLogger(__name__)

STORY_EXTENSION = ".stories.tsx"
MAX_SLUG_LENGTH = 60

_LEADING_PHRASES = [
    re.compile(r"^generate (a|an|the)? ", re.IGNORECASE),
    re.compile(r"^build (a|an|the)? ", re.IGNORECASE),
    re.compile(r"^create (a|an|the)? ", re.IGNORECASE),
    re.compile(r"^make (a|an|the)? ", re.IGNORECASE),
    re.compile(r"^design (a|an|the)? ", re.IGNORECASE),
    re.compile(r"^show (me )?(a|an|the)? ", re.IGNORECASE),
]

_STORY_ID_RE = re.compile(r"^story-([a-f0-9]{8})$")
_FILE_HASH_RE = re.compile(r"-([a-f0-9]{8})(?:\.stories\.tsx?)?$")
_META_TITLE_RE = re.compile(
    r"""(const\s+meta\s*(?::\s*\w+(?:<[^>]+>)?)?\s*=\s*\{[\s\S]*?title:\s*["'])([^"']+)(["'])"""
)
_DEFAULT_EXPORT_TITLE_RE = re.compile(r"""(export\s+default\s*\{[\s\S]*?title:\s*["'])([^"']+)(["'])""")


def clean_prompt_for_title(prompt: str) -> str:
    """Derive a title from the prompt: drop "create a"-style openers, title-case the rest."""
    if not prompt or not isinstance(prompt, str):
        return "Untitled Story"

    cleaned = prompt.strip()
    for regex in _LEADING_PHRASES:
        cleaned = regex.sub("", cleaned)

    cleaned = re.sub(r"[^\w\s'\"?!-]", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = re.sub(r"\b\w", lambda m: m.group(0).upper(), cleaned)
    return cleaned or "Untitled Story"


def escape_title(title: str) -> str:
    """Escape a title for use inside a TS string literal."""
    return (
        title.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("'", "\\'")
        .replace("`", "\\`")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def file_name_from_title(title: str, hash_: str, extension: str = STORY_EXTENSION) -> str:
    """`Login Form` + `ab12cd34` → `login-form-ab12cd34.stories.tsx`."""
    title = title or "untitled"
    hash_ = hash_ or "default"
    base = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:MAX_SLUG_LENGTH]
    return f"{base}-{hash_}{extension}"


def _short_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:8]


def story_identity(request: GenerationRequest, title: str) -> tuple[str, str]:
    """Return (file_name, story_id) for the request.

    Updates keep the caller's file name / story id and the hash embedded in
    them; new stories get a fresh hash of the prompt plus the current time.
    """
    if request.is_update and (request.file_name or request.story_id):
        if request.story_id:
            story_id = request.story_id
            match = _STORY_ID_RE.match(story_id)
            hash_ = match.group(1) if match else _short_hash(request.prompt)
        else:
            match = _FILE_HASH_RE.search(request.file_name)
            hash_ = match.group(1) if match else _short_hash(request.prompt)
            story_id = f"story-{hash_}"
        file_name = request.file_name or file_name_from_title(title, hash_)
    else:
        hash_ = _short_hash(f"{request.prompt}{int(time.time() * 1000)}")
        file_name = request.file_name or file_name_from_title(title, hash_)
        story_id = f"story-{hash_}"

    if not file_name.endswith(STORY_EXTENSION):
        file_name += STORY_EXTENSION
    return file_name, story_id


def apply_title(code: str, title: str, prefix: str) -> str:
    """Set the story's meta title to `prefix + title`, leaving the rest untouched."""
    escaped = escape_title(title)
    full_title = escaped if escaped.startswith(prefix) else prefix + escaped

    def _replace(match):
        return match.group(1) + full_title + match.group(3)

    updated = _META_TITLE_RE.sub(_replace, code, count=1)
    if not prefix or prefix not in updated:
        updated = _DEFAULT_EXPORT_TITLE_RE.sub(_replace, updated, count=1)
    return updated


class FileStoryStore:
    """Writes finished stories under `output_path`.

    Updates overwrite the named file; new stories never clobber an existing
    file and get a `-2`, `-3`, ... suffix instead.
    """

    def __init__(self, output_path: str | Path):
        self.output_dir = Path(output_path)

    def _target(self, file_name: str, overwrite: bool) -> Path:
        path = self.output_dir / file_name
        if overwrite or not path.exists():
            return path

        stem = file_name[: -len(STORY_EXTENSION)] if file_name.endswith(STORY_EXTENSION) else path.stem
        suffix = STORY_EXTENSION if file_name.endswith(STORY_EXTENSION) else path.suffix
        counter = 1
        while path.exists():
            counter += 1
            path = self.output_dir / f"{stem}-{counter}{suffix}"
        return path

    def _write(self, file_name: str, content: str, overwrite: bool) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self._target(file_name, overwrite)
        path.write_text(content, encoding="utf-8")
        logger.info("Story written to %s", path)
        return str(path)

    async def save(self, file_name: str, content: str, *, overwrite: bool = False) -> str:
        try:
            return await asyncio.to_thread(self._write, file_name, content, overwrite)
        except OSError as e:
            raise PersistenceError(f"Could not write {file_name}", details=str(e)) from e
