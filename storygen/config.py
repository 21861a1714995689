"""Config loading — read explicitly at session start, never cached globally."""

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

from storygen.errors import ConfigurationError

# .env lives at the project root (parent of storygen/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

SUPPORTED_PROVIDERS = {"anthropic", "gemini"}

PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}

DEFAULTS = {
    "provider": "anthropic",
    "model": "claude-sonnet-4-5",
    "max_tokens": 8192,
    "llm_max_retries": 2,
    "llm_timeout_seconds": 120,
    "max_attempts": 3,
    "framework": "react",
    "import_path": "",
    "story_prefix": "Generated/",
    "output_path": "./generated/stories",
    "require_react_import": True,
    "components": [],
    "icon_package": None,
    "icons": [],
    "deny_list": {},
    "pattern_rules": [],
    "considerations": "",
}


def load_config(path: str | Path | None = None) -> dict:
    """Load the YAML config, apply defaults and environment overrides.

    Returns a fresh dict on every call so each session owns its own copy.
    """
    load_dotenv(_PROJECT_ROOT / ".env")

    config_path = Path(path) if path else CONFIG_PATH
    try:
        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not load {config_path}", details=str(e)) from e

    config = {**DEFAULTS, **loaded}

    if os.environ.get("STORYGEN_PROVIDER"):
        config["provider"] = os.environ["STORYGEN_PROVIDER"]
    if os.environ.get("STORYGEN_MODEL"):
        config["model"] = os.environ["STORYGEN_MODEL"]

    return config


def validate_config(config: dict) -> list[str]:
    """Return a list of configuration problems. Empty list = usable."""
    errors = []

    if config.get("provider") not in SUPPORTED_PROVIDERS:
        errors.append(
            f"Unsupported provider '{config.get('provider')}'. "
            f"Must be one of: {sorted(SUPPORTED_PROVIDERS)}"
        )
    if not config.get("model"):
        errors.append("Missing model name.")
    if not config.get("import_path"):
        errors.append("Missing import_path for the component library.")

    max_attempts = config.get("max_attempts")
    if not isinstance(max_attempts, int) or isinstance(max_attempts, bool) or max_attempts < 1:
        errors.append("max_attempts must be a positive integer.")

    for i, rule in enumerate(config.get("pattern_rules") or []):
        if not isinstance(rule, dict) or "message" not in rule:
            errors.append(f"pattern_rules[{i}] must be a mapping with a 'message'.")
            continue
        if not (rule.get("attribute") or rule.get("pattern")):
            errors.append(f"pattern_rules[{i}] needs an 'attribute' or a 'pattern'.")
        for key in ("pattern", "value"):
            if rule.get(key):
                errors.extend(_regex_problem(f"pattern_rules[{i}].{key}", rule[key]))

    deny_list = config.get("deny_list") or {}
    for i, pattern in enumerate(deny_list.get("patterns") or []):
        errors.extend(_regex_problem(f"deny_list.patterns[{i}]", pattern))

    return errors


def _regex_problem(where: str, pattern) -> list[str]:
    try:
        re.compile(pattern)
    except (re.error, TypeError) as e:
        return [f"{where} is not a valid regular expression: {e}"]
    return []


def provider_api_key(config: dict) -> str | None:
    """Return the API key for the configured provider, or None if unset."""
    env_name = PROVIDER_KEY_ENV.get(config.get("provider", ""))
    if env_name is None:
        return None
    return os.environ.get(env_name) or None
