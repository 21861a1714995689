"""Shared fixtures for the storygen test suite."""

import asyncio

import pytest

from storygen.config import DEFAULTS
from storygen.context import GenerationContext
from storygen.discovery import CapabilityContext, StaticCapabilityDiscovery
from storygen.state import GenerationRequest

CLEAN_STORY = """\
import React from 'react';
import type { Meta, StoryObj } from '@storybook/react';
import { Button, Card, Stack } from '@/components';

const meta: Meta<typeof Card> = {
  title: 'Generated/Placeholder',
  component: Card,
};

export default meta;
type Story = StoryObj<typeof Card>;

export const Primary: Story = {
  render: () => (
    <Card>
      <Stack>
        <Button variant="filled">Save</Button>
      </Stack>
    </Card>
  ),
};
"""

HEADING_STORY = """\
import React from 'react';
import { Text } from '@/components';

export default { title: 'Generated/Welcome', component: Text };

export const Primary = () => <Text as="h1">Welcome</Text>;
"""


def fenced(code: str, lang: str = "tsx") -> str:
    """Wrap code the way a model reply does."""
    return f"Here is your story:\n\n```{lang}\n{code}```\n"


class ScriptedModel:
    """ModelClient that plays back canned replies (or raises canned exceptions)."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, messages):
        self.calls.append([dict(m) for m in messages])
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class MemoryStore:
    """StoryStore that keeps saved stories in a dict."""

    def __init__(self):
        self.saved = {}

    async def save(self, file_name, content, *, overwrite=False):
        self.saved[file_name] = content
        return f"memory://{file_name}"


def collect(agen) -> list[dict]:
    """Drain an async event generator from synchronous test code."""

    async def _drain():
        return [event async for event in agen]

    return asyncio.run(_drain())


@pytest.fixture
def config():
    """Minimal valid config, independent of config.yaml and the environment."""
    return {
        **DEFAULTS,
        "import_path": "@/components",
        "components": ["Box", "Stack", "Text", "Heading", "Button", "Card"],
        "deny_list": {
            "names": ["CustomCard"],
            "patterns": ["^Styled.*", "^.*Story$"],
            "replacements": {"CustomCard": "Card"},
        },
        "story_prefix": "Generated/",
        "max_attempts": 3,
    }


@pytest.fixture
def capabilities():
    return CapabilityContext(
        framework="react",
        import_path="@/components",
        components=("Box", "Stack", "Text", "Heading", "Button", "Card"),
    )


@pytest.fixture
def request_():
    return GenerationRequest(prompt="Create a login form with a submit button")


@pytest.fixture
def make_context(config):
    """Build a GenerationContext around scripted replies and an in-memory store."""

    def _make(replies, **overrides):
        fields = {
            "discovery": StaticCapabilityDiscovery(config),
            "store": MemoryStore(),
            "model": ScriptedModel(replies),
        }
        fields.update(overrides)
        return GenerationContext(config=config, **fields)

    return _make
