"""End-to-end tests for generation sessions with a scripted model and in-memory store."""

import asyncio
from unittest.mock import AsyncMock

import anthropic
import httpx
import pytest

from storygen.graph import graph
from storygen.session import generate, new_session_state
from storygen.state import GenerationRequest

from conftest import CLEAN_STORY, HEADING_STORY, collect, fenced

MISSPELLED_STORY = """\
import React from 'react';
import { Buton } from '@/components';

export const Primary = () => <Buton>Go</Buton>;
"""


def _types(events):
    return [e["type"] for e in events]


def _terminal(events):
    return [e for e in events if e["type"] in ("completion", "error")]


class TestCleanFirstAttempt:
    def test_single_completion_no_retries(self, make_context, request_):
        context = make_context([fenced(CLEAN_STORY)])
        events = collect(generate(request_, context))

        assert _types(events)[-1] == "completion"
        assert len(_terminal(events)) == 1
        assert "retry" not in _types(events)
        assert len(context.model.calls) == 1

    def test_event_order(self, make_context, request_):
        events = collect(generate(request_, make_context([fenced(CLEAN_STORY)])))
        phases = [e["data"]["phase"] for e in events if e["type"] == "progress"]
        assert phases == [
            "config_loaded",
            "components_discovered",
            "components_discovered",
            "prompt_built",
            "llm_thinking",
            "code_extracted",
            "validating",
            "post_processing",
            "saving",
        ]
        assert _types(events).index("intent") < _types(events).index("validation")

    def test_completion_payload(self, make_context, request_):
        context = make_context([fenced(CLEAN_STORY)])
        completion = collect(generate(request_, context))[-1]["data"]

        assert completion["success"] is True
        assert completion["title"] == "Login Form With A Submit Button"
        assert completion["fileName"].startswith("login-form-with-a-submit-button-")
        assert completion["fileName"].endswith(".stories.tsx")
        assert completion["storyId"].startswith("story-")
        assert completion["summary"]["action"] == "created"
        assert completion["validation"]["isValid"] is True
        assert completion["metrics"]["llmCallsCount"] == 1
        assert [c["name"] for c in completion["componentsUsed"]] == ["Button", "Card", "Stack"]
        assert "title: 'Generated/Login Form With A Submit Button'" in completion["artifact"]
        assert completion["outputPath"] == f"memory://{completion['fileName']}"
        assert context.store.saved[completion["fileName"]] == completion["artifact"]


class TestSelfHealing:
    def test_fixed_on_second_attempt(self, make_context, request_):
        context = make_context([fenced(MISSPELLED_STORY), fenced(CLEAN_STORY)])
        events = collect(generate(request_, context))

        retries = [e["data"] for e in events if e["type"] == "retry"]
        assert len(retries) == 1
        assert retries[0]["attempt"] == 2
        assert retries[0]["errors"] == [
            'Invalid component: "Buton" does not exist. Did you mean "Button"?'
        ]
        assert events[-1]["type"] == "completion"
        assert events[-1]["data"]["validation"]["isValid"] is True
        assert events[-1]["data"]["metrics"]["llmCallsCount"] == 2

        correction = context.model.calls[1][-1]
        assert correction["role"] == "user"
        assert "CODE CORRECTION REQUIRED (Attempt 1 of 3)" in correction["content"]
        assert context.model.calls[1][-2]["role"] == "assistant"

    def test_no_progress_stops_early(self, make_context, request_):
        context = make_context([fenced(HEADING_STORY), fenced(HEADING_STORY), fenced(CLEAN_STORY)])
        events = collect(generate(request_, context))

        assert len(context.model.calls) == 2
        assert len([e for e in events if e["type"] == "retry"]) == 1
        completion = events[-1]["data"]
        assert events[-1]["type"] == "completion"
        assert completion["validation"]["isValid"] is False
        assert completion["validation"]["errors"] == []
        assert any(w.startswith("Line 6: ") for w in completion["validation"]["warnings"])
        assert '<Text as="h1">Welcome</Text>' in completion["artifact"]
        assert completion["suggestions"]

    def test_cap_ships_best_attempt(self, make_context, request_):
        two_errors = HEADING_STORY.replace("{ Text }", "{ Text, Buton }")
        context = make_context([fenced(two_errors), fenced(HEADING_STORY), fenced(two_errors)])
        events = collect(generate(request_, context))

        assert len(context.model.calls) == 3
        completion = events[-1]["data"]
        assert completion["metrics"]["llmCallsCount"] == 3
        assert "Buton" not in completion["artifact"]

    def test_single_attempt_cap(self, make_context, request_, config):
        config["max_attempts"] = 1
        context = make_context([fenced(HEADING_STORY)])
        events = collect(generate(request_, context))

        assert "retry" not in _types(events)
        assert events[-1]["type"] == "completion"
        assert events[-1]["data"]["validation"]["isValid"] is False


class TestNoArtifact:
    def test_three_empty_replies_end_in_recoverable_error(self, make_context, request_):
        context = make_context(["I cannot do that."] * 3)
        events = collect(generate(request_, context))

        assert _types(events)[-1] == "error"
        assert "completion" not in _types(events)
        error = events[-1]["data"]
        assert error["code"] == "NO_CODE_GENERATED"
        assert error["recoverable"] is True
        assert error["metrics"]["llmCallsCount"] == 3
        assert len([e for e in events if e["type"] == "retry"]) == 2
        assert context.store.saved == {}

    def test_archive_holds_every_empty_attempt(self, make_context, request_):
        context = make_context(["I cannot do that."] * 3)
        final = asyncio.run(graph.ainvoke(
            new_session_state(request_), {"configurable": {"context": context}}
        ))
        assert [a.ordinal for a in final["attempts"]] == [1, 2, 3]
        assert all(a.artifact is None for a in final["attempts"])

    def test_clarification_turn_requested(self, make_context, request_):
        context = make_context(["No code here.", fenced(CLEAN_STORY)])
        events = collect(generate(request_, context))

        assert events[-1]["type"] == "completion"
        assert "code block" in context.model.calls[1][-1]["content"]


class TestModelFailure:
    def test_exception_gives_single_error(self, make_context, request_):
        context = make_context([RuntimeError("boom")])
        events = collect(generate(request_, context))

        assert len(_terminal(events)) == 1
        assert "retry" not in _types(events)
        assert events[-1]["data"]["code"] == "LLM_CALL_FAILED"
        assert events[-1]["data"]["metrics"]["llmCallsCount"] == 1

    def test_timeout_reported(self, make_context, request_):
        context = make_context([asyncio.TimeoutError()])
        events = collect(generate(request_, context))
        assert events[-1]["data"]["code"] == "LLM_TIMEOUT"

    def test_sdk_timeout_reported(self, make_context, request_):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        context = make_context([anthropic.APITimeoutError(request=request)])
        events = collect(generate(request_, context))
        assert events[-1]["data"]["code"] == "LLM_TIMEOUT"

    def test_failure_after_retry_still_single_terminal(self, make_context, request_):
        context = make_context([fenced(MISSPELLED_STORY), RuntimeError("boom")])
        events = collect(generate(request_, context))
        assert len(_terminal(events)) == 1
        assert events[-1]["type"] == "error"


class TestSessionSetupErrors:
    def test_empty_prompt(self, make_context):
        context = make_context([])
        events = collect(generate(GenerationRequest(prompt="   "), context))

        assert len(events) == 1
        assert events[0]["data"]["code"] == "MISSING_PROMPT"
        assert events[0]["data"]["metrics"]["llmCallsCount"] == 0

    def test_no_components_configured(self, make_context, request_, config):
        config["components"] = []
        context = make_context([fenced(CLEAN_STORY)])
        events = collect(generate(request_, context))

        assert events[-1]["data"]["code"] == "DISCOVERY_FAILED"
        assert context.model.calls == []

    def test_invalid_config(self, make_context, request_, config):
        config["import_path"] = ""
        events = collect(generate(request_, make_context([])))
        assert events[-1]["data"]["code"] == "CONFIG_ERROR"

    @pytest.mark.parametrize("setting,value", [
        ("deny_list", {"patterns": ["^Styled(.*"]}),
        ("pattern_rules", [{"message": "No sx.", "pattern": "sx=("}]),
        ("pattern_rules", [{"message": "No danger.", "attribute": "variant", "value": "[danger"}]),
    ])
    def test_invalid_regex_aborts_before_model_call(self, make_context, request_, config, setting, value):
        config[setting] = value
        context = make_context([fenced(CLEAN_STORY)])
        events = collect(generate(request_, context))

        assert events[-1]["type"] == "error"
        assert events[-1]["data"]["code"] == "CONFIG_ERROR"
        assert "not a valid regular expression" in events[-1]["data"]["details"]
        assert events[-1]["data"]["suggestion"]
        assert context.model.calls == []

    def test_missing_credentials(self, make_context, request_, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        events = collect(generate(request_, make_context([], model=None)))
        assert events[-1]["data"]["code"] == "PROVIDER_NOT_CONFIGURED"

    def test_store_failure(self, make_context, request_):
        store = AsyncMock()
        store.save.side_effect = OSError("disk full")
        events = collect(generate(request_, make_context([fenced(CLEAN_STORY)], store=store)))

        assert events[-1]["type"] == "error"
        assert events[-1]["data"]["code"] == "SAVE_FAILED"
        assert "completion" not in _types(events)


class TestModification:
    def test_update_keeps_identity(self, make_context):
        request = GenerationRequest(
            prompt="Make the button outlined",
            file_name="login-form-ab12cd34.stories.tsx",
            is_update=True,
            original_title="Login Form",
            previous_code=CLEAN_STORY,
        )
        context = make_context([fenced(CLEAN_STORY)])
        events = collect(generate(request, context))

        intent = next(e["data"] for e in events if e["type"] == "intent")
        assert intent["requestType"] == "modification"
        completion = events[-1]["data"]
        assert completion["fileName"] == "login-form-ab12cd34.stories.tsx"
        assert completion["storyId"] == "story-ab12cd34"
        assert completion["title"] == "Login Form"
        assert completion["summary"]["action"] == "updated"
        assert "PREVIOUS GENERATED CODE" in context.model.calls[0][1]["content"]

    def test_postprocess_hook_applied(self, make_context, request_):
        context = make_context([fenced(CLEAN_STORY)], postprocess=lambda code: code + "\n// reviewed\n")
        completion = collect(generate(request_, context))[-1]["data"]
        assert completion["artifact"].endswith("// reviewed\n")


class TestCancellation:
    def test_disconnect_before_save_stops_silently(self, make_context, request_):
        context = make_context(
            [fenced(CLEAN_STORY)], is_disconnected=AsyncMock(side_effect=[False, True])
        )
        events = collect(generate(request_, context))

        assert _terminal(events) == []
        assert context.store.saved == {}
        assert events[-1]["data"]["phase"] == "post_processing"

    def test_disconnect_before_first_call(self, make_context, request_):
        context = make_context([fenced(CLEAN_STORY)], is_disconnected=AsyncMock(return_value=True))
        events = collect(generate(request_, context))

        assert _terminal(events) == []
        assert context.model.calls == []


class TestConcurrentSessions:
    def test_sessions_do_not_share_state(self, make_context):
        first = make_context([fenced(CLEAN_STORY)])
        second = make_context([fenced(MISSPELLED_STORY), fenced(CLEAN_STORY)])

        async def _drain(request, context):
            return [event async for event in generate(request, context)]

        async def _both():
            return await asyncio.gather(
                _drain(GenerationRequest(prompt="A pricing card"), first),
                _drain(GenerationRequest(prompt="A profile header"), second),
            )

        events_a, events_b = asyncio.run(_both())

        assert events_a[-1]["data"]["metrics"]["llmCallsCount"] == 1
        assert events_b[-1]["data"]["metrics"]["llmCallsCount"] == 2
        assert "retry" not in _types(events_a)
        assert events_a[-1]["data"]["title"] == "A Pricing Card"
        assert events_b[-1]["data"]["title"] == "A Profile Header"
        assert len(first.store.saved) == len(second.store.saved) == 1
