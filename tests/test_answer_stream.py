"""Tests for the answer streaming engine.

Runs the real classifier, budget tracker and response cache against
in-memory stores, with a mocked context assembler and Anthropic client.
"""

import json
from datetime import datetime
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
from dateutil import tz

from app.core.answer_stream import CONTEXT_UNAVAILABLE, AnswerStreamer
from app.core.config import get_settings
from app.core.context_engine import ContextSnapshot
from app.core.model_router import ModelTier
from app.core.response_cache import ResponseCache
from app.core.schemas_ai import AnswerRequest, HistoryMessage
from app.core.token_budget import WARNING_EXHAUSTED, WARNING_HIGH, TokenBudgetTracker
from tests.fakes.ai_stores import FakeCacheStore, FakeUsageStore
from tests.fakes.anthropic_stream import make_stream_client

DAILY_LIMIT = 10_000


def parse_sse_events(text: str) -> List[dict]:
    """Parse SSE response body into a list of event dicts."""
    events = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("data: "):
            try:
                events.append(json.loads(line[6:]))
            except json.JSONDecodeError:
                pass
    return events


async def _collect(streamer: AnswerStreamer, request: AnswerRequest, **kwargs) -> List[dict]:
    chunks = [chunk async for chunk in streamer.stream(request, **kwargs)]
    return parse_sse_events("".join(chunks))


# ──────────────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def cache_store():
    return FakeCacheStore()


@pytest.fixture
def usage_store():
    return FakeUsageStore()


@pytest.fixture
def budget(usage_store):
    return TokenBudgetTracker(daily_limit=DAILY_LIMIT, usage_store=usage_store, timezone=tz.UTC)


@pytest.fixture
def cache(cache_store):
    return ResponseCache(backend=cache_store, timezone=tz.UTC)


@pytest.fixture
def assembler():
    mock = MagicMock()
    mock.assemble = AsyncMock(
        return_value=ContextSnapshot(
            page="/",
            text="FULL CONTEXT",
            summary_text="SUMMARY CONTEXT",
            focused_text="FOCUSED CONTEXT",
            gaps=[],
            built_at=datetime.now(tz.UTC),
        )
    )
    return mock


def _streamer(client, assembler, cache, budget, metrics_loader=None) -> AnswerStreamer:
    return AnswerStreamer(
        assembler=assembler,
        cache=cache,
        budget=budget,
        client_factory=lambda: client,
        metrics_loader=metrics_loader or AsyncMock(return_value=None),
    )


def _call_kwargs(client) -> dict:
    return client.messages.stream.call_args.kwargs


# ──────────────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────────────


class TestCheapQuestion:
    @pytest.mark.asyncio
    async def test_miss_then_cached_replay(self, assembler, cache, budget, usage_store):
        client = make_stream_client(["GPL is ", "at 7/10."], input_tokens=120, output_tokens=30)
        streamer = _streamer(client, assembler, cache, budget)
        request = AnswerRequest(question="What is GPL health?", session_id="s1")

        events = await _collect(streamer, request)

        assert [e["type"] for e in events] == ["meta", "text", "text", "done"]
        meta, done = events[0], events[-1]
        assert meta["tier"] == "cheap"
        assert meta["tier_label"] == "Quick"
        assert meta["tier_used"] == "cheap"
        assert meta["cached"] is False
        assert "".join(e["text"] for e in events if e["type"] == "text") == "GPL is at 7/10."
        assert done["usage"] == {"input_tokens": 120, "output_tokens": 30}
        assert done["cached"] is False
        assert done["remaining"] < DAILY_LIMIT

        kwargs = _call_kwargs(client)
        assert kwargs["model"] == get_settings().CHEAP_MODEL
        assert kwargs["max_tokens"] == get_settings().CHEAP_MAX_TOKENS
        assert "SUMMARY CONTEXT" in kwargs["system"]
        assert "FULL CONTEXT" not in kwargs["system"]

        # Same question, different spacing and case
        replay = await _collect(streamer, AnswerRequest(question="  what is gpl HEALTH? ", session_id="s1"))

        assert client.messages.stream.call_count == 1
        assert [e["type"] for e in replay] == ["meta", "text", "done"]
        assert replay[0]["cached"] is True
        assert replay[0]["tier_used"] == "cheap"
        assert replay[1]["text"] == "GPL is at 7/10."
        assert replay[2]["cached"] is True
        assert replay[2]["usage"] is None

        await budget.flush()
        assert len(usage_store.rows) == 2
        replayed = [r for r in usage_store.rows if r["cached"]]
        generated = [r for r in usage_store.rows if not r["cached"]]
        assert replayed[0]["weighted_tokens"] == 0
        assert replayed[0]["model_id"] == "cache"
        assert generated[0]["query_type"] == "health_lookup"
        assert generated[0]["model_id"] == get_settings().CHEAP_MODEL


class TestBudgetCaps:
    @pytest.mark.asyncio
    async def test_deep_question_capped_at_warn_band(self, assembler, cache, cache_store, budget):
        budget.hydrate([{"model_tier": "deep", "weighted_tokens": 8500}])
        client = make_stream_client(["Agencies compared."])
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="Compare all agencies this quarter"))

        meta, done = events[0], events[-1]
        assert meta["tier"] == "deep"
        assert meta["tier_label"] == "Deep"
        assert meta["tier_used"] == "standard"
        assert meta["warning"] == WARNING_HIGH
        assert done["tier_used"] == "standard"
        assert done["warning"] == WARNING_HIGH

        kwargs = _call_kwargs(client)
        assert kwargs["model"] == get_settings().STANDARD_MODEL
        assert "FOCUSED CONTEXT" in kwargs["system"]
        assert "FULL CONTEXT" not in kwargs["system"]

        rows = list(cache_store.rows.values())
        assert len(rows) == 1
        assert rows[0]["model_tier"] == "standard"

    @pytest.mark.asyncio
    async def test_exhausted_budget_uses_cheap(self, assembler, cache, budget):
        budget.hydrate([{"model_tier": "deep", "weighted_tokens": DAILY_LIMIT}])
        client = make_stream_client(["Short answer."])
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="What should we prioritize this week?"))

        assert events[0]["tier"] == "deep"
        assert events[0]["tier_used"] == "cheap"
        assert events[0]["warning"] == WARNING_EXHAUSTED
        assert events[-1]["remaining"] == 0
        assert _call_kwargs(client)["model"] == get_settings().CHEAP_MODEL


class TestForceDeep:
    @pytest.mark.asyncio
    async def test_skips_cache_and_is_not_stored(self, assembler, cache, cache_store, budget, usage_store):
        client = make_stream_client(["Linden road is on track."])
        streamer = _streamer(client, assembler, cache, budget)
        question = "Tell me about the Linden highway project"

        first = await _collect(streamer, AnswerRequest(question=question))
        assert first[0]["tier_used"] == "standard"
        assert len(cache_store.rows) == 1

        forced = await _collect(streamer, AnswerRequest(question=question, force_deep=True))

        assert client.messages.stream.call_count == 2
        assert len(cache_store.lookups) == 1
        assert forced[0]["tier"] == "deep"
        assert forced[0]["tier_used"] == "deep"
        assert forced[0]["cached"] is False
        assert forced[-1]["type"] == "done"
        assert _call_kwargs(client)["model"] == get_settings().DEEP_MODEL
        assert "FULL CONTEXT" in _call_kwargs(client)["system"]
        assert len(cache_store.rows) == 1

        await budget.flush()
        forced_rows = [r for r in usage_store.rows if r["query_type"] == "forced_deep"]
        assert len(forced_rows) == 1
        assert forced_rows[0]["model_tier"] == ModelTier.DEEP.value

    @pytest.mark.asyncio
    async def test_force_deep_still_capped(self, assembler, cache, budget):
        budget.hydrate([{"model_tier": "deep", "weighted_tokens": 9600}])
        client = make_stream_client(["ok"])
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="anything", force_deep=True))
        assert events[0]["tier"] == "deep"
        assert events[0]["tier_used"] == "cheap"


class TestFailures:
    @pytest.mark.asyncio
    async def test_model_error_emits_error_and_persists_nothing(
        self, assembler, cache, cache_store, budget, usage_store
    ):
        client = make_stream_client([], error=RuntimeError("overloaded"))
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="What is GPL health?"))

        assert [e["type"] for e in events] == ["meta", "error"]
        assert events[1]["error"] == "overloaded"
        assert cache_store.rows == {}
        await budget.flush()
        assert usage_store.rows == []
        assert budget.used_today() == 0

    @pytest.mark.asyncio
    async def test_disconnect_stops_without_persisting(self, assembler, cache, cache_store, budget, usage_store):
        client = make_stream_client(["one", "two"])
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(
            streamer,
            AnswerRequest(question="What is GPL health?"),
            is_disconnected=AsyncMock(return_value=True),
        )

        assert [e["type"] for e in events] == ["meta"]
        client.messages.stream.return_value.__aexit__.assert_awaited()
        assert cache_store.rows == {}
        await budget.flush()
        assert usage_store.rows == []

    @pytest.mark.asyncio
    async def test_context_failure_still_answers(self, assembler, cache, budget):
        assembler.assemble = AsyncMock(side_effect=RuntimeError("sources exploded"))
        client = make_stream_client(["Best effort."])
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="Tell me about the roads"))

        assert events[-1]["type"] == "done"
        assert CONTEXT_UNAVAILABLE in _call_kwargs(client)["system"]

    @pytest.mark.asyncio
    async def test_cache_store_down_still_answers(self, assembler, cache, cache_store, budget):
        cache_store.fail_reads = True
        cache_store.fail_writes = True
        client = make_stream_client(["Fine."])
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="What is GPL health?"))
        assert [e["type"] for e in events] == ["meta", "text", "done"]


class TestMarkersAndHistory:
    @pytest.mark.asyncio
    async def test_markers_extracted_into_done(self, assembler, cache, cache_store, budget):
        client = make_stream_client(
            [
                "Reserve is thin.",
                '\n<!-- suggestions: ["Which stations are down?"] -->',
                '\n<!-- action: {"label": "Open GPL", "route": "/intel/gpl"} -->',
            ]
        )
        streamer = _streamer(client, assembler, cache, budget)

        events = await _collect(streamer, AnswerRequest(question="Tell me about GPL stations"))

        done = events[-1]
        assert done["suggestions"] == ["Which stations are down?"]
        assert done["actions"] == [{"label": "Open GPL", "route": "/intel/gpl"}]
        row = next(iter(cache_store.rows.values()))
        assert row["response_text"] == "Reserve is thin."

    @pytest.mark.asyncio
    async def test_history_starts_with_user_turn(self, assembler, cache, budget):
        client = make_stream_client(["ok"])
        streamer = _streamer(client, assembler, cache, budget)
        request = AnswerRequest(
            question="And GWI?",
            conversation_history=[
                HistoryMessage(role="assistant", content="Welcome."),
                HistoryMessage(role="user", content="How is GPL?"),
                HistoryMessage(role="assistant", content="GPL is fine."),
            ],
        )

        await _collect(streamer, request)

        messages = _call_kwargs(client)["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "And GWI?"

    @pytest.mark.asyncio
    async def test_long_history_summarized_by_cheap_model(self, assembler, cache, budget, usage_store):
        client = make_stream_client(["ok"])
        summary = MagicMock()
        summary.content = [MagicMock(text="Discussed GPL and GWI.")]
        summary.usage.input_tokens = 300
        summary.usage.output_tokens = 20
        client.messages.create = AsyncMock(return_value=summary)
        streamer = _streamer(client, assembler, cache, budget)
        history = [
            HistoryMessage(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}") for i in range(12)
        ]

        events = await _collect(streamer, AnswerRequest(question="And CJIA?", conversation_history=history))

        assert events[-1]["type"] == "done"
        assert client.messages.create.call_args.kwargs["model"] == get_settings().CHEAP_MODEL
        messages = _call_kwargs(client)["messages"]
        assert messages[0]["content"] == "[Previous conversation summary: Discussed GPL and GWI.]"
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "And CJIA?"

        await budget.flush()
        summary_rows = [r for r in usage_store.rows if r["query_type"] == "history_summary"]
        assert len(summary_rows) == 1
        assert summary_rows[0]["input_tokens"] == 300
        assert summary_rows[0]["model_tier"] == "cheap"

    @pytest.mark.asyncio
    async def test_history_summary_failure_truncates(self, assembler, cache, budget):
        client = make_stream_client(["ok"])
        client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        streamer = _streamer(client, assembler, cache, budget)
        history = [
            HistoryMessage(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}") for i in range(12)
        ]

        events = await _collect(streamer, AnswerRequest(question="And CJIA?", conversation_history=history))

        assert events[-1]["type"] == "done"
        messages = _call_kwargs(client)["messages"]
        assert len(messages) <= get_settings().HISTORY_FALLBACK_MESSAGES
        assert messages[0]["role"] == "user"
        assert messages[-1]["content"] == "And CJIA?"


class TestPagePartition:
    @pytest.mark.asyncio
    async def test_same_question_on_two_pages_answered_twice(self, assembler, cache, cache_store, budget):
        client = make_stream_client(["GPL is at 7/10."])
        streamer = _streamer(client, assembler, cache, budget)

        home = await _collect(streamer, AnswerRequest(question="What is GPL health?", current_page="/"))
        intel = await _collect(streamer, AnswerRequest(question="What is GPL health?", current_page="/intel/gpl"))

        assert home[0]["cached"] is False
        assert intel[0]["cached"] is False
        assert client.messages.stream.call_count == 2
        assert len(cache_store.rows) == 2
        assert {r["current_page"] for r in cache_store.rows.values()} == {"/", "/intel/gpl"}

        again = await _collect(streamer, AnswerRequest(question="What is GPL health?", current_page="/intel/gpl"))
        assert again[0]["cached"] is True
        assert client.messages.stream.call_count == 2


class TestLocalAnswers:
    METRICS = {
        "health": {"gpl": {"score": 7, "label": "Adequate", "breakdown": "Reserve 32MW"}},
        "tasks": {"active": 10, "overdue": 3, "due_today": 1},
    }

    @pytest.mark.asyncio
    async def test_answered_without_model_or_cache(self, assembler, cache, cache_store, budget, usage_store):
        client = make_stream_client(["unused"])
        loader = AsyncMock(return_value=self.METRICS)
        streamer = _streamer(client, assembler, cache, budget, metrics_loader=loader)

        events = await _collect(streamer, AnswerRequest(question="What's the GPL health score?", current_page="/intel"))

        assert [e["type"] for e in events] == ["meta", "text", "done"]
        meta, text, done = events
        assert meta["local"] is True
        assert meta["cached"] is False
        assert meta["tier_used"] == "cheap"
        assert text["text"].startswith("**GPL health score: 7/10**")
        assert done["local"] is True
        assert done["usage"] == {"input_tokens": 0, "output_tokens": 0}
        assert len(done["suggestions"]) == 3
        assert done["remaining"] == DAILY_LIMIT

        client.messages.stream.assert_not_called()
        assembler.assemble.assert_not_awaited()
        loader.assert_awaited_once_with("/intel")
        assert cache_store.lookups == []
        assert cache_store.rows == {}

        await budget.flush()
        assert len(usage_store.rows) == 1
        assert usage_store.rows[0]["query_type"] == "local_answer"
        assert usage_store.rows[0]["model_id"] == "local"
        assert usage_store.rows[0]["weighted_tokens"] == 0

    @pytest.mark.asyncio
    async def test_loader_skipped_for_open_questions(self, assembler, cache, budget):
        loader = AsyncMock(return_value=self.METRICS)
        streamer = _streamer(make_stream_client(["ok"]), assembler, cache, budget, metrics_loader=loader)

        await _collect(streamer, AnswerRequest(question="Tell me about the Linden highway project"))
        loader.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_force_deep_bypasses_local(self, assembler, cache, budget):
        client = make_stream_client(["Deep answer."])
        loader = AsyncMock(return_value=self.METRICS)
        streamer = _streamer(client, assembler, cache, budget, metrics_loader=loader)

        events = await _collect(streamer, AnswerRequest(question="How many tasks are overdue?", force_deep=True))

        assert events[0]["local"] is False
        assert events[0]["tier_used"] == "deep"
        loader.assert_not_awaited()
        assert client.messages.stream.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_figure_or_loader_failure_uses_model(self, assembler, cache, budget):
        client = make_stream_client(["From the model."])
        streamer = _streamer(
            client, assembler, cache, budget, metrics_loader=AsyncMock(side_effect=ConnectionError("down"))
        )

        events = await _collect(streamer, AnswerRequest(question="How many tasks are overdue?"))
        assert events[0]["local"] is False
        assert events[-1]["type"] == "done"

        streamer = _streamer(client, assembler, cache, budget, metrics_loader=AsyncMock(return_value={"tasks": {}}))
        events = await _collect(streamer, AnswerRequest(question="What's the reserve margin?"))
        assert events[0]["local"] is False
        assert client.messages.stream.call_count == 2
